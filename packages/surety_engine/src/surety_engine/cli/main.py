"""
FlightSurety Ledger CLI

Command-line interface for ledger administration and inspection.

Commands:
- init-db: Create ledger tables
- deploy: Initialize ledger state with its owner and first airline
- set-operational: Toggle the circuit breaker (owner only)
- authorize-caller / deauthorize-caller: Manage the authorized-caller list (owner only)
- status: Show global ledger state
- airlines: List airlines
- airline: Show one airline
- flight: Show a flight and its insurees
- credit: Show the credit owed to a principal
- flight-key: Print the key derived for (airline, flight, timestamp)
- relay-outbox: Publish one batch of pending outbox messages to Redis
"""

from decimal import Decimal

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from suretycore.settings import WEI_PER_UNIT
from surety_engine.errors import LedgerError
from surety_engine.keys import flight_key as derive_flight_key

app = typer.Typer(
    name="surety-ledger",
    help="FlightSurety Ledger CLI",
)

console = Console()


def get_db():
    """Get database session."""
    from suretycore.db import get_db as _get_db
    return next(_get_db())


def get_ledger(db):
    from suretycore.settings import get_settings
    from surety_engine.ledger import FlightSuretyLedger
    from surety_engine.notifications import OutboxNotifier
    from surety_engine.payments import OutboxPaymentGateway

    settings = get_settings()
    return FlightSuretyLedger(
        db,
        notifier=OutboxNotifier(db, settings.LEDGER_EVENTS_STREAM),
        gateway=OutboxPaymentGateway(db, settings.PAYOUTS_STREAM),
    )


def format_units(wei: int) -> str:
    return f"{Decimal(wei) / Decimal(WEI_PER_UNIT):f}"


@app.command()
def init_db():
    """Create ledger tables (safe to run repeatedly)."""
    from suretycore.db import get_engine
    from surety_engine.persistence import init_db as _init_db

    _init_db(get_engine())
    rprint("[green]Ledger tables ready[/green]")


@app.command()
def deploy(
    owner: str = typer.Argument(..., help="Owner principal address"),
    first_airline: str = typer.Argument(..., help="First airline address (starts registered)"),
    first_airline_name: str = typer.Argument(..., help="First airline name"),
):
    """
    Initialize the ledger.

    The owner controls the circuit breaker and the authorized-caller list.
    """
    from surety_engine.ledger import FlightSuretyLedger

    db = get_db()
    try:
        FlightSuretyLedger.deploy(db, owner, first_airline, first_airline_name)
        rprint("[green]Ledger deployed[/green]")
        rprint(f"  Owner: {owner}")
        rprint(f"  First airline: {first_airline_name} ({first_airline})")
    except LedgerError as e:
        rprint(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def set_operational(
    caller: str = typer.Argument(..., help="Owner address"),
    mode: bool = typer.Option(True, "--on/--off", help="Operational mode"),
):
    """Turn the ledger circuit breaker on or off."""
    db = get_db()
    try:
        get_ledger(db).set_operational_status(caller, mode)
        rprint(f"[green]Operational: {mode}[/green]")
    except LedgerError as e:
        rprint(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def authorize_caller(
    caller: str = typer.Argument(..., help="Owner address"),
    address: str = typer.Argument(..., help="Address to authorize"),
):
    """Allow an address (the orchestration layer) to report flight statuses."""
    db = get_db()
    try:
        added = get_ledger(db).authorize_caller(caller, address)
        if added:
            rprint(f"[green]Authorized {address}[/green]")
        else:
            rprint(f"[yellow]{address} was already authorized[/yellow]")
    except LedgerError as e:
        rprint(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def deauthorize_caller(
    caller: str = typer.Argument(..., help="Owner address"),
    address: str = typer.Argument(..., help="Address to remove"),
):
    """Remove an address from the authorized-caller list."""
    db = get_db()
    try:
        removed = get_ledger(db).deauthorize_caller(caller, address)
        if removed:
            rprint(f"[green]Deauthorized {address}[/green]")
        else:
            rprint(f"[yellow]{address} was not authorized[/yellow]")
    except LedgerError as e:
        rprint(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def status():
    """Show global ledger state."""
    db = get_db()
    try:
        ledger = get_ledger(db)
        rprint(f"[bold]Owner:[/bold] {ledger.owner()}")
        rprint(f"[bold]Operational:[/bold] {ledger.is_operational()}")
        rprint(f"[bold]Active airlines:[/bold] {ledger.total_actived_airlines()}")
        rprint(f"[bold]Custody:[/bold] {format_units(ledger.custody_balance())} units")

        callers = ledger.repo.list_authorized_callers()
        rprint(f"[bold]Authorized callers:[/bold] {', '.join(callers) if callers else '-'}")
        rprint(f"[bold]Outbox pending:[/bold] {ledger.repo.count_unpublished_outbox()}")
    except LedgerError as e:
        rprint(f"[red]{e.code}: {e.message}[/red]")
        raise typer.Exit(1)
    finally:
        db.close()


@app.command()
def airlines():
    """List airlines with their state and stake."""
    db = get_db()
    try:
        rows = get_ledger(db).list_airlines()

        if not rows:
            rprint("[yellow]No airlines found[/yellow]")
            return

        table = Table(title="Airlines")
        table.add_column("Address", style="cyan")
        table.add_column("Name")
        table.add_column("State", style="green")
        table.add_column("Approvals", justify="right")
        table.add_column("Stake", justify="right")

        for row in rows:
            table.add_row(
                row["address"],
                row["name"],
                row["state"],
                str(row["approvals"]),
                format_units(row["staked_fund"]),
            )

        console.print(table)
    finally:
        db.close()


@app.command()
def airline(address: str = typer.Argument(..., help="Airline address")):
    """Show an airline and its approvers."""
    db = get_db()
    try:
        info = get_ledger(db).get_airline(address)
        if info is None:
            rprint(f"[red]No airline at {address}[/red]")
            raise typer.Exit(1)

        rprint(f"[bold]{info['name']}[/bold] ({info['address']})")
        rprint(f"  State: {info['state']}")
        rprint(f"  Stake: {format_units(info['staked_fund'])} units")
        rprint(f"  Approvals ({len(info['approvals'])}):")
        for approver in info["approvals"]:
            rprint(f"    - {approver}")
    finally:
        db.close()


@app.command()
def flight(
    airline: str = typer.Argument(..., help="Airline address"),
    flight_id: str = typer.Argument(..., help="Flight identifier"),
    timestamp: int = typer.Argument(..., help="Departure timestamp (unix seconds)"),
):
    """Show a flight and its insurees."""
    db = get_db()
    try:
        ledger = get_ledger(db)
        info = ledger.get_flight(airline, flight_id, timestamp)
        if info is None:
            rprint(f"[red]No flight at key {derive_flight_key(airline, flight_id, timestamp)}[/red]")
            raise typer.Exit(1)

        rprint(f"[bold]{info['flight_id']}[/bold] key={info['flight_key']}")
        rprint(f"  Registered: {info['registered']}")
        rprint(f"  Processed: {info['processed']} (status {info['status_code']})")

        if info["insurees"]:
            table = Table(title="Insurees")
            table.add_column("Insuree", style="cyan")
            table.add_column("Premium", justify="right")
            for insuree in info["insurees"]:
                amount = ledger.get_insurance_amount(airline, flight_id, timestamp, insuree)
                table.add_row(insuree, format_units(amount))
            console.print(table)
    finally:
        db.close()


@app.command()
def credit(address: str = typer.Argument(..., help="Principal address")):
    """Show the credit owed to a principal."""
    db = get_db()
    try:
        amount = get_ledger(db).get_credit(address)
        rprint(f"{address}: {format_units(amount)} units ({amount} wei)")
    finally:
        db.close()


@app.command()
def flight_key(
    airline: str = typer.Argument(..., help="Airline address"),
    flight_id: str = typer.Argument(..., help="Flight identifier"),
    timestamp: int = typer.Argument(..., help="Departure timestamp (unix seconds)"),
):
    """Print the key derived for a flight."""
    rprint(derive_flight_key(airline, flight_id, timestamp))


@app.command()
def relay_outbox(
    batch_size: int = typer.Option(100, "--batch-size", help="Maximum messages to publish"),
):
    """Publish one batch of pending outbox messages to Redis."""
    from surety_engine.outbox import relay_batch

    db = get_db()
    try:
        count = relay_batch(db, batch_size=batch_size)
        rprint(f"[green]Relayed {count} outbox messages[/green]")
    finally:
        db.close()


if __name__ == "__main__":
    app()
