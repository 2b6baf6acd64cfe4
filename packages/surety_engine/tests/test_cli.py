"""
Tests for the ledger CLI.
"""

import pytest
from typer.testing import CliRunner

from conftest import FIRST_AIRLINE, FLIGHT, ORCHESTRATOR, OWNER, PASSENGER, TIMESTAMP
from surety_engine import outbox
from surety_engine.cli import main as cli
from surety_engine.contracts.envelope import EventEnvelope
from surety_engine.keys import flight_key
from surety_engine.notifications import OutboxNotifier

runner = CliRunner()


@pytest.fixture
def cli_db(db_session, monkeypatch):
    monkeypatch.setattr(cli, "get_db", lambda: db_session)
    return db_session


class TestCli:
    def test_deploy_and_status(self, cli_db):
        result = runner.invoke(cli.app, ["deploy", OWNER, FIRST_AIRLINE, "First Air"])
        assert result.exit_code == 0
        assert "Ledger deployed" in result.output

        result = runner.invoke(cli.app, ["status"])
        assert result.exit_code == 0
        assert OWNER in result.output
        assert "Operational: True" in result.output

    def test_status_before_deploy_fails(self, cli_db):
        result = runner.invoke(cli.app, ["status"])

        assert result.exit_code == 1
        assert "ledger_not_deployed" in result.output

    def test_authorize_requires_owner(self, cli_db):
        runner.invoke(cli.app, ["deploy", OWNER, FIRST_AIRLINE, "First Air"])

        result = runner.invoke(cli.app, ["authorize-caller", PASSENGER, ORCHESTRATOR])
        assert result.exit_code == 1
        assert "not_owner" in result.output

        result = runner.invoke(cli.app, ["authorize-caller", OWNER, ORCHESTRATOR])
        assert result.exit_code == 0
        assert "Authorized" in result.output

    def test_set_operational_off(self, cli_db):
        runner.invoke(cli.app, ["deploy", OWNER, FIRST_AIRLINE, "First Air"])

        result = runner.invoke(cli.app, ["set-operational", OWNER, "--off"])

        assert result.exit_code == 0
        assert "Operational: False" in result.output

    def test_airline_and_missing_flight(self, cli_db):
        runner.invoke(cli.app, ["deploy", OWNER, FIRST_AIRLINE, "First Air"])

        result = runner.invoke(cli.app, ["airline", FIRST_AIRLINE])
        assert result.exit_code == 0
        assert "First Air" in result.output

        result = runner.invoke(cli.app, ["flight", FIRST_AIRLINE, FLIGHT, str(TIMESTAMP)])
        assert result.exit_code == 1

    def test_flight_key(self):
        result = runner.invoke(cli.app, ["flight-key", FIRST_AIRLINE, FLIGHT, str(TIMESTAMP)])

        assert result.exit_code == 0
        assert flight_key(FIRST_AIRLINE, FLIGHT, TIMESTAMP) in result.output

    def test_relay_outbox(self, cli_db, monkeypatch):
        runner.invoke(cli.app, ["deploy", OWNER, FIRST_AIRLINE, "First Air"])
        OutboxNotifier(cli_db, "flightsurety:ledger:events").stage(
            EventEnvelope.create("airline_actived", {"address": FIRST_AIRLINE})
        )
        cli_db.commit()
        published = []
        monkeypatch.setattr(outbox, "publish_to_stream", lambda stream, data, **kwargs: published.append(stream) or "1-0")

        result = runner.invoke(cli.app, ["status"])
        assert "Outbox pending: 1" in result.output

        result = runner.invoke(cli.app, ["relay-outbox"])
        assert result.exit_code == 0
        assert "Relayed 1 outbox messages" in result.output
        assert published == ["flightsurety:ledger:events"]

        result = runner.invoke(cli.app, ["status"])
        assert "Outbox pending: 0" in result.output
