"""
Ledger Worker - Oracle Status Stream Consumer

Plays the orchestration role at the ledger boundary: consumes
oracle-confirmed flight statuses and applies them as the authorized
orchestrator principal (settings.ORCHESTRATOR_ADDRESS). The owner must have
authorized that principal (surety-ledger authorize-caller) beforehand.

This worker uses ONLY:
- suretycore (DB, settings, logging, redis)
- surety_engine (ledger, consumer, outbox notifier and gateway)

Ledger events and payout instructions go to the ledger outbox in the same
transaction as the settlement; apps/outbox-relay publishes them.

Features:
- XREADGROUP consumer for horizontal scaling (replicas are safe: the ledger
  claims flights with a conditional UPDATE and versions shared rows)
- PEL reclaim for stuck messages
- Idempotency via ledger_processed_events table
- Graceful shutdown
"""

import logging
import os
import signal
import socket
import sys
import threading
import time

from suretycore.db import get_db
from suretycore.logging import setup_logging
from suretycore.redis import ensure_stream_group
from suretycore.settings import get_settings
from surety_engine.consumer import OracleStatusConsumer, consume_from_stream, reclaim_pending_messages
from surety_engine.ledger import FlightSuretyLedger
from surety_engine.notifications import OutboxNotifier
from surety_engine.payments import OutboxPaymentGateway

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

# Configuration
STREAM_NAME = settings.ORACLE_STATUS_STREAM
GROUP_NAME = settings.LEDGER_GROUP_NAME
CONSUMER_NAME = os.getenv("LEDGER_CONSUMER_NAME", f"ledger-{socket.gethostname()}-{os.getpid()}")

# One ledger operation at a time across the consume and reclaim threads
ledger_lock = threading.Lock()

# Graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


signal.signal(signal.SIGTERM, signal_handler)
signal.signal(signal.SIGINT, signal_handler)


def build_consumer(db) -> OracleStatusConsumer:
    """Ledger wired to the outbox for events and payouts."""
    ledger = FlightSuretyLedger(
        db,
        notifier=OutboxNotifier(db, settings.LEDGER_EVENTS_STREAM),
        gateway=OutboxPaymentGateway(db, settings.PAYOUTS_STREAM),
    )
    return OracleStatusConsumer(ledger, settings.ORCHESTRATOR_ADDRESS)


def ensure_consumer_group() -> bool:
    """Ensure the consumer group exists for the stream."""
    try:
        created = ensure_stream_group(STREAM_NAME, GROUP_NAME, start_id="0")
        if created:
            logger.info(f"Created consumer group '{GROUP_NAME}' for stream '{STREAM_NAME}'")
        return True
    except Exception as e:
        logger.error(f"Failed to ensure consumer group: {e}", exc_info=True)
        return False


def reclaim_once() -> int:
    db = next(get_db())
    try:
        with ledger_lock:
            return reclaim_pending_messages(
                build_consumer(db),
                stream_name=STREAM_NAME,
                group_name=GROUP_NAME,
                consumer_name=CONSUMER_NAME,
                min_idle_ms=settings.LEDGER_RECLAIM_IDLE_MS,
                count=100,
            )
    finally:
        db.close()


def run_reclaim_loop():
    """
    Background thread for reclaiming pending messages.

    Runs every LEDGER_RECLAIM_INTERVAL seconds.
    """
    logger.info(
        f"Starting PEL reclaim loop (interval={settings.LEDGER_RECLAIM_INTERVAL}s, "
        f"idle_threshold={settings.LEDGER_RECLAIM_IDLE_MS}ms)"
    )

    while not shutdown_requested:
        try:
            for _ in range(settings.LEDGER_RECLAIM_INTERVAL):
                if shutdown_requested:
                    return
                time.sleep(1)

            reclaimed = reclaim_once()
            if reclaimed > 0:
                logger.info(f"Reclaimed and processed {reclaimed} pending messages")

        except Exception as e:
            logger.error(f"Error in reclaim loop: {e}", exc_info=True)


def main():
    """Main worker loop."""
    logger.info(
        f"Starting ledger worker (stream={STREAM_NAME}, group={GROUP_NAME}, "
        f"consumer={CONSUMER_NAME}, batch={settings.LEDGER_BATCH_SIZE})"
    )

    if not ensure_consumer_group():
        logger.error("Failed to initialize consumer group, exiting")
        sys.exit(1)

    # Pick up messages orphaned by a previous run
    try:
        initial_reclaimed = reclaim_once()
        if initial_reclaimed > 0:
            logger.info(f"Initial reclaim: processed {initial_reclaimed} orphaned messages")
    except Exception as e:
        logger.warning(f"Initial reclaim failed: {e}")

    reclaim_thread = threading.Thread(target=run_reclaim_loop, daemon=True)
    reclaim_thread.start()

    while not shutdown_requested:
        db = next(get_db())
        try:
            consumer = build_consumer(db)
            with ledger_lock:
                count = consume_from_stream(
                    consumer,
                    stream_name=STREAM_NAME,
                    group_name=GROUP_NAME,
                    consumer_name=CONSUMER_NAME,
                    count=settings.LEDGER_BATCH_SIZE,
                    block_ms=settings.LEDGER_BLOCK_MS,
                )
            if count > 0:
                logger.info(f"Processed {count} flight status events")

        except KeyboardInterrupt:
            break
        except Exception as e:
            logger.error(f"Error in consume loop: {e}", exc_info=True)
            time.sleep(1)
        finally:
            db.close()

    logger.info("Ledger worker shutting down gracefully")


if __name__ == "__main__":
    main()
