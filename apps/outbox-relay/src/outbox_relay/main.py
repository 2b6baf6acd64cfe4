"""
Outbox Relay - Ledger DB to Redis Streams

This service:
1. Polls the ledger outbox for unpublished rows
2. Publishes each row to its Redis stream (ledger events, payout instructions)
3. Marks rows as published

Uses FOR UPDATE SKIP LOCKED for safe multi-replica operation.
"""

import logging
import signal
import time

from suretycore.db import get_db
from suretycore.logging import setup_logging
from suretycore.settings import get_settings
from surety_engine.outbox import relay_batch

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

# Graceful shutdown
shutdown_requested = False


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


signal.signal(signal.SIGTERM, signal_handler)
signal.signal(signal.SIGINT, signal_handler)


def main():
    """Main relay loop."""
    logger.info(
        f"Starting outbox relay (batch_size={settings.OUTBOX_BATCH_SIZE}, "
        f"poll_empty={settings.OUTBOX_POLL_INTERVAL_EMPTY}s, poll_busy={settings.OUTBOX_POLL_INTERVAL_BUSY}s)"
    )

    while not shutdown_requested:
        db = next(get_db())
        try:
            count = relay_batch(db, batch_size=settings.OUTBOX_BATCH_SIZE, max_len=settings.STREAM_MAX_LEN)
            if count > 0:
                logger.info(f"Relayed {count} outbox messages")
                time.sleep(settings.OUTBOX_POLL_INTERVAL_BUSY)
            else:
                time.sleep(settings.OUTBOX_POLL_INTERVAL_EMPTY)

        except KeyboardInterrupt:
            break
        except Exception as e:
            logger.error(f"Error in relay loop: {e}", exc_info=True)
            time.sleep(settings.OUTBOX_POLL_INTERVAL_EMPTY)
        finally:
            db.close()

    logger.info("Outbox relay shutting down gracefully")


if __name__ == "__main__":
    main()
