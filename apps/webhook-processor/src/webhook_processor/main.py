"""
Webhook Processor Service

Consumes webhook envelopes from Redis Streams and reconciles them into the
relational store.

Features:
- XREADGROUP consumer for horizontal scaling
- Partial-batch acknowledgment: only successful entries are ACKed
- PEL reclaim for failed or stuck entries
- Dead-lettering after MAX_DELIVERIES
- Graceful shutdown
"""

import logging
import os
import signal
import socket
import threading
import time
from collections import OrderedDict

from webhook_core.db import dispose_engine, get_db
from webhook_core.logging import setup_logging
from webhook_core.redis import close_redis_client, get_redis_client
from webhook_core.settings import get_settings

from campaign_webhooks.service.batch_processor import BatchProcessor, BatchResult
from campaign_webhooks.streams.consumer import StreamEntry, WebhookStreamConsumer
from campaign_webhooks.streams.groups import ensure_streams

setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()

# Configuration
CONSUMER_NAME = os.getenv(
    "PROCESSOR_CONSUMER_NAME",
    f"webhook-processor-{socket.gethostname()}-{os.getpid()}",
)
BATCH_SIZE = max(1, min(settings.BATCH_SIZE, 10))
MAX_DELIVERIES_REASON = "max deliveries exceeded"

# Graceful shutdown
shutdown_requested = False

# Last error per entry id, reported when the entry is dead-lettered.
# Bounded: ids finished by another instance are never popped here.
MAX_TRACKED_ERRORS = 10000
_last_errors: OrderedDict[str, str] = OrderedDict()
_last_errors_lock = threading.Lock()


def signal_handler(signum, frame):
    global shutdown_requested
    logger.info(f"Received signal {signum}, requesting shutdown...")
    shutdown_requested = True


def process_entries(consumer: WebhookStreamConsumer, entries: list[StreamEntry]) -> BatchResult:
    """
    Process stream entries as one batch.

    Entries that already used up their deliveries go to the DLQ without
    being processed. Successful entries are acknowledged; failed ones stay
    pending for the reclaim loop.
    """
    batch = []
    for entry in entries:
        if entry.delivery_count >= settings.MAX_DELIVERIES:
            with _last_errors_lock:
                reason = _last_errors.pop(entry.msg_id, MAX_DELIVERIES_REASON)
            consumer.dead_letter(entry, reason)
        else:
            batch.append(entry)

    if not batch:
        return BatchResult()

    db = next(get_db())
    try:
        processor = BatchProcessor(db, item_timeout_ms=settings.ITEM_TIMEOUT_MS)
        result = processor.process_batch((e.msg_id, e.fields) for e in batch)
    finally:
        db.close()

    consumer.ack(*result.succeeded_item_ids)

    with _last_errors_lock:
        for msg_id in result.succeeded_item_ids:
            _last_errors.pop(msg_id, None)
        for msg_id, error in result.errors.items():
            _last_errors[msg_id] = error
            _last_errors.move_to_end(msg_id)
        while len(_last_errors) > MAX_TRACKED_ERRORS:
            _last_errors.popitem(last=False)

    logger.info(
        f"Processed batch of {len(batch)} entries",
        extra={
            "succeeded": len(result.succeeded_item_ids),
            "failed": len(result.failed_item_ids),
        },
    )
    return result


def run_reclaim_loop(redis_client):
    """Background thread for reclaiming pending entries."""
    logger.info(
        f"Starting PEL reclaim loop "
        f"(interval={settings.RECLAIM_INTERVAL_SEC}s, idle_threshold={settings.RECLAIM_IDLE_MS}ms)"
    )

    consumer = WebhookStreamConsumer(redis_client, CONSUMER_NAME)

    while not shutdown_requested:
        try:
            # Sleep first
            for _ in range(settings.RECLAIM_INTERVAL_SEC):
                if shutdown_requested:
                    return
                time.sleep(1)

            reclaimed = consumer.reclaim_pending(
                min_idle_ms=settings.RECLAIM_IDLE_MS,
                count=100,
            )
            if not reclaimed:
                continue

            logger.info(f"Reclaimed {len(reclaimed)} pending entries")
            for start in range(0, len(reclaimed), BATCH_SIZE):
                process_entries(consumer, reclaimed[start:start + BATCH_SIZE])

        except Exception as e:
            logger.error(f"Error in reclaim loop: {e}", exc_info=True)


def main_loop():
    """Main processor loop."""
    redis_client = get_redis_client()

    # Ensure streams exist
    ensure_streams(redis_client)

    consumer = WebhookStreamConsumer(redis_client, CONSUMER_NAME)

    logger.info(
        f"Starting webhook processor "
        f"(consumer={CONSUMER_NAME}, batch={BATCH_SIZE}, max_deliveries={settings.MAX_DELIVERIES})"
    )

    # Start reclaim background thread
    reclaim_thread = threading.Thread(
        target=run_reclaim_loop,
        args=(redis_client,),
        daemon=True,
    )
    reclaim_thread.start()

    while not shutdown_requested:
        try:
            entries = consumer.read_batch(count=BATCH_SIZE, block_ms=settings.BLOCK_MS)
            if entries:
                process_entries(consumer, entries)

        except KeyboardInterrupt:
            break
        except Exception as e:
            logger.error(f"Error in main loop: {e}", exc_info=True)
            time.sleep(1)

    logger.info("Webhook processor shutting down gracefully")


def main():
    """Entry point."""
    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    logger.info("Webhook processor starting...")
    try:
        main_loop()
    finally:
        dispose_engine()
        close_redis_client()


if __name__ == "__main__":
    main()
