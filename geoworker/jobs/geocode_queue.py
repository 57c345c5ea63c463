"""Drain the ``geocode_queue`` table filled by the platform's address triggers."""

import argparse
import json
import logging
import time
from typing import Callable, Dict, List, Optional, Sequence

import psycopg2

from geoworker.core.config import ConfigError, get_settings
from geoworker.core.db import Database
from geoworker.etl.address import is_blank_address
from geoworker.models import GeocodeStatus, QueueItem, QueueRunResult, QueueStatus, entity_kind_for
from geoworker.vendors.nominatim import GeocodingError, NominatimClient

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BATCH_SIZE = 10


def _retry_status(attempts: int, max_attempts: int) -> QueueStatus:
    return QueueStatus.FAILED if attempts >= max_attempts else QueueStatus.PENDING


def process_item(
    database: Database,
    geocoder: NominatimClient,
    item: QueueItem,
    errors: Optional[List[Dict[str, str]]] = None,
) -> bool:
    """Geocode one queue item and write its outcome. Returns True on success.

    Exceptions from the geocoder or the database propagate so the caller can
    schedule a retry. Once an item is marked failed as not found, a failing
    entity-status write is only logged and appended to ``errors``; the item
    stays failed.
    """
    kind = entity_kind_for(item.table_name)
    attempts = item.attempts + 1
    coords = geocoder.geocode(item.address)

    if coords is not None:
        database.call_location_procedure(kind, item.record_id, longitude=coords.lon, latitude=coords.lat)
        database.update_queue_item(item.id, QueueStatus.COMPLETED.value, attempts)
        logger.info("Geocoded %s %s", item.table_name, item.record_id)
        return True

    database.update_queue_item(item.id, QueueStatus.FAILED.value, attempts)
    try:
        database.set_geocode_status(kind, item.record_id, GeocodeStatus.NOT_FOUND)
    except psycopg2.Error as exc:
        logger.error("Failed to mark %s %s as not found: %s", item.table_name, item.record_id, exc)
        if errors is not None:
            errors.append({"item_id": item.id, "error": str(exc)})
    logger.info("Address not found for %s %s", item.table_name, item.record_id)
    return False


def process_queue(
    database: Database,
    geocoder: NominatimClient,
    *,
    batch_size: int = BATCH_SIZE,
    max_attempts: int = MAX_ATTEMPTS,
    rate_limit_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> QueueRunResult:
    """Process one batch of pending queue items, oldest first."""
    items = database.fetch_pending_queue_items(limit=batch_size, max_attempts=max_attempts)
    result = QueueRunResult()
    if not items:
        logger.info("No pending items in queue")
        return result

    logger.info("Processing %d queue items", len(items))
    calls_made = 0

    for item in items:
        result.processed += 1

        if is_blank_address(item.address):
            logger.info("Skipping item %s: invalid address", item.id)
            try:
                database.update_queue_item(item.id, QueueStatus.FAILED.value, item.attempts + 1)
            except psycopg2.Error as exc:
                logger.error("Failed to mark queue item %s as failed: %s", item.id, exc)
                result.errors.append({"item_id": item.id, "error": str(exc)})
            result.failed += 1
            continue

        if calls_made:
            sleep(rate_limit_seconds)
        calls_made += 1

        try:
            if process_item(database, geocoder, item, errors=result.errors):
                result.success += 1
            else:
                result.failed += 1
        except (GeocodingError, psycopg2.Error, ValueError) as exc:
            logger.error("Error processing queue item %s: %s", item.id, exc)
            attempts = item.attempts + 1
            status = _retry_status(attempts, max_attempts)
            try:
                database.update_queue_item(item.id, status.value, attempts)
            except psycopg2.Error as write_exc:
                logger.error("Failed to reschedule queue item %s: %s", item.id, write_exc)
            result.failed += 1
            result.errors.append({"item_id": item.id, "error": str(exc)})

    logger.info("Queue processing complete: %s", result.to_dict())
    return result


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Process pending geocode queue items")
    parser.add_argument("--batch-size", dest="batch_size", type=int, help="Maximum items to process")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        settings = get_settings()
        database = Database(settings.database_url)
        geocoder = NominatimClient(
            base_url=settings.nominatim_url,
            user_agent=settings.nominatim_user_agent,
            timeout=settings.request_timeout,
        )
        try:
            result = process_queue(
                database,
                geocoder,
                batch_size=args.batch_size or settings.queue_batch_size,
                max_attempts=settings.queue_max_attempts,
                rate_limit_seconds=settings.rate_limit_seconds,
            )
        finally:
            geocoder.close()
            database.close()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(1) from exc
    except Exception as exc:  # noqa: BLE001
        logger.error("Queue worker failed: %s", exc, exc_info=True)
        raise SystemExit(1) from exc

    print(json.dumps(result.to_dict(), indent=2))


if __name__ == "__main__":
    main()
