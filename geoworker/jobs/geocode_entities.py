"""CLI job that geocodes clients and merchants whose location is still unset."""

import argparse
import logging
import time
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import psycopg2

from geoworker.core.config import ConfigError, get_settings
from geoworker.core.db import Database
from geoworker.etl.address import build_address
from geoworker.models import CLIENTS, MERCHANTS, Coordinates, EntityKind, GeocodeStats, GeocodeStatus, entity_kind_for
from geoworker.vendors.nominatim import GeocodingError, NominatimClient

logger = logging.getLogger(__name__)

ENTITY_CHOICES = ("clients", "merchants", "all")


def update_entity_location(
    database: Database,
    kind: EntityKind,
    entity_id: str,
    coords: Optional[Coordinates],
    status: GeocodeStatus,
) -> None:
    """Write a geocoding outcome for one record.

    Successful lookups go through the table's stored procedure, which sets the
    point and the status together. Every other outcome only touches
    ``geocode_status`` and ``geocoded_at``.
    """
    try:
        if coords is not None and status == GeocodeStatus.SUCCESS:
            database.call_location_procedure(kind, entity_id, longitude=coords.lon, latitude=coords.lat, status=status)
        else:
            database.set_geocode_status(kind, entity_id, status)
    except psycopg2.Error as exc:
        logger.error("Failed to update %s %s (status=%s): %s", kind.table_name, entity_id, GeocodeStatus(status).value, exc)
        raise


def geocode_entities(
    database: Database,
    geocoder: NominatimClient,
    kind: EntityKind,
    *,
    rate_limit_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> GeocodeStats:
    """Geocode every record of ``kind`` lacking a location, one request at a time."""
    logger.info("Starting %s geocoding", kind.table_name)
    try:
        entities = database.fetch_unlocated(kind)
    except psycopg2.Error as exc:
        logger.error("Failed to fetch %s: %s", kind.table_name, exc)
        raise

    stats = GeocodeStats(total=len(entities))
    if not entities:
        logger.info("No %s need geocoding.", kind.table_name)
        return stats

    logger.info("Found %d %s to geocode", len(entities), kind.table_name)
    calls_made = 0

    for index, entity in enumerate(entities, start=1):
        logger.info("[%d/%d] Processing %s %s", index, len(entities), kind.table_name, entity.id)
        address = build_address(entity)
        if not address:
            logger.info("Skipping %s: no address components available", entity.id)
            stats.skipped += 1
            continue

        # Nominatim's usage policy allows one request per second.
        if calls_made:
            sleep(rate_limit_seconds)
        calls_made += 1

        try:
            coords = geocoder.geocode(address)
            if coords is not None:
                update_entity_location(database, kind, entity.id, coords, GeocodeStatus.SUCCESS)
                logger.info("Geocoded %s -> %s, %s", entity.id, coords.lat, coords.lon)
                stats.success += 1
            else:
                update_entity_location(database, kind, entity.id, None, GeocodeStatus.NOT_FOUND)
                logger.info("No match for %s (%s)", entity.id, address)
                stats.not_found += 1
        except (GeocodingError, psycopg2.Error) as exc:
            logger.warning("Geocoding failed for %s: %s", entity.id, exc)
            stats.http_error += 1
            try:
                update_entity_location(database, kind, entity.id, None, GeocodeStatus.HTTP_ERROR)
            except psycopg2.Error:
                logger.warning("Could not record http_error status for %s; continuing", entity.id)
                stats.write_errors += 1

    logger.info("%s geocoding complete: %s", kind.table_name, stats.to_dict())
    return stats


def format_summary(stats: GeocodeStats, title: str = "GEOCODING SUMMARY") -> str:
    rule = "=" * 39
    lines = [
        rule,
        title,
        rule,
        f"Total processed:  {stats.total}",
        f"Success:          {stats.success}",
        f"Not found:        {stats.not_found}",
        f"HTTP errors:      {stats.http_error}",
        f"Skipped:          {stats.skipped}",
    ]
    if stats.write_errors:
        lines.append(f"Status writes failed: {stats.write_errors}")
    lines.append(rule)
    return "\n".join(lines)


def format_combined(results: Dict[str, Optional[GeocodeStats]]) -> str:
    """One-line total across every kind that ran to completion."""
    finished = [stats for stats in results.values() if stats is not None]
    success = sum(stats.success for stats in finished)
    total = sum(stats.total for stats in finished)
    return f"Geocoding complete! {success}/{total} locations updated successfully."


def kinds_for(entity: str) -> List[EntityKind]:
    if entity == "all":
        return [CLIENTS, MERCHANTS]
    return [entity_kind_for(entity)]


def geocode_all(
    database: Database,
    geocoder: NominatimClient,
    kinds: Iterable[EntityKind] = (CLIENTS, MERCHANTS),
    *,
    rate_limit_seconds: float = 1.0,
    sleep: Callable[[float], None] = time.sleep,
) -> Dict[str, Optional[GeocodeStats]]:
    """Run each kind in turn; a kind whose targets cannot be listed maps to None."""
    results: Dict[str, Optional[GeocodeStats]] = {}
    for kind in kinds:
        try:
            results[kind.table_name] = geocode_entities(
                database,
                geocoder,
                kind,
                rate_limit_seconds=rate_limit_seconds,
                sleep=sleep,
            )
        except psycopg2.Error:
            logger.exception("Aborting %s geocoding", kind.table_name)
            results[kind.table_name] = None
    return results


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Geocode clients and merchants without a stored location")
    parser.add_argument(
        "--entity",
        dest="entity",
        choices=ENTITY_CHOICES,
        default="all",
        help="Which table to geocode",
    )
    return parser


def run(entity: str) -> Dict[str, Optional[GeocodeStats]]:
    settings = get_settings()
    database = Database(settings.database_url)
    geocoder = NominatimClient(
        base_url=settings.nominatim_url,
        user_agent=settings.nominatim_user_agent,
        timeout=settings.request_timeout,
    )
    try:
        return geocode_all(database, geocoder, kinds_for(entity), rate_limit_seconds=settings.rate_limit_seconds)
    finally:
        geocoder.close()
        database.close()


def main(argv: Optional[Sequence[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    args = build_parser().parse_args(argv)

    try:
        results = run(args.entity)
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        raise SystemExit(1) from exc
    except Exception as exc:  # noqa: BLE001
        logger.error("Geocoding job failed: %s", exc, exc_info=True)
        raise SystemExit(1) from exc

    for table_name, stats in results.items():
        if stats is not None:
            print(format_summary(stats, title=f"{table_name.upper()} GEOCODING SUMMARY"))

    if len(results) > 1:
        print(format_combined(results))

    if any(stats is None for stats in results.values()):
        raise SystemExit(1)


if __name__ == "__main__":
    main()
