"""Database helpers for the worker.

All access goes through an explicitly constructed :class:`Database`, which
owns its connection pool. Location writes for successful geocodes go through
the platform's stored procedures; the failure paths write the status columns
directly.
"""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

import psycopg2
from psycopg2 import extras, pool, sql

from geoworker.models import EntityKind, GeocodeStatus, LocatableEntity, QueueItem

logger = logging.getLogger(__name__)


_SELECT_UNLOCATED = "SELECT id, street, city, postal_code, country FROM {table} WHERE location IS NULL ORDER BY id"

_UPDATE_GEOCODE_STATUS = "UPDATE {table} SET geocode_status = %(status)s, geocoded_at = NOW() WHERE id = %(id)s"

_CALL_LOCATION_PROCEDURE = (
    "SELECT {procedure}({id_param} => %(id)s, longitude => %(longitude)s, latitude => %(latitude)s, status => %(status)s)"
)

_SELECT_PENDING_QUEUE = """
SELECT id, table_name, record_id, payload, attempts
FROM geocode_queue
WHERE status = 'pending' AND attempts < %(max_attempts)s
ORDER BY created_at ASC
LIMIT %(limit)s
"""

_UPDATE_QUEUE_ITEM = "UPDATE geocode_queue SET status = %(status)s, attempts = %(attempts)s WHERE id = %(id)s"

_REQUEUE_FAILED = """
UPDATE geocode_queue
SET status = 'pending', attempts = 0
WHERE status = 'failed'
RETURNING id
"""

_SELECT_OFFERS_NEAR_CLIENT = "SELECT * FROM get_offers_near_client(%(client_id)s, %(radius_meters)s)"

_SELECT_CLIENT_LOCATION = "SELECT ST_AsText(location) AS location FROM clients WHERE id = %(client_id)s"

_SELECT_ACTIVE_OFFERS = """
SELECT
    o.id,
    o.merchant_id,
    m.company_name AS merchant_name,
    o.title,
    o.description,
    o.image_url,
    o.price_before,
    o.price_after,
    o.discount_percent,
    o.available_from,
    o.available_until,
    o.quantity,
    ST_AsText(o.location) AS location
FROM offers o
JOIN merchants m ON m.id = o.merchant_id
WHERE o.is_active
  AND o.location IS NOT NULL
  AND o.available_from <= NOW()
  AND o.available_until >= NOW()
"""


class Database:
    """Pooled access to the hosted Postgres instance."""

    def __init__(self, dsn: str, minconn: int = 1, maxconn: int = 5) -> None:
        if not dsn:
            raise RuntimeError("DATABASE_URL is required for database connections")
        self._dsn = dsn
        self._minconn = minconn
        self._maxconn = maxconn
        self._pool: Optional[pool.ThreadedConnectionPool] = None

    def _get_pool(self) -> pool.ThreadedConnectionPool:
        if self._pool is None:
            self._pool = pool.ThreadedConnectionPool(
                self._minconn,
                self._maxconn,
                dsn=self._dsn,
                connect_timeout=10,
            )
            logger.info("Database connection pool initialised")
        return self._pool

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Context manager yielding a pooled connection."""
        pg_pool = self._get_pool()
        conn = pg_pool.getconn()
        try:
            yield conn
        finally:
            pg_pool.putconn(conn)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None

    def _fetch_all(self, query: Any, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self.connection() as conn:
            try:
                with conn.cursor(cursor_factory=extras.RealDictCursor) as cur:
                    cur.execute(query, params)
                    rows = cur.fetchall()
                conn.commit()
            except psycopg2.Error:
                conn.rollback()
                raise
        return [dict(row) for row in rows]

    def _execute(self, query: Any, params: Dict[str, Any]) -> None:
        with self.connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(query, params)
                conn.commit()
            except psycopg2.Error:
                conn.rollback()
                raise

    # ---------- Geocoding targets ----------

    def fetch_unlocated(self, kind: EntityKind) -> List[LocatableEntity]:
        """Return every row of ``kind`` whose location has not been set."""
        query = sql.SQL(_SELECT_UNLOCATED).format(table=sql.Identifier(kind.table_name))
        rows = self._fetch_all(query)
        return [LocatableEntity.from_row(row) for row in rows]

    def call_location_procedure(
        self,
        kind: EntityKind,
        entity_id: str,
        longitude: float,
        latitude: float,
        status: GeocodeStatus = GeocodeStatus.SUCCESS,
    ) -> None:
        query = sql.SQL(_CALL_LOCATION_PROCEDURE).format(
            procedure=sql.Identifier(kind.location_procedure),
            id_param=sql.Identifier(kind.id_param),
        )
        self._execute(
            query,
            {"id": entity_id, "longitude": longitude, "latitude": latitude, "status": GeocodeStatus(status).value},
        )
        logger.debug("Called %s for %s", kind.location_procedure, entity_id)

    def set_geocode_status(self, kind: EntityKind, entity_id: str, status: GeocodeStatus) -> None:
        query = sql.SQL(_UPDATE_GEOCODE_STATUS).format(table=sql.Identifier(kind.table_name))
        self._execute(query, {"id": entity_id, "status": GeocodeStatus(status).value})
        logger.debug("Set %s %s geocode_status=%s", kind.table_name, entity_id, GeocodeStatus(status).value)

    # ---------- Geocode queue ----------

    def fetch_pending_queue_items(self, limit: int, max_attempts: int) -> List[QueueItem]:
        rows = self._fetch_all(_SELECT_PENDING_QUEUE, {"limit": limit, "max_attempts": max_attempts})
        return [QueueItem.from_row(row) for row in rows]

    def update_queue_item(self, item_id: str, status: str, attempts: int) -> None:
        self._execute(_UPDATE_QUEUE_ITEM, {"id": item_id, "status": status, "attempts": attempts})

    def requeue_failed_items(self) -> int:
        rows = self._fetch_all(_REQUEUE_FAILED)
        return len(rows)

    # ---------- Nearby offers ----------

    def fetch_offers_near_client(self, client_id: str, radius_meters: int) -> List[Dict[str, Any]]:
        return self._fetch_all(_SELECT_OFFERS_NEAR_CLIENT, {"client_id": client_id, "radius_meters": radius_meters})

    def fetch_client_location(self, client_id: str) -> Optional[str]:
        rows = self._fetch_all(_SELECT_CLIENT_LOCATION, {"client_id": client_id})
        if not rows:
            return None
        return rows[0].get("location")

    def fetch_active_offers(self) -> List[Dict[str, Any]]:
        return self._fetch_all(_SELECT_ACTIVE_OFFERS)
