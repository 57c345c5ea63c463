"""HTTP entrypoint that triggers geocoding runs and serves ranked nearby offers."""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from flask import Flask, current_app, jsonify, request

from geoworker.core.config import get_settings
from geoworker.core.db import Database
from geoworker.etl.ranking import offer_payload
from geoworker.jobs.geocode_entities import ENTITY_CHOICES, format_summary, geocode_all, kinds_for
from geoworker.jobs.geocode_queue import process_queue
from geoworker.jobs.nearby_offers import LocationNotFoundError, ranked_nearby_offers
from geoworker.vendors.nominatim import NominatimClient

logger = logging.getLogger(__name__)

DEFAULT_RADIUS_KM = 10.0

# Every geocoding job (batch run or queue batch) goes through this single worker,
# so the geocoder is never hit in parallel.
_executor = ThreadPoolExecutor(max_workers=1)


def create_app(database: Optional[Database] = None, geocoder: Optional[NominatimClient] = None) -> Flask:
    """Build the Flask app; resources not injected are created from settings on first use."""
    app = Flask(__name__)
    app.extensions["geoworker"] = {"database": database, "geocoder": geocoder}
    _register_routes(app)
    return app


def _database() -> Database:
    resources = current_app.extensions["geoworker"]
    if resources["database"] is None:
        resources["database"] = Database(get_settings().database_url)
    return resources["database"]


def _geocoder() -> NominatimClient:
    resources = current_app.extensions["geoworker"]
    if resources["geocoder"] is None:
        settings = get_settings()
        resources["geocoder"] = NominatimClient(
            base_url=settings.nominatim_url,
            user_agent=settings.nominatim_user_agent,
            timeout=settings.request_timeout,
        )
    return resources["geocoder"]


def _register_routes(app: Flask) -> None:
    @app.get("/")
    def root() -> Any:
        return "ok", 200

    @app.get("/healthz")
    def healthcheck() -> Any:
        """Lightweight health endpoint; does not open a database connection."""
        return (
            jsonify(
                {
                    "status": "ok",
                    "revision": os.getenv("K_REVISION", "unknown"),
                    "region": os.getenv("X_GOOGLE_RUNTIMEREGION", "unknown"),
                }
            ),
            200,
        )

    @app.post("/geocode/run")
    def enqueue_geocoding() -> Any:
        """
        Queue a geocoding run for clients, merchants or both.
        Optional JSON field: entity ("clients" | "merchants" | "all", default "all").
        """
        payload: Dict[str, Any] = request.get_json(silent=True) or {}
        entity = str(payload.get("entity") or "all").strip().lower()
        if entity not in ENTITY_CHOICES:
            return jsonify({"error": f"entity must be one of: {', '.join(ENTITY_CHOICES)}"}), 400

        database = _database()
        geocoder = _geocoder()
        rate_limit_seconds = get_settings().rate_limit_seconds

        logger.info("Queueing geocoding run for entity=%s", entity)
        _executor.submit(_run_geocoding_safe, database, geocoder, entity, rate_limit_seconds)
        return jsonify({"data": {"status": "queued", "entity": entity}}), 202

    @app.post("/geocode/queue")
    def run_queue_batch() -> Any:
        """Process one batch of the geocode queue and report what happened.

        The batch waits behind any geocoding run already on the executor.
        """
        try:
            settings = get_settings()
            future = _executor.submit(
                process_queue,
                _database(),
                _geocoder(),
                batch_size=settings.queue_batch_size,
                max_attempts=settings.queue_max_attempts,
                rate_limit_seconds=settings.rate_limit_seconds,
            )
            result = future.result()
        except Exception as exc:  # noqa: BLE001
            logger.exception("Queue worker failed: %s", exc)
            return jsonify({"success": False, "error": str(exc) or "queue worker failed"}), 500
        return jsonify({"success": True, **result.to_dict()}), 200

    @app.get("/offers/nearby")
    def nearby_offers() -> Any:
        client_id = (request.args.get("client_id") or "").strip()
        if not client_id:
            return jsonify({"error": "client_id is required"}), 400

        radius_raw = request.args.get("radius_km")
        radius_km = DEFAULT_RADIUS_KM
        if radius_raw is not None:
            try:
                radius_km = float(radius_raw)
            except (TypeError, ValueError):
                return jsonify({"error": "radius_km must be numeric"}), 400
            if radius_km <= 0:
                return jsonify({"error": "radius_km must be positive"}), 400

        try:
            ranked = ranked_nearby_offers(
                _database(),
                client_id,
                radius_km,
                weights=get_settings().ranking_weights,
            )
        except LocationNotFoundError as exc:
            return jsonify({"error": str(exc)}), 404
        except Exception as exc:  # noqa: BLE001
            logger.exception("Nearby offer lookup failed for %s: %s", client_id, exc)
            return jsonify({"error": "nearby offer lookup failed"}), 500

        return jsonify({"data": [offer_payload(offer) for offer in ranked]}), 200


def _run_geocoding_safe(database: Database, geocoder: NominatimClient, entity: str, rate_limit_seconds: float) -> None:
    try:
        results = geocode_all(database, geocoder, kinds_for(entity), rate_limit_seconds=rate_limit_seconds)
    except Exception as exc:  # noqa: BLE001
        logger.exception("Geocoding run failed: %s", exc)
        return
    for table_name, stats in results.items():
        if stats is None:
            logger.error("%s geocoding aborted", table_name)
        else:
            logger.info("\n%s", format_summary(stats, title=f"{table_name.upper()} GEOCODING SUMMARY"))


app = create_app()


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s - %(message)s")
    port = get_settings().worker_port
    logger.info("[BOOT] Binding on 0.0.0.0:%d", port)
    app.run(host="0.0.0.0", port=port)


if __name__ == "__main__":
    main()
