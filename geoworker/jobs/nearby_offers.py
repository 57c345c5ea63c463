"""Nearby offer discovery for a client, ranked for display."""

import logging
from datetime import datetime
from typing import List, Optional

import psycopg2

from geoworker.core.config import RankingWeights
from geoworker.core.db import Database
from geoworker.etl.geo import decode_location, haversine_distance_m
from geoworker.etl.ranking import DEFAULT_WEIGHTS, rank_offers
from geoworker.models import Offer, RankedOffer

logger = logging.getLogger(__name__)


class LocationNotFoundError(LookupError):
    """Raised when a client has no usable stored location."""


def radius_to_meters(radius_km: float) -> int:
    return int(round(radius_km * 1000))


def _offers_within_radius(database: Database, client_id: str, radius_meters: int) -> List[Offer]:
    client_point = decode_location(database.fetch_client_location(client_id))
    if client_point is None:
        raise LocationNotFoundError(f"Client {client_id} has no stored location")

    offers: List[Offer] = []
    for row in database.fetch_active_offers():
        offer_point = decode_location(row.get("location"))
        if offer_point is None:
            continue
        distance = haversine_distance_m(client_point.lat, client_point.lon, offer_point.lat, offer_point.lon)
        if distance > radius_meters:
            continue
        offers.append(
            Offer.from_row(
                {**row, "offer_lat": offer_point.lat, "offer_lng": offer_point.lon},
                distance_m=distance,
            )
        )
    offers.sort(key=lambda offer: offer.distance_m)
    return offers


def find_nearby_offers(database: Database, client_id: str, radius_km: float) -> List[Offer]:
    """Offers within ``radius_km`` of the client's stored location.

    Uses ``get_offers_near_client`` and falls back to computing distances here
    when the stored procedure is unavailable.
    """
    radius_meters = radius_to_meters(radius_km)
    try:
        rows = database.fetch_offers_near_client(client_id, radius_meters)
    except psycopg2.Error as exc:
        logger.warning("get_offers_near_client failed for %s, using fallback: %s", client_id, exc)
        return _offers_within_radius(database, client_id, radius_meters)
    return [Offer.from_row(row) for row in rows]


def ranked_nearby_offers(
    database: Database,
    client_id: str,
    radius_km: float,
    *,
    now: Optional[datetime] = None,
    weights: RankingWeights = DEFAULT_WEIGHTS,
) -> List[RankedOffer]:
    offers = find_nearby_offers(database, client_id, radius_km)
    logger.info("Found %d offers within %skm of client %s", len(offers), radius_km, client_id)
    return rank_offers(offers, now=now, weights=weights)
