"""Smart ordering of nearby offers.

Each offer gets a weighted score built from four components, each on a
0-100 scale: proximity, urgency (time until the offer expires), remaining
stock and discount. Offers are returned highest score first.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from geoworker.core.config import RankingWeights
from geoworker.models import Offer, RankedOffer

DEFAULT_WEIGHTS = RankingWeights()

# (upper bound in hours, score, level) checked in order after the expired case.
_URGENCY_TIERS = (
    (2.0, 100.0, "critical"),
    (6.0, 80.0, "high"),
    (12.0, 60.0, "medium"),
    (24.0, 40.0, "low"),
)
_LONG_LIVED_SCORE = 20.0


def _clamp(value: float) -> float:
    return max(0.0, min(100.0, value))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _seconds_until(until: datetime, now: datetime) -> float:
    if until.tzinfo is None:
        until = until.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return (until - now).total_seconds()


def hours_until(until: datetime, now: datetime) -> float:
    return _seconds_until(until, now) / 3600.0


def distance_score(distance_m: float, max_distance_m: float = DEFAULT_WEIGHTS.max_distance_m) -> float:
    return _clamp(100.0 - (distance_m / max_distance_m) * 100.0)


def urgency_score(expires_in_hours: float) -> float:
    if expires_in_hours < 0:
        return 0.0
    for upper, score, _ in _URGENCY_TIERS:
        if expires_in_hours <= upper:
            return score
    return _LONG_LIVED_SCORE


def urgency_level(expires_in_hours: float) -> str:
    """Name of the urgency tier, for display."""
    if expires_in_hours < 0:
        return "expired"
    for upper, _, level in _URGENCY_TIERS:
        if expires_in_hours <= upper:
            return level
    return "none"


def stock_score(quantity: float) -> float:
    return _clamp(quantity * 10.0)


def discount_score(discount_percent: float) -> float:
    return _clamp(discount_percent)


def score_offer(offer: Offer, now: datetime, weights: RankingWeights = DEFAULT_WEIGHTS) -> RankedOffer:
    expires_in_hours = hours_until(offer.available_until, now)
    score = (
        distance_score(offer.distance_m, weights.max_distance_m) * weights.distance
        + urgency_score(expires_in_hours) * weights.urgency
        + stock_score(offer.quantity) * weights.stock
        + discount_score(offer.discount_percent) * weights.discount
    )
    return RankedOffer(offer=offer, sort_score=score, expires_in_hours=expires_in_hours)


def rank_offers(
    offers: Iterable[Offer],
    now: Optional[datetime] = None,
    weights: RankingWeights = DEFAULT_WEIGHTS,
) -> List[RankedOffer]:
    """Score every offer and sort by score, highest first.

    ``sorted`` is stable, so offers with equal scores keep their input order.
    """
    now = now or _utcnow()
    scored = [score_offer(offer, now, weights) for offer in offers]
    return sorted(scored, key=lambda ranked: ranked.sort_score, reverse=True)


def format_time_left(until: datetime, now: Optional[datetime] = None) -> str:
    now = now or _utcnow()
    seconds = _seconds_until(until, now)
    if seconds <= 0:
        return "Expired"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    if hours >= 24:
        days = hours // 24
        return f"{days} day{'s' if days > 1 else ''} left"
    if hours > 0:
        return f"{hours}h {minutes}m left"
    return f"{minutes}m left"


def offer_payload(ranked: RankedOffer, now: Optional[datetime] = None) -> Dict[str, Any]:
    """JSON-ready view of a ranked offer with its display hints."""
    payload = ranked.to_dict()
    payload["urgency_level"] = urgency_level(ranked.expires_in_hours)
    payload["time_left"] = format_time_left(ranked.offer.available_until, now)
    return payload
