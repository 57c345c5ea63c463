from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from geoworker.core.config import RankingWeights
from geoworker.etl import ranking
from geoworker.models import Offer

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def make_offer(offer_id, distance_m=1000.0, hours=10.0, quantity=5, discount=50.0):
    return Offer(
        id=offer_id,
        price_before=10.0,
        price_after=5.0,
        discount_percent=discount,
        available_until=NOW + timedelta(hours=hours),
        quantity=quantity,
        distance_m=distance_m,
    )


@pytest.mark.parametrize(
    "hours,expected",
    [(-0.1, 0), (0, 100), (2, 100), (2.01, 80), (6, 80), (12, 60), (24, 40), (24.5, 20), (200, 20)],
)
def test_urgency_score_tiers(hours, expected):
    assert ranking.urgency_score(hours) == expected


def test_component_scores_are_clamped():
    assert ranking.distance_score(0) == 100
    assert ranking.distance_score(25000) == pytest.approx(50)
    assert ranking.distance_score(80000) == 0
    assert ranking.stock_score(25) == 100
    assert ranking.stock_score(-3) == 0
    assert ranking.discount_score(140) == 100


def test_example_offer_a_outranks_b():
    offer_a = make_offer("A", distance_m=500, hours=1, quantity=5, discount=50)
    offer_b = make_offer("B", distance_m=400, hours=48, quantity=5, discount=50)

    ranked = ranking.rank_offers([offer_b, offer_a], now=NOW)

    assert [r.offer.id for r in ranked] == ["A", "B"]
    assert ranked[0].sort_score == pytest.approx(99 * 0.3 + 40 + 5 + 10)
    assert ranked[1].sort_score == pytest.approx(99.2 * 0.3 + 8 + 5 + 10)
    assert ranked[0].expires_in_hours == pytest.approx(1)


def test_short_expiry_beats_long_expiry():
    soon = make_offer("soon", hours=1)
    later = make_offer("later", hours=30)

    ranked = ranking.rank_offers([later, soon], now=NOW)

    assert ranked[0].offer.id == "soon"


def test_ties_keep_input_order_and_ranking_is_deterministic():
    offers = [make_offer("x"), make_offer("y"), make_offer("z", hours=1)]

    first = ranking.rank_offers(offers, now=NOW)
    second = ranking.rank_offers(offers, now=NOW)

    assert [r.offer.id for r in first] == ["z", "x", "y"]
    assert first == second


def test_rank_offers_does_not_mutate_input():
    offers = [make_offer("far", distance_m=40000), make_offer("near", distance_m=10)]
    snapshot = list(offers)

    ranking.rank_offers(offers, now=NOW)

    assert offers == snapshot


def test_expired_offer_scores_no_urgency():
    expired = ranking.score_offer(make_offer("old", hours=-2), NOW)
    assert expired.expires_in_hours == pytest.approx(-2)
    assert expired.sort_score == pytest.approx(98 * 0.3 + 0 + 5 + 10)


def test_custom_weights():
    weights = RankingWeights(distance=1.0, urgency=0.0, stock=0.0, discount=0.0, max_distance_m=1000)
    near = make_offer("near", distance_m=100, hours=100)
    far = make_offer("far", distance_m=900, hours=1)

    ranked = ranking.rank_offers([far, near], now=NOW, weights=weights)

    assert [r.offer.id for r in ranked] == ["near", "far"]
    assert ranked[0].sort_score == pytest.approx(90)


def test_naive_datetimes_are_treated_as_utc():
    naive = replace(make_offer("naive"), available_until=datetime(2026, 10, 19, 15, 0))
    assert ranking.score_offer(naive, NOW).expires_in_hours == pytest.approx(3)


@pytest.mark.parametrize(
    "delta,expected",
    [
        (timedelta(minutes=-1), "Expired"),
        (timedelta(minutes=42, seconds=10), "42m left"),
        (timedelta(hours=3, minutes=5), "3h 5m left"),
        (timedelta(hours=25), "1 day left"),
        (timedelta(days=3, hours=2), "3 days left"),
    ],
)
def test_format_time_left(delta, expected):
    assert ranking.format_time_left(NOW + delta, now=NOW) == expected


def test_urgency_level_names():
    assert ranking.urgency_level(-1) == "expired"
    assert ranking.urgency_level(1) == "critical"
    assert ranking.urgency_level(5) == "high"
    assert ranking.urgency_level(10) == "medium"
    assert ranking.urgency_level(20) == "low"
    assert ranking.urgency_level(48) == "none"


def test_offer_payload_carries_urgency_and_time_left():
    ranked = ranking.rank_offers([make_offer("a", hours=3.5)], now=NOW)[0]

    payload = ranking.offer_payload(ranked, now=NOW)

    assert payload["id"] == "a"
    assert payload["sort_score"] == ranked.sort_score
    assert payload["urgency_level"] == "high"
    assert payload["time_left"] == "3h 30m left"
