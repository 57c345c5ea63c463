from datetime import datetime, timedelta, timezone

import psycopg2
import pytest

from geoworker.jobs import nearby_offers

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)


def offer_row(offer_id, location=None, distance_m=None, hours=5, quantity=3, discount=40):
    row = {
        "id": offer_id,
        "merchant_id": "m1",
        "merchant_name": "Boulangerie",
        "title": f"Offer {offer_id}",
        "price_before": "10.00",
        "price_after": "6.00",
        "discount_percent": discount,
        "available_from": NOW - timedelta(hours=1),
        "available_until": NOW + timedelta(hours=hours),
        "quantity": quantity,
    }
    if location is not None:
        row["location"] = location
    if distance_m is not None:
        row["distance_m"] = distance_m
    return row


class FakeOffersDatabase:
    def __init__(self, rpc_rows=None, rpc_error=None, client_location=None, active_offers=None):
        self.rpc_rows = rpc_rows or []
        self.rpc_error = rpc_error
        self.client_location = client_location
        self.active_offers = active_offers or []
        self.rpc_args = None

    def fetch_offers_near_client(self, client_id, radius_meters):
        self.rpc_args = (client_id, radius_meters)
        if self.rpc_error is not None:
            raise self.rpc_error
        return self.rpc_rows

    def fetch_client_location(self, client_id):
        return self.client_location

    def fetch_active_offers(self):
        return self.active_offers


def test_radius_to_meters_rounds():
    assert nearby_offers.radius_to_meters(2.5) == 2500
    assert nearby_offers.radius_to_meters(0.0004) == 0


def test_uses_stored_procedure_rows():
    database = FakeOffersDatabase(rpc_rows=[offer_row("o1", distance_m=1200)])

    offers = nearby_offers.find_nearby_offers(database, "c1", 5)

    assert database.rpc_args == ("c1", 5000)
    assert offers[0].id == "o1"
    assert offers[0].distance_m == 1200
    assert offers[0].price_after == 6.0


def test_fallback_filters_by_radius_and_sorts_by_distance():
    database = FakeOffersDatabase(
        rpc_error=psycopg2.ProgrammingError("function does not exist"),
        client_location="POINT(4.8320 45.7578)",
        active_offers=[
            offer_row("far", location="POINT(2.3499 48.8530)"),
            offer_row("near", location="POINT(4.8330 45.7580)"),
            offer_row("mid", location="POINT(4.8500 45.7600)"),
            offer_row("broken", location=None),
        ],
    )

    offers = nearby_offers.find_nearby_offers(database, "c1", 10)

    assert [offer.id for offer in offers] == ["near", "mid"]
    assert offers[0].distance_m < offers[1].distance_m < 10000
    assert offers[0].offer_lat == pytest.approx(45.758)
    assert offers[0].offer_lng == pytest.approx(4.833)


def test_fallback_without_client_location_raises():
    database = FakeOffersDatabase(rpc_error=psycopg2.OperationalError("down"), client_location=None)

    with pytest.raises(nearby_offers.LocationNotFoundError):
        nearby_offers.find_nearby_offers(database, "c1", 10)


def test_ranked_nearby_offers_orders_by_score():
    database = FakeOffersDatabase(
        rpc_rows=[
            offer_row("relaxed", distance_m=300, hours=72),
            offer_row("urgent", distance_m=900, hours=1),
        ]
    )

    ranked = nearby_offers.ranked_nearby_offers(database, "c1", 5, now=NOW)

    assert [r.offer.id for r in ranked] == ["urgent", "relaxed"]
    assert ranked[0].to_dict()["available_until"] == (NOW + timedelta(hours=1)).isoformat()
