import struct

import pytest

from geoworker.etl import geo
from geoworker.models import Coordinates

# SRID=4326;POINT(1 2), little endian.
EWKB_SRID_POINT = "0101000020E6100000000000000000F03F0000000000000040"


def test_haversine_zero_and_known_distance():
    assert geo.haversine_distance_m(45.0, 4.0, 45.0, 4.0) == 0
    # Paris (Notre-Dame) to Lyon (Bellecour) is roughly 392 km.
    distance = geo.haversine_distance_m(48.8530, 2.3499, 45.7578, 4.8320)
    assert distance == pytest.approx(392_000, rel=0.01)


def test_haversine_is_symmetric():
    a = geo.haversine_distance_m(46.2044, 5.2258, 46.2100, 5.2300)
    b = geo.haversine_distance_m(46.2100, 5.2300, 46.2044, 5.2258)
    assert a == pytest.approx(b)


def test_parse_postgis_point():
    assert geo.parse_postgis_point("POINT(5.2258 46.2044)") == Coordinates(lat=46.2044, lon=5.2258)
    assert geo.parse_postgis_point("SRID=4326;POINT(5.2258 46.2044)") == Coordinates(lat=46.2044, lon=5.2258)
    assert geo.parse_postgis_point("LINESTRING(0 0, 1 1)") is None
    assert geo.parse_postgis_point("POINT(abc 46)") is None
    assert geo.parse_postgis_point(None) is None


def test_ewkb_with_srid():
    assert geo.ewkb_point_to_coordinates(EWKB_SRID_POINT) == Coordinates(lat=2.0, lon=1.0)


def test_ewkb_big_endian_without_srid():
    hex_value = (struct.pack(">BI", 0, 1) + struct.pack(">dd", 4.8357, 45.764)).hex()
    assert geo.ewkb_point_to_coordinates(hex_value) == Coordinates(lat=45.764, lon=4.8357)


@pytest.mark.parametrize("value", ["", "zz", "0101000020E6100000", None])
def test_ewkb_malformed_is_none(value):
    assert geo.ewkb_point_to_coordinates(value) is None


def test_ewkb_out_of_range_is_none():
    hex_value = (struct.pack("<BI", 1, 1) + struct.pack("<dd", 200.0, 10.0)).hex()
    assert geo.ewkb_point_to_coordinates(hex_value) is None


def test_is_ewkb_hex():
    assert geo.is_ewkb_hex(EWKB_SRID_POINT)
    assert not geo.is_ewkb_hex("POINT(1 2)")
    assert not geo.is_ewkb_hex("0101")
    assert not geo.is_ewkb_hex(42)


def test_decode_location_accepts_both_formats():
    assert geo.decode_location(EWKB_SRID_POINT) == Coordinates(lat=2.0, lon=1.0)
    assert geo.decode_location("POINT(1 2)") == Coordinates(lat=2.0, lon=1.0)
    assert geo.decode_location(None) is None
