"""Distance maths and decoding of PostGIS point values."""

from __future__ import annotations

import logging
import math
import re
import struct
from typing import Any, Optional

from geoworker.models import Coordinates

logger = logging.getLogger(__name__)

EARTH_RADIUS_M = 6371000.0

_EWKB_SRID_FLAG = 0x20000000
_EWKB_HEX_RE = re.compile(r"^[0-9a-fA-F]{42,}$")
_WKT_POINT_RE = re.compile(r"POINT\(([^ ]+) ([^ )]+)\)")


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad, lon1_rad = math.radians(lat1), math.radians(lon1)
    lat2_rad, lon2_rad = math.radians(lat2), math.radians(lon2)

    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    # Clamp due to floating-point drift so we never take sqrt of a negative.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def _valid(lat: float, lon: float) -> bool:
    return math.isfinite(lat) and math.isfinite(lon) and -90 <= lat <= 90 and -180 <= lon <= 180


def parse_postgis_point(value: Optional[str]) -> Optional[Coordinates]:
    """Parse ``POINT(lon lat)`` text into coordinates."""
    if not value:
        return None
    match = _WKT_POINT_RE.search(value)
    if not match:
        return None
    try:
        lon = float(match.group(1))
        lat = float(match.group(2))
    except ValueError:
        return None
    if math.isnan(lat) or math.isnan(lon):
        return None
    return Coordinates(lat=lat, lon=lon)


def is_ewkb_hex(value: Any) -> bool:
    return isinstance(value, str) and bool(_EWKB_HEX_RE.match(value))


def ewkb_point_to_coordinates(hex_value: Optional[str]) -> Optional[Coordinates]:
    """Decode a hex EWKB point (optionally carrying an SRID) into coordinates.

    Layout: one byte order flag (1 = little endian), a uint32 geometry type
    whose 0x20000000 bit marks an SRID, the optional uint32 SRID, then
    longitude and latitude as IEEE 754 doubles.
    """
    if not hex_value or not isinstance(hex_value, str):
        return None
    try:
        raw = bytes.fromhex(hex_value)
        prefix = "<" if raw[0] == 1 else ">"
        (type_and_flags,) = struct.unpack_from(prefix + "I", raw, 1)
        offset = 5
        if type_and_flags & _EWKB_SRID_FLAG:
            offset += 4
        lon, lat = struct.unpack_from(prefix + "dd", raw, offset)
    except (ValueError, IndexError, struct.error) as exc:
        logger.debug("Could not decode EWKB value %r: %s", hex_value[:50], exc)
        return None

    if not _valid(lat, lon):
        return None
    return Coordinates(lat=lat, lon=lon)


def decode_location(value: Any) -> Optional[Coordinates]:
    """Accept either EWKB hex or WKT text, as returned by the platform."""
    if is_ewkb_hex(value):
        return ewkb_point_to_coordinates(value)
    if isinstance(value, str):
        return parse_postgis_point(value)
    return None
