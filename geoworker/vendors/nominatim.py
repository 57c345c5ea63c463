"""Client for the OpenStreetMap Nominatim search API."""

import logging
from typing import Any, Optional

import requests

from geoworker.core.config import DEFAULT_NOMINATIM_URL, DEFAULT_USER_AGENT
from geoworker.models import Coordinates

logger = logging.getLogger(__name__)


class GeocodingError(RuntimeError):
    """Raised when Nominatim cannot be reached or answers with a non-2xx status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class NominatimClient:
    """Resolve free-form addresses to coordinates, one result per query.

    The public instance allows one request per second; pacing is left to the
    caller so a batch can decide where the pauses go.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_NOMINATIM_URL,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not user_agent:
            raise ValueError("Nominatim requires an identifying User-Agent")
        self.base_url = base_url
        self.user_agent = user_agent
        self.timeout = timeout
        self._session = session or requests.Session()

    def geocode(self, address: str) -> Optional[Coordinates]:
        if not address or not address.strip():
            raise ValueError("address must be a non-empty string")

        params = {"q": address, "format": "json", "limit": 1}
        headers = {"User-Agent": self.user_agent}
        try:
            response = self._session.get(self.base_url, params=params, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.warning("Nominatim request failed: %s", exc)
            raise GeocodingError(f"Nominatim request failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            logger.warning("Nominatim returned HTTP %s", response.status_code)
            raise GeocodingError(
                f"HTTP {response.status_code}: {getattr(response, 'reason', '') or ''}".strip(),
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as exc:
            raise GeocodingError("Nominatim returned a non-JSON body", status_code=response.status_code) from exc

        return parse_first_result(payload)

    def close(self) -> None:
        self._session.close()


def parse_first_result(payload: Any) -> Optional[Coordinates]:
    """Return the first result's coordinates, or None when there is no usable match."""
    if not isinstance(payload, list) or not payload:
        return None

    first = payload[0]
    if not isinstance(first, dict):
        return None
    lat_raw = first.get("lat")
    lon_raw = first.get("lon")
    if not lat_raw or not lon_raw:
        return None
    try:
        return Coordinates(lat=float(lat_raw), lon=float(lon_raw))
    except (TypeError, ValueError):
        logger.debug("Discarding malformed Nominatim coordinates lat=%r lon=%r", lat_raw, lon_raw)
        return None
