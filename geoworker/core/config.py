"""Application configuration helpers.

`DATABASE_URL` is the only mandatory value: it is the hosted platform's
Postgres DSN and carries both the host and the service-role credentials, so
it must never be hardcoded. Everything else has a default suited to the
public Nominatim instance.
"""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "resqfood-geocoder/1.0 (contact@example.com)"


class ConfigError(RuntimeError):
    """Raised when mandatory configuration is missing or malformed."""


@dataclass(frozen=True)
class RankingWeights:
    distance: float = 0.30
    urgency: float = 0.40
    stock: float = 0.10
    discount: float = 0.20
    max_distance_m: float = 50000.0


@dataclass(frozen=True)
class Settings:
    database_url: str
    nominatim_url: str = DEFAULT_NOMINATIM_URL
    nominatim_user_agent: str = DEFAULT_USER_AGENT
    rate_limit_seconds: float = 1.0
    request_timeout: float = 10.0
    queue_batch_size: int = 10
    queue_max_attempts: int = 3
    worker_port: int = 9000
    ranking_weights: RankingWeights = field(default_factory=RankingWeights)


def _get_required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ConfigError(f"{name} must be set in the environment for the geocoding worker to run.")
    return value


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def _get_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


def _load_ranking_weights() -> RankingWeights:
    defaults = RankingWeights()
    return RankingWeights(
        distance=_get_float("RANK_WEIGHT_DISTANCE", defaults.distance),
        urgency=_get_float("RANK_WEIGHT_URGENCY", defaults.urgency),
        stock=_get_float("RANK_WEIGHT_STOCK", defaults.stock),
        discount=_get_float("RANK_WEIGHT_DISCOUNT", defaults.discount),
        max_distance_m=_get_float("RANK_MAX_DISTANCE_M", defaults.max_distance_m),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load, validate and cache worker settings to avoid repeated env lookups."""
    load_dotenv()

    database_url = _get_required_env("DATABASE_URL")
    nominatim_url = os.getenv("NOMINATIM_URL") or DEFAULT_NOMINATIM_URL
    user_agent = os.getenv("NOMINATIM_USER_AGENT") or DEFAULT_USER_AGENT
    rate_limit_seconds = _get_float("GEOCODE_RATE_LIMIT_SECONDS", 1.0)
    request_timeout = _get_float("GEOCODE_REQUEST_TIMEOUT", 10.0)
    queue_batch_size = _get_int("GEOCODE_QUEUE_BATCH_SIZE", 10)
    queue_max_attempts = _get_int("GEOCODE_QUEUE_MAX_ATTEMPTS", 3)
    worker_port = _get_int("PORT", _get_int("WORKER_PORT", 9000))

    if rate_limit_seconds < 1.0:
        logger.warning(
            "GEOCODE_RATE_LIMIT_SECONDS=%s is below the Nominatim usage policy of one request per second.",
            rate_limit_seconds,
        )
    if user_agent == DEFAULT_USER_AGENT:
        logger.warning("NOMINATIM_USER_AGENT is not configured; using the shared default identifier.")

    return Settings(
        database_url=database_url,
        nominatim_url=nominatim_url,
        nominatim_user_agent=user_agent,
        rate_limit_seconds=rate_limit_seconds,
        request_timeout=request_timeout,
        queue_batch_size=queue_batch_size,
        queue_max_attempts=queue_max_attempts,
        worker_port=worker_port,
        ranking_weights=_load_ranking_weights(),
    )
