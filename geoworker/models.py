"""Core data models shared by the geocoding and ranking pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class GeocodeStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    HTTP_ERROR = "http_error"


class QueueStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class EntityKind:
    """A geocodable table and the stored procedure that writes its location."""

    table_name: str
    location_procedure: str
    id_param: str


CLIENTS = EntityKind("clients", "update_client_location", "client_id")
MERCHANTS = EntityKind("merchants", "update_merchant_location", "merchant_id")
ENTITY_KINDS: Dict[str, EntityKind] = {kind.table_name: kind for kind in (CLIENTS, MERCHANTS)}


def entity_kind_for(table_name: str) -> EntityKind:
    try:
        return ENTITY_KINDS[table_name]
    except KeyError:
        raise ValueError(f"Unknown geocodable table: {table_name!r}") from None


@dataclass(frozen=True, slots=True)
class Coordinates:
    lat: float
    lon: float


@dataclass(slots=True)
class LocatableEntity:
    """Address fields of a client or merchant row that still lacks a location."""

    id: str
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "LocatableEntity":
        return cls(
            id=str(row["id"]),
            street=row.get("street"),
            postal_code=row.get("postal_code"),
            city=row.get("city"),
            country=row.get("country"),
        )


@dataclass(slots=True)
class QueueItem:
    id: str
    table_name: str
    record_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    attempts: int = 0

    @property
    def address(self) -> Optional[str]:
        return (self.payload or {}).get("address")

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "QueueItem":
        return cls(
            id=str(row["id"]),
            table_name=row["table_name"],
            record_id=str(row["record_id"]),
            payload=row.get("payload") or {},
            attempts=int(row.get("attempts") or 0),
        )


@dataclass(frozen=True, slots=True)
class Offer:
    """Candidate offer already annotated with its distance from the requester."""

    id: str
    price_before: float
    price_after: float
    discount_percent: float
    available_until: datetime
    quantity: int
    distance_m: float
    merchant_id: Optional[str] = None
    merchant_name: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    available_from: Optional[datetime] = None
    offer_lat: Optional[float] = None
    offer_lng: Optional[float] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any], distance_m: Optional[float] = None) -> "Offer":
        return cls(
            id=str(row["id"]),
            price_before=float(row["price_before"]),
            price_after=float(row["price_after"]),
            discount_percent=float(row.get("discount_percent") or 0),
            available_until=row["available_until"],
            quantity=int(row.get("quantity") or 0),
            distance_m=float(distance_m if distance_m is not None else row["distance_m"]),
            merchant_id=_str_or_none(row.get("merchant_id")),
            merchant_name=row.get("merchant_name"),
            title=row.get("title"),
            description=row.get("description"),
            image_url=row.get("image_url"),
            available_from=row.get("available_from"),
            offer_lat=row.get("offer_lat"),
            offer_lng=row.get("offer_lng"),
        )


@dataclass(frozen=True, slots=True)
class RankedOffer:
    offer: Offer
    sort_score: float
    expires_in_hours: float

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for name in Offer.__slots__:
            value = getattr(self.offer, name)
            data[name] = value.isoformat() if isinstance(value, datetime) else value
        data["sort_score"] = self.sort_score
        data["expires_in_hours"] = self.expires_in_hours
        return data


@dataclass
class GeocodeStats:
    total: int = 0
    success: int = 0
    not_found: int = 0
    http_error: int = 0
    skipped: int = 0
    # Status writes that failed after an http_error; not part of the total.
    write_errors: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "total": self.total,
            "success": self.success,
            "not_found": self.not_found,
            "http_error": self.http_error,
            "skipped": self.skipped,
            "write_errors": self.write_errors,
        }


@dataclass
class QueueRunResult:
    processed: int = 0
    success: int = 0
    failed: int = 0
    errors: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "processed": self.processed,
            "success": self.success,
            "failed": self.failed,
            "errors": list(self.errors),
        }


def _str_or_none(value: Any) -> Optional[str]:
    return None if value is None else str(value)
