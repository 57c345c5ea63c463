"""Turn stored address columns into a single geocoder query."""

from typing import Any, Mapping, Optional, Union

ADDRESS_FIELDS = ("street", "postal_code", "city", "country")


def _field(entity: Union[Mapping[str, Any], Any], name: str) -> Any:
    if isinstance(entity, Mapping):
        return entity.get(name)
    return getattr(entity, name, None)


def build_address(entity: Union[Mapping[str, Any], Any]) -> Optional[str]:
    """Join the non-empty address parts as ``street, postal_code, city, country``.

    Returns None when every part is missing or blank.
    """
    parts = []
    for name in ADDRESS_FIELDS:
        value = _field(entity, name)
        if value is None:
            continue
        text = str(value)
        if text.strip():
            parts.append(text)
    if not parts:
        return None
    return ", ".join(parts)


def is_blank_address(address: Optional[str]) -> bool:
    """True for queue payloads that carry no usable address (e.g. a lone comma)."""
    if address is None:
        return True
    stripped = address.strip()
    return not stripped or stripped == ","
