from geoworker.etl import address
from geoworker.models import LocatableEntity


def test_build_address_orders_parts():
    entity = LocatableEntity(id="1", street="12 Rue de la Paix", postal_code="75002", city="Paris", country="France")
    assert address.build_address(entity) == "12 Rue de la Paix, 75002, Paris, France"


def test_build_address_skips_empty_parts():
    assert address.build_address({"street": "", "postal_code": None, "city": "Lyon", "country": "France"}) == "Lyon, France"
    assert address.build_address({"postal_code": "01000", "city": "  "}) == "01000"


def test_build_address_none_when_nothing_usable():
    assert address.build_address(LocatableEntity(id="1")) is None
    assert address.build_address({"street": " ", "city": ""}) is None


def test_is_blank_address():
    assert address.is_blank_address(None)
    assert address.is_blank_address("")
    assert address.is_blank_address(" , ")
    assert not address.is_blank_address("Lyon, France")
