from __future__ import annotations

import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from catalog_items import (
    CatalogItem,
    coerce_flag,
    coerce_int,
    coerce_rate,
    default_items,
    parse_accommodation,
    parse_extra_service,
    parse_items,
    parse_permit,
    parse_transportation,
    parse_trips,
)


def test_coercion_helpers_tolerate_api_strings() -> None:
    assert coerce_rate("1,250.50") == 1250.5
    assert coerce_rate(None) == 0.0
    assert coerce_rate("n/a") == 0.0
    assert coerce_rate(True) == 0.0
    assert coerce_int("3.0") == 3
    assert coerce_int("", 5) == 5
    assert coerce_flag("Yes") is True
    assert coerce_flag("0") is False
    assert coerce_flag(None, True) is True


def test_parse_permit_reads_flags_and_capacity() -> None:
    item = parse_permit(
        {
            "id": 4,
            "name": "TIMS Card",
            "rate": "2000.00",
            "per_person": True,
            "is_compulsory": True,
            "is_editable": False,
            "is_default": True,
            "max_capacity": 0,
        }
    )

    assert item == CatalogItem(
        id="4",
        name="TIMS Card",
        rate=2000.0,
        per_person=True,
        is_compulsory=True,
        is_editable=False,
        is_default=True,
    )


def test_parse_trips_accepts_wrapped_payloads() -> None:
    treks = parse_trips(
        {"trips": [{"id": 1, "title": "Everest Base Camp", "sub_title": "Classic", "times": "12"}, "bad"]}
    )

    assert len(treks) == 1
    assert treks[0].name == "Everest Base Camp"
    assert treks[0].description == "Classic"
    assert treks[0].times == 12


def test_parse_trips_floors_days_at_one() -> None:
    assert parse_trips([{"id": 2, "name": "Day hike", "times": 0}])[0].times == 1


def test_parse_accommodation_uses_price_and_location() -> None:
    item = parse_accommodation({"id": "h1", "name": "Tea house", "price": "1500", "location": "Namche"})

    assert item.rate == 1500.0
    assert item.from_place == "Namche"
    assert item.times is None


def test_parse_transportation_keeps_route() -> None:
    item = parse_transportation(
        {"id": 9, "name": "Jeep", "rate": 12000, "from_place": "Kathmandu", "to_place": "Salleri", "times": 2, "max_capacity": 7}
    )

    assert (item.from_place, item.to_place) == ("Kathmandu", "Salleri")
    assert item.times == 2
    assert item.max_capacity == 7


def test_extra_service_items_are_prefixed_with_service_name() -> None:
    service = parse_extra_service(
        {
            "id": 3,
            "service_name": "Helicopter",
            "params": [
                {"name": "Rescue", "rate": "50000", "one_time": True},
                {"id": "p2", "name": "", "rate": "100"},
            ],
        }
    )

    items = service.items()

    assert [item.name for item in items] == ["Helicopter - Rescue", "Helicopter"]
    assert items[0].id == "3-0"
    assert items[0].one_time is True
    assert items[1].id == "p2"


def test_default_items_filters_flagged_entries() -> None:
    items = parse_items(
        [{"id": 1, "name": "A", "is_default": True}, {"id": 2, "name": "B"}],
        parse_permit,
    )

    assert [item.name for item in default_items(items)] == ["A"]
