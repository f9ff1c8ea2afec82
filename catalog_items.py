"""Normalisation of the per-trip catalog returned by the trek API."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Sequence


def _coerce_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def coerce_rate(value: Any) -> float:
    """Return ``value`` as a float; the API sends rates as decimal strings."""

    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(str(value).replace(",", "").strip())
    except (TypeError, ValueError):
        return 0.0


def coerce_int(value: Any, default: int = 0) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default


def coerce_flag(value: Any, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_capacity(value: Any) -> Optional[int]:
    capacity = coerce_int(value, 0)
    return capacity if capacity > 0 else None


def _iter_mappings(value: Any) -> Iterator[Mapping[str, Any]]:
    if isinstance(value, Mapping):
        yield value
        return

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        for item in value:
            if isinstance(item, Mapping):
                yield item


@dataclass
class CatalogItem:
    """A priced line item that can be added to a cost section."""

    id: str
    name: str
    rate: float = 0.0
    times: Optional[int] = None
    per_person: bool = False
    per_day: bool = False
    one_time: bool = False
    is_default: bool = False
    is_compulsory: bool = False
    is_editable: bool = True
    max_capacity: Optional[int] = None
    from_place: str = ""
    to_place: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], *, rate_key: str = "rate") -> "CatalogItem":
        times = payload.get("times")
        return cls(
            id=_coerce_text(payload.get("id")),
            name=_coerce_text(payload.get("name")),
            rate=coerce_rate(payload.get(rate_key)),
            times=coerce_int(times, 1) if times is not None else None,
            per_person=coerce_flag(payload.get("per_person")),
            per_day=coerce_flag(payload.get("per_day")),
            one_time=coerce_flag(payload.get("one_time")),
            is_default=coerce_flag(payload.get("is_default")),
            is_compulsory=coerce_flag(payload.get("is_compulsory")),
            is_editable=coerce_flag(payload.get("is_editable"), True),
            max_capacity=_coerce_capacity(payload.get("max_capacity")),
            from_place=_coerce_text(payload.get("from_place")),
            to_place=_coerce_text(payload.get("to_place")),
        )


@dataclass
class Trek:
    """A trip offered by the operator; ``times`` is its length in days."""

    id: str
    name: str
    description: str = ""
    times: int = 1
    permits: List[CatalogItem] = field(default_factory=list)


@dataclass
class ExtraService:
    """A named group of optional extras, each param priced on its own."""

    id: str
    service_name: str
    params: List[CatalogItem] = field(default_factory=list)
    times: int = 1

    def items(self) -> List[CatalogItem]:
        """Return the params as catalog items named ``"<service> - <param>"``."""

        named: List[CatalogItem] = []
        for param in self.params:
            label = f"{self.service_name} - {param.name}" if param.name else self.service_name
            named.append(
                CatalogItem(
                    id=param.id,
                    name=label,
                    rate=param.rate,
                    times=param.times,
                    per_person=param.per_person,
                    per_day=param.per_day,
                    one_time=param.one_time,
                    is_default=param.is_default,
                    is_compulsory=param.is_compulsory,
                    is_editable=param.is_editable,
                    max_capacity=param.max_capacity,
                    from_place=param.from_place,
                    to_place=param.to_place,
                )
            )
        return named


def parse_trip(payload: Mapping[str, Any]) -> Trek:
    description = payload.get("sub_title") or payload.get("combined_info") or ""
    return Trek(
        id=_coerce_text(payload.get("id")),
        name=_coerce_text(payload.get("title") or payload.get("name")),
        description=_coerce_text(description),
        times=max(coerce_int(payload.get("times"), 1), 1),
    )


def parse_trips(payload: Any) -> List[Trek]:
    if isinstance(payload, Mapping):
        payload = payload.get("trips", [])
    return [parse_trip(item) for item in _iter_mappings(payload)]


def parse_permit(payload: Mapping[str, Any]) -> CatalogItem:
    return CatalogItem.from_payload(payload)


def parse_service(payload: Mapping[str, Any]) -> CatalogItem:
    return CatalogItem.from_payload(payload)


def parse_accommodation(payload: Mapping[str, Any]) -> CatalogItem:
    item = CatalogItem.from_payload(payload, rate_key="price" if "price" in payload else "rate")
    if not item.from_place:
        item.from_place = _coerce_text(payload.get("location"))
    return item


def parse_transportation(payload: Mapping[str, Any]) -> CatalogItem:
    return CatalogItem.from_payload(payload, rate_key="price" if "price" in payload else "rate")


def parse_extra_service(payload: Mapping[str, Any]) -> ExtraService:
    service_id = _coerce_text(payload.get("id"))
    params: List[CatalogItem] = []
    for index, param in enumerate(_iter_mappings(payload.get("params"))):
        item = CatalogItem.from_payload(param)
        if not item.id:
            item.id = f"{service_id}-{index}"
        params.append(item)

    return ExtraService(
        id=service_id,
        service_name=_coerce_text(payload.get("service_name")),
        params=params,
        times=max(coerce_int(payload.get("times"), 1), 1),
    )


def parse_items(payload: Any, parser) -> List[Any]:
    return [parser(item) for item in _iter_mappings(payload)]


def default_items(items: Iterable[CatalogItem]) -> List[CatalogItem]:
    return [item for item in items if item.is_default]


__all__ = [
    "CatalogItem",
    "ExtraService",
    "Trek",
    "coerce_flag",
    "coerce_int",
    "coerce_rate",
    "default_items",
    "parse_accommodation",
    "parse_extra_service",
    "parse_items",
    "parse_permit",
    "parse_service",
    "parse_transportation",
    "parse_trip",
    "parse_trips",
]
