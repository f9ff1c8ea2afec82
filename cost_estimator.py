"""Cost calculation for trek group quotes.

A :class:`CostReport` holds one :class:`CostSection` per cost category plus any
number of custom sections. Rows derive their quantity (``no``) and repetition
count (``times``) from the flags carried over from the catalog item they were
created from:

* ``max_capacity`` splits the group into units (one vehicle per N people),
* ``per_person`` multiplies by the group size,
* ``per_day`` multiplies by the trek duration,
* ``one_time`` charges the rate once regardless of size or duration.

Every editing helper returns a new report; rows and sections are never mutated
in place so Streamlit session state can hold the previous value safely.
"""

from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from catalog_items import CatalogItem, Trek, coerce_flag, coerce_int, coerce_rate
from payments import PaymentDetails, local_today


class CostEstimateError(ValueError):
    """Raised when a calculator edit is not allowed."""


AMOUNT = "amount"
PERCENTAGE = "percentage"
DEFAULT_SERVICE_CHARGE = 10.0

STANDARD_SECTIONS: Tuple[Tuple[str, str], ...] = (
    ("permits", "Permits & Documents"),
    ("services", "Services"),
    ("accommodation", "Accommodation"),
    ("transportation", "Transportation"),
    ("extra_details", "Extra Details"),
    ("extra_services", "Extra Services"),
)
STANDARD_SECTION_IDS = tuple(section_id for section_id, _ in STANDARD_SECTIONS)

DEFAULT_EXTRA_DETAILS = ("Satellite device", "Adv less")

# Backend field prefix for each section's discount triple.
_DISCOUNT_PREFIXES = {
    "permits": "permit",
    "services": "service",
    "accommodation": "accommodation",
    "transportation": "transportation",
    "extra_details": "extra_service",
}


def _new_id() -> str:
    return str(uuid.uuid4())


@dataclass
class CostRow:
    id: str = field(default_factory=_new_id)
    description: str = ""
    rate: float = 0.0
    no: int = 1
    times: int = 1
    total: float = 0.0
    per_person: bool = False
    per_day: bool = False
    one_time: bool = False
    is_default: bool = False
    is_compulsory: bool = False
    is_editable: bool = True
    max_capacity: Optional[int] = None
    from_place: str = ""
    to_place: str = ""


@dataclass
class CostSection:
    id: str
    name: str
    rows: List[CostRow] = field(default_factory=list)
    discount_type: str = AMOUNT
    discount_value: float = 0.0
    discount_remarks: str = ""


@dataclass(frozen=True)
class SectionTotals:
    subtotal: float
    discount_amount: float
    total: float


@dataclass(frozen=True)
class ReportTotals:
    subtotal_before_overall_discount: float
    overall_discount_amount: float
    total_cost: float
    total_with_service_charge: float
    cost_per_person: float
    cost_per_person_with_service_charge: float


def _empty_section(section_id: str) -> CostSection:
    return CostSection(id=section_id, name=dict(STANDARD_SECTIONS)[section_id])


@dataclass
class CostReport:
    group_id: str = field(default_factory=_new_id)
    trek_id: Optional[str] = None
    trek_name: str = ""
    group_name: str = ""
    group_size: int = 1
    start_date: Optional[date] = None
    trek_times: int = 1
    permits: CostSection = field(default_factory=lambda: _empty_section("permits"))
    services: CostSection = field(default_factory=lambda: _empty_section("services"))
    accommodation: CostSection = field(default_factory=lambda: _empty_section("accommodation"))
    transportation: CostSection = field(default_factory=lambda: _empty_section("transportation"))
    extra_details: CostSection = field(default_factory=lambda: _empty_section("extra_details"))
    extra_services: CostSection = field(default_factory=lambda: _empty_section("extra_services"))
    custom_sections: List[CostSection] = field(default_factory=list)
    service_charge: float = DEFAULT_SERVICE_CHARGE
    overall_discount_type: str = AMOUNT
    overall_discount_value: float = 0.0
    overall_discount_remarks: str = ""
    client_communication_method: str = ""
    created_by: str = ""
    is_extra_invoice: bool = False
    parent_group_id: Optional[str] = None
    report_url: str = ""
    joined: int = 0
    pending: int = 0
    payment: PaymentDetails = field(default_factory=PaymentDetails)

    def sections(self) -> List[CostSection]:
        """Standard sections in display order followed by custom sections."""

        return [getattr(self, section_id) for section_id in STANDARD_SECTION_IDS] + list(
            self.custom_sections
        )

    def section(self, section_id: str) -> CostSection:
        if section_id in STANDARD_SECTION_IDS:
            return getattr(self, section_id)
        for section in self.custom_sections:
            if section.id == section_id:
                return section
        raise CostEstimateError(f"Unknown section '{section_id}'.")


def calculate_row_quantity(item: Any, group_size: int) -> int:
    max_capacity = getattr(item, "max_capacity", None) or 0
    if max_capacity > 0:
        return math.ceil(group_size / max_capacity)
    if getattr(item, "per_person", False):
        return group_size
    return 1


def calculate_row_times(item: Any, trek_times: int) -> int:
    if getattr(item, "per_day", False):
        return trek_times
    return 1


def calculate_row_total(item: Any, no: int, times: int) -> float:
    rate = float(getattr(item, "rate", 0.0) or 0.0)
    per_person = getattr(item, "per_person", False)
    per_day = getattr(item, "per_day", False)

    if getattr(item, "one_time", False):
        return rate
    if per_person and per_day:
        return rate * no * times
    if per_person:
        return rate * no
    if per_day:
        return rate * times
    return rate * no * times


def _has_quantity_rules(row: CostRow) -> bool:
    return bool(row.per_person or row.per_day or row.one_time or row.max_capacity)


def _recalculate(row: CostRow, group_size: int, trek_times: int) -> CostRow:
    no = calculate_row_quantity(row, group_size)
    times = calculate_row_times(row, trek_times)
    return replace(row, no=no, times=times, total=calculate_row_total(row, no, times))


def row_from_item(item: CatalogItem, group_size: int, trek_times: int) -> CostRow:
    no = calculate_row_quantity(item, group_size)
    if item.times is not None:
        times = item.times
    else:
        times = calculate_row_times(item, trek_times)
    return CostRow(
        description=item.name,
        rate=item.rate,
        no=no,
        times=times,
        total=calculate_row_total(item, no, times),
        per_person=item.per_person,
        per_day=item.per_day,
        one_time=item.one_time,
        is_default=item.is_default,
        is_compulsory=item.is_compulsory,
        is_editable=item.is_editable,
        max_capacity=item.max_capacity,
        from_place=item.from_place,
        to_place=item.to_place,
    )


def _discount(subtotal: float, discount_type: str, value: float) -> float:
    if discount_type == PERCENTAGE:
        return subtotal * (value or 0.0) / 100
    return value or 0.0


def section_totals(section: CostSection) -> SectionTotals:
    subtotal = sum(row.total for row in section.rows)
    discount_amount = _discount(subtotal, section.discount_type, section.discount_value)
    return SectionTotals(subtotal=subtotal, discount_amount=discount_amount, total=subtotal - discount_amount)


def report_totals(report: CostReport) -> ReportTotals:
    subtotal = sum(section_totals(section).total for section in report.sections())
    overall_discount = _discount(
        subtotal, report.overall_discount_type, report.overall_discount_value
    )
    total_cost = subtotal - overall_discount
    with_charge = total_cost * (1 + (report.service_charge or 0.0) / 100)
    size = report.group_size if report.group_size and report.group_size > 0 else 0
    return ReportTotals(
        subtotal_before_overall_discount=subtotal,
        overall_discount_amount=overall_discount,
        total_cost=total_cost,
        total_with_service_charge=with_charge,
        cost_per_person=total_cost / size if size else 0.0,
        cost_per_person_with_service_charge=with_charge / size if size else 0.0,
    )


def _replace_section(report: CostReport, section: CostSection) -> CostReport:
    if section.id in STANDARD_SECTION_IDS:
        return replace(report, **{section.id: section})

    custom = [section if existing.id == section.id else existing for existing in report.custom_sections]
    return replace(report, custom_sections=custom)


def _map_rows(report: CostReport, func) -> CostReport:
    updated = report
    for section in report.sections():
        updated = _replace_section(updated, replace(section, rows=[func(row) for row in section.rows]))
    return updated


def generate_group_name(trek_name: str, now: Optional[float] = None) -> str:
    """Return ``<initials>-<epoch millis>`` for a new group on ``trek_name``."""

    initials = "".join(word[0] for word in trek_name.split(" ") if word).upper()
    timestamp = int((time.time() if now is None else now) * 1000)
    return f"{initials}-{timestamp}"


def new_report(group_id: Optional[str] = None, **overrides: Any) -> CostReport:
    report = CostReport(group_id=group_id or _new_id(), start_date=local_today())
    return replace(report, **overrides) if overrides else report


def select_trek(report: CostReport, trek: Trek, *, now: Optional[float] = None) -> CostReport:
    trek_times = trek.times or 1
    permits = [row_from_item(item, report.group_size, trek_times) for item in trek.permits]
    extra_details = []
    for description in DEFAULT_EXTRA_DETAILS:
        row = CostRow(description=description, rate=0.0, one_time=True)
        extra_details.append(
            replace(
                row,
                no=calculate_row_quantity(row, report.group_size),
                times=calculate_row_times(row, trek_times),
                total=0.0,
            )
        )

    updated = replace(
        report,
        trek_id=trek.id,
        trek_name=trek.name,
        trek_times=trek_times,
        group_name=generate_group_name(trek.name, now),
        permits=replace(report.permits, rows=permits),
        extra_details=replace(report.extra_details, rows=extra_details),
    )

    for section_id in ("services", "accommodation", "transportation", "extra_services"):
        section = updated.section(section_id)
        rows = [_recalculate(row, updated.group_size, trek_times) for row in section.rows]
        updated = _replace_section(updated, replace(section, rows=rows))
    for section in updated.custom_sections:
        rows = [_recalculate(row, updated.group_size, trek_times) for row in section.rows]
        updated = _replace_section(updated, replace(section, rows=rows))
    return updated


def change_group_size(report: CostReport, group_size: int) -> CostReport:
    size = max(int(group_size), 1)
    resized = replace(report, group_size=size)
    return _map_rows(resized, lambda row: _recalculate(row, size, resized.trek_times))


_QUANTITY_FIELDS = {"per_person", "per_day", "one_time", "max_capacity"}
EDITABLE_FIELDS = ("description", "rate", "no", "times", "per_person", "per_day", "one_time", "max_capacity")


def _edit_row(row: CostRow, changes: Mapping[str, Any], group_size: int, trek_times: int) -> CostRow:
    updated = replace(row, **changes)
    if _QUANTITY_FIELDS & set(changes):
        updated = replace(
            updated,
            no=calculate_row_quantity(updated, group_size),
            times=calculate_row_times(updated, trek_times),
        )
    return replace(updated, total=calculate_row_total(updated, updated.no, updated.times))


def update_row(report: CostReport, section_id: str, row_id: str, **changes: Any) -> CostReport:
    """Apply ``changes`` to one row; the total is always recomputed."""

    section = report.section(section_id)
    rows: List[CostRow] = []
    found = False
    for row in section.rows:
        if row.id != row_id:
            rows.append(row)
            continue
        found = True
        rows.append(_edit_row(row, changes, report.group_size, report.trek_times))

    if not found:
        raise CostEstimateError(f"Row '{row_id}' not found in section '{section_id}'.")
    return _replace_section(report, replace(section, rows=rows))


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def _coerce_edit(name: str, value: Any) -> Any:
    if name == "description":
        return "" if _is_missing(value) else str(value)
    if name == "rate":
        return 0.0 if _is_missing(value) else coerce_rate(value)
    if name in ("no", "times"):
        return 1 if _is_missing(value) else max(coerce_int(value, 1), 0)
    if name == "max_capacity":
        capacity = 0 if _is_missing(value) else coerce_int(value, 0)
        return capacity if capacity > 0 else None
    return False if _is_missing(value) else coerce_flag(value)


def apply_row_edits(report: CostReport, section_id: str, edited: Sequence[Mapping[str, Any]]) -> CostReport:
    """Reconcile a section with the rows of an edited table.

    Entries carrying a known ``id`` update that row, entries without one become
    new rows, and rows missing from ``edited`` are removed. Rows that are not
    editable keep their rate.
    """

    section = report.section(section_id)
    existing = {row.id: row for row in section.rows}
    kept = {str(entry.get("id")) for entry in edited if not _is_missing(entry.get("id")) and entry.get("id") != ""}
    for row in section.rows:
        if row.id not in kept and row.is_compulsory:
            raise CostEstimateError("Compulsory items cannot be deleted.")

    rows: List[CostRow] = []
    for entry in edited:
        values = {name: _coerce_edit(name, entry[name]) for name in EDITABLE_FIELDS if name in entry}
        row_id = entry.get("id")
        current = existing.get(str(row_id)) if not _is_missing(row_id) else None
        if current is None:
            rows.append(_edit_row(CostRow(), values, report.group_size, report.trek_times))
            continue

        if not current.is_editable:
            values.pop("rate", None)
        changes = {name: value for name, value in values.items() if getattr(current, name) != value}
        rows.append(_edit_row(current, changes, report.group_size, report.trek_times))

    return _replace_section(report, replace(section, rows=rows))


def has_new_rows(edited: Sequence[Mapping[str, Any]]) -> bool:
    """True when an edited table holds rows that have no id yet."""

    return any(_is_missing(entry.get("id")) or entry.get("id") == "" for entry in edited)


def add_blank_row(report: CostReport, section_id: str) -> CostReport:
    section = report.section(section_id)
    return _replace_section(report, replace(section, rows=section.rows + [CostRow()]))


def add_catalog_row(report: CostReport, section_id: str, item: CatalogItem) -> CostReport:
    section = report.section(section_id)
    row = row_from_item(item, report.group_size, report.trek_times)
    return _replace_section(report, replace(section, rows=section.rows + [row]))


def remove_row(report: CostReport, section_id: str, row_id: str) -> CostReport:
    section = report.section(section_id)
    for row in section.rows:
        if row.id == row_id and row.is_compulsory:
            raise CostEstimateError("Compulsory items cannot be deleted.")
    rows = [row for row in section.rows if row.id != row_id]
    return _replace_section(report, replace(section, rows=rows))


def _check_discount_type(discount_type: str) -> str:
    if discount_type not in (AMOUNT, PERCENTAGE):
        raise CostEstimateError(f"Unknown discount type '{discount_type}'.")
    return discount_type


def set_section_discount(
    report: CostReport,
    section_id: str,
    *,
    discount_type: Optional[str] = None,
    value: Optional[float] = None,
    remarks: Optional[str] = None,
) -> CostReport:
    section = report.section(section_id)
    changes: Dict[str, Any] = {}
    if discount_type is not None:
        changes["discount_type"] = _check_discount_type(discount_type)
    if value is not None:
        changes["discount_value"] = float(value)
    if remarks is not None:
        changes["discount_remarks"] = remarks
    return _replace_section(report, replace(section, **changes))


def set_overall_discount(
    report: CostReport,
    *,
    discount_type: Optional[str] = None,
    value: Optional[float] = None,
    remarks: Optional[str] = None,
) -> CostReport:
    changes: Dict[str, Any] = {}
    if discount_type is not None:
        changes["overall_discount_type"] = _check_discount_type(discount_type)
    if value is not None:
        changes["overall_discount_value"] = float(value)
    if remarks is not None:
        changes["overall_discount_remarks"] = remarks
    return replace(report, **changes)


def _clean_section_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise CostEstimateError("Section name cannot be empty.")
    return cleaned


def add_custom_section(report: CostReport, name: str) -> CostReport:
    section = CostSection(id=_new_id(), name=_clean_section_name(name))
    return replace(report, custom_sections=report.custom_sections + [section])


def rename_custom_section(report: CostReport, section_id: str, name: str) -> CostReport:
    if section_id in STANDARD_SECTION_IDS:
        raise CostEstimateError("Only custom sections can be renamed.")
    section = report.section(section_id)
    return _replace_section(report, replace(section, name=_clean_section_name(name)))


def remove_custom_section(report: CostReport, section_id: str) -> CostReport:
    remaining = [section for section in report.custom_sections if section.id != section_id]
    return replace(report, custom_sections=remaining)


def apply_default_items(report: CostReport, section_id: str, items: Iterable[CatalogItem]) -> CostReport:
    """Replace the rows of ``section_id`` with its default catalog items."""

    section = report.section(section_id)
    rows = [
        row_from_item(item, report.group_size, report.trek_times)
        for item in items
        if item.is_default
    ]
    return _replace_section(report, replace(section, rows=rows))


def _row_payload(row: CostRow, *, name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "name": row.description if name is None else name,
        "rate": str(row.rate if row.rate else 0),
        "times": int(row.times or 1),
        "numbers": int(row.no or 1),
        "per_person": bool(row.per_person),
        "per_day": bool(row.per_day),
        "one_time": bool(row.one_time),
        "is_default": bool(row.is_default),
        "is_editable": bool(row.is_editable),
        "max_capacity": int(row.max_capacity) if row.max_capacity is not None else None,
        "from_place": row.from_place or "",
        "to_place": row.to_place or "",
    }


def _extra_services_payload(report: CostReport) -> List[Dict[str, Any]]:
    grouped: Dict[str, Dict[str, Any]] = {}

    for row in report.extra_details.rows:
        if " - " in row.description:
            service_name, param_name = row.description.split(" - ", 1)
        else:
            service_name = param_name = row.description
        entry = grouped.setdefault(service_name, {"service_name": service_name, "params": []})
        entry["params"].append(_row_payload(row, name=param_name))

    for row in report.extra_services.rows:
        service_name = row.description or "Extra Service"
        entry = grouped.setdefault(service_name, {"service_name": service_name, "params": []})
        entry["params"].append(_row_payload(row))

    return list(grouped.values())


def _discount_fields(prefix: str, discount_type: str, value: float, remarks: str) -> Dict[str, str]:
    return {
        f"{prefix}_discount": str(value or 0),
        f"{prefix}_discount_type": PERCENTAGE if discount_type == PERCENTAGE else "flat",
        f"{prefix}_discount_remarks": remarks or "",
    }


def build_package_payload(report: CostReport) -> Dict[str, Any]:
    start = (report.start_date or local_today()).isoformat()
    default_name = f"{report.trek_name} {report.group_id[:4]}"
    payload: Dict[str, Any] = {
        "package": {
            "name": report.group_name or default_name,
            "total_space": int(report.group_size),
            "start_date": start,
            "end_date": start,
            "trip": coerce_int(report.trek_id, 0),
        },
        "status": "draft",
        "permits": [_row_payload(row) for row in report.permits.rows],
        "services": [_row_payload(row) for row in report.services.rows],
        "accommodation": [_row_payload(row) for row in report.accommodation.rows],
        "transportation": [_row_payload(row) for row in report.transportation.rows],
        "extra_services": _extra_services_payload(report),
    }

    for section_id, prefix in _DISCOUNT_PREFIXES.items():
        section = report.section(section_id)
        payload.update(
            _discount_fields(prefix, section.discount_type, section.discount_value, section.discount_remarks)
        )
    payload.update(
        _discount_fields(
            "overall",
            report.overall_discount_type,
            report.overall_discount_value,
            report.overall_discount_remarks,
        )
    )
    payload["service_charge"] = str(report.service_charge or 0)
    return payload


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _row_from_payload(payload: Mapping[str, Any], row_id: str, group_size: int, *, name: Optional[str] = None) -> CostRow:
    max_capacity = coerce_int(payload.get("max_capacity"), 0)
    row = CostRow(
        id=row_id,
        description=str(payload.get("name") or "") if name is None else name,
        rate=coerce_rate(payload.get("rate")),
        no=coerce_int(payload.get("numbers"), 1),
        times=coerce_int(payload.get("times"), 1),
        per_person=coerce_flag(payload.get("per_person")),
        per_day=coerce_flag(payload.get("per_day")),
        one_time=coerce_flag(payload.get("one_time")),
        is_default=coerce_flag(payload.get("is_default")),
        is_compulsory=coerce_flag(payload.get("is_compulsory")),
        is_editable=coerce_flag(payload.get("is_editable"), True),
        max_capacity=max_capacity if max_capacity > 0 else None,
        from_place=str(payload.get("from_place") or ""),
        to_place=str(payload.get("to_place") or ""),
    )
    # Stored times are kept; the quantity follows the flags when there are any.
    if _has_quantity_rules(row):
        row = replace(row, no=calculate_row_quantity(row, group_size))
    return replace(row, total=calculate_row_total(row, row.no, row.times))


def _section_from_payload(
    payload: Mapping[str, Any], section_id: str, rows: List[CostRow], prefix: Optional[str]
) -> CostSection:
    section = replace(_empty_section(section_id), rows=rows)
    if prefix is None:
        return section
    return replace(
        section,
        discount_type=PERCENTAGE if payload.get(f"{prefix}_discount_type") == PERCENTAGE else AMOUNT,
        discount_value=coerce_rate(payload.get(f"{prefix}_discount")),
        discount_remarks=str(payload.get(f"{prefix}_discount_remarks") or ""),
    )


def _created_by(value: Any) -> str:
    if isinstance(value, Mapping):
        return str(value.get("username") or value.get("name") or "")
    return str(value or "")


def report_from_payload(
    item: Mapping[str, Any],
    *,
    is_extra_invoice: bool = False,
    parent_group_id: Optional[str] = None,
    trek_times: Optional[int] = None,
) -> CostReport:
    """Parse a ``groups-and-package`` (or extra invoice) record.

    The package rarely stores its duration, so ``trek_times`` (the trek's own
    duration) is used when it is missing.
    """

    package = item.get("package") or {}
    if not isinstance(package, Mapping):
        package = {}
    group_id = str(item.get("id", ""))
    group_size = max(coerce_int(package.get("total_space"), 1), 1)

    def rows_for(key: str, prefix: str) -> List[CostRow]:
        return [
            _row_from_payload(row, f"{prefix}-{index}", group_size)
            for index, row in enumerate(item.get(key) or [])
            if isinstance(row, Mapping)
        ]

    extra_rows: List[CostRow] = []
    for service_index, service in enumerate(item.get("extra_services") or []):
        if not isinstance(service, Mapping):
            continue
        service_name = str(service.get("service_name") or "")
        for param_index, param in enumerate(service.get("params") or []):
            if not isinstance(param, Mapping):
                continue
            param_name = str(param.get("name") or "")
            if service_name and param_name and param_name != service_name:
                label = f"{service_name} - {param_name}"
            else:
                label = param_name or service_name
            extra_rows.append(
                _row_from_payload(param, f"extra-{service_index}-{param_index}", group_size, name=label)
            )

    package_name = str(package.get("name") or "")
    joined = coerce_int(item.get("joined"), 0)
    report = CostReport(
        group_id=group_id,
        trek_id=str(package.get("trip", "")) or None,
        trek_name=str(item.get("trip_name") or package.get("trip_name") or package_name),
        group_name=package_name,
        group_size=group_size,
        start_date=_parse_date(package.get("start_date")),
        trek_times=max(coerce_int(package.get("times"), 0) or trek_times or 1, 1),
        permits=_section_from_payload(item, "permits", rows_for("permits", "permit"), "permit"),
        services=_section_from_payload(item, "services", rows_for("services", "service"), "service"),
        accommodation=_section_from_payload(
            item, "accommodation", rows_for("accommodation", "accommodation"), "accommodation"
        ),
        transportation=_section_from_payload(
            item, "transportation", rows_for("transportation", "transportation"), "transportation"
        ),
        extra_details=_section_from_payload(item, "extra_details", extra_rows, "extra_service"),
        service_charge=coerce_rate(item.get("service_charge")),
        overall_discount_type=PERCENTAGE if item.get("overall_discount_type") == PERCENTAGE else AMOUNT,
        overall_discount_value=coerce_rate(item.get("overall_discount")),
        overall_discount_remarks=str(item.get("overall_discount_remarks") or ""),
        created_by=_created_by(item.get("created_by")),
        is_extra_invoice=is_extra_invoice,
        parent_group_id=parent_group_id,
        report_url=f"/report/{group_id}",
        joined=joined,
        pending=max(group_size - joined, 0),
    )

    if item.get("total_cost") is not None or item.get("total_amount") is not None:
        total_cost = coerce_rate(
            item.get("total_cost") if item.get("total_cost") is not None else item.get("total_amount")
        )
    else:
        total_cost = report_totals(report).total_with_service_charge
    report.payment = PaymentDetails.from_totals(
        total_cost,
        coerce_rate(item.get("total_paid")),
        coerce_rate(item.get("total_refund")),
    )
    return report


def traveler_form_url(app_url: str, report: CostReport) -> str:
    return f"{app_url.rstrip('/')}/report/{report.group_id}?groupSize={report.group_size}"


def visible_sections(report: CostReport) -> List[Tuple[CostSection, List[CostRow]]]:
    """Sections with at least one priced row, each paired with those rows."""

    visible: List[Tuple[CostSection, List[CostRow]]] = []
    for section in report.sections():
        rows = [row for row in section.rows if row.total != 0]
        if rows:
            visible.append((section, rows))
    return visible


def section_rows_frame(rows: Sequence[CostRow]) -> List[Dict[str, Any]]:
    return [
        {
            "#": index,
            "Description": row.description,
            "Rate": row.rate,
            "No": row.no,
            "Times": row.times,
            "Total": row.total,
        }
        for index, row in enumerate(rows, start=1)
    ]


__all__ = [
    "AMOUNT",
    "CostEstimateError",
    "CostReport",
    "CostRow",
    "CostSection",
    "DEFAULT_SERVICE_CHARGE",
    "PERCENTAGE",
    "ReportTotals",
    "STANDARD_SECTIONS",
    "STANDARD_SECTION_IDS",
    "SectionTotals",
    "EDITABLE_FIELDS",
    "add_blank_row",
    "add_catalog_row",
    "add_custom_section",
    "apply_default_items",
    "apply_row_edits",
    "build_package_payload",
    "calculate_row_quantity",
    "calculate_row_times",
    "calculate_row_total",
    "change_group_size",
    "generate_group_name",
    "new_report",
    "remove_custom_section",
    "remove_row",
    "rename_custom_section",
    "report_from_payload",
    "report_totals",
    "row_from_item",
    "section_rows_frame",
    "section_totals",
    "select_trek",
    "set_overall_discount",
    "set_section_discount",
    "traveler_form_url",
    "update_row",
    "visible_sections",
]
