"""Guides, porters and airport pickup staff, and their group assignments."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

GUIDE = "guide"
PORTER = "porter"
AIRPORT_PICKUP = "airport_pickup"

AVAILABLE = "Available"
ON_LEAVE = "On Leave"

STATUS_VOCABULARY: Dict[str, tuple[str, ...]] = {
    GUIDE: (AVAILABLE, "On Tour", ON_LEAVE),
    PORTER: (AVAILABLE, "On Trek", ON_LEAVE),
    AIRPORT_PICKUP: (AVAILABLE, "On Duty", ON_LEAVE),
}


def normalise_status(value: Any, role: str) -> str:
    """Match ``value`` against the role's vocabulary ignoring case and spacing."""

    text = str(value or "").strip()
    if not text:
        return AVAILABLE

    key = text.replace("_", " ").replace("-", " ").lower()
    key = " ".join(key.split())
    for status in STATUS_VOCABULARY.get(role, ()):
        if status.lower() == key:
            return status
    return text


@dataclass
class StaffMember:
    id: str
    name: str
    role: str = GUIDE
    phone: str = ""
    email: str = ""
    status: str = AVAILABLE
    vehicle_type: str = ""
    license_plate: str = ""
    driver_name: str = ""
    driver_contact: str = ""

    @property
    def is_available(self) -> bool:
        return self.status == AVAILABLE

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], role: str) -> "StaffMember":
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("name") or ""),
            role=role,
            phone=str(payload.get("phone") or ""),
            email=str(payload.get("email") or ""),
            status=normalise_status(payload.get("status"), role),
            vehicle_type=str(payload.get("vehicle_type") or payload.get("vehicleType") or ""),
            license_plate=str(payload.get("license_plate") or payload.get("licensePlate") or ""),
            driver_name=str(payload.get("driver_name") or payload.get("driverName") or ""),
            driver_contact=str(payload.get("driver_contact") or payload.get("driverContact") or ""),
        )


def _parse_date(value: Any) -> Optional[date]:
    if not value:
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        return None


def _members(values: Any, role: str) -> List[StaffMember]:
    if not isinstance(values, Sequence) or isinstance(values, (str, bytes)):
        return []
    return [StaffMember.from_payload(item, role) for item in values if isinstance(item, Mapping)]


@dataclass
class Assignment:
    group_id: str
    trek_name: str = ""
    group_name: str = ""
    start_date: Optional[date] = None
    guides: List[StaffMember] = field(default_factory=list)
    porters: List[StaffMember] = field(default_factory=list)
    airport_pickups: List[StaffMember] = field(default_factory=list)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Assignment":
        return cls(
            group_id=str(payload.get("groupId") or payload.get("group_id") or ""),
            trek_name=str(payload.get("trekName") or payload.get("trek_name") or ""),
            group_name=str(payload.get("groupName") or payload.get("group_name") or ""),
            start_date=_parse_date(payload.get("startDate") or payload.get("start_date")),
            guides=_members(payload.get("guides"), GUIDE),
            porters=_members(payload.get("porters"), PORTER),
            airport_pickups=_members(
                payload.get("airportPickUp") or payload.get("airport_pickup"), AIRPORT_PICKUP
            ),
        )


def parse_staff(payload: Any, role: str) -> List[StaffMember]:
    """Accept either ``{"guides": [...]}`` style envelopes or a bare list."""

    if isinstance(payload, Mapping):
        for key in ("guides", "porters", "airportPickUp", "results"):
            if key in payload:
                payload = payload[key]
                break
    return _members(payload, role)


def parse_assignments(payload: Any) -> List[Assignment]:
    if isinstance(payload, Mapping):
        payload = payload.get("assignments", [])
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        return []
    return [Assignment.from_payload(item) for item in payload if isinstance(item, Mapping)]


def dedupe_airport_pickups(assignments: Iterable[Assignment]) -> List[StaffMember]:
    seen: set[str] = set()
    unique: List[StaffMember] = []
    for assignment in assignments:
        for member in assignment.airport_pickups:
            if member.id in seen:
                continue
            seen.add(member.id)
            unique.append(member)
    return unique


def team_availability(
    guides: Iterable[StaffMember], porters: Iterable[StaffMember]
) -> List[Dict[str, Any]]:
    """Per-status head counts for guides and porters, in vocabulary order."""

    guide_counts = Counter(member.status for member in guides)
    porter_counts = Counter(member.status for member in porters)

    statuses: List[str] = []
    for status in STATUS_VOCABULARY[GUIDE] + STATUS_VOCABULARY[PORTER]:
        if status not in statuses:
            statuses.append(status)
    for status in list(guide_counts) + list(porter_counts):
        if status not in statuses:
            statuses.append(status)

    return [
        {"status": status, "guides": guide_counts.get(status, 0), "porters": porter_counts.get(status, 0)}
        for status in statuses
    ]


def available_members(members: Iterable[StaffMember]) -> List[StaffMember]:
    return [member for member in members if member.is_available]


def _unique_ints(values: Iterable[Any]) -> List[int]:
    seen: set[int] = set()
    ordered: List[int] = []
    for value in values:
        number = int(value)
        if number in seen:
            continue
        seen.add(number)
        ordered.append(number)
    return ordered


def build_assign_team_payload(
    guide_ids: Iterable[Any], porter_ids: Iterable[Any], package_id: Any
) -> Dict[str, Any]:
    return {
        "guides": _unique_ints(guide_ids),
        "porters": _unique_ints(porter_ids),
        "package": int(package_id),
    }


def empty_assigned_team(package_id: Any) -> Dict[str, Any]:
    return {"id": 0, "guides": [], "porters": [], "package": int(package_id)}


def members_for_group(assignments: Iterable[Assignment], group_id: str) -> Optional[Assignment]:
    for assignment in assignments:
        if assignment.group_id == str(group_id):
            return assignment
    return None


__all__ = [
    "AIRPORT_PICKUP",
    "AVAILABLE",
    "Assignment",
    "GUIDE",
    "ON_LEAVE",
    "PORTER",
    "STATUS_VOCABULARY",
    "StaffMember",
    "available_members",
    "build_assign_team_payload",
    "dedupe_airport_pickups",
    "empty_assigned_team",
    "members_for_group",
    "normalise_status",
    "parse_assignments",
    "parse_staff",
    "team_availability",
]
