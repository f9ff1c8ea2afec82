"""Traveler records, the add-traveler form and traveler/group/payment joins."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from payments import Transaction


PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{0,15}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")

REQUIRED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("name", "Name is required"),
    ("phone", "Phone number is required"),
    ("address", "Address is required"),
    ("emergency_contact", "Emergency contact is required"),
    ("nationality", "Nationality is required"),
)

# Form field -> backend multipart field. The backend spells "travel" as "traval".
FILE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("profile_picture", "profile_pic"),
    ("passport_photo", "passport_photo"),
    ("visa_photo", "visa_photo"),
    ("travel_policy", "traval_policy_document"),
    ("travel_insurance", "traval_insurance_document"),
)


class TravelerValidationError(ValueError):
    """Raised with a field -> message mapping when the traveler form is invalid."""

    def __init__(self, errors: Mapping[str, str]):
        self.errors = dict(errors)
        message = "; ".join(f"{key}: {value}" for key, value in self.errors.items())
        super().__init__(message or "Traveler form is invalid")


@dataclass
class Traveler:
    id: str
    name: str
    phone: str = ""
    email: str = ""
    address: str = ""
    passport_number: str = ""
    emergency_contact: str = ""
    nationality: str = ""
    profile_picture: Optional[str] = None
    passport_photo: Optional[str] = None
    visa_photo: Optional[str] = None
    travel_policy: Optional[str] = None
    travel_insurance: Optional[str] = None
    group_id: str = ""
    group_name: str = ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Traveler":
        emergency = payload.get("emergency_contact_name") or payload.get("emergency_contact_phone")
        return cls(
            id=str(payload.get("id", "")),
            name=str(payload.get("full_name") or payload.get("name") or ""),
            phone=str(payload.get("phone_number") or payload.get("phone") or ""),
            email=str(payload.get("email") or ""),
            address=str(payload.get("address") or ""),
            passport_number=str(payload.get("passport_number") or ""),
            emergency_contact=str(emergency or ""),
            nationality=str(payload.get("nationality") or ""),
            profile_picture=payload.get("profile_pic") or None,
            passport_photo=payload.get("passport_photo") or None,
            visa_photo=payload.get("visa_photo") or None,
            travel_policy=payload.get("traval_policy_document") or None,
            travel_insurance=payload.get("traval_insurance_document") or None,
            group_id=str(payload.get("package") or ""),
            group_name=str(payload.get("package_name") or ""),
        )


def parse_travelers(payload: Any) -> List[Traveler]:
    if isinstance(payload, Mapping):
        payload = payload.get("results") or payload.get("travelers") or []
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)):
        return []
    return [Traveler.from_payload(item) for item in payload if isinstance(item, Mapping)]


def is_valid_phone(phone: str) -> bool:
    return bool(PHONE_PATTERN.match(_PHONE_SEPARATORS.sub("", phone or "")))


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email or ""))


def _text(values: Mapping[str, Any], key: str) -> str:
    value = values.get(key)
    return str(value).strip() if value is not None else ""


def validate_traveler_form(values: Mapping[str, Any]) -> None:
    errors: Dict[str, str] = {}
    for key, message in REQUIRED_FIELDS:
        if not _text(values, key):
            errors[key] = message

    phone = _text(values, "phone")
    if phone and not is_valid_phone(phone):
        errors["phone"] = "Please enter a valid phone number"

    email = _text(values, "email")
    if email and not is_valid_email(email):
        errors["email"] = "Please enter a valid email address"

    if not values.get("passport_photo"):
        errors["passport_photo"] = "Passport photo is required."

    if errors:
        raise TravelerValidationError(errors)


def _file_tuple(upload: Any, default_name: str) -> Optional[Tuple[str, bytes, str]]:
    """Return a ``requests`` file tuple for an uploaded file or raw bytes."""

    if upload is None:
        return None
    if isinstance(upload, tuple):
        return upload
    if isinstance(upload, (bytes, bytearray)):
        return (default_name, bytes(upload), "application/octet-stream")

    getvalue = getattr(upload, "getvalue", None)
    content = getvalue() if callable(getvalue) else upload.read()
    name = getattr(upload, "name", None) or default_name
    mime = getattr(upload, "type", None) or "application/octet-stream"
    return (name, content, mime)


def build_create_traveler_request(
    values: Mapping[str, Any], package_id: Any
) -> Tuple[Dict[str, str], Dict[str, Tuple[str, bytes, str]]]:
    """Validate ``values`` and split them into multipart data and files."""

    validate_traveler_form(values)

    emergency = _text(values, "emergency_contact")
    data = {
        "full_name": _text(values, "name"),
        "phone_number": _text(values, "phone"),
        "email": _text(values, "email"),
        "address": _text(values, "address"),
        "emergency_contact_name": emergency,
        "emergency_contact_phone": emergency,
        "passport_number": _text(values, "passport_number"),
        "nationality": _text(values, "nationality"),
        "package": str(package_id) if package_id is not None else "",
    }

    files: Dict[str, Tuple[str, bytes, str]] = {}
    for form_key, api_key in FILE_FIELDS:
        upload = _file_tuple(values.get(form_key), api_key)
        if upload is None:
            data[api_key] = ""
        else:
            files[api_key] = upload
    return data, files


@dataclass
class EnrichedTraveler:
    traveler: Traveler
    report: Optional[Any] = None
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def trek_name(self) -> str:
        return self.report.trek_name if self.report is not None else ""

    @property
    def group_name(self) -> str:
        if self.report is not None and self.report.group_name:
            return self.report.group_name
        return self.traveler.group_name


def enrich_travelers(
    travelers: Iterable[Traveler],
    reports: Iterable[Any],
    transactions: Iterable[Transaction],
) -> List[EnrichedTraveler]:
    by_group = {report.group_id: report for report in reports}
    grouped: Dict[str, List[Transaction]] = {}
    for transaction in transactions:
        grouped.setdefault(transaction.group_id, []).append(transaction)

    return [
        EnrichedTraveler(
            traveler=traveler,
            report=by_group.get(traveler.group_id),
            transactions=grouped.get(traveler.group_id, []),
        )
        for traveler in travelers
    ]


def search_travelers(enriched: Iterable[EnrichedTraveler], term: str) -> List[EnrichedTraveler]:
    needle = (term or "").strip().lower()
    items = list(enriched)
    if not needle:
        return items

    def _matches(item: EnrichedTraveler) -> bool:
        traveler = item.traveler
        haystack = (
            traveler.name,
            traveler.phone,
            traveler.email,
            traveler.passport_number,
            item.group_name,
            item.trek_name,
        )
        return any(needle in (value or "").lower() for value in haystack)

    return [item for item in items if _matches(item)]


def traveler_amount_paid(enriched: EnrichedTraveler) -> float:
    paid = sum(t.amount for t in enriched.transactions if not t.is_refund)
    refunded = sum(t.amount for t in enriched.transactions if t.is_refund)
    return paid - refunded


__all__ = [
    "EnrichedTraveler",
    "Traveler",
    "TravelerValidationError",
    "build_create_traveler_request",
    "enrich_travelers",
    "is_valid_email",
    "is_valid_phone",
    "parse_travelers",
    "search_travelers",
    "traveler_amount_paid",
    "validate_traveler_form",
]
