from __future__ import annotations

import io
import pathlib
import sys
from datetime import date

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from cost_estimator import new_report
from payments import PaymentDetails, Transaction
from travelers import (
    Traveler,
    TravelerValidationError,
    build_create_traveler_request,
    enrich_travelers,
    is_valid_email,
    is_valid_phone,
    parse_travelers,
    search_travelers,
    traveler_amount_paid,
    validate_traveler_form,
)


class FakeUpload(io.BytesIO):
    def __init__(self, content: bytes, name: str, mime: str):
        super().__init__(content)
        self.name = name
        self.type = mime


def _form(**overrides):
    values = {
        "name": "Anna Berg",
        "phone": "+46 70-123 4567",
        "email": "anna@example.com",
        "address": "Storgatan 1",
        "emergency_contact": "+46 70 000 0000",
        "nationality": "Swedish",
        "passport_number": "SE123",
        "passport_photo": FakeUpload(b"jpeg", "passport.jpg", "image/jpeg"),
    }
    values.update(overrides)
    return values


def test_phone_and_email_patterns() -> None:
    assert is_valid_phone("+977 (98) 0000-0000")
    assert not is_valid_phone("0123")
    assert not is_valid_phone("call me")
    assert is_valid_email("a.b@example.co")
    assert not is_valid_email("a@b")


def test_validate_traveler_form_collects_every_error() -> None:
    with pytest.raises(TravelerValidationError) as excinfo:
        validate_traveler_form({"phone": "abc", "email": "nope"})

    errors = excinfo.value.errors
    assert errors["name"] == "Name is required"
    assert errors["phone"] == "Please enter a valid phone number"
    assert errors["email"] == "Please enter a valid email address"
    assert errors["passport_photo"] == "Passport photo is required."
    assert "nationality" in errors


def test_validate_traveler_form_allows_blank_email() -> None:
    validate_traveler_form(_form(email=""))


def test_build_create_traveler_request_splits_data_and_files() -> None:
    data, files = build_create_traveler_request(_form(visa_photo=b"visa"), 12)

    assert data["full_name"] == "Anna Berg"
    assert data["emergency_contact_name"] == data["emergency_contact_phone"] == "+46 70 000 0000"
    assert data["package"] == "12"
    assert data["profile_pic"] == ""
    assert data["traval_insurance_document"] == ""
    assert files["passport_photo"] == ("passport.jpg", b"jpeg", "image/jpeg")
    assert files["visa_photo"] == ("visa_photo", b"visa", "application/octet-stream")
    assert "profile_pic" not in files


def test_parse_travelers_maps_backend_fields() -> None:
    travelers = parse_travelers(
        {
            "results": [
                {
                    "id": 3,
                    "full_name": "Anna Berg",
                    "phone_number": "+4670",
                    "emergency_contact_name": "Erik",
                    "package": 12,
                    "package_name": "EBC-1",
                    "traval_policy_document": "/media/policy.pdf",
                }
            ]
        }
    )

    assert travelers == [
        Traveler(
            id="3",
            name="Anna Berg",
            phone="+4670",
            emergency_contact="Erik",
            travel_policy="/media/policy.pdf",
            group_id="12",
            group_name="EBC-1",
        )
    ]


def _enriched():
    report = new_report("12", trek_name="Everest Base Camp", group_name="EBC-1", start_date=date(2024, 4, 1))
    report.payment = PaymentDetails.from_totals(1000, 600)
    travelers = [
        Traveler(id="1", name="Anna Berg", email="anna@example.com", group_id="12"),
        Traveler(id="2", name="Raj Shah", passport_number="P998", group_id="99", group_name="Orphan"),
    ]
    transactions = [
        Transaction(id="t1", group_id="12", amount=700),
        Transaction(id="t2", group_id="12", amount=100, type="refund"),
    ]
    return enrich_travelers(travelers, [report], transactions)


def test_enrich_travelers_links_reports_and_transactions() -> None:
    anna, raj = _enriched()

    assert anna.trek_name == "Everest Base Camp"
    assert anna.group_name == "EBC-1"
    assert traveler_amount_paid(anna) == 600
    assert raj.report is None
    assert raj.group_name == "Orphan"
    assert traveler_amount_paid(raj) == 0


def test_search_travelers_matches_any_field() -> None:
    enriched = _enriched()

    assert [item.traveler.id for item in search_travelers(enriched, "everest")] == ["1"]
    assert [item.traveler.id for item in search_travelers(enriched, "p998")] == ["2"]
    assert len(search_travelers(enriched, "  ")) == 2
