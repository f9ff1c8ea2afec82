from __future__ import annotations

import io
import pathlib
import sys
from datetime import date

import pandas as pd

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import report_exports
from catalog_items import CatalogItem
from cost_estimator import PERCENTAGE, add_catalog_row, add_custom_section, new_report, set_section_discount
from payments import PaymentDetails, Transaction
from report_exports import (
    build_cost_report_pdf,
    build_cost_report_workbook,
    build_traveler_report_pdf,
    build_travelers_workbook,
    cost_report_filename,
    travelers_dataframe,
)
from travelers import Traveler, enrich_travelers


def _report():
    report = new_report(
        "0f3c2a9e-1111-2222-3333-444455556666",
        trek_name="Everest Base Camp",
        group_name="EBC-1700000000000",
        group_size=2,
        trek_times=12,
        start_date=date(2024, 4, 1),
    )
    report = add_catalog_row(report, "permits", CatalogItem(id="p", name="Sagarmatha NP – entry", rate=3000.0, per_person=True))
    report = set_section_discount(report, "permits", discount_type=PERCENTAGE, value=10)
    report = add_catalog_row(report, "services", CatalogItem(id="g", name="Guide", rate=30.0, per_day=True))
    report = add_custom_section(report, "Rafting: Trisuli [day]")
    section_id = report.custom_sections[0].id
    return add_catalog_row(report, section_id, CatalogItem(id="r", name="Raft", rate=80.0, per_person=True))


def test_build_cost_report_pdf_returns_pdf_bytes() -> None:
    plain = build_cost_report_pdf(_report(), prepared_by="Sita")
    with_qr = build_cost_report_pdf(
        _report(),
        prepared_by="Sita",
        traveler_form_url="https://portal.example.com/report/0f3c?groupSize=2",
        include_service_charge=False,
    )

    assert plain.startswith(b"%PDF")
    assert with_qr.startswith(b"%PDF")
    assert len(with_qr) > len(plain)


def test_build_cost_report_workbook_has_sheet_per_visible_section() -> None:
    data = build_cost_report_workbook(_report())

    sheets = pd.read_excel(io.BytesIO(data), sheet_name=None)

    assert list(sheets) == ["Permits & Documents", "Services", "Rafting  Trisuli  day", "Summary"]
    permits = sheets["Permits & Documents"]
    assert list(permits["Description"])[-3:] == ["Subtotal", "Discount", "Total"]
    assert list(permits["Total"])[-3:] == [6000.0, -600.0, 5400.0]

    summary = sheets["Summary"].set_index("Item")["Amount"]
    assert summary["Grand Total"] == 5400.0 + 360.0 + 160.0


def test_sheet_names_are_truncated_and_deduplicated() -> None:
    used = {"summary"}

    assert report_exports._sheet_name("Summary", used) == "Summary (2)"
    long_name = report_exports._sheet_name("A" * 40, used)
    assert len(long_name) == 31
    assert report_exports._sheet_name("A" * 40, used) == "A" * 27 + " (2)"
    assert report_exports._sheet_name("///", used) == "Sheet"


def test_txt_replaces_non_latin1_characters() -> None:
    assert report_exports._txt("Day 1 – Lukla “base” • ok") == 'Day 1 - Lukla "base" - ok'
    assert report_exports._txt("नमस्ते") == "??????"
    assert report_exports._txt(None) == ""


def test_cost_report_filename() -> None:
    assert cost_report_filename(_report(), ".xlsx") == "cost-report-0f3c2a9e.xlsx"


def _enriched():
    report = new_report("12", trek_name="Langtang", group_name="LT-1", start_date=date(2024, 2, 1))
    report.payment = PaymentDetails.from_totals(2000, 500)
    travelers = [
        Traveler(id="1", name="Anna Berg", phone="+4670", group_id="12"),
        Traveler(id="2", name="Raj Shah", group_id="77", group_name="Unknown group"),
    ]
    transactions = [Transaction(id="t", group_id="12", amount=500, date=date(2024, 1, 10), payment_method="card")]
    return enrich_travelers(travelers, [report], transactions)


def test_travelers_dataframe_joins_group_and_payment_columns() -> None:
    frame = travelers_dataframe(_enriched())

    assert frame.loc[0, "Trek"] == "Langtang"
    assert frame.loc[0, "Start Date"] == "2024-02-01"
    assert frame.loc[0, "Amount Paid"] == 500
    assert frame.loc[0, "Payment Status"] == "partially paid"
    assert frame.loc[1, "Group"] == "Unknown group"
    assert frame.loc[1, "Group Total Cost"] == 0.0
    assert travelers_dataframe([]).empty


def test_traveler_exports_produce_files() -> None:
    anna, raj = _enriched()

    assert build_traveler_report_pdf(anna, prepared_by="Sita").startswith(b"%PDF")
    assert build_traveler_report_pdf(raj).startswith(b"%PDF")

    sheets = pd.read_excel(io.BytesIO(build_travelers_workbook([anna, raj])), sheet_name=None)
    assert list(sheets) == ["Travelers"]
    assert list(sheets["Travelers"]["Name"]) == ["Anna Berg", "Raj Shah"]
