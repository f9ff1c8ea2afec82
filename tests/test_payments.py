"""Tests for payment status, transaction parsing and money summaries."""

from __future__ import annotations

import pathlib
import sys
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional

import pytest

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

import payments
from payments import (
    FULLY_PAID,
    OVERPAID,
    PARTIALLY_PAID,
    UNPAID,
    PaymentDetails,
    PaymentRequest,
    PaymentValidationError,
    Transaction,
    TransactionPage,
    assignment_allowed,
    filter_reports,
    local_today,
    financial_summary,
    payment_analytics,
    payment_status,
    summarise_transactions,
    transaction_to_payload,
    transactions_dataframe,
    unique_creators,
)


@dataclass
class FakeReport:
    group_id: str
    payment: PaymentDetails
    created_by: str = ""
    start_date: Optional[date] = None
    extra: dict = field(default_factory=dict)


@pytest.mark.parametrize(
    "cost, paid, expected",
    [
        (1000, 0, UNPAID),
        (1000, -5, UNPAID),
        (1000, 400, PARTIALLY_PAID),
        (1000, 1000, FULLY_PAID),
        (1000, 1200, OVERPAID),
        (0, 50, FULLY_PAID),
    ],
)
def test_payment_status(cost, paid, expected) -> None:
    assert payment_status(cost, paid) == expected


def test_payment_details_from_payload_falls_back_to_total_amount() -> None:
    details = PaymentDetails.from_payload(
        {
            "total_amount": "5000",
            "total_paid": "2000",
            "package_name": "EBC spring",
            "payments": [
                {"id": 1, "amount": "2500", "payment_types": "pay", "payment_method": "cash", "date": "2024-03-01"},
                {"id": 2, "amount": "500", "payment_types": "refund", "date": "2024-03-05T10:00:00Z"},
                "ignored",
            ],
        }
    )

    assert details.total_cost == 5000.0
    assert details.balance == 3000.0
    assert details.status == PARTIALLY_PAID
    assert details.package_name == "EBC spring"
    assert [record.is_refund for record in details.payments] == [False, True]
    assert details.payments[1].date == date(2024, 3, 5)
    assert details.is_settled is False


def test_payment_details_from_totals_marks_settled() -> None:
    details = PaymentDetails.from_totals(1000.0, 1000.0)

    assert details.balance == 0.0
    assert details.is_settled is True


def test_transaction_from_payload_handles_both_row_shapes() -> None:
    payment_row = Transaction.from_payload(
        {"id": 5, "package_id": 12, "amount": "300", "payment_types": "Refund", "remarks": "cancel", "date": "2024-01-02"}
    )
    transaction_row = Transaction.from_payload(
        {"id": "t1", "groupId": "12", "amount": 800, "type": "PAYMENT", "note": "deposit", "paymentMethod": "card"}
    )

    assert payment_row.is_refund is True
    assert payment_row.group_id == "12"
    assert payment_row.note == "cancel"
    assert transaction_row.type == "payment"
    assert transaction_row.payment_method == "card"
    assert transaction_row.date is None


def test_transaction_page_from_payload() -> None:
    page = TransactionPage.from_payload(
        {
            "count": 23,
            "next": "http://api/payments/?page=3",
            "previous": "http://api/payments/?page=1",
            "results": {
                "transactions": [{"id": 1, "package_id": 2, "amount": "100", "payment_types": "pay"}],
                "total_payments": "1000",
                "total_pay": "1200",
                "total_refund": "200",
                "balance": "1000",
            },
        }
    )

    assert page.count == 23
    assert page.has_next is True
    assert page.total_refund == 200.0
    assert len(page.transactions) == 1


def test_payment_request_validation() -> None:
    with pytest.raises(PaymentValidationError, match="greater than zero"):
        PaymentRequest(package_id="7", amount=0).to_payload()
    with pytest.raises(PaymentValidationError, match="group"):
        PaymentRequest(package_id=" ", amount=10).validate()
    with pytest.raises(PaymentValidationError, match="Unknown payment type"):
        PaymentRequest(package_id="7", amount=10, payment_type="gift").validate()


def test_payment_request_payload() -> None:
    request = PaymentRequest(
        package_id=7, amount=250, remarks="balance", payment_type="refund", payment_method="card", date=date(2024, 4, 1)
    )

    assert request.to_payload() == {
        "package_id": "7",
        "amount": 250.0,
        "remarks": "balance",
        "payment_type": "refund",
        "payment_method": "card",
        "date": "2024-04-01",
    }


def test_transaction_to_payload_uses_camel_case_method() -> None:
    payload = transaction_to_payload(
        Transaction(id="", group_id="3", amount=100, type="refund", date=date(2024, 2, 2), payment_method="cash")
    )

    assert payload == {"amount": 100.0, "type": "refund", "date": "2024-02-02", "note": "", "paymentMethod": "cash"}


def test_summarise_transactions_nets_refunds() -> None:
    summary = summarise_transactions(
        [
            Transaction(id="1", group_id="a", amount=1000),
            Transaction(id="2", group_id="a", amount=250, type="refund"),
            Transaction(id="3", group_id="b", amount=500),
        ]
    )

    assert summary == {"total_payments": 1500.0, "total_refunds": 250.0, "net_total": 1250.0}


def _reports():
    return [
        FakeReport("1", PaymentDetails.from_totals(1000, 0), "sita", date(2024, 3, 1)),
        FakeReport("2", PaymentDetails.from_totals(2000, 500), "ram", date(2024, 4, 10)),
        FakeReport("3", PaymentDetails.from_totals(1000, 1000), "sita", None),
    ]


def test_financial_summary() -> None:
    summary = financial_summary(_reports())

    assert summary["total_revenue"] == 4000
    assert summary["total_collected"] == 1500
    assert summary["total_outstanding"] == 2500
    assert summary["collection_rate"] == pytest.approx(37.5)
    assert financial_summary([])["collection_rate"] == 0.0


def test_filter_reports_by_status_creator_and_dates() -> None:
    reports = _reports()

    assert [r.group_id for r in filter_reports(reports, status=UNPAID)] == ["1"]
    assert [r.group_id for r in filter_reports(reports, creator="sita")] == ["1", "3"]
    assert [r.group_id for r in filter_reports(reports, start=date(2024, 4, 1))] == ["2"]
    assert [r.group_id for r in filter_reports(reports, end=date(2024, 3, 31))] == ["1"]
    assert [
        r.group_id for r in filter_reports(reports, start=date(2024, 3, 1), end=date(2024, 4, 10))
    ] == ["1", "2"]


def test_unique_creators_and_assignment_gate() -> None:
    reports = _reports()

    assert unique_creators(reports) == ["ram", "sita"]
    assert [assignment_allowed(report) for report in reports] == [False, True, True]


def test_payment_analytics_groups_by_day() -> None:
    frame = payment_analytics(
        [
            Transaction(id="1", group_id="a", amount=100, date=date(2024, 1, 2)),
            Transaction(id="2", group_id="a", amount=50, date=date(2024, 1, 1)),
            Transaction(id="3", group_id="a", amount=20, type="refund", date=date(2024, 1, 2)),
            Transaction(id="4", group_id="a", amount=999),
        ]
    )

    assert list(frame["date"]) == [date(2024, 1, 1), date(2024, 1, 2)]
    assert list(frame["payments"]) == [50.0, 100.0]
    assert list(frame["refunds"]) == [0.0, 20.0]
    assert payment_analytics([]).empty


def test_transactions_dataframe_signs_refunds() -> None:
    frame = transactions_dataframe(
        [Transaction(id="1", group_id="g", amount=80, type="refund", package_name="Langtang")]
    )

    assert frame.loc[0, "Amount"] == -80
    assert frame.loc[0, "Group"] == "Langtang"
    assert frame.loc[0, "Type"] == "Refund"


def test_local_today_uses_kathmandu_date(monkeypatch) -> None:
    class _Clock(datetime):
        @classmethod
        def now(cls, tz=None):
            return datetime(2024, 3, 31, 20, 0, tzinfo=timezone.utc).astimezone(tz)

    monkeypatch.setattr(payments, "datetime", _Clock)

    assert local_today() == date(2024, 4, 1)
    assert PaymentRequest(package_id="1", amount=10).date == date(2024, 4, 1)
    assert transaction_to_payload(Transaction(id="t", group_id="1", amount=5))["date"] == "2024-04-01"
