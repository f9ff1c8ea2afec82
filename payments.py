"""Payment status, transaction parsing and money summaries for trek groups."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

import pandas as pd

from catalog_items import coerce_rate


UNPAID = "unpaid"
PARTIALLY_PAID = "partially paid"
FULLY_PAID = "fully paid"
OVERPAID = "overpaid"
PAYMENT_STATUSES: tuple[str, ...] = (UNPAID, PARTIALLY_PAID, FULLY_PAID, OVERPAID)

PAYMENT_TYPES: tuple[str, ...] = ("pay", "refund")
PAYMENT_METHODS: tuple[str, ...] = ("cash", "bank transfer", "card", "online", "cheque")

LOCAL_TIME_ZONE = ZoneInfo("Asia/Kathmandu")


def local_today() -> date:
    """Today's date in the operator's time zone."""

    return datetime.now(LOCAL_TIME_ZONE).date()


def payment_status(total_cost: float, total_paid: float) -> str:
    """Classify a group's payment position."""

    if total_paid <= 0:
        return UNPAID
    if total_cost <= 0:
        return FULLY_PAID
    if total_paid > total_cost:
        return OVERPAID
    if total_paid == total_cost:
        return FULLY_PAID
    return PARTIALLY_PAID


def _parse_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).date()
    except ValueError:
        parsed = pd.to_datetime(value, errors="coerce")
        if pd.isna(parsed):
            return None
        return parsed.date()


@dataclass
class PaymentRecord:
    id: str
    amount: float
    payment_method: str = ""
    payment_type: str = "pay"
    remarks: str = ""
    date: Optional[date] = None

    @property
    def is_refund(self) -> bool:
        return self.payment_type == "refund"


@dataclass
class PaymentDetails:
    """Money position of a single group."""

    total_cost: float = 0.0
    total_paid: float = 0.0
    total_refund: float = 0.0
    balance: float = 0.0
    status: str = UNPAID
    package_name: str = ""
    payments: List[PaymentRecord] = field(default_factory=list)

    @classmethod
    def from_totals(cls, total_cost: float, total_paid: float = 0.0, total_refund: float = 0.0) -> "PaymentDetails":
        return cls(
            total_cost=total_cost,
            total_paid=total_paid,
            total_refund=total_refund,
            balance=total_cost - total_paid,
            status=payment_status(total_cost, total_paid),
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "PaymentDetails":
        total_cost = coerce_rate(
            payload.get("total_cost") if payload.get("total_cost") is not None else payload.get("total_amount")
        )
        total_paid = coerce_rate(payload.get("total_paid"))
        total_refund = coerce_rate(payload.get("total_refund"))
        balance_raw = payload.get("balance")
        balance = coerce_rate(balance_raw) if balance_raw is not None else total_cost - total_paid

        records: List[PaymentRecord] = []
        for item in payload.get("payments") or []:
            if not isinstance(item, Mapping):
                continue
            records.append(
                PaymentRecord(
                    id=str(item.get("id", "")),
                    amount=coerce_rate(item.get("amount")),
                    payment_method=str(item.get("payment_method") or ""),
                    payment_type=str(item.get("payment_types") or "pay"),
                    remarks=str(item.get("remarks") or ""),
                    date=_parse_date(item.get("date")),
                )
            )

        return cls(
            total_cost=total_cost,
            total_paid=total_paid,
            total_refund=total_refund,
            balance=balance,
            status=payment_status(total_cost, total_paid),
            package_name=str(payload.get("package_name") or ""),
            payments=records,
        )

    @property
    def is_settled(self) -> bool:
        return self.status in (FULLY_PAID, OVERPAID)


@dataclass
class Transaction:
    id: str
    group_id: str
    amount: float
    type: str = "payment"
    date: Optional[date] = None
    note: str = ""
    payment_method: str = ""
    package_name: str = ""

    @property
    def is_refund(self) -> bool:
        return self.type == "refund"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Transaction":
        """Parse either the ``transactions/`` or the ``payments/`` row shape."""

        if "package_id" in payload or "payment_types" in payload:
            kind = "refund" if str(payload.get("payment_types") or "").lower() == "refund" else "payment"
            return cls(
                id=str(payload.get("id", "")),
                group_id=str(payload.get("package_id", "")),
                amount=coerce_rate(payload.get("amount")),
                type=kind,
                date=_parse_date(payload.get("date")),
                note=str(payload.get("remarks") or ""),
                payment_method=str(payload.get("payment_method") or ""),
                package_name=str(payload.get("package_name") or ""),
            )

        kind = str(payload.get("type") or "payment").lower()
        return cls(
            id=str(payload.get("id", "")),
            group_id=str(payload.get("groupId") or payload.get("group_id") or ""),
            amount=coerce_rate(payload.get("amount")),
            type="refund" if kind == "refund" else "payment",
            date=_parse_date(payload.get("date")),
            note=str(payload.get("note") or ""),
            payment_method=str(payload.get("paymentMethod") or payload.get("payment_method") or ""),
        )


@dataclass
class TransactionPage:
    count: int
    next_url: Optional[str]
    previous_url: Optional[str]
    total_payments: float
    total_pay: float
    total_refund: float
    balance: float
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def has_next(self) -> bool:
        return bool(self.next_url)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "TransactionPage":
        results = payload.get("results") or {}
        if not isinstance(results, Mapping):
            results = {}
        rows = [
            Transaction.from_payload(item)
            for item in results.get("transactions") or []
            if isinstance(item, Mapping)
        ]
        return cls(
            count=int(payload.get("count") or 0),
            next_url=payload.get("next"),
            previous_url=payload.get("previous"),
            total_payments=coerce_rate(results.get("total_payments")),
            total_pay=coerce_rate(results.get("total_pay")),
            total_refund=coerce_rate(results.get("total_refund")),
            balance=coerce_rate(results.get("balance")),
            transactions=rows,
        )


class PaymentValidationError(ValueError):
    """Raised when a payment or refund request is incomplete."""


@dataclass
class PaymentRequest:
    package_id: str
    amount: float
    remarks: str = ""
    payment_type: str = "pay"
    payment_method: str = "cash"
    date: date = field(default_factory=local_today)

    def validate(self) -> None:
        if not str(self.package_id).strip():
            raise PaymentValidationError("A group must be selected.")
        if self.amount is None or self.amount <= 0:
            raise PaymentValidationError("Amount must be greater than zero.")
        if self.payment_type not in PAYMENT_TYPES:
            raise PaymentValidationError(f"Unknown payment type '{self.payment_type}'.")

    def to_payload(self) -> Dict[str, Any]:
        self.validate()
        return {
            "package_id": str(self.package_id),
            "amount": float(self.amount),
            "remarks": self.remarks,
            "payment_type": self.payment_type,
            "payment_method": self.payment_method,
            "date": self.date.isoformat(),
        }


def transaction_to_payload(transaction: Transaction) -> Dict[str, Any]:
    return {
        "amount": float(transaction.amount),
        "type": transaction.type,
        "date": (transaction.date or local_today()).isoformat(),
        "note": transaction.note,
        "paymentMethod": transaction.payment_method,
    }


def summarise_transactions(transactions: Iterable[Transaction]) -> Dict[str, float]:
    total_payments = 0.0
    total_refunds = 0.0
    for transaction in transactions:
        if transaction.is_refund:
            total_refunds += transaction.amount
        else:
            total_payments += transaction.amount
    return {
        "total_payments": total_payments,
        "total_refunds": total_refunds,
        "net_total": total_payments - total_refunds,
    }


def financial_summary(reports: Sequence[Any]) -> Dict[str, float]:
    """Revenue, collected and outstanding amounts over ``reports``."""

    total_revenue = sum(report.payment.total_cost for report in reports)
    total_collected = sum(report.payment.total_paid for report in reports)
    total_outstanding = sum(report.payment.balance for report in reports)
    collection_rate = (total_collected / total_revenue * 100) if total_revenue > 0 else 0.0
    return {
        "total_revenue": total_revenue,
        "total_collected": total_collected,
        "total_outstanding": total_outstanding,
        "collection_rate": collection_rate,
    }


def filter_reports(
    reports: Sequence[Any],
    *,
    status: str = "all",
    creator: str = "all",
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> List[Any]:
    filtered = list(reports)

    if status != "all":
        filtered = [report for report in filtered if report.payment.status == status]

    if creator != "all":
        filtered = [report for report in filtered if report.created_by == creator]

    if start is not None or end is not None:
        def _in_range(report: Any) -> bool:
            if report.start_date is None:
                return False
            if start is not None and report.start_date < start:
                return False
            return end is None or report.start_date <= end

        filtered = [report for report in filtered if _in_range(report)]

    return filtered


def unique_creators(reports: Iterable[Any]) -> List[str]:
    return sorted({report.created_by for report in reports if report.created_by})


def assignment_allowed(report: Any) -> bool:
    """Staff can only be assigned once a group has paid something."""

    return report.payment.status != UNPAID


def payment_analytics(transactions: Iterable[Transaction]) -> pd.DataFrame:
    """Return per-day payment and refund totals, oldest day first."""

    rows = [
        {
            "date": transaction.date,
            "payments": 0.0 if transaction.is_refund else transaction.amount,
            "refunds": transaction.amount if transaction.is_refund else 0.0,
        }
        for transaction in transactions
        if transaction.date is not None
    ]
    if not rows:
        return pd.DataFrame(columns=["date", "payments", "refunds"])

    frame = pd.DataFrame(rows)
    grouped = frame.groupby("date", as_index=False)[["payments", "refunds"]].sum()
    return grouped.sort_values("date").reset_index(drop=True)


def transactions_dataframe(transactions: Iterable[Transaction]) -> pd.DataFrame:
    columns = ["Date", "Group", "Type", "Method", "Amount", "Note"]
    rows = [
        {
            "Date": transaction.date.isoformat() if transaction.date else "",
            "Group": transaction.package_name or transaction.group_id,
            "Type": transaction.type.title(),
            "Method": transaction.payment_method,
            "Amount": -transaction.amount if transaction.is_refund else transaction.amount,
            "Note": transaction.note,
        }
        for transaction in transactions
    ]
    return pd.DataFrame(rows, columns=columns)


__all__ = [
    "FULLY_PAID",
    "OVERPAID",
    "PARTIALLY_PAID",
    "PAYMENT_METHODS",
    "PAYMENT_STATUSES",
    "PAYMENT_TYPES",
    "PaymentDetails",
    "PaymentRecord",
    "PaymentRequest",
    "PaymentValidationError",
    "Transaction",
    "TransactionPage",
    "UNPAID",
    "assignment_allowed",
    "filter_reports",
    "financial_summary",
    "payment_analytics",
    "payment_status",
    "summarise_transactions",
    "transaction_to_payload",
    "transactions_dataframe",
    "unique_creators",
]
