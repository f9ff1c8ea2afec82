"""PDF and Excel exports for cost reports and traveler records."""

from __future__ import annotations

import io
import logging
import re
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pandas as pd
import qrcode
from fpdf import FPDF
from fpdf.enums import XPos, YPos

from cost_estimator import CostReport, report_totals, section_rows_frame, section_totals, visible_sections
from payments import LOCAL_TIME_ZONE
from travelers import EnrichedTraveler, traveler_amount_paid


LOGGER = logging.getLogger(__name__)

FONT = "Helvetica"
SHEET_NAME_LIMIT = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")

# Column widths for section tables: #, Description, Rate, No, Times, Total.
_ROW_WIDTHS = (10, 70, 25, 20, 20, 35)


def _txt(value: Any) -> str:
    """Core PDF fonts are latin-1 only."""

    text = "" if value is None else str(value)
    text = (
        text.replace("—", "-").replace("–", "-").replace("•", "-")
        .replace("“", '"').replace("”", '"').replace("’", "'").replace("‘", "'")
    )
    return text.encode("latin-1", errors="replace").decode("latin-1")


def _money(value: float) -> str:
    return f"{value:,.2f}"


def _pdf_bytes(pdf: FPDF) -> bytes:
    out = pdf.output()
    return bytes(out) if isinstance(out, (bytes, bytearray)) else str(out).encode("latin-1", errors="ignore")


class ReportPDF(FPDF):
    """A4 page with a title header and a prepared-by / page-number footer."""

    def __init__(self, title: str, prepared_by: str = "", *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.report_title = title
        self.prepared_by = prepared_by
        self.set_title(title)
        self.set_creator("Trek Admin Portal")
        self.set_margins(15, 15, 15)
        self.set_auto_page_break(auto=True, margin=30)

    def header(self):
        self.set_font(FONT, "B", 14)
        self.cell(0, 8, _txt(self.report_title), align="C", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_draw_color(150, 150, 150)
        self.line(15, self.get_y() + 1, self.w - 15, self.get_y() + 1)
        self.set_draw_color(0, 0, 0)
        self.ln(4)

    def footer(self):
        self.set_y(-25)
        self.set_font(FONT, "", 9)
        left = self.l_margin
        self.cell(90, 5, _txt(f"Prepared by: {self.prepared_by}"), new_x=XPos.RIGHT, new_y=YPos.TOP)
        self.cell(0, 5, "Signature: ______________________", align="R", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
        self.set_x(left)
        self.set_font(FONT, "", 8)
        self.cell(0, 6, f"Page {self.page_no()} of {{nb}}", align="C")

    def heading(self, text: str) -> None:
        self.set_font(FONT, "B", 11)
        self.cell(0, 7, _txt(text), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def key_values(self, rows: Sequence[tuple[str, str]], label_width: float = 45) -> None:
        for label, value in rows:
            self.set_font(FONT, "B", 10)
            self.cell(label_width, 7, _txt(label), border=1)
            self.set_font(FONT, "", 10)
            self.cell(0, 7, _txt(value), border=1, new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    def table(self, headers: Sequence[str], rows: Iterable[Sequence[Any]], widths: Sequence[float]) -> None:
        self.set_font(FONT, "B", 9)
        for header, width in zip(headers, widths):
            self.cell(width, 7, _txt(header), border=1, align="C")
        self.ln()
        self.set_font(FONT, "", 9)
        for row in rows:
            for index, (value, width) in enumerate(zip(row, widths)):
                align = "R" if isinstance(value, (int, float)) or index == len(widths) - 1 else "L"
                text = _money(value) if isinstance(value, float) else str(value)
                self.cell(width, 7, _txt(text), border=1, align=align)
            self.ln()

    def total_line(self, label: str, value: float, *, bold: bool = False) -> None:
        label_width = sum(_ROW_WIDTHS[:-1])
        self.set_font(FONT, "B" if bold else "", 9)
        self.cell(label_width, 7, _txt(label), border=1, align="R")
        self.cell(_ROW_WIDTHS[-1], 7, _txt(value if isinstance(value, str) else _money(value)), border=1, align="R")
        self.ln()


def _qr_image(data: str) -> io.BytesIO:
    qr = qrcode.QRCode(error_correction=qrcode.constants.ERROR_CORRECT_M, box_size=6, border=2)
    qr.add_data(data)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf)
    buf.seek(0)
    return buf


def _discount_label(section_discount_type: str, value: float) -> str:
    if section_discount_type == "percentage":
        return f"Discount ({value:g}%)"
    return "Discount"


def build_cost_report_pdf(
    report: CostReport,
    *,
    prepared_by: str,
    traveler_form_url: Optional[str] = None,
    include_service_charge: bool = True,
) -> bytes:
    pdf = ReportPDF("Cost Calculation Report", prepared_by)
    pdf.add_page()

    pdf.set_font(FONT, "", 10)
    pdf.cell(0, 6, _txt(f"Group ID: {report.group_id}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    generated = datetime.now(LOCAL_TIME_ZONE).strftime("%Y-%m-%d %H:%M")
    pdf.cell(0, 6, _txt(f"Generated: {generated}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    if traveler_form_url:
        qr_size = 30
        top = pdf.get_y()
        pdf.image(_qr_image(traveler_form_url), x=pdf.w - pdf.r_margin - qr_size, y=top - 12, w=qr_size)
        pdf.set_font(FONT, "", 7)
        pdf.set_xy(pdf.w - pdf.r_margin - qr_size - 10, top - 12 + qr_size)
        pdf.cell(qr_size + 10, 4, "Scan to add traveler details", align="C")
        pdf.set_xy(pdf.l_margin, top + 4)

    pdf.ln(2)
    pdf.heading("Group Details")
    start = report.start_date.isoformat() if report.start_date else "-"
    pdf.key_values(
        [
            ("Trek Name", report.trek_name or "-"),
            ("Group Name", report.group_name or "-"),
            ("Group Size", str(report.group_size)),
            ("Start Date", start),
        ]
    )
    pdf.ln(4)

    headers = ("#", "Description", "Rate", "No", "Times", "Total")
    summary: List[tuple[str, float]] = []
    for section, rows in visible_sections(report):
        totals = section_totals(section)
        pdf.heading(section.name)
        table_rows = [
            (row["#"], row["Description"], float(row["Rate"]), row["No"], row["Times"], float(row["Total"]))
            for row in section_rows_frame(rows)
        ]
        pdf.table(headers, table_rows, _ROW_WIDTHS)
        pdf.total_line("Subtotal", totals.subtotal)
        if totals.discount_amount:
            label = _discount_label(section.discount_type, section.discount_value)
            pdf.total_line(label, f"- {_money(totals.discount_amount)}")
        pdf.total_line(f"{section.name} Total", totals.total, bold=True)
        pdf.ln(4)
        summary.append((section.name, totals.total))

    totals = report_totals(report)
    pdf.heading("Summary")
    for name, value in summary:
        pdf.total_line(name, value)
    if totals.overall_discount_amount:
        pdf.total_line("Overall Discount", f"- {_money(totals.overall_discount_amount)}")
    pdf.total_line("Grand Total", totals.total_cost, bold=True)
    if include_service_charge:
        pdf.total_line(f"Total incl. {report.service_charge:g}% Service Charge", totals.total_with_service_charge, bold=True)
    if report.group_size:
        per_person = (
            totals.cost_per_person_with_service_charge if include_service_charge else totals.cost_per_person
        )
        pdf.total_line("Cost per Person", per_person)

    LOGGER.info("Generated cost report PDF for group %s", report.group_id)
    return _pdf_bytes(pdf)


def _sheet_name(name: str, used: set[str]) -> str:
    base = _INVALID_SHEET_CHARS.sub(" ", name).strip() or "Sheet"
    candidate = base[:SHEET_NAME_LIMIT]
    counter = 2
    while candidate.lower() in used:
        suffix = f" ({counter})"
        candidate = base[: SHEET_NAME_LIMIT - len(suffix)] + suffix
        counter += 1
    used.add(candidate.lower())
    return candidate


def build_cost_report_workbook(report: CostReport) -> bytes:
    used: set[str] = {"summary"}
    summary_rows: List[Dict[str, Any]] = []

    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as xw:
        for section, rows in visible_sections(report):
            totals = section_totals(section)
            frame = pd.DataFrame(section_rows_frame(rows))
            footer = pd.DataFrame(
                [
                    {"Description": "Subtotal", "Total": totals.subtotal},
                    {"Description": "Discount", "Total": -totals.discount_amount},
                    {"Description": "Total", "Total": totals.total},
                ]
            )
            frame = pd.concat([frame, footer], ignore_index=True)
            frame.to_excel(xw, index=False, sheet_name=_sheet_name(section.name, used))
            summary_rows.append({"Item": section.name, "Amount": totals.total})

        totals = report_totals(report)
        summary_rows.extend(
            [
                {"Item": "Subtotal", "Amount": totals.subtotal_before_overall_discount},
                {"Item": "Overall Discount", "Amount": -totals.overall_discount_amount},
                {"Item": "Grand Total", "Amount": totals.total_cost},
                {
                    "Item": f"Total incl. {report.service_charge:g}% Service Charge",
                    "Amount": totals.total_with_service_charge,
                },
                {"Item": "Cost per Person", "Amount": totals.cost_per_person},
            ]
        )
        pd.DataFrame(summary_rows, columns=["Item", "Amount"]).to_excel(xw, index=False, sheet_name="Summary")

    LOGGER.info("Generated cost report workbook for group %s", report.group_id)
    return buf.getvalue()


def cost_report_filename(report: CostReport, ext: str) -> str:
    return f"cost-report-{report.group_id[:8]}.{ext.lstrip('.')}"


def build_traveler_report_pdf(enriched: EnrichedTraveler, *, prepared_by: str = "") -> bytes:
    traveler = enriched.traveler
    pdf = ReportPDF("Traveler Report", prepared_by)
    pdf.add_page()

    pdf.heading("Traveler Details")
    pdf.key_values(
        [
            ("Name", traveler.name),
            ("Phone", traveler.phone or "-"),
            ("Email", traveler.email or "-"),
            ("Address", traveler.address or "-"),
            ("Nationality", traveler.nationality or "-"),
            ("Passport Number", traveler.passport_number or "-"),
            ("Emergency Contact", traveler.emergency_contact or "-"),
        ]
    )
    pdf.ln(4)

    pdf.heading("Group Association")
    report = enriched.report
    if report is None:
        pdf.set_font(FONT, "", 10)
        pdf.cell(0, 7, _txt(f"Group {traveler.group_name or traveler.group_id or '-'}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    else:
        pdf.key_values(
            [
                ("Group", report.group_name or report.group_id),
                ("Trek", report.trek_name or "-"),
                ("Start Date", report.start_date.isoformat() if report.start_date else "-"),
                ("Group Size", str(report.group_size)),
                ("Total Cost", _money(report.payment.total_cost)),
                ("Payment Status", report.payment.status.title()),
            ]
        )
    pdf.ln(4)

    pdf.heading("Payment History")
    rows = [
        (
            transaction.date.isoformat() if transaction.date else "-",
            transaction.type.title(),
            transaction.payment_method or "-",
            transaction.note or "",
            float(transaction.amount),
        )
        for transaction in enriched.transactions
    ]
    if rows:
        pdf.table(("Date", "Type", "Method", "Note", "Amount"), rows, (30, 25, 30, 60, 35))
    else:
        pdf.set_font(FONT, "", 10)
        pdf.cell(0, 7, "No transactions recorded.", new_x=XPos.LMARGIN, new_y=YPos.NEXT)
    pdf.ln(2)
    pdf.set_font(FONT, "B", 10)
    pdf.cell(0, 7, _txt(f"Amount paid: {_money(traveler_amount_paid(enriched))}"), new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    LOGGER.info("Generated traveler report PDF for traveler %s", traveler.id)
    return _pdf_bytes(pdf)


def travelers_dataframe(enriched: Iterable[EnrichedTraveler]) -> pd.DataFrame:
    columns = [
        "Name",
        "Phone",
        "Email",
        "Nationality",
        "Passport Number",
        "Group",
        "Trek",
        "Start Date",
        "Group Total Cost",
        "Amount Paid",
        "Payment Status",
    ]
    rows = []
    for item in enriched:
        report = item.report
        rows.append(
            {
                "Name": item.traveler.name,
                "Phone": item.traveler.phone,
                "Email": item.traveler.email,
                "Nationality": item.traveler.nationality,
                "Passport Number": item.traveler.passport_number,
                "Group": item.group_name,
                "Trek": item.trek_name,
                "Start Date": report.start_date.isoformat() if report is not None and report.start_date else "",
                "Group Total Cost": report.payment.total_cost if report is not None else 0.0,
                "Amount Paid": traveler_amount_paid(item),
                "Payment Status": report.payment.status if report is not None else "",
            }
        )
    return pd.DataFrame(rows, columns=columns)


def build_travelers_workbook(enriched: Iterable[EnrichedTraveler]) -> bytes:
    frame = travelers_dataframe(enriched)
    buf = io.BytesIO()
    with pd.ExcelWriter(buf, engine="openpyxl") as xw:
        frame.to_excel(xw, index=False, sheet_name="Travelers")
    LOGGER.info("Generated travelers workbook with %d rows", len(frame))
    return buf.getvalue()


__all__ = [
    "ReportPDF",
    "build_cost_report_pdf",
    "build_cost_report_workbook",
    "build_traveler_report_pdf",
    "build_travelers_workbook",
    "cost_report_filename",
    "travelers_dataframe",
]
