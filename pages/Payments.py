from __future__ import annotations

import pandas as pd
import streamlit as st

from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from payments import (
    PAYMENT_METHODS,
    PAYMENT_STATUSES,
    PaymentRequest,
    PaymentValidationError,
    filter_reports,
    financial_summary,
    local_today,
    unique_creators,
)
from trek_api import (
    TrekApiError,
    fetch_all_groups,
    fetch_merge_packages,
    fetch_payment_details,
    make_payment,
    update_merge_packages,
)

configure_page(page_title="Payments")
password_gate()
render_sidebar()

st.title("💳 Payments")

config = trek_api_config()
tokens = session_tokens()

try:
    reports = fetch_all_groups(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

summary = financial_summary(reports)
cols = st.columns(4)
cols[0].metric("Revenue", f"{summary['total_revenue']:,.2f}")
cols[1].metric("Collected", f"{summary['total_collected']:,.2f}")
cols[2].metric("Outstanding", f"{summary['total_outstanding']:,.2f}")
cols[3].metric("Collection rate", f"{summary['collection_rate']:.1f}%")

filters = st.columns(4)
status = filters[0].selectbox("Status", ["all", *PAYMENT_STATUSES], format_func=str.title)
creator = filters[1].selectbox("Created by", ["all", *unique_creators(reports)])
start = filters[2].date_input("From", value=None)
end = filters[3].date_input("To", value=None)

filtered = filter_reports(reports, status=status, creator=creator, start=start, end=end)
st.dataframe(
    pd.DataFrame(
        [
            {
                "Group": report.group_name,
                "Trek": report.trek_name,
                "Start": report.start_date.isoformat() if report.start_date else "",
                "Total": report.payment.total_cost,
                "Paid": report.payment.total_paid,
                "Balance": report.payment.balance,
                "Status": report.payment.status.title(),
            }
            for report in filtered
        ],
        columns=["Group", "Trek", "Start", "Total", "Paid", "Balance", "Status"],
    ),
    hide_index=True,
    use_container_width=True,
)

if not filtered:
    st.stop()

st.divider()
labels = {report.group_id: f"{report.group_name} ({report.group_id})" for report in filtered}
group_id = st.selectbox("Group", list(labels), format_func=labels.get)

try:
    details = fetch_payment_details(config, tokens, group_id)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

cols = st.columns(4)
cols[0].metric("Total cost", f"{details.total_cost:,.2f}")
cols[1].metric("Paid", f"{details.total_paid:,.2f}")
cols[2].metric("Refunded", f"{details.total_refund:,.2f}")
cols[3].metric("Balance", f"{details.balance:,.2f}")

if details.payments:
    st.dataframe(
        pd.DataFrame(
            [
                {
                    "Date": record.date.isoformat() if record.date else "",
                    "Type": record.payment_type.title(),
                    "Method": record.payment_method,
                    "Amount": record.amount,
                    "Remarks": record.remarks,
                }
                for record in details.payments
            ]
        ),
        hide_index=True,
        use_container_width=True,
    )

with st.form("record_payment", clear_on_submit=True):
    st.subheader("Record payment or refund")
    form_cols = st.columns(4)
    payment_type = form_cols[0].selectbox("Type", ["pay", "refund"], format_func=str.title)
    amount = form_cols[1].number_input("Amount", min_value=0.0, step=100.0)
    method = form_cols[2].selectbox("Method", PAYMENT_METHODS, format_func=str.title)
    paid_on = form_cols[3].date_input("Date", value=local_today())
    remarks = st.text_input("Remarks")
    if st.form_submit_button("Submit"):
        request = PaymentRequest(
            package_id=group_id,
            amount=amount,
            remarks=remarks,
            payment_type=payment_type,
            payment_method=method,
            date=paid_on,
        )
        try:
            make_payment(config, tokens, request)
        except PaymentValidationError as exc:
            st.error(str(exc))
        except TrekApiError as exc:
            show_api_error(exc)
        else:
            st.success("Payment recorded.")

st.subheader("Merge packages")
try:
    merged = fetch_merge_packages(config, tokens, group_id)
except TrekApiError as exc:
    show_api_error(exc)
    merged = []

candidates = {report.group_id: report.group_name for report in reports if report.group_id != group_id}
selected = st.multiselect(
    "Packages merged into this group",
    list(candidates),
    default=[item["id"] for item in merged if item["id"] in candidates],
    format_func=lambda key: candidates.get(key, key),
)
if st.button("Save merge"):
    try:
        update_merge_packages(config, tokens, group_id, selected)
    except TrekApiError as exc:
        show_api_error(exc)
    else:
        st.success("Merged packages updated.")
