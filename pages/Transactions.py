from __future__ import annotations

import streamlit as st

from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from payments import PAYMENT_METHODS, Transaction, local_today, transactions_dataframe
from trek_api import TrekApiError, add_transaction, fetch_all_groups, fetch_transactions

configure_page(page_title="Transactions")
password_gate()
render_sidebar()

st.title("🧾 Transactions")

_PAGE_KEY = "transactions_page"

config = trek_api_config()
tokens = session_tokens()
page = int(st.session_state.get(_PAGE_KEY, 1))

try:
    result = fetch_transactions(config, tokens, page=page)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

cols = st.columns(4)
cols[0].metric("Total payments", f"{result.total_payments:,.2f}")
cols[1].metric("Paid in", f"{result.total_pay:,.2f}")
cols[2].metric("Refunded", f"{result.total_refund:,.2f}")
cols[3].metric("Balance", f"{result.balance:,.2f}")

st.dataframe(transactions_dataframe(result.transactions), hide_index=True, use_container_width=True)

nav = st.columns([1, 1, 4])
if nav[0].button("⬅️ Previous", disabled=not result.previous_url):
    st.session_state[_PAGE_KEY] = max(page - 1, 1)
    st.rerun()
if nav[1].button("Next ➡️", disabled=not result.has_next):
    st.session_state[_PAGE_KEY] = page + 1
    st.rerun()
nav[2].caption(f"Page {page} · {result.count} transactions")

st.divider()
st.subheader("Quick transaction")
try:
    groups = fetch_all_groups(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

labels = {report.group_id: report.group_name or report.group_id for report in groups}
with st.form("quick_transaction", clear_on_submit=True):
    form_cols = st.columns(3)
    group_id = form_cols[0].selectbox("Group", list(labels), format_func=labels.get)
    kind = form_cols[1].selectbox("Type", ["payment", "refund"], format_func=str.title)
    amount = form_cols[2].number_input("Amount", min_value=0.0, step=100.0)
    form_cols = st.columns(3)
    method = form_cols[0].selectbox("Method", PAYMENT_METHODS, format_func=str.title)
    on = form_cols[1].date_input("Date", value=local_today())
    note = form_cols[2].text_input("Note")
    if st.form_submit_button("Add transaction"):
        if not group_id or amount <= 0:
            st.error("Pick a group and enter an amount greater than zero.")
        else:
            transaction = Transaction(
                id="",
                group_id=group_id,
                amount=amount,
                type=kind,
                date=on,
                note=note,
                payment_method=method,
            )
            try:
                add_transaction(config, tokens, group_id, transaction)
            except TrekApiError as exc:
                show_api_error(exc)
            else:
                st.success("Transaction added.")
