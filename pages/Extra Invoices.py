from __future__ import annotations

import streamlit as st

from cost_editor import render_custom_sections, render_exports, render_section, render_summary, save_report
from cost_estimator import new_report, report_totals
from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from trek_api import TrekApiError, fetch_extra_invoices, fetch_group_and_package

configure_page(page_title="Extra Invoices")
password_gate()
render_sidebar()

st.title("🧾 Extra Invoices")
st.write("Bill a group for services added after the original quote.")

_INVOICE_KEY = "extra_invoice_report"
_IS_UPDATE_KEY = "extra_invoice_is_update"
_KEY = "extra_invoice"

config = trek_api_config()
tokens = session_tokens()

group_id = st.text_input("Group ID", value=st.query_params.get("group", "")).strip()
if not group_id:
    st.info("Enter the group the extra invoice belongs to.")
    st.stop()

try:
    parent = fetch_group_and_package(config, tokens, group_id)
    invoices = fetch_extra_invoices(config, tokens, group_id)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

st.caption(f"{parent.group_name} · {parent.trek_name} · {parent.group_size} travelers")

st.subheader("Existing invoices")
if not invoices:
    st.info("No extra invoices for this group yet.")
for invoice in invoices:
    cols = st.columns([3, 1, 1])
    cols[0].write(f"Invoice {invoice.group_id}")
    cols[1].write(f"{report_totals(invoice).total_with_service_charge:,.2f}")
    if cols[2].button("Edit", key=f"edit_{invoice.group_id}"):
        st.session_state[_INVOICE_KEY] = invoice
        st.session_state[_IS_UPDATE_KEY] = True

if st.button("➕ New extra invoice"):
    st.session_state[_INVOICE_KEY] = new_report(
        trek_id=parent.trek_id,
        trek_name=parent.trek_name,
        group_name=f"{parent.group_name} extra",
        group_size=parent.group_size,
        start_date=parent.start_date,
        trek_times=parent.trek_times,
        is_extra_invoice=True,
        parent_group_id=group_id,
    )
    st.session_state[_IS_UPDATE_KEY] = False

invoice = st.session_state.get(_INVOICE_KEY)
if invoice is None or invoice.parent_group_id != group_id:
    st.stop()

st.divider()
invoice = render_section(invoice, "extra_services", key_prefix=_KEY)
invoice = render_custom_sections(invoice, key_prefix=_KEY)
invoice = render_summary(invoice, key_prefix=_KEY)

user = tokens.user()
render_exports(invoice, prepared_by=user.name if user else "", form_url=None, key_prefix=_KEY)

if st.button("💾 Save invoice", type="primary"):
    try:
        response = save_report(config, tokens, invoice, is_update=bool(st.session_state.get(_IS_UPDATE_KEY)))
    except TrekApiError as exc:
        show_api_error(exc)
    else:
        if isinstance(response, dict) and response.get("id"):
            invoice.group_id = str(response["id"])
        st.session_state[_IS_UPDATE_KEY] = True
        st.success("Extra invoice saved.")

st.session_state[_INVOICE_KEY] = invoice
