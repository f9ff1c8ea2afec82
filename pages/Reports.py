from __future__ import annotations

import pandas as pd
import streamlit as st

from cost_estimator import report_totals, traveler_form_url
from Home import app_url, configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from payments import FULLY_PAID, OVERPAID, PARTIALLY_PAID
from trek_api import TrekApiError, fetch_groups_and_packages, fetch_travelers

configure_page(page_title="Reports")
password_gate()
render_sidebar()

st.title("📑 Group Reports")

_PAGE_KEY = "reports_page"
_PAGE_SIZE = 10
_BADGES = {
    FULLY_PAID: "🟢",
    OVERPAID: "🔵",
    PARTIALLY_PAID: "🟡",
}

config = trek_api_config()
tokens = session_tokens()

search = st.text_input("Search groups", placeholder="Group or trek name")
page = int(st.session_state.get(_PAGE_KEY, 1))

try:
    result = fetch_groups_and_packages(config, tokens, page=page, limit=_PAGE_SIZE, search=search or None)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

if not result.reports:
    st.info("No groups found.")

for report in result.reports:
    badge = _BADGES.get(report.payment.status, "🔴")
    with st.expander(f"{badge} {report.group_name or report.group_id} · {report.trek_name}"):
        totals = report_totals(report)
        cols = st.columns(4)
        cols[0].metric("Group size", report.group_size)
        cols[1].metric("Start", report.start_date.isoformat() if report.start_date else "-")
        cols[2].metric("Total", f"{report.payment.total_cost or totals.total_with_service_charge:,.2f}")
        cols[3].metric("Payment", report.payment.status.title())

        st.code(traveler_form_url(app_url(), report), language=None)
        st.page_link("pages/Cost Matrix.py", label="Open in cost matrix", query_params={"group": report.group_id})

        if st.toggle("Show travelers", key=f"travelers_{report.group_id}"):
            try:
                travelers = fetch_travelers(config, tokens, report.group_id)
            except TrekApiError as exc:
                show_api_error(exc)
            else:
                if travelers:
                    st.dataframe(
                        pd.DataFrame(
                            [
                                {
                                    "Name": t.name,
                                    "Phone": t.phone,
                                    "Email": t.email,
                                    "Nationality": t.nationality,
                                    "Passport": t.passport_number,
                                }
                                for t in travelers
                            ]
                        ),
                        hide_index=True,
                        use_container_width=True,
                    )
                else:
                    st.caption(f"No travelers yet ({report.joined}/{report.group_size} joined).")

nav = st.columns([1, 1, 4])
if nav[0].button("⬅️ Previous", disabled=page <= 1):
    st.session_state[_PAGE_KEY] = page - 1
    st.rerun()
if nav[1].button("Next ➡️", disabled=not result.has_more):
    st.session_state[_PAGE_KEY] = page + 1
    st.rerun()
nav[2].caption(f"Page {page} · {result.total} groups")
