from __future__ import annotations

import streamlit as st

from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from payments import local_today
from report_exports import build_traveler_report_pdf, build_travelers_workbook, travelers_dataframe
from travelers import enrich_travelers, search_travelers
from trek_api import TrekApiError, fetch_all_groups, fetch_all_transactions, fetch_all_travelers

configure_page(page_title="Comprehensive Reports")
password_gate()
render_sidebar()

st.title("📚 Comprehensive Reports")
st.write("Every traveler with their group, trek and payment position.")

config = trek_api_config()
tokens = session_tokens()

try:
    reports = fetch_all_groups(config, tokens)
    travelers = fetch_all_travelers(config, tokens)
    transactions = fetch_all_transactions(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

enriched = enrich_travelers(travelers, reports, transactions)
term = st.text_input("Search", placeholder="Name, phone, email, passport, group or trek")
matches = search_travelers(enriched, term)

st.dataframe(travelers_dataframe(matches), hide_index=True, use_container_width=True)

st.download_button(
    "⬇️ Download Excel",
    data=build_travelers_workbook(matches),
    file_name=f"travelers_{local_today().isoformat()}.xlsx",
    mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    disabled=not matches,
)

if not matches:
    st.stop()

st.divider()
options = {index: f"{item.traveler.name} · {item.group_name}" for index, item in enumerate(matches)}
choice = st.selectbox("Traveler", list(options), format_func=options.get)
selected = matches[choice]
user = tokens.user()
st.download_button(
    "⬇️ Download traveler PDF",
    data=build_traveler_report_pdf(selected, prepared_by=user.name if user else ""),
    file_name=f"traveler_{selected.traveler.name.replace(' ', '_') or selected.traveler.id}.pdf",
    mime="application/pdf",
)
