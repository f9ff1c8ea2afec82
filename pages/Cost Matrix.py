from __future__ import annotations

import streamlit as st

from cost_editor import (
    load_catalog,
    render_custom_sections,
    render_exports,
    render_section,
    render_summary,
    save_report,
)
from cost_estimator import STANDARD_SECTION_IDS, change_group_size, traveler_form_url
from Home import app_url, configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from trek_api import TrekApiError, fetch_group_and_package

configure_page(page_title="Cost Matrix")
password_gate()
render_sidebar()

st.title("📐 Cost Matrix")
st.write("Load a saved group, adjust its costs and push the update back.")

_REPORT_KEY = "cost_matrix_report"
_KEY = "matrix"

config = trek_api_config()
tokens = session_tokens()

default_id = st.query_params.get("group", "")
group_id = st.text_input("Group ID", value=default_id)
if st.button("Load group") and group_id.strip():
    try:
        st.session_state[_REPORT_KEY] = fetch_group_and_package(config, tokens, group_id.strip())
    except TrekApiError as exc:
        show_api_error(exc)

report = st.session_state.get(_REPORT_KEY)
if report is None:
    st.info("Enter a group ID to load its cost matrix.")
    st.stop()

st.caption(f"{report.group_name} · {report.trek_name} · starts {report.start_date or '-'}")
size = st.number_input("Group size", min_value=1, step=1, value=int(report.group_size))
if size != report.group_size:
    report = change_group_size(report, int(size))

try:
    catalog = load_catalog(config, tokens, report.trek_id) if report.trek_id else {}
    for section_id in STANDARD_SECTION_IDS:
        with st.container(border=True):
            report = render_section(report, section_id, catalog.get(section_id), key_prefix=_KEY)
    report = render_custom_sections(report, key_prefix=_KEY)
    report = render_summary(report, key_prefix=_KEY)

    user = tokens.user()
    render_exports(
        report,
        prepared_by=user.name if user else "",
        form_url=traveler_form_url(app_url(), report),
        key_prefix=_KEY,
    )

    if st.button("💾 Update report", type="primary"):
        save_report(config, tokens, report, is_update=True)
        st.success("Report has been updated successfully.")
except TrekApiError as exc:
    show_api_error(exc)

st.session_state[_REPORT_KEY] = report
