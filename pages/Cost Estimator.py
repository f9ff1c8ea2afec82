from __future__ import annotations

import streamlit as st

from cost_editor import (
    load_catalog,
    prefill_defaults,
    render_custom_sections,
    render_exports,
    render_section,
    render_summary,
    save_report,
)
from cost_estimator import change_group_size, new_report, select_trek, traveler_form_url
from Home import app_url, configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from payments import local_today
from trek_api import TrekApiError, fetch_trek_with_permits, fetch_trips

configure_page(page_title="Cost Estimator")
password_gate()
render_sidebar()

st.title("🧮 Cost Estimator")

_REPORT_KEY = "cost_estimator_report"
_STEP_KEY = "cost_estimator_step"
_SAVED_KEY = "cost_estimator_saved"
_KEY = "estimator"

STEPS = (
    "Select Trek",
    "Group Details",
    "Permits",
    "Services",
    "Accommodation",
    "Transportation",
    "Extra Details",
    "Custom Sections",
    "Final",
)
_SECTION_STEPS = {
    "Permits": "permits",
    "Services": "services",
    "Accommodation": "accommodation",
    "Transportation": "transportation",
    "Extra Details": "extra_details",
}

config = trek_api_config()
tokens = session_tokens()

if _REPORT_KEY not in st.session_state:
    st.session_state[_REPORT_KEY] = new_report()
    st.session_state[_STEP_KEY] = 0

report = st.session_state[_REPORT_KEY]
step = int(st.session_state.get(_STEP_KEY, 0))

st.progress((step + 1) / len(STEPS), text=f"Step {step + 1} of {len(STEPS)}: {STEPS[step]}")

try:
    if STEPS[step] == "Select Trek":
        treks = fetch_trips(config, tokens)
        if not treks:
            st.info("No treks are available yet.")
            st.stop()
        names = [trek.name for trek in treks]
        current = names.index(report.trek_name) if report.trek_name in names else 0
        choice = st.selectbox("Trek", names, index=current)
        trek = treks[names.index(choice)]
        if trek.description:
            st.caption(trek.description)
        if trek.id != report.trek_id:
            report = select_trek(report, fetch_trek_with_permits(config, tokens, trek))
            report = prefill_defaults(report, load_catalog(config, tokens, trek.id))

    elif STEPS[step] == "Group Details":
        report.group_name = st.text_input("Group name", value=report.group_name)
        size = st.number_input("Group size", min_value=1, step=1, value=int(report.group_size))
        if size != report.group_size:
            report = change_group_size(report, int(size))
        report.start_date = st.date_input("Start date", value=report.start_date or local_today())
        report.client_communication_method = st.text_input(
            "Client communication method", value=report.client_communication_method
        )

    elif STEPS[step] in _SECTION_STEPS:
        section_id = _SECTION_STEPS[STEPS[step]]
        catalog = load_catalog(config, tokens, report.trek_id) if report.trek_id else {}
        report = render_section(report, section_id, catalog.get(section_id), key_prefix=_KEY)

    elif STEPS[step] == "Custom Sections":
        report = render_custom_sections(report, key_prefix=_KEY)

    else:
        report = render_summary(report, key_prefix=_KEY)
        user = tokens.user()
        form_url = traveler_form_url(app_url(), report)
        render_exports(report, prepared_by=user.name if user else "", form_url=form_url, key_prefix=_KEY)

        saved = st.session_state.get(_SAVED_KEY) == report.group_id
        if st.button("💾 Update report" if saved else "💾 Save report", type="primary"):
            response = save_report(config, tokens, report, is_update=saved)
            if isinstance(response, dict) and response.get("id") and not saved:
                report.group_id = str(response["id"])
            st.session_state[_SAVED_KEY] = report.group_id
            st.success("Report has been saved successfully.")
            st.markdown(f"Traveler form link: {traveler_form_url(app_url(), report)}")
except TrekApiError as exc:
    show_api_error(exc)

st.session_state[_REPORT_KEY] = report

nav = st.columns([1, 1, 4, 1])
if nav[0].button("⬅️ Back", disabled=step == 0):
    st.session_state[_STEP_KEY] = step - 1
    st.rerun()
if nav[1].button("Next ➡️", disabled=step == len(STEPS) - 1 or not report.trek_id):
    st.session_state[_STEP_KEY] = step + 1
    st.rerun()
if nav[3].button("Start over"):
    st.session_state.pop(_REPORT_KEY, None)
    st.session_state.pop(_SAVED_KEY, None)
    st.rerun()
