from __future__ import annotations

import streamlit as st

from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from report_exports import travelers_dataframe
from travelers import TravelerValidationError, build_create_traveler_request, enrich_travelers, search_travelers
from trek_api import TrekApiError, create_traveler, fetch_all_groups, fetch_all_travelers

configure_page(page_title="Travelers")
password_gate()
render_sidebar()

st.title("🧍 Travelers")

config = trek_api_config()
tokens = session_tokens()

try:
    reports = fetch_all_groups(config, tokens)
    travelers = fetch_all_travelers(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

enriched = enrich_travelers(travelers, reports, [])
term = st.text_input("Search", placeholder="Name, phone, email, passport or group")
matches = search_travelers(enriched, term)
st.caption(f"{len(matches)} of {len(enriched)} travelers")
st.dataframe(travelers_dataframe(matches), hide_index=True, use_container_width=True)

st.divider()
st.subheader("Add traveler")

groups = {report.group_id: f"{report.group_name or report.group_id} · {report.trek_name}" for report in reports}
if not groups:
    st.info("Create a group before adding travelers.")
    st.stop()

with st.form("add_traveler"):
    package_id = st.selectbox("Group", list(groups), format_func=groups.get)
    cols = st.columns(2)
    values = {
        "name": cols[0].text_input("Full name"),
        "phone": cols[1].text_input("Phone number"),
        "email": cols[0].text_input("Email"),
        "address": cols[1].text_input("Address"),
        "emergency_contact": cols[0].text_input("Emergency contact"),
        "nationality": cols[1].text_input("Nationality"),
        "passport_number": cols[0].text_input("Passport number"),
    }
    uploads = st.columns(5)
    values["profile_picture"] = uploads[0].file_uploader("Profile picture", type=["png", "jpg", "jpeg"])
    values["passport_photo"] = uploads[1].file_uploader("Passport photo", type=["png", "jpg", "jpeg", "pdf"])
    values["visa_photo"] = uploads[2].file_uploader("Visa", type=["png", "jpg", "jpeg", "pdf"])
    values["travel_policy"] = uploads[3].file_uploader("Travel policy", type=["png", "jpg", "jpeg", "pdf"])
    values["travel_insurance"] = uploads[4].file_uploader("Travel insurance", type=["png", "jpg", "jpeg", "pdf"])

    if st.form_submit_button("Add traveler", type="primary"):
        try:
            data, files = build_create_traveler_request(values, package_id)
            create_traveler(config, tokens, data, files)
        except TravelerValidationError as exc:
            for message in exc.errors.values():
                st.error(message)
        except TrekApiError as exc:
            show_api_error(exc)
        else:
            st.success(f"{data['full_name']} added to {groups[package_id]}.")
