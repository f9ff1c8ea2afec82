from __future__ import annotations

import streamlit as st

from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from payments import assignment_allowed
from trek_api import (
    TrekApiError,
    assign_team,
    fetch_airport_pickups,
    fetch_all_groups,
    fetch_assigned_team,
    fetch_guides,
    fetch_porters,
)

configure_page(page_title="Assignments")
password_gate()
render_sidebar()

st.title("🧭 Team Assignments")
st.write("Assign guides and porters to groups that have started paying.")

config = trek_api_config()
tokens = session_tokens()

try:
    reports = fetch_all_groups(config, tokens)
    guides = fetch_guides(config, tokens)
    porters = fetch_porters(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

if not reports:
    st.info("No groups to assign yet.")
    st.stop()

labels = {report.group_id: f"{report.group_name or report.group_id} · {report.trek_name}" for report in reports}
group_id = st.selectbox("Group", list(labels), format_func=labels.get)
report = next(report for report in reports if report.group_id == group_id)

st.caption(f"Payment status: {report.payment.status.title()}")
if not assignment_allowed(report):
    st.warning("This group has not paid anything yet. Record a payment before assigning staff.")
    st.stop()

try:
    current = fetch_assigned_team(config, tokens, group_id)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()

current_guides = {str(value) for value in current.get("guides") or []}
current_porters = {str(value) for value in current.get("porters") or []}

# Already-assigned members stay selectable even when no longer marked available.
guide_options = {m.id: m.name for m in guides if m.id in current_guides or m.is_available}
porter_options = {m.id: m.name for m in porters if m.id in current_porters or m.is_available}

with st.form("assign_team"):
    selected_guides = st.multiselect(
        "Guides",
        list(guide_options),
        default=[key for key in guide_options if key in current_guides],
        format_func=guide_options.get,
    )
    selected_porters = st.multiselect(
        "Porters",
        list(porter_options),
        default=[key for key in porter_options if key in current_porters],
        format_func=porter_options.get,
    )
    if st.form_submit_button("Save assignment", type="primary"):
        try:
            assign_team(config, tokens, selected_guides, selected_porters, group_id)
        except TrekApiError as exc:
            show_api_error(exc)
        else:
            st.success("Team assigned.")

st.divider()
st.subheader("🚐 Airport pickups")
try:
    pickups = fetch_airport_pickups(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    pickups = []

if not pickups:
    st.info("No airport pickups scheduled.")
for pickup in pickups:
    st.write(
        f"**{pickup.name}** · {pickup.vehicle_type or 'vehicle'} {pickup.license_plate} · "
        f"driver {pickup.driver_name or '-'} ({pickup.driver_contact or '-'})"
    )
