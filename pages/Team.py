from __future__ import annotations

import pandas as pd
import streamlit as st

from Home import configure_page, password_gate, render_sidebar, session_tokens, show_api_error, trek_api_config
from team import team_availability
from trek_api import TrekApiError, fetch_assignments, fetch_guides, fetch_porters

configure_page(page_title="Team")
password_gate()
render_sidebar()

st.title("👥 Team")

config = trek_api_config()
tokens = session_tokens()

try:
    guides = fetch_guides(config, tokens)
    porters = fetch_porters(config, tokens)
    assignments = fetch_assignments(config, tokens)
except TrekApiError as exc:
    show_api_error(exc)
    st.stop()


def _roster(members) -> pd.DataFrame:
    return pd.DataFrame(
        [{"Name": m.name, "Phone": m.phone, "Email": m.email, "Status": m.status} for m in members],
        columns=["Name", "Phone", "Email", "Status"],
    )


availability = pd.DataFrame(team_availability(guides, porters), columns=["status", "guides", "porters"])
if not availability.empty:
    st.bar_chart(availability.set_index("status"))

guides_tab, porters_tab, assigned_tab = st.tabs(["Guides", "Porters", "Assignments"])
with guides_tab:
    st.dataframe(_roster(guides), hide_index=True, use_container_width=True)
with porters_tab:
    st.dataframe(_roster(porters), hide_index=True, use_container_width=True)
with assigned_tab:
    st.dataframe(
        pd.DataFrame(
            [
                {
                    "Group": a.group_name or a.group_id,
                    "Trek": a.trek_name,
                    "Start": a.start_date.isoformat() if a.start_date else "",
                    "Guides": ", ".join(m.name for m in a.guides),
                    "Porters": ", ".join(m.name for m in a.porters),
                    "Airport pickup": ", ".join(m.name for m in a.airport_pickups),
                }
                for a in assignments
            ],
            columns=["Group", "Trek", "Start", "Guides", "Porters", "Airport pickup"],
        ),
        hide_index=True,
        use_container_width=True,
    )
