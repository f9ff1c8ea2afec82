from __future__ import annotations

import logging
import time
from collections.abc import Mapping, Sequence
from typing import Any

import pandas as pd
import streamlit as st

from auth_tokens import tokens_from_session
from dashboard_stats import (
    compute_dashboard_stats,
    payment_analytics,
    recent_reports,
    team_availability,
    trek_popularity,
)
from trek_api import (
    AuthenticationRequired,
    TrekApiConfig,
    TrekApiError,
    build_trek_api_config,
    fetch_all_groups,
    fetch_all_transactions,
    fetch_all_travelers,
    fetch_guides,
    fetch_porters,
    fetch_trips,
    obtain_token_pair,
)


_SECRET_RETRY_PREFIX = "_secret_retry__"
_SECRET_RETRY_MAX = 6
_SECRET_RETRY_DELAY_SECONDS = 0.2
_MISSING = object()
_PAGE_CONFIGURED_KEY = "_page_configured"
_LOGGING_CONFIGURED_KEY = "_logging_configured"
_DEFAULT_PAGE_TITLE = "Trek Admin Portal"
_DEFAULT_PAGE_ICON = "🏔️"

LOGGER = logging.getLogger(__name__)


def _secret_retry_key(name: str) -> str:
    return f"{_SECRET_RETRY_PREFIX}{name}"


def _fetch_secret(key: str, *, required: bool, default: Any = _MISSING) -> Any:
    """Fetch a secret, retrying briefly if the secrets store isn't ready yet."""

    try:
        if key in st.secrets:
            value = st.secrets[key]
            st.session_state.pop(_secret_retry_key(key), None)
            return value
    except Exception:
        # ``st.secrets`` can raise while the runtime is still loading
        # secrets.toml; treat that as "not yet available" and retry.
        pass

    retry_key = _secret_retry_key(key)
    attempts = int(st.session_state.get(retry_key, 0))

    if attempts < _SECRET_RETRY_MAX:
        st.session_state[retry_key] = attempts + 1
        st.info("Preparing secure configuration…")
        time.sleep(_SECRET_RETRY_DELAY_SECONDS)
        st.rerun()

    if required:
        st.error(
            f"Required secret '{key}' is not configured. Update `.streamlit/secrets.toml` and refresh the app."
        )
        st.stop()

    if default is not _MISSING:
        return default

    return None


def require_secret(key: str) -> Any:
    """Return a secret value, stopping the app if it never becomes available."""

    return _fetch_secret(key, required=True)


def get_secret(key: str, default: Any | None = None) -> Any:
    """Return a secret value if available, otherwise the provided default."""

    sentinel = _MISSING if default is None else default
    return _fetch_secret(key, required=False, default=sentinel)


def _to_plain_data(value: Any) -> Any:
    """Convert Streamlit's read-only secrets containers into dicts and lists."""

    if isinstance(value, Mapping):
        return {str(key): _to_plain_data(item) for key, item in value.items()}
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return [_to_plain_data(item) for item in value]
    return value


def configure_logging(level: Any = None) -> None:
    """Configure root logging once per process from the ``log_level`` secret."""

    if st.session_state.get(_LOGGING_CONFIGURED_KEY):
        return

    name = str(level or "INFO").upper()
    resolved = logging.getLevelName(name)
    if not isinstance(resolved, int):
        resolved = logging.INFO
    logging.basicConfig(
        level=resolved,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    st.session_state[_LOGGING_CONFIGURED_KEY] = True


def _hide_builtin_sidebar_nav() -> None:
    """Remove Streamlit's default page navigator from the sidebar."""

    st.markdown(
        """
        <style>
            section[data-testid="stSidebar"] div[data-testid="stSidebarNav"] {
                display: none;
            }
            section[data-testid="stSidebar"] div[data-testid="stSidebarNav"] + div {
                padding-top: 0;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def configure_page(*, page_title: str | None = None) -> None:
    """Set the Streamlit page configuration once per run."""

    if not st.session_state.get(_PAGE_CONFIGURED_KEY):
        st.set_page_config(
            page_title=page_title or _DEFAULT_PAGE_TITLE,
            page_icon=_DEFAULT_PAGE_ICON,
            layout="wide",
        )
        st.session_state[_PAGE_CONFIGURED_KEY] = True

    configure_logging(get_secret("log_level", "INFO"))
    _hide_builtin_sidebar_nav()


def trek_api_config() -> TrekApiConfig:
    """Return the API configuration built from the ``[trek_api]`` secrets section."""

    settings = _to_plain_data(get_secret("trek_api", {}))
    try:
        return build_trek_api_config(settings)
    except TrekApiError as exc:
        st.error(str(exc))
        st.stop()


def session_tokens():
    return tokens_from_session(st.session_state)


def app_url() -> str:
    return str(get_secret("app_url", "http://localhost:8501")).rstrip("/")


def show_api_error(exc: TrekApiError) -> None:
    """Report an API failure; an expired session sends the user back to login."""

    if isinstance(exc, AuthenticationRequired):
        st.session_state.authenticated = False
        st.warning(str(exc))
        st.rerun()
    st.error(str(exc))


def _sidebar_links() -> list[dict[str, Any]]:
    return [
        {
            "label": "🧮 Quotes",
            "expanded": True,
            "links": [
                {"path": "pages/Cost Estimator.py", "label": "Cost Estimator"},
                {"path": "pages/Cost Matrix.py", "label": "Cost Matrix"},
                {"path": "pages/Extra Invoices.py", "label": "Extra Invoices"},
                {"path": "pages/Reports.py", "label": "Reports"},
            ],
        },
        {
            "label": "💳 Money",
            "expanded": False,
            "links": [
                {"path": "pages/Payments.py", "label": "Payments"},
                {"path": "pages/Transactions.py", "label": "Transactions"},
            ],
        },
        {
            "label": "🧗 People",
            "expanded": False,
            "links": [
                {"path": "pages/Travelers.py", "label": "Travelers"},
                {"path": "pages/Assignments.py", "label": "Assignments"},
                {"path": "pages/Team.py", "label": "Guides, Porters & Pickup"},
                {"path": "pages/Comprehensive Reports.py", "label": "Comprehensive Reports"},
            ],
        },
    ]


def render_sidebar() -> None:
    """Display the custom navigation sidebar once the user is authenticated."""

    if not st.session_state.get("authenticated"):
        return

    st.sidebar.title("🧭 Navigation")
    st.sidebar.page_link("Home.py", label="🏠 Dashboard")

    for section in _sidebar_links():
        with st.sidebar.expander(section["label"], expanded=section["expanded"]):
            for link in section["links"]:
                st.page_link(link["path"], label=link["label"])

    st.sidebar.markdown("---")
    user = session_tokens().user()
    if user is not None:
        st.sidebar.caption(f"Signed in as {user.name} ({user.role})")
    if st.sidebar.button("Log out"):
        logout()


def logout() -> None:
    session_tokens().clear()
    st.session_state.authenticated = False
    LOGGER.info("Staff user logged out")
    st.rerun()


# --- Staff login against the trek API ---
def password_gate() -> None:
    """Require a valid staff session, showing the login form otherwise."""

    tokens = session_tokens()
    st.session_state.authenticated = tokens.is_authenticated() or bool(tokens.refresh_token)

    if not st.session_state.authenticated:
        st.title("🔐 Trek Admin Login")
        with st.form("staff_login"):
            username = st.text_input("Username")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Sign in")
        if submitted:
            try:
                access, refresh, user_id = obtain_token_pair(trek_api_config(), username, password)
            except TrekApiError as exc:
                st.error(str(exc))
            else:
                tokens.store(access, refresh, user_id)
                st.session_state.authenticated = True
                LOGGER.info("Staff user %s signed in", username)
                st.rerun()
        st.stop()


def _load_dashboard_data() -> dict[str, Any]:
    config = trek_api_config()
    tokens = session_tokens()
    return {
        "reports": fetch_all_groups(config, tokens),
        "travelers": fetch_all_travelers(config, tokens),
        "treks": fetch_trips(config, tokens),
        "guides": fetch_guides(config, tokens),
        "porters": fetch_porters(config, tokens),
        "transactions": fetch_all_transactions(config, tokens),
    }


def main() -> None:
    configure_page()
    password_gate()
    render_sidebar()

    st.title("🏔️ Trek Operations Dashboard")

    try:
        data = _load_dashboard_data()
    except TrekApiError as exc:
        show_api_error(exc)
        st.stop()

    stats = compute_dashboard_stats(
        data["reports"], data["travelers"], data["treks"], data["guides"], data["porters"]
    )
    cols = st.columns(5)
    cols[0].metric("Groups", stats.reports)
    cols[1].metric("Travelers", stats.travelers)
    cols[2].metric("Treks", stats.treks)
    cols[3].metric("Guides", stats.guides)
    cols[4].metric("Porters", stats.porters)

    left, right = st.columns(2)
    with left:
        st.subheader("Recent Groups")
        recent = recent_reports(data["reports"])
        if recent:
            st.dataframe(
                pd.DataFrame(
                    [
                        {
                            "Group": report.group_name,
                            "Trek": report.trek_name,
                            "Start": report.start_date.isoformat() if report.start_date else "",
                            "Size": report.group_size,
                            "Status": report.payment.status.title(),
                        }
                        for report in recent
                    ]
                ),
                hide_index=True,
                use_container_width=True,
            )
        else:
            st.info("No groups yet.")

        st.subheader("Trek Popularity")
        popularity = pd.DataFrame(trek_popularity(data["reports"]), columns=["trek", "groups"])
        if popularity.empty:
            st.info("No groups yet.")
        else:
            st.bar_chart(popularity.set_index("trek"))

    with right:
        st.subheader("Team Availability")
        availability = pd.DataFrame(
            team_availability(data["guides"], data["porters"]), columns=["status", "guides", "porters"]
        )
        if availability.empty:
            st.info("No guides or porters on record.")
        else:
            st.bar_chart(availability.set_index("status"))

        st.subheader("Payments")
        analytics = payment_analytics(data["transactions"])
        if analytics.empty:
            st.info("No transactions recorded.")
        else:
            st.line_chart(analytics.set_index("date"))


if __name__ == "__main__":
    main()
