"""Client for the trek operations REST API.

Every function takes a :class:`TrekApiConfig`, the session's
:class:`~auth_tokens.AuthTokens` and an optional ``requests.Session`` so tests
can supply a fake transport. Access tokens are refreshed before they expire and
once more when the backend answers ``401``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import requests

from auth_tokens import AuthTokens
from catalog_items import (
    CatalogItem,
    ExtraService,
    Trek,
    parse_accommodation,
    parse_extra_service,
    parse_items,
    parse_permit,
    parse_service,
    parse_transportation,
    parse_trips,
)
from cost_estimator import CostReport, report_from_payload
from payments import PaymentDetails, PaymentRequest, Transaction, TransactionPage, transaction_to_payload
from team import (
    AIRPORT_PICKUP,
    GUIDE,
    PORTER,
    Assignment,
    StaffMember,
    build_assign_team_payload,
    dedupe_airport_pickups,
    empty_assigned_team,
    parse_assignments,
    parse_staff,
)
from travelers import Traveler, parse_travelers


LOGGER = logging.getLogger(__name__)

DEFAULT_TREK_API_BASE_URL = "http://localhost:8000/api/v1"
DEFAULT_TIMEOUT = 10
DEFAULT_PAGE_SIZE = 10

TIMEOUT_MESSAGE = "Request timeout - the server took too long to respond"
AUTH_REQUIRED_MESSAGE = "Authentication required - please log in again"


class TrekApiError(RuntimeError):
    """Raised when a trek API request fails."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, endpoint: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class AuthenticationRequired(TrekApiError):
    """Raised when no usable access token could be obtained."""


@dataclass(frozen=True)
class TrekApiConfig:
    """Configuration for issuing requests to the trek API."""

    base_url: str = DEFAULT_TREK_API_BASE_URL
    timeout: int = DEFAULT_TIMEOUT
    verify_ssl: bool = True
    extra_headers: Dict[str, str] = field(default_factory=dict)

    def build_headers(self, access_token: Optional[str] = None, *, json_body: bool = True) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        headers.update(self.extra_headers)
        return headers

    def url(self, endpoint: str) -> str:
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"


def build_trek_api_config(settings: Optional[Mapping[str, Any]]) -> TrekApiConfig:
    if not settings:
        raise TrekApiError(
            "Trek API settings are not configured; add a [trek_api] section to `.streamlit/secrets.toml`."
        )

    def _coerce_bool(value: Any, default: bool) -> bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return default

    def _coerce_int(value: Any, default: int) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    extra_headers = settings.get("extra_headers")
    if isinstance(extra_headers, Mapping):
        sanitized_headers = {str(k): str(v) for k, v in extra_headers.items()}
    else:
        sanitized_headers = {}

    return TrekApiConfig(
        base_url=str(settings.get("base_url") or DEFAULT_TREK_API_BASE_URL),
        timeout=_coerce_int(settings.get("timeout"), DEFAULT_TIMEOUT),
        verify_ssl=_coerce_bool(settings.get("verify_ssl"), True),
        extra_headers=sanitized_headers,
    )


def _status_message(status_code: int, endpoint: str) -> str:
    if status_code == 404:
        return f"404: Resource not found at {endpoint}"
    if status_code == 401:
        return f"401: Unauthorized access to {endpoint}"
    if status_code == 500:
        return f"500: Internal server error at {endpoint}"
    return f"API request failed with status {status_code} for {endpoint}"


def _body_message(response: requests.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, Mapping):
        for key in ("message", "detail"):
            if body.get(key):
                return str(body[key])
    return None


def _raise_for_status(response: requests.Response, endpoint: str, *, prefer_body: bool) -> None:
    try:
        response.raise_for_status()
    except requests.HTTPError as exc:
        status_code = response.status_code
        message = _body_message(response) if prefer_body else None
        raise TrekApiError(
            message or _status_message(status_code, endpoint),
            status_code=status_code,
            endpoint=endpoint,
        ) from exc


def _decode_json(response: requests.Response) -> Any:
    if response.status_code == 204 or not getattr(response, "content", b"x"):
        return None
    return response.json()


def obtain_token_pair(
    config: TrekApiConfig,
    username: str,
    password: str,
    *,
    session: Optional[requests.Session] = None,
) -> Tuple[str, str, Optional[int]]:
    """Log in and return ``(access, refresh, user_id)``."""

    if not username or not password:
        raise TrekApiError("Username and password cannot be empty.")

    endpoint = "/auth/token/"
    http = session or requests.Session()
    close_session = session is None
    try:
        try:
            response = http.post(
                config.url(endpoint),
                json={"username": username, "password": password},
                headers=config.build_headers(),
                timeout=config.timeout,
                verify=config.verify_ssl,
            )
        except requests.Timeout as exc:
            raise TrekApiError(TIMEOUT_MESSAGE, endpoint=endpoint) from exc

        if response.status_code in (400, 401):
            LOGGER.info("Login rejected for user %s", username)
            raise TrekApiError(
                _body_message(response) or "Invalid username or password.",
                status_code=response.status_code,
                endpoint=endpoint,
            )
        _raise_for_status(response, endpoint, prefer_body=True)
        payload = response.json()
    finally:
        if close_session:
            http.close()

    access = payload.get("access") or payload.get("access_token")
    refresh = payload.get("refresh") or payload.get("refresh_token")
    if not access or not refresh:
        raise TrekApiError("Login response did not include tokens.", endpoint=endpoint)

    user_id = payload.get("user_id")
    try:
        user_id = int(user_id) if user_id is not None else None
    except (TypeError, ValueError):
        user_id = None
    return str(access), str(refresh), user_id


def refresh_access_token(
    config: TrekApiConfig,
    tokens: AuthTokens,
    *,
    session: Optional[requests.Session] = None,
) -> bool:
    """Exchange the refresh token for a new access token."""

    if not tokens.refresh_token:
        return False

    endpoint = "/auth/token/refresh/"
    http = session or requests.Session()
    close_session = session is None
    try:
        response = http.post(
            config.url(endpoint),
            json={"refresh": tokens.refresh_token},
            headers=config.build_headers(),
            timeout=config.timeout,
            verify=config.verify_ssl,
        )
        if response.status_code >= 400:
            LOGGER.warning("Token refresh rejected with status %s", response.status_code)
            return False
        payload = response.json()
    except (requests.RequestException, ValueError) as exc:
        LOGGER.warning("Token refresh failed: %s", exc)
        return False
    finally:
        if close_session:
            http.close()

    access = payload.get("access") if isinstance(payload, Mapping) else None
    if not access:
        return False
    tokens.update_access(str(access), payload.get("refresh"))
    LOGGER.debug("Access token refreshed")
    return True


def _require_access_token(config: TrekApiConfig, tokens: AuthTokens, http: requests.Session) -> str:
    token = tokens.valid_access_token()
    if token:
        return token
    if refresh_access_token(config, tokens, session=http) and tokens.access_token:
        return tokens.access_token
    tokens.clear()
    raise AuthenticationRequired(AUTH_REQUIRED_MESSAGE, status_code=401)


def api_request(
    config: TrekApiConfig,
    tokens: AuthTokens,
    method: str,
    endpoint: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    json: Any = None,
    data: Optional[Mapping[str, Any]] = None,
    files: Optional[Mapping[str, Any]] = None,
    session: Optional[requests.Session] = None,
) -> requests.Response:
    """Send an authenticated request and return the successful response."""

    http = session or requests.Session()
    close_session = session is None
    json_body = files is None and data is None
    method = method.upper()

    def _send(token: str) -> requests.Response:
        try:
            return http.request(
                method,
                config.url(endpoint),
                params=params,
                json=json,
                data=data,
                files=files,
                headers=config.build_headers(token, json_body=json_body),
                timeout=config.timeout,
                verify=config.verify_ssl,
            )
        except requests.Timeout as exc:
            LOGGER.warning("%s %s timed out", method, endpoint)
            raise TrekApiError(TIMEOUT_MESSAGE, endpoint=endpoint) from exc
        except requests.ConnectionError as exc:
            raise TrekApiError(f"Could not connect to the trek API at {endpoint}", endpoint=endpoint) from exc

    try:
        token = _require_access_token(config, tokens, http)
        response = _send(token)
        LOGGER.info("%s %s -> %s", method, endpoint, response.status_code)

        if response.status_code == 401:
            if not refresh_access_token(config, tokens, session=http) or not tokens.access_token:
                tokens.clear()
                raise AuthenticationRequired(AUTH_REQUIRED_MESSAGE, status_code=401, endpoint=endpoint)
            response = _send(tokens.access_token)
            LOGGER.info("%s %s (retry) -> %s", method, endpoint, response.status_code)

        _raise_for_status(response, endpoint, prefer_body=method != "GET")
        return response
    finally:
        if close_session:
            http.close()


def api_get_json(
    config: TrekApiConfig,
    tokens: AuthTokens,
    endpoint: str,
    *,
    params: Optional[Mapping[str, Any]] = None,
    session: Optional[requests.Session] = None,
) -> Any:
    return _decode_json(api_request(config, tokens, "GET", endpoint, params=params, session=session))


def api_post_json(
    config: TrekApiConfig,
    tokens: AuthTokens,
    endpoint: str,
    payload: Any,
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    return _decode_json(api_request(config, tokens, "POST", endpoint, json=payload, session=session))


def api_put_json(
    config: TrekApiConfig,
    tokens: AuthTokens,
    endpoint: str,
    payload: Any,
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    return _decode_json(api_request(config, tokens, "PUT", endpoint, json=payload, session=session))


def fetch_trips(config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None) -> List[Trek]:
    return parse_trips(api_get_json(config, tokens, "/staff/trip-list/", session=session))


def fetch_permits(
    config: TrekApiConfig, tokens: AuthTokens, trip_id: str, *, session: Optional[requests.Session] = None
) -> List[CatalogItem]:
    payload = api_get_json(config, tokens, f"/staff/permit-list/{trip_id}/", session=session)
    return parse_items(payload, parse_permit)


def fetch_services(
    config: TrekApiConfig, tokens: AuthTokens, trip_id: str, *, session: Optional[requests.Session] = None
) -> List[CatalogItem]:
    payload = api_get_json(config, tokens, f"/staff/service-list/{trip_id}/", session=session)
    return parse_items(payload, parse_service)


def fetch_extra_services(
    config: TrekApiConfig, tokens: AuthTokens, trip_id: str, *, session: Optional[requests.Session] = None
) -> List[ExtraService]:
    payload = api_get_json(config, tokens, f"/staff/extra-service-list/{trip_id}/", session=session)
    return parse_items(payload, parse_extra_service)


def fetch_accommodations(
    config: TrekApiConfig, tokens: AuthTokens, trip_id: str, *, session: Optional[requests.Session] = None
) -> List[CatalogItem]:
    payload = api_get_json(config, tokens, f"/staff/accommodation-list/{trip_id}/", session=session)
    return parse_items(payload, parse_accommodation)


def fetch_transportations(
    config: TrekApiConfig, tokens: AuthTokens, trip_id: str, *, session: Optional[requests.Session] = None
) -> List[CatalogItem]:
    payload = api_get_json(config, tokens, f"/staff/transportation-list/{trip_id}/", session=session)
    return parse_items(payload, parse_transportation)


def fetch_trek_with_permits(
    config: TrekApiConfig, tokens: AuthTokens, trek: Trek, *, session: Optional[requests.Session] = None
) -> Trek:
    """Return ``trek`` with its permit list filled in."""

    permits = fetch_permits(config, tokens, trek.id, session=session)
    return Trek(id=trek.id, name=trek.name, description=trek.description, times=trek.times, permits=permits)


def fetch_guides(
    config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None
) -> List[StaffMember]:
    return parse_staff(api_get_json(config, tokens, "/staff/guides/", session=session), GUIDE)


def fetch_porters(
    config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None
) -> List[StaffMember]:
    return parse_staff(api_get_json(config, tokens, "/staff/porters/", session=session), PORTER)


def fetch_assignments(
    config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None
) -> List[Assignment]:
    return parse_assignments(api_get_json(config, tokens, "/staff/assignments/", session=session))


def fetch_airport_pickups(
    config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None
) -> List[StaffMember]:
    """Airport pickup staff have no endpoint of their own; collect them from assignments."""

    pickups = dedupe_airport_pickups(fetch_assignments(config, tokens, session=session))
    for member in pickups:
        member.role = AIRPORT_PICKUP
    return pickups


def assign_team(
    config: TrekApiConfig,
    tokens: AuthTokens,
    guide_ids: Iterable[Any],
    porter_ids: Iterable[Any],
    package_id: Any,
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    payload = build_assign_team_payload(guide_ids, porter_ids, package_id)
    return api_post_json(config, tokens, "/staff/assign-teams/", payload, session=session)


def fetch_assigned_team(
    config: TrekApiConfig, tokens: AuthTokens, package_id: Any, *, session: Optional[requests.Session] = None
) -> Dict[str, Any]:
    try:
        payload = api_get_json(config, tokens, f"/staff/assign-teams/{package_id}/", session=session)
    except TrekApiError as exc:
        if exc.status_code == 404:
            return empty_assigned_team(package_id)
        raise
    return dict(payload or empty_assigned_team(package_id))


@dataclass
class GroupPage:
    reports: List[CostReport]
    total: int
    has_more: bool


def fetch_groups_and_packages(
    config: TrekApiConfig,
    tokens: AuthTokens,
    *,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    search: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> GroupPage:
    params: Dict[str, Any] = {"page": page, "limit": limit}
    if search:
        params["search"] = search

    payload = api_get_json(config, tokens, "/staff/groups-and-package/", params=params, session=session)
    total: Optional[int] = None
    if isinstance(payload, Mapping):
        total = payload.get("count")
        payload = payload.get("results") or []
    items = [item for item in payload or [] if isinstance(item, Mapping)]
    reports = [report_from_payload(item) for item in items]
    return GroupPage(
        reports=reports,
        total=int(total) if total is not None else len(reports),
        has_more=len(items) == limit,
    )


def fetch_all_groups(
    config: TrekApiConfig,
    tokens: AuthTokens,
    *,
    limit: int = 100,
    max_pages: int = 50,
    session: Optional[requests.Session] = None,
) -> List[CostReport]:
    reports: List[CostReport] = []
    for page in range(1, max_pages + 1):
        result = fetch_groups_and_packages(config, tokens, page=page, limit=limit, session=session)
        reports.extend(result.reports)
        if not result.has_more:
            break
    return reports


def _package_trip_id(item: Any) -> Optional[str]:
    """The trip id of a package that does not store its own duration."""

    package = item.get("package") if isinstance(item, Mapping) else None
    if not isinstance(package, Mapping) or package.get("times"):
        return None
    trip = package.get("trip")
    return None if trip in (None, "") else str(trip)


def _trek_durations(
    config: TrekApiConfig, tokens: AuthTokens, items: List[Any], *, session: Optional[requests.Session] = None
) -> Dict[str, int]:
    if not any(_package_trip_id(item) for item in items):
        return {}
    return {trek.id: trek.times for trek in fetch_trips(config, tokens, session=session)}


def fetch_group_and_package(
    config: TrekApiConfig, tokens: AuthTokens, group_id: str, *, session: Optional[requests.Session] = None
) -> CostReport:
    payload = api_get_json(config, tokens, f"/staff/groups-and-package/{group_id}/", session=session)
    payload = payload or {}
    durations = _trek_durations(config, tokens, [payload], session=session)
    return report_from_payload(payload, trek_times=durations.get(_package_trip_id(payload) or ""))


def save_group_and_package(
    config: TrekApiConfig, tokens: AuthTokens, payload: Mapping[str, Any], *, session: Optional[requests.Session] = None
) -> Any:
    return api_post_json(config, tokens, "/staff/groups-and-package/", payload, session=session)


def update_group_and_package(
    config: TrekApiConfig,
    tokens: AuthTokens,
    group_id: str,
    payload: Mapping[str, Any],
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    return api_put_json(config, tokens, f"/staff/groups-and-package/{group_id}/", payload, session=session)


def fetch_extra_invoices(
    config: TrekApiConfig, tokens: AuthTokens, group_id: str, *, session: Optional[requests.Session] = None
) -> List[CostReport]:
    payload = api_get_json(config, tokens, f"/staff/extra-invoice/{group_id}/", session=session)
    if isinstance(payload, Mapping):
        payload = payload.get("results") or payload.get("extra_invoices") or [payload]
    items = [item for item in payload or [] if isinstance(item, Mapping)]
    durations = _trek_durations(config, tokens, items, session=session)
    return [
        report_from_payload(
            item,
            is_extra_invoice=True,
            parent_group_id=str(group_id),
            trek_times=durations.get(_package_trip_id(item) or ""),
        )
        for item in items
    ]


def save_extra_invoice(
    config: TrekApiConfig,
    tokens: AuthTokens,
    group_id: str,
    payload: Mapping[str, Any],
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    return api_post_json(config, tokens, f"/staff/extra-invoice/{group_id}/", payload, session=session)


def update_extra_invoice(
    config: TrekApiConfig,
    tokens: AuthTokens,
    group_id: str,
    payload: Mapping[str, Any],
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    return api_put_json(config, tokens, f"/staff/extra-invoice/{group_id}/", payload, session=session)


def fetch_transactions(
    config: TrekApiConfig, tokens: AuthTokens, *, page: int = 1, session: Optional[requests.Session] = None
) -> TransactionPage:
    payload = api_get_json(config, tokens, "/staff/payments/", params={"page": page}, session=session)
    return TransactionPage.from_payload(payload or {})


def _parse_transactions(payload: Any) -> List[Transaction]:
    if isinstance(payload, Mapping):
        payload = payload.get("transactions") or payload.get("results") or []
    return [Transaction.from_payload(item) for item in payload or [] if isinstance(item, Mapping)]


def fetch_all_transactions(
    config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None
) -> List[Transaction]:
    return _parse_transactions(api_get_json(config, tokens, "/staff/transactions/all/", session=session))


def fetch_group_transactions(
    config: TrekApiConfig, tokens: AuthTokens, group_id: str, *, session: Optional[requests.Session] = None
) -> List[Transaction]:
    transactions = _parse_transactions(
        api_get_json(config, tokens, f"/staff/transactions/{group_id}/", session=session)
    )
    for transaction in transactions:
        if not transaction.group_id:
            transaction.group_id = str(group_id)
    return transactions


def add_transaction(
    config: TrekApiConfig,
    tokens: AuthTokens,
    group_id: str,
    transaction: Transaction,
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    return api_post_json(
        config, tokens, f"/staff/transactions/{group_id}/", transaction_to_payload(transaction), session=session
    )


def _parse_merge_packages(payload: Any) -> List[Dict[str, str]]:
    if isinstance(payload, Mapping):
        payload = payload.get("merge_packages") or payload.get("results") or []
    packages: List[Dict[str, str]] = []
    for item in payload or []:
        if isinstance(item, Mapping):
            packages.append({"id": str(item.get("id", "")), "name": str(item.get("name") or "")})
    return packages


def fetch_merge_packages(
    config: TrekApiConfig, tokens: AuthTokens, group_id: str, *, session: Optional[requests.Session] = None
) -> List[Dict[str, str]]:
    return _parse_merge_packages(
        api_get_json(config, tokens, f"/staff/merge_packages/{group_id}/", session=session)
    )


def update_merge_packages(
    config: TrekApiConfig,
    tokens: AuthTokens,
    group_id: str,
    package_ids: Iterable[Any],
    *,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, str]]:
    payload = {"merge_package_ids": [int(value) for value in package_ids]}
    return _parse_merge_packages(
        api_post_json(config, tokens, f"/staff/merge_packages/{group_id}/", payload, session=session)
    )


def make_payment(
    config: TrekApiConfig, tokens: AuthTokens, request: PaymentRequest, *, session: Optional[requests.Session] = None
) -> Any:
    return api_post_json(config, tokens, "/staff/payments/", request.to_payload(), session=session)


def fetch_payment_details(
    config: TrekApiConfig, tokens: AuthTokens, group_id: str, *, session: Optional[requests.Session] = None
) -> PaymentDetails:
    payload = api_get_json(config, tokens, f"/staff/payment-detail/{group_id}/", session=session)
    return PaymentDetails.from_payload(payload or {})


def create_traveler(
    config: TrekApiConfig,
    tokens: AuthTokens,
    data: Mapping[str, Any],
    files: Optional[Mapping[str, Any]] = None,
    *,
    session: Optional[requests.Session] = None,
) -> Any:
    form = {key: "" if value is None else value for key, value in data.items()}
    response = api_request(
        config, tokens, "POST", "/staff/create-traveler/", data=form, files=dict(files or {}), session=session
    )
    return _decode_json(response)


def fetch_travelers(
    config: TrekApiConfig, tokens: AuthTokens, package_id: str, *, session: Optional[requests.Session] = None
) -> List[Traveler]:
    payload = api_get_json(
        config, tokens, "/staff/create-traveler/", params={"package": package_id}, session=session
    )
    return parse_travelers(payload)


def fetch_all_travelers(
    config: TrekApiConfig, tokens: AuthTokens, *, session: Optional[requests.Session] = None
) -> List[Traveler]:
    return parse_travelers(api_get_json(config, tokens, "/staff/create-traveler/", session=session))


__all__ = [
    "AuthenticationRequired",
    "DEFAULT_TREK_API_BASE_URL",
    "GroupPage",
    "TrekApiConfig",
    "TrekApiError",
    "add_transaction",
    "api_get_json",
    "api_post_json",
    "api_put_json",
    "api_request",
    "assign_team",
    "build_trek_api_config",
    "create_traveler",
    "fetch_accommodations",
    "fetch_airport_pickups",
    "fetch_all_groups",
    "fetch_all_transactions",
    "fetch_all_travelers",
    "fetch_assigned_team",
    "fetch_assignments",
    "fetch_extra_invoices",
    "fetch_extra_services",
    "fetch_group_and_package",
    "fetch_group_transactions",
    "fetch_groups_and_packages",
    "fetch_guides",
    "fetch_merge_packages",
    "fetch_payment_details",
    "fetch_permits",
    "fetch_porters",
    "fetch_services",
    "fetch_transactions",
    "fetch_transportations",
    "fetch_trek_with_permits",
    "fetch_travelers",
    "fetch_trips",
    "make_payment",
    "obtain_token_pair",
    "refresh_access_token",
    "save_extra_invoice",
    "save_group_and_package",
    "update_extra_invoice",
    "update_group_and_package",
    "update_merge_packages",
]
