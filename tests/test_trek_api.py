"""Tests for the trek API client and its token refresh handling."""

from __future__ import annotations

import base64
import json
import pathlib
import sys
import time

import pytest
import requests

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from auth_tokens import AuthTokens
from payments import PaymentRequest, PaymentValidationError, Transaction
from trek_api import (
    AUTH_REQUIRED_MESSAGE,
    TIMEOUT_MESSAGE,
    AuthenticationRequired,
    TrekApiConfig,
    TrekApiError,
    api_get_json,
    assign_team,
    build_trek_api_config,
    create_traveler,
    fetch_airport_pickups,
    fetch_all_groups,
    fetch_assigned_team,
    fetch_extra_invoices,
    fetch_group_and_package,
    fetch_group_transactions,
    fetch_groups_and_packages,
    fetch_trek_with_permits,
    fetch_trips,
    make_payment,
    obtain_token_pair,
    refresh_access_token,
    update_merge_packages,
)


def make_token(expires_in: int = 3600) -> str:
    def _segment(data) -> str:
        return base64.urlsafe_b64encode(json.dumps(data).encode()).decode().rstrip("=")

    return f"{_segment({'alg': 'HS256'})}.{_segment({'exp': int(time.time()) + expires_in})}.sig"


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else b"{}"

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(response=self)

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    def __init__(self, responses=None, posts=None):
        self.responses = list(responses or [])
        self.posts = list(posts or [])
        self.calls = []
        self.post_calls = []

    def request(self, method, url, params=None, json=None, data=None, files=None, headers=None, timeout=None, verify=None):
        self.calls.append(
            {"method": method, "url": url, "params": params, "json": json, "data": data, "files": files, "headers": headers}
        )
        if not self.responses:
            raise RuntimeError("No response queued")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, json=None, headers=None, timeout=None, verify=None):
        self.post_calls.append({"url": url, "json": json})
        if not self.posts:
            raise RuntimeError("No post response queued")
        response = self.posts.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def close(self):
        pass


CONFIG = TrekApiConfig(base_url="https://api.example.com/api/v1/", timeout=5)


def _tokens(expires_in: int = 3600) -> AuthTokens:
    return AuthTokens(access_token=make_token(expires_in), refresh_token="refresh-1", user_id=4)


def test_build_trek_api_config_coerces_settings() -> None:
    config = build_trek_api_config(
        {"base_url": "https://api.example.com", "timeout": "30", "verify_ssl": "false", "extra_headers": {"X-App": 1}}
    )

    assert config.timeout == 30
    assert config.verify_ssl is False
    assert config.url("/staff/guides/") == "https://api.example.com/staff/guides/"
    assert config.build_headers("abc")["Authorization"] == "Bearer abc"
    assert config.build_headers(json_body=False) == {"Accept": "application/json", "X-App": "1"}

    with pytest.raises(TrekApiError, match="not configured"):
        build_trek_api_config({})


def test_obtain_token_pair_returns_tokens() -> None:
    session = FakeSession(posts=[FakeResponse(payload={"access": "a", "refresh": "r", "user_id": "9"})])

    assert obtain_token_pair(CONFIG, "sita", "secret", session=session) == ("a", "r", 9)
    assert session.post_calls[0]["url"] == "https://api.example.com/api/v1/auth/token/"
    assert session.post_calls[0]["json"] == {"username": "sita", "password": "secret"}


def test_obtain_token_pair_rejects_bad_credentials() -> None:
    session = FakeSession(posts=[FakeResponse(status_code=401, payload={})])

    with pytest.raises(TrekApiError, match="Invalid username or password."):
        obtain_token_pair(CONFIG, "sita", "wrong", session=session)
    with pytest.raises(TrekApiError, match="cannot be empty"):
        obtain_token_pair(CONFIG, "", "x", session=FakeSession())


def test_obtain_token_pair_reports_timeout() -> None:
    session = FakeSession(posts=[requests.Timeout()])

    with pytest.raises(TrekApiError, match=TIMEOUT_MESSAGE):
        obtain_token_pair(CONFIG, "sita", "secret", session=session)


def test_refresh_access_token_updates_tokens() -> None:
    tokens = _tokens()
    session = FakeSession(posts=[FakeResponse(payload={"access": "new-access", "refresh": "refresh-2"})])

    assert refresh_access_token(CONFIG, tokens, session=session) is True
    assert (tokens.access_token, tokens.refresh_token) == ("new-access", "refresh-2")
    assert session.post_calls[0]["json"] == {"refresh": "refresh-1"}


def test_refresh_access_token_failures_return_false() -> None:
    assert refresh_access_token(CONFIG, AuthTokens(), session=FakeSession()) is False
    assert refresh_access_token(CONFIG, _tokens(), session=FakeSession(posts=[FakeResponse(status_code=401, payload={})])) is False
    assert refresh_access_token(CONFIG, _tokens(), session=FakeSession(posts=[requests.ConnectionError()])) is False


def test_api_request_refreshes_expired_token_before_sending() -> None:
    fresh = make_token()
    tokens = _tokens(expires_in=-60)
    session = FakeSession(responses=[FakeResponse(payload=[])], posts=[FakeResponse(payload={"access": fresh})])

    assert api_get_json(CONFIG, tokens, "/staff/guides/", session=session) == []
    assert session.calls[0]["headers"]["Authorization"] == f"Bearer {fresh}"


def test_api_request_retries_once_after_401() -> None:
    fresh = make_token()
    tokens = _tokens()
    session = FakeSession(
        responses=[FakeResponse(status_code=401, payload={}), FakeResponse(payload={"ok": True})],
        posts=[FakeResponse(payload={"access": fresh})],
    )

    assert api_get_json(CONFIG, tokens, "/staff/porters/", session=session) == {"ok": True}
    assert len(session.calls) == 2
    assert session.calls[1]["headers"]["Authorization"] == f"Bearer {fresh}"


def test_api_request_clears_tokens_when_refresh_fails() -> None:
    tokens = _tokens()
    session = FakeSession(
        responses=[FakeResponse(status_code=401, payload={})],
        posts=[FakeResponse(status_code=401, payload={})],
    )

    with pytest.raises(AuthenticationRequired, match=AUTH_REQUIRED_MESSAGE):
        api_get_json(CONFIG, tokens, "/staff/porters/", session=session)
    assert tokens == AuthTokens()


def test_api_request_without_any_token_requires_login() -> None:
    session = FakeSession()

    with pytest.raises(AuthenticationRequired):
        api_get_json(CONFIG, AuthTokens(), "/staff/guides/", session=session)
    assert session.calls == []


def test_api_request_maps_errors_to_messages() -> None:
    tokens = _tokens()

    with pytest.raises(TrekApiError, match="404: Resource not found at /staff/trip-list/") as excinfo:
        fetch_trips(CONFIG, tokens, session=FakeSession(responses=[FakeResponse(status_code=404, payload={})]))
    assert excinfo.value.status_code == 404

    with pytest.raises(TrekApiError, match=TIMEOUT_MESSAGE):
        fetch_trips(CONFIG, tokens, session=FakeSession(responses=[requests.Timeout()]))

    failing_post = FakeSession(responses=[FakeResponse(status_code=400, payload={"message": "Package is full"})])
    with pytest.raises(TrekApiError, match="Package is full"):
        assign_team(CONFIG, tokens, [1], [2], 3, session=failing_post)


def test_fetch_trek_with_permits() -> None:
    session = FakeSession(
        responses=[
            FakeResponse(payload={"trips": [{"id": 7, "title": "Langtang", "times": 7}]}),
            FakeResponse(payload=[{"id": 1, "name": "Langtang NP", "rate": "3000", "per_person": True}]),
        ]
    )

    trek = fetch_trips(CONFIG, _tokens(), session=session)[0]
    trek = fetch_trek_with_permits(CONFIG, _tokens(), trek, session=session)

    assert trek.times == 7
    assert [item.name for item in trek.permits] == ["Langtang NP"]
    assert session.calls[1]["url"] == "https://api.example.com/api/v1/staff/permit-list/7/"


def test_fetch_assigned_team_treats_404_as_empty() -> None:
    session = FakeSession(responses=[FakeResponse(status_code=404, payload={})])

    assert fetch_assigned_team(CONFIG, _tokens(), "12", session=session) == {
        "id": 0,
        "guides": [],
        "porters": [],
        "package": 12,
    }


def test_assign_team_posts_unique_ids() -> None:
    session = FakeSession(responses=[FakeResponse(status_code=201, payload={"id": 1})])

    assign_team(CONFIG, _tokens(), ["1", 1, 2], [5], "12", session=session)

    assert session.calls[0]["method"] == "POST"
    assert session.calls[0]["json"] == {"guides": [1, 2], "porters": [5], "package": 12}


def test_fetch_airport_pickups_dedupes_across_assignments() -> None:
    payload = [
        {"groupId": 1, "airportPickUp": [{"id": 9, "name": "Van"}]},
        {"groupId": 2, "airportPickUp": [{"id": 9, "name": "Van"}, {"id": 10, "name": "Jeep"}]},
    ]
    session = FakeSession(responses=[FakeResponse(payload=payload)])

    pickups = fetch_airport_pickups(CONFIG, _tokens(), session=session)

    assert [member.name for member in pickups] == ["Van", "Jeep"]
    assert all(member.role == "airport_pickup" for member in pickups)


def _group(group_id: int):
    return {"id": group_id, "package": {"name": f"G{group_id}", "total_space": 2}, "total_amount": "100"}


def test_fetch_groups_and_packages_reads_paged_envelope() -> None:
    session = FakeSession(responses=[FakeResponse(payload={"count": 3, "results": [_group(1), _group(2)]})])

    page = fetch_groups_and_packages(CONFIG, _tokens(), page=2, limit=2, search="G", session=session)

    assert [report.group_id for report in page.reports] == ["1", "2"]
    assert page.total == 3
    assert page.has_more is True
    assert session.calls[0]["params"] == {"page": 2, "limit": 2, "search": "G"}


def test_fetch_all_groups_stops_on_short_page() -> None:
    session = FakeSession(
        responses=[FakeResponse(payload=[_group(1), _group(2)]), FakeResponse(payload=[_group(3)])]
    )

    reports = fetch_all_groups(CONFIG, _tokens(), limit=2, session=session)

    assert [report.group_id for report in reports] == ["1", "2", "3"]
    assert len(session.calls) == 2


def test_fetch_extra_invoices_marks_parent() -> None:
    session = FakeSession(responses=[FakeResponse(payload=[_group(50)])])

    invoices = fetch_extra_invoices(CONFIG, _tokens(), "12", session=session)

    assert invoices[0].is_extra_invoice is True
    assert invoices[0].parent_group_id == "12"


def test_fetch_group_transactions_fills_group_id() -> None:
    session = FakeSession(
        responses=[FakeResponse(payload={"transactions": [{"id": "t1", "amount": 10, "type": "payment"}]})]
    )

    transactions = fetch_group_transactions(CONFIG, _tokens(), "12", session=session)

    assert transactions == [Transaction(id="t1", group_id="12", amount=10.0, type="payment")]


def test_make_payment_validates_before_sending() -> None:
    session = FakeSession(responses=[FakeResponse(status_code=201, payload={"id": 1})])

    with pytest.raises(PaymentValidationError):
        make_payment(CONFIG, _tokens(), PaymentRequest(package_id="12", amount=0), session=session)
    assert session.calls == []

    make_payment(CONFIG, _tokens(), PaymentRequest(package_id="12", amount=50), session=session)
    assert session.calls[0]["url"].endswith("/staff/payments/")
    assert session.calls[0]["json"]["amount"] == 50.0


def test_update_merge_packages_posts_integer_ids() -> None:
    session = FakeSession(
        responses=[FakeResponse(payload={"merge_packages": [{"id": 3, "name": "G3"}]})]
    )

    merged = update_merge_packages(CONFIG, _tokens(), "12", ["3"], session=session)

    assert merged == [{"id": "3", "name": "G3"}]
    assert session.calls[0]["json"] == {"merge_package_ids": [3]}


def test_create_traveler_sends_multipart_without_json_content_type() -> None:
    session = FakeSession(responses=[FakeResponse(status_code=204)])
    files = {"passport_photo": ("p.jpg", b"data", "image/jpeg")}

    result = create_traveler(CONFIG, _tokens(), {"full_name": "Anna", "email": None}, files, session=session)

    call = session.calls[0]
    assert result is None
    assert call["data"] == {"full_name": "Anna", "email": ""}
    assert call["files"] == files
    assert call["json"] is None
    assert "Content-Type" not in call["headers"]


def test_fetch_group_and_package_uses_trek_duration_when_package_has_none() -> None:
    group = {
        "id": 42,
        "package": {"name": "EBC", "total_space": 2, "trip": 7},
        "services": [{"name": "Guide", "rate": "25", "numbers": 1, "times": 12, "per_day": True}],
    }
    session = FakeSession(
        responses=[
            FakeResponse(payload=group),
            FakeResponse(payload={"trips": [{"id": 3, "title": "Langtang", "times": 7}, {"id": 7, "title": "EBC", "times": 12}]}),
        ]
    )

    report = fetch_group_and_package(CONFIG, _tokens(), "42", session=session)

    assert report.trek_times == 12
    assert session.calls[1]["url"] == "https://api.example.com/api/v1/staff/trip-list/"


def test_fetch_group_and_package_skips_trek_lookup_when_duration_stored() -> None:
    group = {"id": 42, "package": {"name": "EBC", "total_space": 2, "trip": 7, "times": 9}}
    session = FakeSession(responses=[FakeResponse(payload=group)])

    report = fetch_group_and_package(CONFIG, _tokens(), "42", session=session)

    assert report.trek_times == 9
    assert len(session.calls) == 1


def test_fetch_extra_invoices_resolve_trek_duration_once() -> None:
    invoice = {"id": 50, "package": {"name": "EBC extra", "total_space": 2, "trip": 7}}
    session = FakeSession(
        responses=[
            FakeResponse(payload=[invoice, dict(invoice, id=51)]),
            FakeResponse(payload={"trips": [{"id": 7, "title": "EBC", "times": 12}]}),
        ]
    )

    invoices = fetch_extra_invoices(CONFIG, _tokens(), "12", session=session)

    assert [item.trek_times for item in invoices] == [12, 12]
    assert len(session.calls) == 2
