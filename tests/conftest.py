"""
Shared fixtures: an in-memory stand-in for requests.Session and settings.

No test touches the network. Responses are real ``requests.Response``
objects so status/header/body handling goes through requests itself.
"""

from __future__ import annotations

import json
import time
from typing import Any

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from referrals.config import ClinikoSettings, ExternalHTTPSettings, ReferralRunSettings

BASE_URL = "https://api.au1.cliniko.com/v1"


def make_response(
    status_code: int = 200,
    json_body: Any = None,
    *,
    text: str | None = None,
    headers: dict[str, str] | None = None,
) -> requests.Response:
    response = requests.Response()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers or {})
    if json_body is not None:
        body = json.dumps(json_body)
    else:
        body = text or ""
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    return response


def patients_page(patients: list[dict[str, Any]], *, total: int, next_url: str | None = None) -> dict:
    links = {"self": "x"}
    if next_url:
        links["next"] = next_url
    return {"patients": patients, "total_entries": total, "links": links}


def patient(patient_id: int, doctor_url: str | None = None) -> dict[str, Any]:
    payload: dict[str, Any] = {"id": patient_id, "first_name": f"P{patient_id}", "last_name": "Test"}
    if doctor_url:
        payload["referring_doctor"] = {"links": {"self": doctor_url}}
    return payload


class FakeSession:
    """
    Routes GET calls by full URL to queued responses.

    A route holding several items is consumed in order and its last item
    repeats. Exceptions in a route are raised instead of returned.
    """

    def __init__(self, routes: dict[str, Any] | None = None) -> None:
        self.auth: Any = None
        self.headers: dict[str, str] = {}
        self.calls: list[str] = []
        self.closed = False
        self._routes: dict[str, list[Any]] = {}
        for url, items in (routes or {}).items():
            self.add(url, *(items if isinstance(items, list) else [items]))

    def add(self, url: str, *items: Any) -> "FakeSession":
        self._routes.setdefault(url, []).extend(items)
        return self

    def get(self, url: str, timeout: float | None = None) -> requests.Response:
        self.calls.append(url)
        queue = self._routes.get(url)
        if not queue:
            return make_response(404, {"errors": "not found"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def sleeps(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Record every time.sleep call instead of waiting."""
    recorded: list[float] = []
    monkeypatch.setattr(time, "sleep", recorded.append)
    return recorded


@pytest.fixture()
def cliniko_settings() -> ClinikoSettings:
    return ClinikoSettings(api_key="secret-key", shard="au1", user_agent="referral-tests")


@pytest.fixture()
def http_settings() -> ExternalHTTPSettings:
    return ExternalHTTPSettings()


@pytest.fixture()
def run_settings() -> ReferralRunSettings:
    return ReferralRunSettings(request_delay_seconds=0.0)
