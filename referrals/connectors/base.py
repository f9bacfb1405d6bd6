"""
referrals/connectors/base.py

Authenticated Cliniko HTTP client with retry and rate-limit backoff.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any
from urllib.parse import urlsplit

import requests

from referrals.config import ClinikoSettings, ExternalHTTPSettings

logger = logging.getLogger(__name__)

_CLINIKO_RESOURCE_PREFIX = re.compile(r"^https://api\.[^/]+\.cliniko\.com/v1")
_ERROR_BODY_PREVIEW = 200


class ConnectorRequestError(RuntimeError):
    """
    Base for every failure of a single upstream call.
    """

    retryable = False


class ClientError(ConnectorRequestError):
    """
    4xx (other than 429). The request itself is wrong; retrying cannot help.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServerError(ConnectorRequestError):
    """
    5xx from upstream.
    """

    retryable = True

    def __init__(self, message: str, *, status_code: int) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimited(ConnectorRequestError):
    """
    429 from upstream. ClinikoClient waits these out internally without
    spending a retry attempt, so it never raises this; it exists so callers
    can classify a 429 consistently with the other failures.
    """

    retryable = True

    def __init__(self, message: str, *, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class EmptyResponse(ConnectorRequestError):
    """
    2xx with an empty or non-JSON body.
    """


class MaxRetriesExceeded(ConnectorRequestError):
    """
    Retry budget spent on server or transport failures.
    """

    def __init__(self, message: str, *, attempts: int, last_error: Exception | None) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class ClinikoClient:
    """
    Issues one GET at a time against the Cliniko API and returns parsed JSON.

    Knows nothing about pagination or patients; callers pass endpoints such as
    ``/patients?page=1`` or full resource URLs returned by the API.
    """

    def __init__(
        self,
        *,
        settings: ClinikoSettings,
        http_settings: ExternalHTTPSettings,
        session: requests.Session | None = None,
    ) -> None:
        if not settings.api_key:
            raise ValueError("CLINIKO_API_KEY is not configured.")
        self.base_url = settings.base_url
        self._session = session or requests.Session()
        self._session.auth = (settings.api_key, "")
        self._session.headers.update(
            {
                "Accept": "application/json",
                "User-Agent": settings.user_agent,
            }
        )
        self._timeout_seconds = http_settings.timeout_seconds
        self._max_attempts = http_settings.max_attempts
        self._backoff_initial_seconds = http_settings.backoff_initial_seconds
        self._backoff_multiplier = http_settings.backoff_multiplier
        self._default_retry_after_seconds = http_settings.default_retry_after_seconds

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "ClinikoClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def fetch(self, endpoint: str) -> Any:
        """
        GET one endpoint and return its JSON body.

        Raises:
            ClientError: 4xx other than 429, or a URL outside the configured API.
            EmptyResponse: 2xx whose body is empty or not JSON.
            MaxRetriesExceeded: server/transport failures outlasted the budget.
        """

        url = self._build_url(endpoint)
        response = self._request(url)
        return self._parse_json(response, url)

    def endpoint_for(self, resource_url: str) -> str:
        """
        Map a Cliniko resource URL (any shard) to an endpoint on this client.
        """

        return _CLINIKO_RESOURCE_PREFIX.sub("", resource_url, count=1)

    def _build_url(self, endpoint: str) -> str:
        endpoint = self.endpoint_for(endpoint)
        if endpoint.startswith(("http://", "https://")):
            if not endpoint.startswith(self.base_url + "/"):
                host = urlsplit(endpoint).netloc
                raise ClientError(f"Refusing to send Cliniko credentials to {host or endpoint}.")
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"{self.base_url}{endpoint}"

    def _request(self, url: str) -> requests.Response:
        """
        Execute a GET with 429 waits and exponential backoff on 5xx/transport errors.
        """

        attempt = 0
        while True:
            try:
                response = self._session.get(url, timeout=self._timeout_seconds)
            except requests.RequestException as exc:
                last_error: Exception = exc
            else:
                status_code = response.status_code
                if status_code == 429:
                    wait_seconds = self._retry_after(response)
                    logger.warning(
                        "Cliniko rate limited wait_seconds=%.2f url=%s",
                        wait_seconds,
                        url,
                    )
                    time.sleep(wait_seconds)
                    continue
                if 400 <= status_code < 500:
                    logger.error(
                        "Cliniko request failed status=%s url=%s",
                        status_code,
                        url,
                    )
                    raise ClientError(
                        f"Cliniko API error {status_code}: {response.text[:_ERROR_BODY_PREVIEW]}",
                        status_code=status_code,
                    )
                if status_code >= 500:
                    last_error = ServerError(
                        f"Cliniko API error {status_code}: {response.text[:_ERROR_BODY_PREVIEW]}",
                        status_code=status_code,
                    )
                else:
                    return response

            attempt += 1
            if attempt >= self._max_attempts:
                break

            backoff_seconds = self._backoff_initial_seconds * (self._backoff_multiplier**attempt)
            logger.warning(
                "Cliniko request retry attempt=%s/%s wait_seconds=%.2f url=%s error=%s",
                attempt,
                self._max_attempts,
                backoff_seconds,
                url,
                last_error,
            )
            time.sleep(backoff_seconds)

        logger.error(
            "Cliniko request exhausted retries attempts=%s url=%s error=%s",
            attempt,
            url,
            last_error,
        )
        raise MaxRetriesExceeded(
            f"Cliniko request failed after {attempt} attempts: {last_error}",
            attempts=attempt,
            last_error=last_error,
        ) from last_error

    def _retry_after(self, response: requests.Response) -> float:
        raw_value = response.headers.get("Retry-After")
        if raw_value is None:
            return self._default_retry_after_seconds
        try:
            return max(0.0, float(raw_value))
        except ValueError:
            return self._default_retry_after_seconds

    @staticmethod
    def _parse_json(response: requests.Response, url: str) -> Any:
        text = response.text
        if not text or not text.strip():
            raise EmptyResponse(f"Empty response from Cliniko API for {url}")
        try:
            return response.json()
        except ValueError as exc:
            raise EmptyResponse(f"Cliniko API returned invalid JSON for {url}") from exc
