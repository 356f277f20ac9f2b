"""
================================================================================
HTTP Client with Allure Integration
================================================================================

The client every scenario step goes through:
    - Base URL, connect/read timeouts and TLS verification from configuration
    - Default JSON headers for every request
    - Optional retry with exponential backoff on network errors
    - Rate limit (429) handling with Retry-After parsing
    - Allure attachments with redacted headers/body and a cURL command
    - Admin bearer token applied on demand via TokenManager, with one
      re-login when the server rejects a cached token (401)

Author: Automation Team
License: MIT
================================================================================
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, Optional

import allure
import httpx
from allure_commons.types import AttachmentType
from loguru import logger

from .config_loader import ConfigLoader
from .token_manager import TokenManager


# Maximum response length to include in Allure reports
MAX_RESPONSE_LENGTH = 3000

# Default retry settings (one attempt, no retry)
DEFAULT_RETRY_COUNT = 1
DEFAULT_RETRY_BACKOFF = 0.5
DEFAULT_RETRY_MAX_WAIT = 5.0

MASK = "***MASKED***"
SENSITIVE_HEADERS = {"authorization", "x-api-key", "cookie", "set-cookie"}
SENSITIVE_FIELDS = ("password", "secret", "token", "api_key", "authorization", "id_token")


class HttpClientError(Exception):
    """Base exception for HTTP client errors."""
    pass


class RateLimitExceeded(HttpClientError):
    """Raised when rate limit is exceeded and all retries are exhausted."""
    pass


class HttpClient:
    """
    HTTP client for the Make It Exist API.

    Usage:
        >>> config = ConfigLoader()
        >>> with HttpClient(config) as client:
        ...     response = client.get("/schedule/slots", authenticate=True)
        ...     print(response.json())

    Relative URLs resolve against ``api.base_url``; absolute URLs (e.g. the
    root ``/health`` endpoint) are sent as given.
    """

    def __init__(
        self,
        config: Optional[ConfigLoader] = None,
        token_manager: Optional[TokenManager] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize HTTP client with configuration.

        Args:
            config: Configuration loader instance. Creates new one if None.
            token_manager: Supplies the admin bearer token for
                           ``authenticate=True`` requests.
            transport: Optional httpx transport (tests pass a MockTransport).
        """
        if config is None:
            config = ConfigLoader()

        self.config = config
        self.base_url = config.get("api.base_url", "http://localhost:8080/api/v1")
        self.connect_timeout = float(config.get("api.connect_timeout", 10))
        self.read_timeout = float(config.get("api.read_timeout", 30))
        self.verify_ssl = bool(config.get("api.verify_ssl", True))
        self.default_headers = dict(config.get("api.headers", {}) or {})
        self.retry_count = max(1, int(config.get("api.retry_count", DEFAULT_RETRY_COUNT)))
        self.retry_backoff = float(config.get("api.retry_backoff", DEFAULT_RETRY_BACKOFF))
        self.retry_max_wait = float(config.get("api.retry_max_wait", DEFAULT_RETRY_MAX_WAIT))

        self.transport = transport
        self.session: Optional[httpx.Client] = None
        self.token_manager = token_manager

    def __enter__(self) -> "HttpClient":
        """Enter context manager - initialize HTTP session."""
        self.session = httpx.Client(
            base_url=self.base_url,
            headers=self.default_headers,
            timeout=httpx.Timeout(self.read_timeout, connect=self.connect_timeout),
            verify=self.verify_ssl,
            transport=self.transport,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit context manager - close HTTP session."""
        if self.session:
            self.session.close()
            self.session = None

    def request(
        self,
        method: str,
        url: str,
        authenticate: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        """
        Execute HTTP request with optional retry and Allure logging.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH)
            url: Request URL (relative to base_url, or absolute)
            authenticate: Attach the admin bearer token
            **kwargs: Additional arguments passed to httpx.Client.request

        Returns:
            httpx.Response object

        Raises:
            RateLimitExceeded: When rate limit retries are exhausted
            httpx.HTTPError: When network retries are exhausted
            TokenError: When the admin login needed for authentication fails
        """
        if self.session is None:
            raise HttpClientError(
                "HttpClient must be used within a context manager. "
                "Use 'with HttpClient() as client:'"
            )

        headers = dict(kwargs.pop("headers", None) or {})
        if authenticate:
            if self.token_manager is None:
                raise HttpClientError("Authenticated request without a TokenManager")
            kwargs["headers"] = self.token_manager.apply(headers)
        else:
            kwargs["headers"] = headers

        response = self._send(method, url, kwargs)

        if authenticate and response.status_code == 401:
            # Cached token rejected by the server: log in again and resend once
            logger.warning(f"{method} {url} -> 401, refreshing admin token")
            self.token_manager.invalidate()
            kwargs["headers"] = self.token_manager.apply(headers)
            response = self._send(method, url, kwargs)

        logger.debug(f"{method} {url} -> {response.status_code}")
        self._log_to_allure(method, url, kwargs, response)
        return response

    def _send(self, method: str, url: str, kwargs: Dict[str, Any]) -> httpx.Response:
        """Send with network-error and 429 retries."""
        for attempt in range(self.retry_count):
            is_last = attempt == self.retry_count - 1
            try:
                response = self.session.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as e:
                if is_last:
                    logger.error(f"{method} {url} failed after {attempt + 1} attempt(s): {e}")
                    raise
                wait_time = self._calculate_backoff(attempt)
                logger.warning(
                    f"Network error: {e}. Retrying in {wait_time}s. "
                    f"Attempt {attempt + 1}/{self.retry_count}"
                )
                time.sleep(wait_time)
                continue

            if response.status_code == 429 and not is_last:
                retry_after = self._parse_retry_after(response)
                logger.warning(
                    f"Rate limited (429). Waiting {retry_after}s before retry. "
                    f"Attempt {attempt + 1}/{self.retry_count}"
                )
                time.sleep(retry_after)
                continue

            if response.status_code == 429 and self.retry_count > 1:
                raise RateLimitExceeded(
                    f"Rate limit exceeded after {self.retry_count} attempts"
                )

            return response

        # Unreachable: the last attempt either returns or raises
        raise HttpClientError(f"No attempt made for {method} {url}")

    def get(self, url: str, **kwargs: Any) -> httpx.Response:
        """Execute GET request."""
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs: Any) -> httpx.Response:
        """Execute POST request."""
        return self.request("POST", url, **kwargs)

    def put(self, url: str, **kwargs: Any) -> httpx.Response:
        """Execute PUT request."""
        return self.request("PUT", url, **kwargs)

    def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        """Execute PATCH request."""
        return self.request("PATCH", url, **kwargs)

    def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        """Execute DELETE request."""
        return self.request("DELETE", url, **kwargs)

    def _parse_retry_after(self, response: httpx.Response) -> float:
        """
        Parse Retry-After header (seconds) from a 429 response.

        Returns:
            Wait time in seconds (capped at retry_max_wait)
        """
        retry_after = response.headers.get("Retry-After", "")

        try:
            wait_time = float(retry_after)
        except ValueError:
            wait_time = self.retry_backoff

        return min(wait_time, self.retry_max_wait)

    def _calculate_backoff(self, attempt: int) -> float:
        """
        Calculate exponential backoff wait time.

        Formula: base * (2 ^ attempt), capped at max_wait
        """
        wait_time = self.retry_backoff * (2 ** attempt)
        return min(wait_time, self.retry_max_wait)

    def _full_url(self, url: str, params: Optional[Dict[str, Any]]) -> str:
        if url.startswith(("http://", "https://")):
            full_url = url
        else:
            full_url = f"{self.base_url.rstrip('/')}/{url.lstrip('/')}"
        if params:
            query_string = "&".join(
                f"{k}={v}" for k, v in params.items() if v is not None
            )
            if query_string:
                full_url = f"{full_url}?{query_string}"
        return full_url

    def _log_to_allure(
        self,
        method: str,
        url: str,
        kwargs: Dict[str, Any],
        response: httpx.Response,
    ) -> None:
        """
        Log HTTP request/response to Allure report.

        Attaches the request URL, redacted headers and body, query
        parameters, a cURL command, the response status and the (truncated)
        response body.
        """
        params = kwargs.get("params")
        full_url = self._full_url(url, params)

        status_mark = "PASS" if response.status_code < 400 else "FAIL"
        step_title = f"[{status_mark}] {method} {url} -> {response.status_code}"

        with allure.step(step_title):
            allure.attach(
                full_url,
                name="Request URL",
                attachment_type=AttachmentType.TEXT
            )

            headers = {**self.default_headers, **kwargs.get("headers", {})}
            safe_headers = self._redact_headers(headers)
            if safe_headers:
                allure.attach(
                    json.dumps(safe_headers, ensure_ascii=False, indent=2),
                    name="Request Headers",
                    attachment_type=AttachmentType.JSON
                )

            safe_body = self._redact_body(kwargs.get("json"))
            if safe_body:
                allure.attach(
                    json.dumps(safe_body, ensure_ascii=False, indent=2),
                    name="Request Body",
                    attachment_type=AttachmentType.JSON
                )

            if params:
                allure.attach(
                    json.dumps(params, ensure_ascii=False, indent=2),
                    name="Query Params",
                    attachment_type=AttachmentType.JSON
                )

            allure.attach(
                self._build_curl(method, full_url, safe_headers, safe_body),
                name="cURL Command",
                attachment_type=AttachmentType.TEXT
            )

            allure.attach(
                str(response.status_code),
                name="Response Status",
                attachment_type=AttachmentType.TEXT
            )

            try:
                response_content = json.dumps(
                    self._redact_body(response.json()), ensure_ascii=False, indent=2
                )
            except (json.JSONDecodeError, ValueError):
                response_content = response.text or "<empty>"

            if len(response_content) > MAX_RESPONSE_LENGTH:
                response_content = (
                    f"{response_content[:MAX_RESPONSE_LENGTH]}\n\n"
                    f"... [Truncated, full length: {len(response_content)} chars] ..."
                )

            allure.attach(
                response_content,
                name="Response Body",
                attachment_type=AttachmentType.JSON
            )

    def _redact_headers(self, headers: Dict[str, Any]) -> Dict[str, Any]:
        """
        Mask sensitive header values before logging.
        """
        return {
            key: MASK if key.lower() in SENSITIVE_HEADERS else value
            for key, value in headers.items()
        }

    def _redact_body(self, payload: Any) -> Any:
        """
        Recursively mask sensitive fields in request and response bodies.
        """
        if isinstance(payload, dict):
            redacted = {}
            for key, value in payload.items():
                if any(token in str(key).lower() for token in SENSITIVE_FIELDS):
                    redacted[key] = MASK
                else:
                    redacted[key] = self._redact_body(value)
            return redacted
        if isinstance(payload, list):
            return [self._redact_body(item) for item in payload]
        return payload

    def _build_curl(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        body: Optional[Any],
    ) -> str:
        """
        Build a copy-paste ready cURL command for request reproduction.
        """
        parts = [f"curl -X {method}"]

        for key, value in headers.items():
            parts.append(f"-H '{key}: {value}'")

        if body:
            parts.append(f"-d '{json.dumps(body, ensure_ascii=False)}'")

        parts.append(f"'{url}'")

        return " \\\n  ".join(parts)


__all__ = [
    "HttpClient",
    "HttpClientError",
    "RateLimitExceeded",
]
