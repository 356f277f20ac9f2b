"""
Offline fixtures for the framework unit tests.

Nothing here talks to a real server: API calls go through an
``httpx.MockTransport`` backed by ``FakeApi`` and the admin token cache
lives under ``tmp_path``.
"""

from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import pytest
import yaml

from makeitexist_tests.framework.config_loader import ConfigLoader
from makeitexist_tests.framework.scenario_runner import ScenarioRunner
from makeitexist_tests.framework.token_manager import TokenManager


BASE_URL = "http://api.test/api/v1"
ADMIN_TOKEN = "admin-jwt"

DEFAULT_CONFIG = {
    "test": {"env": "dev"},
    "api": {
        "base_url": BASE_URL,
        "retry_count": 1,
        "retry_backoff": 0,
        "headers": {"Content-Type": "application/json"},
    },
    "auth": {"admin_email": "admin@aim.edu", "admin_password": "admin123"},
}

# Variables a developer shell or CI job may export
OVERRIDE_VARS = (
    "TEST_ENV",
    "API_BASE_URL",
    "API_SERVER_URL",
    "API_RETRY_COUNT",
    "API_RETRY_BACKOFF",
    "API_VERIFY_SSL",
    "API_HEADERS",
    "AUTH_ADMIN_EMAIL",
    "AUTH_ADMIN_PASSWORD",
    "AUTH_TOKEN_TTL",
    "GOOGLE_AUTH_CLIENT_ID",
)


class FakeApi:
    """Route table served through httpx.MockTransport; unknown routes are 404."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Any] = {}
        self.requests: List[httpx.Request] = []
        self.add(
            "POST",
            "/api/v1/auth/login",
            json={
                "message": "Login successful",
                "data": {
                    "token": ADMIN_TOKEN,
                    "refresh_token": "refresh-jwt",
                    "user": {"id": "u-1", "email": "admin@aim.edu", "role": "admin"},
                },
            },
        )

    def add(
        self,
        method: str,
        path: str,
        status: int = 200,
        json: Any = None,
        handler: Optional[Callable[[httpx.Request], httpx.Response]] = None,
    ) -> None:
        self.routes[(method.upper(), path)] = handler or (status, json)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"error": "not_found"})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch):
    for name in OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)
    ConfigLoader.reset()
    yield
    ConfigLoader.reset()


@pytest.fixture
def make_config(tmp_path):
    """Build a ConfigLoader over a temporary YAML file."""

    def _make(data: Optional[Dict[str, Any]] = None) -> ConfigLoader:
        path = tmp_path / "config.yaml"
        path.write_text(yaml.dump(DEFAULT_CONFIG if data is None else data), encoding="utf-8")
        ConfigLoader.reset()
        return ConfigLoader(config_path=path)

    return _make


@pytest.fixture
def api_config(make_config) -> ConfigLoader:
    return make_config()


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def token_manager(api_config, fake_api, tmp_path) -> TokenManager:
    return TokenManager(
        api_config,
        transport=fake_api.transport,
        cache_file=tmp_path / "token_cache" / "cache.json",
    )


@pytest.fixture
def runner(api_config, fake_api, token_manager) -> ScenarioRunner:
    return ScenarioRunner(api_config, transport=fake_api.transport, token_manager=token_manager)


@pytest.fixture
def write_feature(tmp_path):
    """Write a scenario file under tmp_path/scenarios and return its path."""

    def _write(relative: str, data: Any) -> Path:
        path = tmp_path / "scenarios" / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(data, str):
            path.write_text(data, encoding="utf-8")
        else:
            path.write_text(yaml.dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write
