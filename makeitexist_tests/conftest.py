"""
================================================================================
Make It Exist Pytest Configuration
================================================================================

Registers the project markers and provides the shared fixtures for the
suite tests.

Fixtures:
    - config: Configuration loader instance
    - scenario_tags: Tag selection from --scenario-tags
    - suite_registry: Registry running the bundled scenario suites
    - reports_dir: Where suite summaries are written

================================================================================
"""

from __future__ import annotations

from pathlib import Path
from typing import List

import pytest

from makeitexist_tests.framework import ConfigLoader, SuiteRegistry
from makeitexist_tests.framework.log_config import init_logger


def pytest_configure(config):
    """Configure pytest with project-wide custom markers."""

    # Suite markers
    config.addinivalue_line("markers", "all: Every scenario under the scenarios root")
    config.addinivalue_line("markers", "health: Service health scenarios")
    config.addinivalue_line("markers", "auth: Authentication scenarios")
    config.addinivalue_line("markers", "requests: Build request scenarios")
    config.addinivalue_line("markers", "schedule: Weekend schedule scenarios")
    config.addinivalue_line("markers", "admin: Admin-only scenarios")

    # Test type markers
    config.addinivalue_line(
        "markers",
        "requires_external: Tests calling the live Make It Exist API"
    )


def pytest_report_header(config):
    """Add custom header to pytest output."""
    return [
        "",
        "=" * 60,
        "Make It Exist API Scenario Suites",
        "=" * 60,
        "",
    ]


# =============================================================================
# Session-Scoped Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def config() -> ConfigLoader:
    """
    Provide configuration loader instance.

    Session-scoped so every suite sees the same target environment.
    """
    loader = ConfigLoader()
    init_logger(config=loader)
    return loader


@pytest.fixture(scope="session")
def scenario_tags(pytestconfig) -> List[str]:
    """Scenario tag selection from --scenario-tags."""
    raw = pytestconfig.getoption("--scenario-tags") or ""
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


@pytest.fixture(scope="session")
def suite_registry(config: ConfigLoader) -> SuiteRegistry:
    """Registry over the bundled scenarios."""
    return SuiteRegistry(config=config)


@pytest.fixture(scope="session")
def reports_dir(config: ConfigLoader, project_root: Path) -> Path:
    """Directory receiving <suite>-summary.json files."""
    path = Path(config.get("reports.dir", "reports"))
    if not path.is_absolute():
        path = project_root / path
    path.mkdir(parents=True, exist_ok=True)
    return path
