"""
Repository-level pytest configuration.

Why this exists:
  - Register the command line options shared by every test module
    (--target-env, --scenario-tags) before collection starts
  - Select the target environment before any configuration is loaded
  - Keep behavior explicit and discoverable

Secrets are never stored here; admin credentials come from config.yaml or
AUTH_ADMIN_EMAIL / AUTH_ADMIN_PASSWORD in CI.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from makeitexist_tests.framework.config_loader import SUPPORTED_ENVS, ConfigLoader


def pytest_addoption(parser):
    """Register Make It Exist options."""
    group = parser.getgroup("makeitexist", "Make It Exist API suites")
    group.addoption(
        "--target-env",
        choices=SUPPORTED_ENVS,
        default=None,
        help="Target environment for the API suites (sets TEST_ENV)",
    )
    group.addoption(
        "--scenario-tags",
        default="",
        help="Comma separated scenario tags to run, '~tag' excludes (e.g. smoke,~slow)",
    )


def pytest_configure(config):
    """Apply --target-env before the configuration singleton is created."""
    target_env = config.getoption("--target-env")
    if target_env:
        os.environ["TEST_ENV"] = target_env
        ConfigLoader.reset()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return repo root path."""
    return Path(__file__).parent
