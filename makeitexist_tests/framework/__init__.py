"""
================================================================================
Make It Exist API Scenario Framework
================================================================================

Runs declarative YAML scenarios against the Make It Exist API, grouped into
named suites.

Modules:
    - config_loader: YAML configuration with per-environment overrides
    - http_client: HTTP client with retry, redaction and Allure logging
    - token_manager: Admin login token handling
    - scenario_loader: Scenario file discovery and parsing
    - assertion_executor: Response assertions
    - scenario_runner: Suite execution
    - suite_registry: Suite name -> directory mapping
    - report: JSON summaries and Allure reports

Author: Automation Team
License: MIT
================================================================================
"""

from .config_loader import ConfigLoader, ConfigurationError
from .http_client import HttpClient, HttpClientError, RateLimitExceeded
from .results import ScenarioResult, SuiteResult, SuiteStatus
from .scenario_loader import ScenarioLoadError, ScenarioLoader, SuiteDiscoveryError
from .scenario_runner import ScenarioRunner, StepFailure
from .suite_registry import SUITE_NAMES, SuiteRegistry, UnknownSuiteError
from .token_manager import TokenError, TokenManager

__all__ = [
    "ConfigLoader",
    "ConfigurationError",
    "HttpClient",
    "HttpClientError",
    "RateLimitExceeded",
    "SUITE_NAMES",
    "ScenarioLoadError",
    "ScenarioLoader",
    "ScenarioResult",
    "ScenarioRunner",
    "StepFailure",
    "SuiteDiscoveryError",
    "SuiteRegistry",
    "SuiteResult",
    "SuiteStatus",
    "TokenError",
    "TokenManager",
    "UnknownSuiteError",
]
