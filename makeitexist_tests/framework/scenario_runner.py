"""
================================================================================
Scenario Runner
================================================================================

Executes every scenario found under a suite directory against the API and
aggregates the outcome into a SuiteResult.

Execution model:
    - Files run in sorted path order, scenarios in file order
    - Each scenario gets a fresh variable context and runs the file's
      background steps followed by its own steps
    - The first failing step ends its scenario; sibling scenarios still run
    - A directory that cannot be discovered yields an ERROR result,
      never FAILED

================================================================================
"""

from __future__ import annotations

import time
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import allure
import httpx
from loguru import logger

from .assertion_executor import AssertionExecutor
from .config_loader import ConfigLoader
from .http_client import HttpClient, HttpClientError
from .results import ScenarioResult, SuiteResult
from .scenario_loader import (
    Scenario,
    ScenarioLoader,
    Step,
    SuiteDiscoveryError,
    VariableResolver,
    matches_tags,
)
from .token_manager import TokenError, TokenManager


API_PREFIX = "/api/v1"

# Longest response excerpt quoted in a failure message
MAX_BODY_EXCERPT = 300


class StepFailure(Exception):
    """Raised when a step's status, assertions or saved values do not hold."""
    pass


def server_url_from(base_url: str) -> str:
    """Strip the API prefix from the base URL: http://host/api/v1 -> http://host."""
    base_url = base_url.rstrip("/")
    if base_url.endswith(API_PREFIX):
        return base_url[: -len(API_PREFIX)]
    return base_url


def build_global_variables(config: ConfigLoader) -> Dict[str, Any]:
    """Variables every scenario can reference with ${name}."""
    base_url = config.get("api.base_url", "http://localhost:8080/api/v1")
    return {
        "env": config.env,
        "base_url": base_url,
        "server_url": config.get("api.server_url") or server_url_from(base_url),
        "admin_email": config.get("auth.admin_email", "admin@aim.edu"),
        "admin_password": config.get("auth.admin_password", ""),
        "google_auth_client_id": config.get("google.auth_client_id", ""),
        "timestamp": datetime.now().strftime("%Y%m%d_%H%M%S"),
    }


class ScenarioRunner:
    """
    Runs scenario files against the configured API.

    Example:
        runner = ScenarioRunner(ConfigLoader())
        result = runner.execute("health", Path("makeitexist_tests/scenarios/health"))
        print(result.summary())
    """

    def __init__(
        self,
        config: Optional[ConfigLoader] = None,
        transport: Optional[httpx.BaseTransport] = None,
        token_manager: Optional[TokenManager] = None,
    ) -> None:
        """
        Args:
            config: Configuration loader. Creates the default one if None.
            transport: Optional httpx transport shared by API calls and admin login
            token_manager: Admin token source; built from config if None
        """
        self.config = config or ConfigLoader()
        self.transport = transport
        self.token_manager = token_manager or TokenManager(self.config, transport=transport)

    def execute(
        self,
        suite: str,
        directory: Union[str, Path],
        tags: Optional[List[str]] = None,
    ) -> SuiteResult:
        """
        Discover and run all scenarios under a directory.

        Args:
            suite: Suite name used in results and reports
            directory: Directory searched recursively for scenario files
            tags: Optional tag selection (``smoke``, ``~slow``)

        Returns:
            SuiteResult with status PASSED, FAILED or ERROR
        """
        directory = Path(directory)
        started = time.perf_counter()
        logger.info(f"Running suite '{suite}' from {directory}")

        try:
            features = ScenarioLoader(directory).load_all()
        except SuiteDiscoveryError as e:
            logger.error(f"Suite '{suite}' discovery failed: {e}")
            return SuiteResult.discovery_error(suite, directory, str(e))

        global_variables = build_global_variables(self.config)
        scenario_results: List[ScenarioResult] = []

        with HttpClient(
            self.config, token_manager=self.token_manager, transport=self.transport
        ) as client:
            for feature in features:
                for scenario in feature.scenarios:
                    if not matches_tags(scenario.tags, tags):
                        continue
                    scenario_results.append(
                        self.run_scenario(client, scenario, global_variables)
                    )

        result = SuiteResult.from_scenarios(
            suite,
            directory,
            scenario_results,
            duration_ms=(time.perf_counter() - started) * 1000,
        )
        log = logger.info if result.passed else logger.warning
        log(result.summary())
        return result

    def run_scenario(
        self,
        client: HttpClient,
        scenario: Scenario,
        global_variables: Dict[str, Any],
    ) -> ScenarioResult:
        """Run background and scenario steps; record the first failure."""
        result = ScenarioResult(
            name=scenario.name,
            feature=scenario.feature,
            source=scenario.source,
            tags=list(scenario.tags),
        )

        if scenario.ignored:
            result.skipped = True
            logger.info(f"SKIP: {scenario.feature} / {scenario.name}")
            return result

        resolver = VariableResolver(global_variables)
        resolver.set("unique_id", f"autotest_{uuid.uuid4().hex[:8]}")
        for name, value in scenario.variables.items():
            resolver.set(name, resolver.resolve(value))

        started = time.perf_counter()
        with allure.step(f"Scenario: {scenario.feature} / {scenario.name}"):
            for step in scenario.background + scenario.steps:
                try:
                    self.run_step(client, step, resolver)
                except StepFailure as e:
                    result.failures.append(str(e))
                except (httpx.HTTPError, HttpClientError, TokenError) as e:
                    result.failures.append(f"{step.name}: {type(e).__name__}: {e}")
                except Exception as e:
                    # Any other step error is this scenario's failure; siblings still run
                    logger.exception(f"Unexpected error in step '{step.name}'")
                    result.failures.append(f"{step.name}: unexpected {type(e).__name__}: {e}")
                if result.failures:
                    result.passed = False
                    break
                result.steps_run += 1
        result.duration_ms = (time.perf_counter() - started) * 1000

        if result.passed:
            logger.info(f"PASS: {scenario.feature} / {scenario.name}")
        else:
            logger.warning(f"FAIL: {scenario.feature} / {scenario.name} -> {result.failures[0]}")
        return result

    def run_step(self, client: HttpClient, step: Step, resolver: VariableResolver) -> None:
        """
        Send one request and check it.

        Raises:
            StepFailure: status mismatch, failed assertion or missing saved value
        """
        url = str(resolver.resolve(step.url))
        kwargs: Dict[str, Any] = {}
        if step.headers:
            kwargs["headers"] = {k: str(v) for k, v in resolver.resolve(step.headers).items()}
        if step.params:
            kwargs["params"] = resolver.resolve(step.params)
        if step.json_body is not None:
            kwargs["json"] = resolver.resolve(step.json_body)

        response = client.request(
            step.method, url, authenticate=step.auth == "admin", **kwargs
        )

        try:
            body = response.json()
        except ValueError:
            body = response.text

        expected = step.expected_status
        allowed = expected if isinstance(expected, list) else [expected]
        if response.status_code not in allowed:
            raise StepFailure(
                f"{step.name}: expected status {expected}, got {response.status_code}"
                f" ({_excerpt(response.text)})"
            )

        executor = AssertionExecutor(body)
        if step.assertions:
            assertions = [
                {**a.to_dict(), "expected": resolver.resolve(a.expected)}
                for a in step.assertions
            ]
            executor.execute_assertions(assertions)
            if not executor.all_passed():
                messages = "; ".join(f.message for f in executor.get_failures())
                raise StepFailure(f"{step.name}: {messages}")

        for name, path in step.save.items():
            value = executor.get_field_value(path)
            if value is None:
                raise StepFailure(f"{step.name}: cannot save '{name}', '{path}' not in response")
            resolver.set(name, value)


def _excerpt(text: str) -> str:
    text = (text or "<empty>").strip()
    if len(text) > MAX_BODY_EXCERPT:
        return text[:MAX_BODY_EXCERPT] + "..."
    return text


__all__ = [
    "ScenarioRunner",
    "StepFailure",
    "build_global_variables",
    "server_url_from",
]
