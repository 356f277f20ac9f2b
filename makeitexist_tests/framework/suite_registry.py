"""
================================================================================
Suite Registry
================================================================================

Fixed set of named entry points, each resolving to a directory of scenario
files relative to one root:

    all       -> <root>
    health    -> <root>/health
    auth      -> <root>/auth
    requests  -> <root>/requests
    schedule  -> <root>/schedule
    admin     -> <root>/admin

Running a suite hands its directory to the executor and returns the
executor's SuiteResult unchanged.

================================================================================
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Protocol, Union

from loguru import logger

from .config_loader import ConfigLoader
from .results import SuiteResult
from .scenario_runner import ScenarioRunner


DEFAULT_SCENARIOS_ROOT = Path(__file__).parent.parent / "scenarios"

# Suite name -> directory relative to the scenarios root
SUITE_PATHS: Dict[str, str] = {
    "all": "",
    "health": "health",
    "auth": "auth",
    "requests": "requests",
    "schedule": "schedule",
    "admin": "admin",
}

SUITE_NAMES = tuple(SUITE_PATHS)


class UnknownSuiteError(ValueError):
    """Raised when a caller asks for a suite name outside the registry."""
    pass


class SuiteExecutor(Protocol):
    """Anything that can run a directory of scenarios."""

    def execute(
        self,
        suite: str,
        directory: Path,
        tags: Optional[List[str]] = None,
    ) -> SuiteResult:
        ...


class SuiteRegistry:
    """
    Maps suite names to scenario directories and runs them.

    Usage:
        >>> registry = SuiteRegistry()
        >>> registry.names()
        ['all', 'health', 'auth', 'requests', 'schedule', 'admin']
        >>> result = registry.run("health")
        >>> result.status
        <SuiteStatus.PASSED: 'passed'>
    """

    def __init__(
        self,
        root: Optional[Union[str, Path]] = None,
        executor: Optional[SuiteExecutor] = None,
        config: Optional[ConfigLoader] = None,
    ) -> None:
        """
        Args:
            root: Scenarios root; defaults to the bundled scenarios directory
            executor: Suite executor; defaults to a ScenarioRunner over config
            config: Configuration used to build the default executor
        """
        self.root = Path(root) if root else DEFAULT_SCENARIOS_ROOT
        self._executor = executor
        self._config = config

    @property
    def executor(self) -> SuiteExecutor:
        if self._executor is None:
            self._executor = ScenarioRunner(self._config)
        return self._executor

    def names(self) -> List[str]:
        """Registered suite names, ``all`` first."""
        return list(SUITE_NAMES)

    def path_for(self, name: str) -> Path:
        """
        Resolve a suite name to its scenario directory.

        Raises:
            UnknownSuiteError: name is not a registered suite
        """
        if name not in SUITE_PATHS:
            raise UnknownSuiteError(
                f"Unknown suite '{name}'. Expected one of: {', '.join(SUITE_NAMES)}"
            )
        relative = SUITE_PATHS[name]
        return self.root / relative if relative else self.root

    def run(self, name: str, tags: Optional[List[str]] = None) -> SuiteResult:
        """
        Run one named suite.

        Args:
            name: Registered suite name
            tags: Optional tag selection passed through to the executor

        Returns:
            SuiteResult (PASSED, FAILED or ERROR)

        Raises:
            UnknownSuiteError: name is not a registered suite
        """
        directory = self.path_for(name)
        logger.debug(f"Suite '{name}' resolved to {directory}")
        return self.executor.execute(name, directory, tags=tags)


__all__ = [
    "DEFAULT_SCENARIOS_ROOT",
    "SUITE_NAMES",
    "SUITE_PATHS",
    "SuiteExecutor",
    "SuiteRegistry",
    "UnknownSuiteError",
]
