"""
Result models for scenario and suite runs.

A suite run ends in exactly one of three states:

    PASSED  every executed scenario passed (an empty suite passes)
    FAILED  at least one scenario failed; ``failures`` lists them
    ERROR   the suite could not be discovered; ``error`` says why
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional


class SuiteStatus(str, Enum):
    """Aggregate outcome of a suite run."""
    PASSED = "passed"
    FAILED = "failed"
    ERROR = "error"


# Completion status handed to CI, mirroring pytest's convention
EXIT_CODES = {
    SuiteStatus.PASSED: 0,
    SuiteStatus.FAILED: 1,
    SuiteStatus.ERROR: 2,
}


@dataclass
class ScenarioResult:
    """Outcome of one scenario."""
    name: str
    feature: str
    source: Path
    tags: List[str] = field(default_factory=list)
    passed: bool = True
    skipped: bool = False
    failures: List[str] = field(default_factory=list)
    steps_run: int = 0
    duration_ms: float = 0.0

    @property
    def key(self) -> str:
        return f"{self.source.as_posix()}::{self.name}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "feature": self.feature,
            "source": str(self.source),
            "tags": list(self.tags),
            "status": "skipped" if self.skipped else ("passed" if self.passed else "failed"),
            "failures": list(self.failures),
            "steps_run": self.steps_run,
            "duration_ms": round(self.duration_ms, 2),
        }


@dataclass
class SuiteResult:
    """Outcome of a suite run."""
    suite: str
    directory: Path
    status: SuiteStatus
    scenarios: List[ScenarioResult] = field(default_factory=list)
    error: Optional[str] = None
    duration_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @classmethod
    def from_scenarios(
        cls,
        suite: str,
        directory: Path,
        scenarios: List[ScenarioResult],
        duration_ms: float = 0.0,
    ) -> "SuiteResult":
        status = (
            SuiteStatus.FAILED
            if any(not s.passed for s in scenarios if not s.skipped)
            else SuiteStatus.PASSED
        )
        return cls(
            suite=suite,
            directory=directory,
            status=status,
            scenarios=scenarios,
            duration_ms=duration_ms,
        )

    @classmethod
    def discovery_error(cls, suite: str, directory: Path, error: str) -> "SuiteResult":
        return cls(suite=suite, directory=directory, status=SuiteStatus.ERROR, error=error)

    @property
    def passed(self) -> bool:
        return self.status is SuiteStatus.PASSED

    @property
    def failures(self) -> List[ScenarioResult]:
        return [s for s in self.scenarios if not s.passed and not s.skipped]

    @property
    def executed(self) -> List[ScenarioResult]:
        return [s for s in self.scenarios if not s.skipped]

    @property
    def exit_code(self) -> int:
        return EXIT_CODES[self.status]

    @property
    def pass_rate(self) -> float:
        executed = self.executed
        if not executed:
            return 100.0
        return len([s for s in executed if s.passed]) / len(executed) * 100

    def summary(self) -> str:
        """One-line summary for logs and assertion messages."""
        if self.status is SuiteStatus.ERROR:
            return f"suite '{self.suite}' could not run: {self.error}"
        skipped = len(self.scenarios) - len(self.executed)
        return (
            f"suite '{self.suite}' {self.status.value}: "
            f"{len(self.executed) - len(self.failures)} passed, "
            f"{len(self.failures)} failed, {skipped} skipped"
        )

    def failure_report(self) -> str:
        """Multi-line description of every failed scenario."""
        if self.status is SuiteStatus.ERROR:
            return self.summary()
        lines = [self.summary()]
        for scenario in self.failures:
            lines.append(f"  - {scenario.feature} / {scenario.name} ({scenario.source.name})")
            lines.extend(f"      {message}" for message in scenario.failures)
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "suite": self.suite,
            "directory": str(self.directory),
            "status": self.status.value,
            "error": self.error,
            "total": len(self.scenarios),
            "passed": len(self.executed) - len(self.failures),
            "failed": len(self.failures),
            "skipped": len(self.scenarios) - len(self.executed),
            "pass_rate": f"{self.pass_rate:.2f}%",
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
            "scenarios": [s.to_dict() for s in self.scenarios],
        }


__all__ = [
    "EXIT_CODES",
    "ScenarioResult",
    "SuiteResult",
    "SuiteStatus",
]
