"""
================================================================================
Scenario Loader Module
================================================================================

Loads declarative API scenarios from YAML files.

A file describes one feature: optional background steps that run before
every scenario, and a list of scenarios. A scenario is either a single
request or a list of steps; each step is a request with an expected status,
response assertions and values to save for later steps.

Key Features:
- Recursive, sorted discovery of *.yaml / *.yml under a suite directory
- Structure validation (a broken file fails discovery of the whole suite)
- Variable interpolation with ${name} and ${env.NAME} placeholders
- Tag inheritance from feature to scenario

================================================================================
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from loguru import logger


SCENARIO_PATTERNS = ("*.yaml", "*.yml")
IGNORE_TAG = "ignore"
AUTH_MODES = (None, "none", "admin")


class SuiteDiscoveryError(Exception):
    """Raised when a suite directory cannot be discovered (missing, unreadable)."""
    pass


class ScenarioLoadError(SuiteDiscoveryError):
    """Raised when a scenario file is not valid YAML or has an invalid structure."""
    pass


# ================================================================================
# Data Models
# ================================================================================

@dataclass
class StepAssertion:
    """Response assertion of a step."""
    assertion_type: str
    field: str
    expected: Any = None
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.assertion_type,
            "field": self.field,
            "expected": self.expected,
            "description": self.description,
        }


@dataclass
class Step:
    """A single HTTP exchange within a scenario."""
    name: str
    method: str
    url: str
    auth: Optional[str] = None
    headers: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)
    json_body: Any = None
    expected_status: Union[int, List[int]] = 200
    assertions: List[StepAssertion] = field(default_factory=list)
    save: Dict[str, str] = field(default_factory=dict)


@dataclass
class Scenario:
    """A named scenario: background steps followed by its own steps."""
    name: str
    feature: str
    source: Path
    steps: List[Step]
    description: str = ""
    tags: List[str] = field(default_factory=list)
    severity: str = "normal"
    variables: Dict[str, Any] = field(default_factory=dict)
    background: List[Step] = field(default_factory=list)

    @property
    def ignored(self) -> bool:
        return IGNORE_TAG in self.tags

    @property
    def key(self) -> str:
        """Identity of the scenario across suite runs."""
        return f"{self.source.as_posix()}::{self.name}"


@dataclass
class Feature:
    """All scenarios declared in one file."""
    name: str
    source: Path
    description: str = ""
    tags: List[str] = field(default_factory=list)
    variables: Dict[str, Any] = field(default_factory=dict)
    scenarios: List[Scenario] = field(default_factory=list)


# ================================================================================
# Scenario Loader
# ================================================================================

class ScenarioLoader:
    """
    Discovers and parses scenario files under a directory.

    Example:
        loader = ScenarioLoader("makeitexist_tests/scenarios/health")
        for feature in loader.load_all():
            for scenario in feature.scenarios:
                print(f"Loaded: {scenario.name}")
    """

    def __init__(self, scenarios_directory: Union[str, Path]):
        """
        Initialize the scenario loader.

        Args:
            scenarios_directory: Directory searched recursively for scenario files
        """
        self.scenarios_dir = Path(scenarios_directory)
        self.loaded_features: List[Feature] = []

    def discover(self) -> List[Path]:
        """
        List scenario files under the directory in stable order.

        Raises:
            SuiteDiscoveryError: Directory missing, not a directory, or unreadable
        """
        if not self.scenarios_dir.exists():
            raise SuiteDiscoveryError(f"Scenario directory not found: {self.scenarios_dir}")
        if not self.scenarios_dir.is_dir():
            raise SuiteDiscoveryError(f"Scenario path is not a directory: {self.scenarios_dir}")
        if not os.access(self.scenarios_dir, os.R_OK | os.X_OK):
            raise SuiteDiscoveryError(f"Scenario directory is not readable: {self.scenarios_dir}")

        files = set()
        try:
            for pattern in SCENARIO_PATTERNS:
                files.update(p for p in self.scenarios_dir.rglob(pattern) if p.is_file())
        except OSError as e:
            raise SuiteDiscoveryError(f"Cannot scan {self.scenarios_dir}: {e}") from e

        ordered = sorted(files)
        logger.info(f"Found {len(ordered)} scenario files in {self.scenarios_dir}")
        return ordered

    def load_all(self) -> List[Feature]:
        """
        Load every scenario file under the directory.

        Returns:
            Features in file path order (empty list for an empty directory)
        """
        features = [self.load_file(path) for path in self.discover()]
        self.loaded_features = features
        total = sum(len(f.scenarios) for f in features)
        logger.info(f"Total loaded scenarios: {total}")
        return features

    def load_file(self, file_path: Union[str, Path]) -> Feature:
        """
        Load one scenario file.

        Args:
            file_path: Path to the YAML file

        Returns:
            Feature with its scenarios (an empty file yields no scenarios)

        Raises:
            ScenarioLoadError: Unreadable file, invalid YAML or invalid structure
        """
        file_path = Path(file_path)

        try:
            with open(file_path, "r", encoding="utf-8") as f:
                content = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ScenarioLoadError(f"YAML parsing error in {file_path}: {e}") from e
        except OSError as e:
            raise ScenarioLoadError(f"Cannot read {file_path}: {e}") from e

        if content is None:
            logger.warning(f"Empty scenario file: {file_path}")
            return Feature(name=file_path.stem, source=file_path)

        if not isinstance(content, dict):
            raise ScenarioLoadError(f"{file_path}: top level must be a mapping")

        feature = Feature(
            name=str(content.get("feature") or file_path.stem),
            source=file_path,
            description=content.get("description", ""),
            tags=_as_tags(content.get("tags")),
            variables=_as_mapping(content.get("variables"), file_path, "variables"),
        )

        background = [
            self._parse_step(step, file_path, f"background[{i}]")
            for i, step in enumerate(_as_list(content.get("background"), file_path, "background"))
        ]

        # A file holds a list under scenarios/test_cases or a single case at the top level
        if "scenarios" in content:
            scenarios_data = content["scenarios"]
        elif "test_cases" in content:
            scenarios_data = content["test_cases"]
        elif "url" in content or "steps" in content:
            scenarios_data = [content]
        else:
            logger.warning(f"No scenarios declared in {file_path}")
            scenarios_data = []

        for index, data in enumerate(_as_list(scenarios_data, file_path, "scenarios")):
            feature.scenarios.append(
                self._parse_scenario(data, feature, background, index)
            )

        logger.debug(f"Loaded {len(feature.scenarios)} scenarios from {file_path.name}")
        return feature

    def _parse_scenario(
        self,
        data: Any,
        feature: Feature,
        background: List[Step],
        index: int,
    ) -> Scenario:
        where = f"scenarios[{index}]"
        if not isinstance(data, dict):
            raise ScenarioLoadError(f"{feature.source}: {where} must be a mapping")

        name = data.get("name")
        if not name:
            raise ScenarioLoadError(f"{feature.source}: {where} is missing 'name'")

        if "steps" in data:
            steps = [
                self._parse_step(step, feature.source, f"{where}.steps[{i}]")
                for i, step in enumerate(_as_list(data["steps"], feature.source, where))
            ]
        else:
            steps = [self._parse_step(data, feature.source, where)]

        tags = list(feature.tags)
        tags.extend(t for t in _as_tags(data.get("tags")) if t not in tags)

        return Scenario(
            name=str(name),
            feature=feature.name,
            source=feature.source,
            steps=steps,
            description=data.get("description", ""),
            tags=tags,
            severity=data.get("severity", "normal"),
            variables={
                **feature.variables,
                **_as_mapping(data.get("variables"), feature.source, f"{where}.variables"),
            },
            background=background,
        )

    def _parse_step(self, data: Any, source_file: Path, where: str) -> Step:
        if not isinstance(data, dict):
            raise ScenarioLoadError(f"{source_file}: {where} must be a mapping")

        url = data.get("url")
        if not url:
            raise ScenarioLoadError(f"{source_file}: {where} is missing 'url'")

        expected_status = data.get("expected_status", 200)
        try:
            if isinstance(expected_status, list):
                expected_status = [int(s) for s in expected_status]
            else:
                expected_status = int(expected_status)
        except (TypeError, ValueError) as e:
            raise ScenarioLoadError(
                f"{source_file}: {where} has an invalid expected_status: {expected_status}"
            ) from e

        assertions = []
        for assertion_data in _as_list(data.get("assertions"), source_file, f"{where}.assertions"):
            if not isinstance(assertion_data, dict):
                raise ScenarioLoadError(f"{source_file}: {where} assertions must be mappings")
            assertions.append(StepAssertion(
                assertion_type=assertion_data.get("type", "equal"),
                field=assertion_data.get("field", ""),
                expected=assertion_data.get("expected"),
                description=assertion_data.get("description", ""),
            ))

        method = str(data.get("method", "GET")).upper()

        auth = data.get("auth")
        if auth not in AUTH_MODES:
            raise ScenarioLoadError(
                f"{source_file}: {where} has unknown auth '{auth}' (use 'admin' or 'none')"
            )

        save = data.get("save") or {}
        if not isinstance(save, dict):
            raise ScenarioLoadError(f"{source_file}: {where} 'save' must map names to fields")

        return Step(
            name=str(data.get("step") or data.get("name") or f"{method} {url}"),
            method=method,
            url=str(url),
            auth=None if auth == "none" else auth,
            headers=_as_mapping(data.get("headers"), source_file, f"{where}.headers"),
            params=_as_mapping(data.get("params"), source_file, f"{where}.params"),
            json_body=data.get("json"),
            expected_status=expected_status,
            assertions=assertions,
            save={str(k): str(v) for k, v in save.items()},
        )


# ================================================================================
# Variable Interpolation
# ================================================================================

class VariableResolver:
    """
    Resolves ${name} placeholders against a variable context.

    ``${env.NAME}`` reads the process environment. A placeholder that makes
    up the whole string keeps the variable's type, so ``${count}`` can stay
    an integer inside a JSON body. Unknown placeholders are left untouched.
    """

    VARIABLE_PATTERN = re.compile(r'\$\{([^}]+)\}')

    def __init__(self, variables: Optional[Dict[str, Any]] = None):
        self.variables: Dict[str, Any] = dict(variables or {})

    def set(self, name: str, value: Any) -> None:
        self.variables[name] = value

    def resolve(self, data: Any) -> Any:
        """Recursively interpolate variables in a data structure."""
        if isinstance(data, str):
            return self.resolve_string(data)
        if isinstance(data, dict):
            return {k: self.resolve(v) for k, v in data.items()}
        if isinstance(data, list):
            return [self.resolve(item) for item in data]
        return data

    def resolve_string(self, text: str) -> Any:
        whole = self.VARIABLE_PATTERN.fullmatch(text)
        if whole:
            found, value = self._lookup(whole.group(1))
            return value if found else text

        def replace_var(match):
            found, value = self._lookup(match.group(1))
            return str(value) if found else match.group(0)

        return self.VARIABLE_PATTERN.sub(replace_var, text)

    def _lookup(self, name: str):
        name = name.strip()
        if name.startswith("env."):
            value = os.environ.get(name[4:])
            return value is not None, value
        if name in self.variables:
            return True, self.variables[name]
        return False, None


def _as_list(value: Any, source_file: Path, where: str) -> List[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ScenarioLoadError(f"{source_file}: '{where}' must be a list")
    return value


def _as_mapping(value: Any, source_file: Path, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ScenarioLoadError(f"{source_file}: '{where}' must be a mapping")
    return dict(value)


def _as_tags(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, str):
        value = value.replace(",", " ").split()
    return [str(tag).lstrip("@") for tag in value]


def matches_tags(scenario_tags: List[str], selection: Optional[List[str]]) -> bool:
    """
    Check a scenario's tags against a tag selection.

    Plain tags select scenarios carrying any of them; ``~tag`` excludes.
    An empty selection selects everything.
    """
    if not selection:
        return True
    include = [t.lstrip("@") for t in selection if not t.startswith("~")]
    exclude = [t[1:].lstrip("@") for t in selection if t.startswith("~")]
    if any(tag in scenario_tags for tag in exclude):
        return False
    if include:
        return any(tag in scenario_tags for tag in include)
    return True


__all__ = [
    "Feature",
    "Scenario",
    "ScenarioLoadError",
    "ScenarioLoader",
    "Step",
    "StepAssertion",
    "SuiteDiscoveryError",
    "VariableResolver",
    "matches_tags",
]
