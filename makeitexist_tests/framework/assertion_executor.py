"""
================================================================================
Assertion Executor Module
================================================================================

Assertion engine for validating API response bodies.

Key Features:
- Equality, null, containment, regex, comparison, membership and length checks
- JSON type checks (string, number, integer, boolean, list, object, null)
- JSONPath queries via jsonpath-ng
- Dot-notation field access with [n] list indexing
- Allure attachment per assertion

================================================================================
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

import allure
from jsonpath_ng import parse as jsonpath_parse
from loguru import logger


# ================================================================================
# Assertion Types
# ================================================================================

class AssertionType(str, Enum):
    """Supported assertion types."""
    EQUAL = "equal"
    NOT_EQUAL = "not_equal"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    REGEX_MATCH = "regex_match"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUAL = "greater_than_or_equal"
    LESS_THAN_OR_EQUAL = "less_than_or_equal"
    IN_LIST = "in_list"
    NOT_IN_LIST = "not_in_list"
    LENGTH_EQUAL = "length_equal"
    LENGTH_GREATER_THAN = "length_greater_than"
    TYPE_CHECK = "type_check"
    JSONPATH = "jsonpath"


JSON_TYPES = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "list": (list,),
    "object": (dict,),
}


@dataclass
class AssertionResult:
    """Result of a single assertion execution."""
    passed: bool
    assertion_type: str
    field: str
    expected: Any
    actual: Any
    message: str
    details: Optional[Dict[str, Any]] = None


# ================================================================================
# Assertion Executor
# ================================================================================

class AssertionExecutor:
    """
    Executes and validates assertions against an API response body.

    Example:
        executor = AssertionExecutor(response_data)
        executor.execute_assertions([
            {"type": "equal", "field": "status", "expected": "healthy"},
            {"type": "is_not_null", "field": "data.token"},
            {"type": "type_check", "field": "data", "expected": "list"},
        ])
        assert executor.all_passed()
    """

    def __init__(self, response_data: Any):
        """
        Initialize the assertion executor.

        Args:
            response_data: The API response data to validate
        """
        self.response_data = response_data
        self.results: List[AssertionResult] = []
        handlers = {
            AssertionType.EQUAL: self._assert_equal,
            AssertionType.NOT_EQUAL: self._assert_not_equal,
            AssertionType.IS_NULL: self._assert_is_null,
            AssertionType.IS_NOT_NULL: self._assert_is_not_null,
            AssertionType.CONTAINS: self._assert_contains,
            AssertionType.NOT_CONTAINS: self._assert_not_contains,
            AssertionType.REGEX_MATCH: self._assert_regex_match,
            AssertionType.GREATER_THAN: self._assert_greater_than,
            AssertionType.LESS_THAN: self._assert_less_than,
            AssertionType.GREATER_THAN_OR_EQUAL: self._assert_greater_than_or_equal,
            AssertionType.LESS_THAN_OR_EQUAL: self._assert_less_than_or_equal,
            AssertionType.IN_LIST: self._assert_in_list,
            AssertionType.NOT_IN_LIST: self._assert_not_in_list,
            AssertionType.LENGTH_EQUAL: self._assert_length_equal,
            AssertionType.LENGTH_GREATER_THAN: self._assert_length_greater_than,
            AssertionType.TYPE_CHECK: self._assert_type_check,
            AssertionType.JSONPATH: self._assert_jsonpath,
        }
        # Enum members hash by name, so key by the plain string value
        self._handlers = {t.value: h for t, h in handlers.items()}

    def get_field_value(self, field_path: str) -> Any:
        """
        Extract a value from nested response data using dot notation.

        Args:
            field_path: Dot-separated path to the field (e.g., "data.user.id",
                        "data[0].id")

        Returns:
            The value at the specified path, or None if not found
        """
        if not field_path:
            return self.response_data

        current = self.response_data

        for part in field_path.split("."):
            if current is None:
                return None

            # Handle array indexing (e.g., "items[0]" or "[0]")
            if "[" in part and part.endswith("]"):
                key = part[:part.index("[")]
                try:
                    index = int(part[part.index("[") + 1:-1])
                except ValueError:
                    return None

                if key:
                    current = current.get(key) if isinstance(current, dict) else None

                if isinstance(current, list) and -len(current) <= index < len(current):
                    current = current[index]
                else:
                    return None
            else:
                if isinstance(current, dict):
                    current = current.get(part)
                else:
                    return None

        return current

    def execute_assertion(self, assertion: Dict[str, Any]) -> AssertionResult:
        """
        Execute a single assertion.

        Args:
            assertion: Assertion configuration dict with type, field, and expected value

        Returns:
            AssertionResult with pass/fail status and details
        """
        assertion_type = assertion.get("type", AssertionType.EQUAL)
        assertion_type = str(getattr(assertion_type, "value", assertion_type))
        field = assertion.get("field", "")
        expected = assertion.get("expected")
        description = assertion.get("description", "")

        actual = self.get_field_value(field)

        handler = self._handlers.get(assertion_type)
        if handler is None:
            passed, message = False, f"Unknown assertion type '{assertion_type}'"
        else:
            passed, message = handler(actual, expected, field)

        result = AssertionResult(
            passed=passed,
            assertion_type=assertion_type,
            field=field,
            expected=expected,
            actual=actual,
            message=message or description,
            details={"description": description} if description else None
        )

        self.results.append(result)
        return result

    def execute_assertions(self, assertions: List[Dict[str, Any]]) -> List[AssertionResult]:
        """
        Execute multiple assertions.

        Args:
            assertions: List of assertion configurations

        Returns:
            List of AssertionResults
        """
        with allure.step(f"Executing {len(assertions)} assertions"):
            for assertion in assertions:
                result = self.execute_assertion(assertion)

                status = "PASS" if result.passed else "FAIL"
                logger.debug(f"{status}: {result.field} - {result.message}")

                allure.attach(
                    json.dumps({
                        "field": result.field,
                        "type": result.assertion_type,
                        "expected": str(result.expected),
                        "actual": str(result.actual),
                        "passed": result.passed
                    }, indent=2),
                    name=f"Assertion: {result.field or '<body>'}",
                    attachment_type=allure.attachment_type.JSON
                )

        return self.results

    def all_passed(self) -> bool:
        """Check if all assertions passed."""
        return all(r.passed for r in self.results)

    def get_failures(self) -> List[AssertionResult]:
        """Get list of failed assertions."""
        return [r for r in self.results if not r.passed]

    # ============================================================
    # Assertion Handlers
    # ============================================================

    def _assert_equal(self, actual: Any, expected: Any, field: str) -> tuple:
        passed = actual == expected
        message = f"Expected '{field}' to equal {expected!r}, got {actual!r}"
        return passed, message

    def _assert_not_equal(self, actual: Any, expected: Any, field: str) -> tuple:
        passed = actual != expected
        message = f"Expected '{field}' to not equal {expected!r}, got {actual!r}"
        return passed, message

    def _assert_is_null(self, actual: Any, expected: Any, field: str) -> tuple:
        passed = actual is None
        message = f"Expected '{field}' to be null, got {actual!r}"
        return passed, message

    def _assert_is_not_null(self, actual: Any, expected: Any, field: str) -> tuple:
        passed = actual is not None
        message = f"Expected '{field}' to not be null"
        return passed, message

    def _assert_contains(self, actual: Any, expected: Any, field: str) -> tuple:
        if actual is None:
            return False, f"Field '{field}' is null, cannot check contains"
        try:
            passed = expected in actual
        except TypeError:
            return False, f"Cannot check containment in '{field}' value: {actual!r}"
        message = f"Expected '{field}' to contain {expected!r}"
        return passed, message

    def _assert_not_contains(self, actual: Any, expected: Any, field: str) -> tuple:
        if actual is None:
            return True, f"Field '{field}' is null"
        try:
            passed = expected not in actual
        except TypeError:
            return False, f"Cannot check containment in '{field}' value: {actual!r}"
        message = f"Expected '{field}' to not contain {expected!r}"
        return passed, message

    def _assert_regex_match(self, actual: Any, expected: Any, field: str) -> tuple:
        if actual is None:
            return False, f"Field '{field}' is null, cannot match regex"
        try:
            passed = bool(re.match(expected, str(actual)))
            message = f"Expected '{field}' ({actual!r}) to match pattern '{expected}'"
            return passed, message
        except (re.error, TypeError) as e:
            return False, f"Invalid regex pattern: {e}"

    def _assert_greater_than(self, actual: Any, expected: Any, field: str) -> tuple:
        try:
            passed = actual > expected
            message = f"Expected '{field}' ({actual}) to be greater than {expected}"
            return passed, message
        except TypeError:
            return False, f"Cannot compare '{field}' value: {actual!r}"

    def _assert_less_than(self, actual: Any, expected: Any, field: str) -> tuple:
        try:
            passed = actual < expected
            message = f"Expected '{field}' ({actual}) to be less than {expected}"
            return passed, message
        except TypeError:
            return False, f"Cannot compare '{field}' value: {actual!r}"

    def _assert_greater_than_or_equal(self, actual: Any, expected: Any, field: str) -> tuple:
        try:
            passed = actual >= expected
            message = f"Expected '{field}' ({actual}) to be >= {expected}"
            return passed, message
        except TypeError:
            return False, f"Cannot compare '{field}' value: {actual!r}"

    def _assert_less_than_or_equal(self, actual: Any, expected: Any, field: str) -> tuple:
        try:
            passed = actual <= expected
            message = f"Expected '{field}' ({actual}) to be <= {expected}"
            return passed, message
        except TypeError:
            return False, f"Cannot compare '{field}' value: {actual!r}"

    def _assert_in_list(self, actual: Any, expected: List, field: str) -> tuple:
        if not isinstance(expected, (list, tuple)):
            return False, f"in_list on '{field}' expects a list, got {expected!r}"
        passed = actual in expected
        message = f"Expected '{field}' ({actual!r}) to be in {expected}"
        return passed, message

    def _assert_not_in_list(self, actual: Any, expected: List, field: str) -> tuple:
        if not isinstance(expected, (list, tuple)):
            return False, f"not_in_list on '{field}' expects a list, got {expected!r}"
        passed = actual not in expected
        message = f"Expected '{field}' ({actual!r}) to not be in {expected}"
        return passed, message

    def _assert_length_equal(self, actual: Any, expected: int, field: str) -> tuple:
        try:
            actual_len = len(actual) if actual else 0
            passed = actual_len == expected
            message = f"Expected '{field}' length to be {expected}, got {actual_len}"
            return passed, message
        except TypeError:
            return False, f"Cannot get length of '{field}'"

    def _assert_length_greater_than(self, actual: Any, expected: int, field: str) -> tuple:
        try:
            actual_len = len(actual) if actual else 0
            passed = actual_len > expected
            message = f"Expected '{field}' length ({actual_len}) to be > {expected}"
            return passed, message
        except TypeError:
            return False, f"Cannot get length of '{field}'"

    def _assert_type_check(self, actual: Any, expected: str, field: str) -> tuple:
        message = f"Expected '{field}' to be of type {expected}, got {type(actual).__name__}"
        if expected == "null":
            return actual is None, message
        types = JSON_TYPES.get(expected)
        if types is None:
            return False, f"Unknown type '{expected}' in type_check"
        # bool is a subclass of int, but not a JSON number
        if isinstance(actual, bool) and expected in ("number", "integer"):
            return False, message
        return isinstance(actual, types), message

    def _assert_jsonpath(self, actual: Any, expected: Dict, field: str) -> tuple:
        if not isinstance(expected, dict):
            return False, "jsonpath assertion expects a mapping with 'expression'"

        expression = expected.get("expression", "")
        condition = expected.get("condition", "exists")
        pattern = expected.get("pattern")

        try:
            jsonpath_expr = jsonpath_parse(expression)
            matches = [match.value for match in jsonpath_expr.find(self.response_data)]
        except Exception as e:
            return False, f"JSONPath error: {e}"

        if condition == "exists":
            passed = len(matches) > 0
            message = f"JSONPath '{expression}' should exist"
        elif condition == "all_match" and pattern:
            passed = all(re.match(pattern, str(m)) for m in matches)
            message = f"All JSONPath '{expression}' matches should match pattern '{pattern}'"
        elif condition == "all_not_null":
            passed = all(m is not None for m in matches)
            message = f"All JSONPath '{expression}' matches should not be null"
        else:
            passed = False
            message = f"Unknown JSONPath condition '{condition}'"

        return passed, message


__all__ = [
    "AssertionExecutor",
    "AssertionResult",
    "AssertionType",
]
