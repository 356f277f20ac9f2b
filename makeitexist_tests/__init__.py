"""
Make It Exist API test suites.

The package stays importable to support:
  - IDE navigation
  - the programmatic runner (`run_tests.py`)
  - CI/CD module imports

Scenario files live under `scenarios/<suite>/`; configuration under `config/`.
"""

__version__ = "1.0.0"
