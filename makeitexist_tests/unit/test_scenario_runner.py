import json

import httpx
import pytest

from makeitexist_tests.framework.results import SuiteStatus
from makeitexist_tests.framework.scenario_runner import build_global_variables, server_url_from


HEALTH = {
    "feature": "Health",
    "tags": ["health"],
    "scenarios": [
        {
            "name": "service reports healthy",
            "url": "${server_url}/health",
            "assertions": [
                {"type": "equal", "field": "status", "expected": "healthy"},
                {"type": "equal", "field": "service", "expected": "make-it-exist-api"},
            ],
        },
    ],
}


def healthy(fake_api, status=200):
    fake_api.add("GET", "/health", status=status,
                 json={"status": "healthy", "service": "make-it-exist-api", "version": "1.0.0"})


def test_passing_suite(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    write_feature("health/health.yaml", HEALTH)

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.PASSED
    assert result.exit_code == 0
    assert [s.name for s in result.scenarios] == ["service reports healthy"]
    assert result.scenarios[0].steps_run == 1
    assert str(fake_api.requests[0].url) == "http://api.test/health"


def test_unexpected_status_fails_suite(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api, status=500)
    write_feature("health/health.yaml", HEALTH)

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.FAILED
    assert result.exit_code != 0
    assert len(result.failures) == 1
    message = result.failures[0].failures[0]
    assert "expected status 200, got 500" in message
    assert "service reports healthy" in result.failure_report()


def test_empty_directory_passes(runner, fake_api, tmp_path):
    (tmp_path / "scenarios" / "schedule").mkdir(parents=True)

    result = runner.execute("schedule", tmp_path / "scenarios" / "schedule")

    assert result.status is SuiteStatus.PASSED
    assert result.scenarios == []
    assert fake_api.requests == []


def test_missing_directory_is_an_error(runner, fake_api, tmp_path):
    result = runner.execute("admin", tmp_path / "scenarios" / "admin")

    assert result.status is SuiteStatus.ERROR
    assert result.exit_code == 2
    assert "not found" in result.error
    assert result.scenarios == []
    assert fake_api.requests == []


def test_malformed_file_is_an_error(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    write_feature("health/health.yaml", HEALTH)
    write_feature("health/zz_broken.yaml", "scenarios:\n  - url: /health\n")

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.ERROR
    assert "missing 'name'" in result.error
    assert fake_api.requests == []


def test_failing_scenario_does_not_stop_siblings(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    write_feature("health/health.yaml", {
        "feature": "Health",
        "scenarios": [
            {"name": "wrong service", "url": "${server_url}/health",
             "assertions": [{"type": "equal", "field": "service", "expected": "other"}]},
            {"name": "right service", "url": "${server_url}/health",
             "assertions": [{"type": "equal", "field": "service", "expected": "make-it-exist-api"}]},
        ],
    })

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.FAILED
    assert [(s.name, s.passed) for s in result.scenarios] == [
        ("wrong service", False),
        ("right service", True),
    ]
    assert "'service'" in result.failures[0].failures[0]


def test_malformed_headers_are_an_error(runner, fake_api, write_feature, tmp_path):
    write_feature("health/health.yaml", {
        "scenarios": [{"name": "bad headers", "url": "${server_url}/health", "headers": ["X-Trace: 1"]}],
    })

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.ERROR
    assert "headers' must be a mapping" in result.error
    assert fake_api.requests == []


def test_scalar_in_list_fails_only_its_scenario(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    write_feature("health/health.yaml", {
        "scenarios": [
            {"name": "scalar list", "url": "${server_url}/health",
             "assertions": [{"type": "in_list", "field": "version", "expected": 1}]},
            {"name": "healthy", "url": "${server_url}/health"},
        ],
    })

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.FAILED
    assert [(s.name, s.passed) for s in result.scenarios] == [
        ("scalar list", False),
        ("healthy", True),
    ]
    assert "expects a list" in result.failures[0].failures[0]


def test_non_string_url_is_sent_as_text(runner, fake_api, write_feature, tmp_path):
    fake_api.add("GET", "/api/v1/3", json={"data": {"id": 3}})
    write_feature("requests/by_id.yaml", {
        "variables": {"path": 3},
        "scenarios": [{"name": "by id", "url": "${path}"}],
    })

    result = runner.execute("requests", tmp_path / "scenarios" / "requests")

    assert result.passed, result.failure_report()
    assert str(fake_api.requests[0].url) == "http://api.test/api/v1/3"


def test_unexpected_step_error_fails_only_its_scenario(runner, fake_api, write_feature,
                                                       tmp_path, monkeypatch):
    healthy(fake_api)
    write_feature("health/health.yaml", {
        "scenarios": [
            {"name": "explodes", "url": "${server_url}/health"},
            {"name": "healthy", "url": "${server_url}/health"},
        ],
    })
    run_step = runner.run_step

    def flaky_run_step(client, step, resolver):
        if step.name == "explodes":
            raise RuntimeError("boom")
        return run_step(client, step, resolver)

    monkeypatch.setattr(runner, "run_step", flaky_run_step)

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.FAILED
    assert [(s.name, s.passed) for s in result.scenarios] == [
        ("explodes", False),
        ("healthy", True),
    ]
    assert result.failures[0].failures[0] == "explodes: unexpected RuntimeError: boom"


def test_first_failing_step_ends_scenario(runner, fake_api, write_feature, tmp_path):
    fake_api.add("GET", "/api/v1/first", status=404)
    fake_api.add("GET", "/api/v1/second")
    write_feature("requests/steps.yaml", {
        "scenarios": [{
            "name": "stops early",
            "steps": [
                {"step": "first", "url": "/first"},
                {"step": "second", "url": "/second"},
            ],
        }],
    })

    result = runner.execute("requests", tmp_path / "scenarios" / "requests")

    scenario = result.scenarios[0]
    assert not scenario.passed
    assert scenario.steps_run == 0
    assert len(scenario.failures) == 1
    assert scenario.failures[0].startswith("first: expected status 200, got 404")
    assert fake_api.calls("GET", "/api/v1/second") == []


def test_saved_values_chain_between_steps(runner, fake_api, write_feature, tmp_path):
    fake_api.add("POST", "/api/v1/requests", status=201,
                 json={"message": "created", "data": {"id": "65f0c0ffee", "title": "Portfolio"}})
    fake_api.add("GET", "/api/v1/requests/65f0c0ffee",
                 json={"data": {"id": "65f0c0ffee", "title": "Portfolio"}})
    write_feature("requests/chain.yaml", {
        "variables": {"title": "Portfolio"},
        "scenarios": [{
            "name": "create then fetch",
            "steps": [
                {"step": "create", "method": "POST", "url": "/requests", "expected_status": 201,
                 "json": {"title": "${title}", "type": "website"},
                 "save": {"request_id": "data.id"}},
                {"step": "fetch", "url": "/requests/${request_id}",
                 "assertions": [{"type": "equal", "field": "data.id", "expected": "${request_id}"}]},
            ],
        }],
    })

    result = runner.execute("requests", tmp_path / "scenarios" / "requests")

    assert result.passed, result.failure_report()
    create = fake_api.calls("POST", "/api/v1/requests")[0]
    assert json.loads(create.content) == {"title": "Portfolio", "type": "website"}


def test_missing_saved_value_fails(runner, fake_api, write_feature, tmp_path):
    fake_api.add("POST", "/api/v1/requests", status=201, json={"data": {}})
    write_feature("requests/save.yaml", {
        "scenarios": [{
            "name": "save missing id",
            "method": "POST",
            "url": "/requests",
            "expected_status": 201,
            "save": {"request_id": "data.id"},
        }],
    })

    result = runner.execute("requests", tmp_path / "scenarios" / "requests")

    assert result.status is SuiteStatus.FAILED
    assert "cannot save 'request_id'" in result.failures[0].failures[0]


def test_admin_steps_send_bearer_token(runner, fake_api, write_feature, tmp_path):
    def dashboard(request):
        if request.headers.get("Authorization") != "Bearer admin-jwt":
            return httpx.Response(401, json={"error": "unauthorized"})
        return httpx.Response(200, json={"data": {"total_requests": 3}})

    fake_api.add("GET", "/api/v1/admin/dashboard", handler=dashboard)
    write_feature("admin/dashboard.yaml", {
        "scenarios": [
            {"name": "with token", "url": "/admin/dashboard", "auth": "admin",
             "assertions": [{"type": "type_check", "field": "data.total_requests", "expected": "integer"}]},
            {"name": "without token", "url": "/admin/dashboard", "expected_status": 401},
        ],
    })

    result = runner.execute("admin", tmp_path / "scenarios" / "admin")

    assert result.passed, result.failure_report()
    assert len(fake_api.calls("POST", "/api/v1/auth/login")) == 1


def test_rejected_cached_token_triggers_login(runner, fake_api, token_manager,
                                             write_feature, tmp_path):
    token_manager.cache_file.parent.mkdir(parents=True, exist_ok=True)
    token_manager.cache_file.write_text(
        json.dumps({token_manager.cache_key: {
            "token": "revoked-jwt", "user": None, "expires_at": 4102444800,
        }}),
        encoding="utf-8",
    )

    def dashboard(request):
        if request.headers.get("Authorization") != "Bearer admin-jwt":
            return httpx.Response(401, json={"error": "unauthorized"})
        return httpx.Response(200, json={"data": {"total_requests": 3}})

    fake_api.add("GET", "/api/v1/admin/dashboard", handler=dashboard)
    write_feature("admin/dashboard.yaml", {
        "scenarios": [{"name": "with token", "url": "/admin/dashboard", "auth": "admin"}],
    })

    result = runner.execute("admin", tmp_path / "scenarios" / "admin")

    assert result.passed, result.failure_report()
    assert len(fake_api.calls("POST", "/api/v1/auth/login")) == 1
    assert len(fake_api.calls("GET", "/api/v1/admin/dashboard")) == 2


def test_failed_admin_login_fails_scenario(runner, fake_api, write_feature, tmp_path):
    fake_api.add("POST", "/api/v1/auth/login", status=401, json={"error": "login_failed"})
    write_feature("admin/dashboard.yaml", {
        "scenarios": [{"name": "with token", "url": "/admin/dashboard", "auth": "admin"}],
    })

    result = runner.execute("admin", tmp_path / "scenarios" / "admin")

    assert result.status is SuiteStatus.FAILED
    assert "TokenError" in result.failures[0].failures[0]


def test_network_error_fails_scenario(runner, fake_api, write_feature, tmp_path):
    def down(request):
        raise httpx.ConnectError("connection refused", request=request)

    fake_api.add("GET", "/health", handler=down)
    write_feature("health/health.yaml", HEALTH)

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.FAILED
    assert "ConnectError" in result.failures[0].failures[0]


def test_background_runs_before_every_scenario(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    fake_api.add("GET", "/api/v1/schedule/slots", json={"data": []})
    write_feature("schedule/slots.yaml", {
        "background": [{"step": "server up", "url": "${server_url}/health"}],
        "scenarios": [
            {"name": "one", "url": "/schedule/slots"},
            {"name": "two", "url": "/schedule/slots"},
        ],
    })

    result = runner.execute("schedule", tmp_path / "scenarios" / "schedule")

    assert result.passed
    assert [r.url.path for r in fake_api.requests] == [
        "/health", "/api/v1/schedule/slots", "/health", "/api/v1/schedule/slots",
    ]
    assert all(s.steps_run == 2 for s in result.scenarios)


def test_ignored_scenarios_are_skipped(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    write_feature("health/health.yaml", {
        "scenarios": [
            {"name": "runs", "url": "${server_url}/health"},
            {"name": "not yet", "url": "/unfinished", "expected_status": 201, "tags": ["ignore"]},
        ],
    })

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.status is SuiteStatus.PASSED
    assert [(s.name, s.skipped) for s in result.scenarios] == [("runs", False), ("not yet", True)]
    assert fake_api.calls("GET", "/api/v1/unfinished") == []


def test_tag_selection(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    write_feature("health/health.yaml", {
        "scenarios": [
            {"name": "smoke check", "url": "${server_url}/health", "tags": ["smoke"]},
            {"name": "slow check", "url": "${server_url}/health", "tags": ["slow"]},
        ],
    })
    directory = tmp_path / "scenarios" / "health"

    assert [s.name for s in runner.execute("health", directory, tags=["smoke"]).scenarios] == [
        "smoke check"
    ]
    assert [s.name for s in runner.execute("health", directory, tags=["~smoke"]).scenarios] == [
        "slow check"
    ]


def test_non_json_body(runner, fake_api, write_feature, tmp_path):
    fake_api.add("GET", "/robots.txt", handler=lambda request: httpx.Response(200, text="User-agent: *"))
    write_feature("health/robots.yaml", {
        "scenarios": [{
            "name": "plain text",
            "url": "${server_url}/robots.txt",
            "assertions": [{"type": "contains", "field": "", "expected": "User-agent"}],
        }],
    })

    result = runner.execute("health", tmp_path / "scenarios" / "health")

    assert result.passed, result.failure_report()


def test_results_are_deterministic(runner, fake_api, write_feature, tmp_path):
    healthy(fake_api)
    for name in ("b.yaml", "a.yaml", "nested/c.yaml"):
        write_feature(f"health/{name}", HEALTH)
    directory = tmp_path / "scenarios" / "health"

    first = runner.execute("health", directory)
    second = runner.execute("health", directory)

    def outcome(result):
        return [(s.key, s.passed, s.skipped) for s in result.scenarios]

    assert outcome(first) == outcome(second)
    assert [s.source.name for s in first.scenarios] == ["a.yaml", "b.yaml", "c.yaml"]


def test_unique_id_differs_per_scenario(runner, fake_api, write_feature, tmp_path):
    fake_api.add("POST", "/api/v1/requests", status=201, json={"data": {"id": "x"}})
    write_feature("requests/unique.yaml", {
        "scenarios": [
            {"name": "first", "method": "POST", "url": "/requests", "expected_status": 201,
             "json": {"title": "${unique_id}"}},
            {"name": "second", "method": "POST", "url": "/requests", "expected_status": 201,
             "json": {"title": "${unique_id}"}},
        ],
    })

    runner.execute("requests", tmp_path / "scenarios" / "requests")

    titles = [json.loads(r.content)["title"] for r in fake_api.calls("POST", "/api/v1/requests")]
    assert len(titles) == 2
    assert titles[0] != titles[1]
    assert all(t.startswith("autotest_") for t in titles)


@pytest.mark.parametrize(
    "base_url, server_url",
    [
        ("http://localhost:8080/api/v1", "http://localhost:8080"),
        ("https://makeitexist.onrender.com/api/v1/", "https://makeitexist.onrender.com"),
        ("http://proxy.test", "http://proxy.test"),
    ],
)
def test_server_url_from(base_url, server_url):
    assert server_url_from(base_url) == server_url


def test_global_variables(api_config, monkeypatch):
    monkeypatch.setenv("GOOGLE_AUTH_CLIENT_ID", "client-123")

    variables = build_global_variables(api_config)

    assert variables["env"] == "dev"
    assert variables["base_url"] == "http://api.test/api/v1"
    assert variables["server_url"] == "http://api.test"
    assert variables["admin_email"] == "admin@aim.edu"
    assert variables["google_auth_client_id"] == "client-123"
