"""Tests for the collection runner."""

import logging

import pytest
import requests

from reqhooks.core_logic import (
    ColorFormatter,
    dispatch_request,
    load_environment,
    load_folder_config,
    prepare_request,
    run_collection,
    setup_logging,
    substitute_variables,
    substitute_variables_recursive,
    write_environment_file,
)
from reqhooks.hooks import TIMESTAMP_HEADER, USER_AGENT, RequestContext

from .conftest import make_response


def _request_data(**overrides):
    data = {
        "name": None,
        "method": "GET",
        "url": "",
        "params": {},
        "auth": {},
        "headers": {},
        "body": "",
    }
    data.update(overrides)
    return data


def _write_request(path, url="{{BASE_URL}}/health", method="GET"):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'request:\n  method: {method}\n  url: "{url}"\n', encoding="utf-8")
    return path


@pytest.fixture
def collection(tmp_path):
    (tmp_path / ".environment-variables").write_text("BASE_URL=http://auth.local\n", encoding="utf-8")
    return tmp_path


def test_substitute_variables(log, pm):
    """Test known variables are replaced and unknown ones kept."""
    variables = {"BASE_URL": "http://auth.local", "PORT": 8081}

    assert substitute_variables("{{BASE_URL}}:{{ PORT }}/x", variables, pm, log) == "http://auth.local:8081/x"
    assert substitute_variables("{{MISSING}}", variables, pm, log) == "{{MISSING}}"
    assert substitute_variables(42, variables, pm, log) == 42


def test_substitute_pm_helpers(log, pm, caplog):
    """Test pm helper calls are evaluated and broken ones left intact."""
    assert substitute_variables("{{pm.random_int(7, 7)}}", {}, pm, log) == "7"
    assert substitute_variables("{{pm.nope()}}", {}, pm, log) == "{{pm.nope()}}"
    assert any("Error executing pm helper function" in r.getMessage() for r in caplog.records)


def test_substitute_variables_recursive(log, pm):
    """Test nested dicts and lists are substituted."""
    data = {"user": {"email": "{{EMAIL}}"}, "tags": ["{{EMAIL}}", 1]}
    result = substitute_variables_recursive(data, {"EMAIL": "a@b.com"}, pm, log)
    assert result == {"user": {"email": "a@b.com"}, "tags": ["a@b.com", 1]}


def test_load_environment(tmp_path, log):
    """Test the environment file strips quotes and ignores comments."""
    (tmp_path / ".environment-variables").write_text(
        '# comment\nBASE_URL="http://auth.local"\nTOKEN=\'abc\'\nEMPTY=\nbroken line\n',
        encoding="utf-8",
    )
    env = load_environment(str(tmp_path), log)
    assert env == {"BASE_URL": "http://auth.local", "TOKEN": "abc", "EMPTY": ""}


def test_load_environment_missing_file(tmp_path, log, caplog):
    """Test a missing environment file only warns."""
    assert load_environment(str(tmp_path), log) == {}
    assert any(r.levelno == logging.WARNING for r in caplog.records)


def test_write_environment_file(tmp_path, log):
    """Test internal keys are skipped and values with spaces are quoted."""
    write_environment_file(str(tmp_path), {"_collection_root": "/x", "A": "1", "B": "two words"}, log)
    assert (tmp_path / ".environment-variables").read_text(encoding="utf-8") == 'A=1\nB="two words"\n'


def test_load_folder_config(tmp_path, log):
    """Test folder config loads dicts and ignores other YAML shapes."""
    assert load_folder_config(str(tmp_path), log) == {}
    (tmp_path / "config.yaml").write_text("DEVICE_INFO: cli\n", encoding="utf-8")
    assert load_folder_config(str(tmp_path), log) == {"DEVICE_INFO": "cli"}
    (tmp_path / "config.yaml").write_text("- a\n- b\n", encoding="utf-8")
    assert load_folder_config(str(tmp_path), log) == {}


def test_prepare_request_json_body_and_bearer(log, pm):
    """Test dict bodies become JSON and bearer tokens become headers."""
    data = _request_data(
        method="POST",
        url="{{BASE_URL}}/login",
        auth={"Bearer Token": "{{TOKEN}}"},
        body={"email": "{{EMAIL}}"},
    )
    req = prepare_request(data, {"BASE_URL": "http://auth.local", "TOKEN": "t0k", "EMAIL": "a@b.com"}, pm, log)

    assert req.get_url() == "http://auth.local/login"
    assert req.get_header("Authorization") == "Bearer t0k"
    assert req.json == {"email": "a@b.com"}
    assert req.get_header("Content-Type") == "application/json"


def test_prepare_request_params_and_basic_auth(log, pm):
    """Test params are appended to the URL and basic auth is a tuple."""
    data = _request_data(
        url="http://auth.local/users?active=true",
        params={"page": 2},
        auth={"Basic Auth": {"username": "admin", "password": "secret"}},
    )
    req = prepare_request(data, {}, pm, log)

    assert req.get_url() == "http://auth.local/users?active=true&page=2"
    assert req.auth == ("admin", "secret")
    assert req.get_body() is None


def test_prepare_request_raw_and_form_bodies(log, pm):
    """Test raw strings default to text/plain and form bodies stay dicts."""
    raw = prepare_request(_request_data(method="POST", body="hello"), {}, pm, log)
    assert raw.data == b"hello"
    assert raw.get_header("Content-Type") == "text/plain"

    form = prepare_request(
        _request_data(
            method="POST",
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            body={"grant_type": "password"},
        ),
        {}, pm, log,
    )
    assert form.data == {"grant_type": "password"}
    assert form.json is None


def test_dispatch_request(log, transport):
    """Test the prepared request is sent as-is."""
    req = RequestContext("POST", "http://auth.local/login", headers={"X-Test": "1"}, json_payload={"a": 1})
    response, duration_ms = dispatch_request(req, log, timeout=5)

    assert response.status_code == 200
    assert duration_ms >= 0
    call = transport.calls[0]
    assert call["method"] == "POST"
    assert call["headers"] == {"X-Test": "1"}
    assert call["json"] == {"a": 1}
    assert call["timeout"] == 5


def test_dispatch_request_transport_error(log, monkeypatch, caplog):
    """Test connection errors are logged and return no response."""
    def fail(*args, **kwargs):
        raise requests.exceptions.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "request", fail)
    response, _ = dispatch_request(RequestContext("GET", "http://auth.local"), log)

    assert response is None
    assert any("Request failed: connection refused" in r.getMessage() for r in caplog.records)


def test_run_collection_sends_hook_headers(collection, log, pm, transport, caplog):
    """Test every dispatched request carries the hook headers."""
    files = [
        str(_write_request(collection / "a-health.yaml")),
        str(_write_request(collection / "b-login.yaml", url="{{BASE_URL}}/login", method="POST")),
    ]
    results = run_collection(str(collection), str(collection), files, log, pm)

    assert results == {"total": 2, "success": 2, "failure": 0, "warnings": 0}
    assert [c["url"] for c in transport.calls] == ["http://auth.local/health", "http://auth.local/login"]
    for call in transport.calls:
        assert call["headers"]["User-Agent"] == USER_AGENT
        assert call["headers"][TIMESTAMP_HEADER].endswith("Z")

    messages = [r.getMessage() for r in caplog.records]
    assert "🚀 Executing: POST http://auth.local/login" in messages
    assert "📨 Response: 200 - OK" in messages
    assert messages.count("✅ Success: ok") == 2


def test_run_collection_without_hooks(collection, log, pm, transport):
    """Test disabled hooks leave the request headers untouched."""
    files = [str(_write_request(collection / "health.yaml"))]
    run_collection(str(collection), str(collection), files, log, pm, config={"HOOKS_ENABLED": False})

    assert "User-Agent" not in transport.calls[0]["headers"]
    assert TIMESTAMP_HEADER not in transport.calls[0]["headers"]


def test_pre_script_can_override_hook_header(collection, log, pm, transport):
    """Test request pre-scripts run after the hook and see its headers."""
    req_file = _write_request(collection / "health.yaml")
    (collection / "health-pre-script.py").write_text(
        "environment_vars['SEEN_UA'] = req.get_header('User-Agent')\n"
        "req.set_header('User-Agent', 'custom/2.0')\n",
        encoding="utf-8",
    )
    run_collection(str(collection), str(collection), [str(req_file)], log, pm)

    assert transport.calls[0]["headers"]["User-Agent"] == "custom/2.0"
    env_text = (collection / ".environment-variables").read_text(encoding="utf-8")
    assert f"SEEN_UA={USER_AGENT}" in env_text


def test_run_collection_server_error_fails(collection, log, pm, transport, caplog):
    """Test a 5xx without a post-script fails the run and the hook logs the body."""
    transport.responses.append(make_response(500, {"error": "boom"}, reason="Internal Server Error"))
    req_file = _write_request(collection / "health.yaml")

    with pytest.raises(Exception, match="1 request\\(s\\) failed"):
        run_collection(str(collection), str(collection), [str(req_file)], log, pm)

    errors = [r.getMessage() for r in caplog.records if r.levelno == logging.ERROR]
    assert any(e.startswith("❌ Error 500:") and '"error": "boom"' in e for e in errors)


def test_run_collection_client_error_is_warning(collection, log, pm, transport):
    """Test a 4xx without a post-script is counted as a warning."""
    transport.responses.append(make_response(404, {"error": "not found"}, reason="Not Found"))
    req_file = _write_request(collection / "health.yaml")

    results = run_collection(str(collection), str(collection), [str(req_file)], log, pm)
    assert results["warnings"] == 1
    assert results["success"] == 1


def test_post_script_assertion_fails_request(collection, log, pm, transport):
    """Test a failing pm.test in a post-script fails the request."""
    req_file = _write_request(collection / "health.yaml")
    (collection / "health-pos-script.py").write_text(
        "pm.test('status is 201', lambda: None)\n"
        "def check():\n"
        "    assert res.get_status() == 201, 'wrong status'\n"
        "pm.test('created', check)\n",
        encoding="utf-8",
    )

    with pytest.raises(Exception, match="health.yaml"):
        run_collection(str(collection), str(collection), [str(req_file)], log, pm)

    assert len(pm.passed_tests) == 1
    assert len(pm.failed_tests) == 1


def test_unparseable_request_file_fails(collection, log, pm, transport):
    """Test a broken request file is reported without dispatching."""
    bad = collection / "bad.yaml"
    bad.write_text("", encoding="utf-8")

    with pytest.raises(Exception, match="bad.yaml"):
        run_collection(str(collection), str(collection), [str(bad)], log, pm)
    assert transport.calls == []


def test_setup_logging_creates_log_file(tmp_path):
    """Test the log file is created under logs/ and receives messages."""
    log, log_file_path = setup_logging(str(tmp_path), "Auth Service", "desc")
    log.debug("debug line")
    for handler in log.handlers:
        handler.flush()

    assert log_file_path.startswith(str(tmp_path / "logs" / "run_Auth_Service_"))
    with open(log_file_path, encoding="utf-8") as f:
        content = f.read()
    assert "INFO - Collection Name: Auth Service" in content
    assert "DEBUG - debug line" in content
    assert any(isinstance(h.formatter, ColorFormatter) for h in log.handlers)


def test_color_formatter_highlights_hook_lines():
    """Test hook success and start lines get their console colors."""
    formatter = ColorFormatter()

    def fmt(level, msg):
        return formatter.format(logging.LogRecord("reqhooks", level, __file__, 1, msg, None, None))

    assert fmt(logging.INFO, "✅ Success: OK").startswith("\033[92m")
    assert fmt(logging.INFO, "🚀 Executing: GET http://x").startswith("\033[96m")
    assert fmt(logging.ERROR, "❌ Error 404: {}").startswith("\033[1m\033[91mERROR: ")
    assert fmt(logging.INFO, "plain") == "plain"
