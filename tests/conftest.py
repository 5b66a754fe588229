"""Shared fixtures for ReqHooks tests."""

import json
import logging

import pytest
import requests

from reqhooks.reqhooks_helpers import ReqHooksHelpers


def make_response(status=200, body=None, reason="OK", headers=None):
    """Builds a real requests.Response without touching the network."""
    response = requests.Response()
    response.status_code = status
    response.reason = reason
    response.encoding = "utf-8"
    if isinstance(body, (dict, list)):
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (body or "").encode("utf-8")
    response.headers.update(headers or {})
    return response


class FakeTransport:
    """Stands in for requests.request and records every call."""

    def __init__(self, responses=None):
        self.calls = []
        self.responses = list(responses or [])

    def __call__(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if self.responses:
            return self.responses.pop(0)
        return make_response(200, {"message": "ok"})


@pytest.fixture
def log(caplog):
    caplog.set_level(logging.DEBUG, logger="reqhooks")
    return logging.getLogger("reqhooks")


@pytest.fixture
def pm(log):
    return ReqHooksHelpers(log)


@pytest.fixture
def transport(monkeypatch):
    fake = FakeTransport()
    monkeypatch.setattr(requests, "request", fake)
    return fake


@pytest.fixture(autouse=True)
def reset_reqhooks_logger():
    """setup_logging attaches file/stdout handlers; drop them after each test."""
    yield
    logger = logging.getLogger("reqhooks")
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()
