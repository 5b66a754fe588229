# -*- coding: utf-8 -*-
#
# ReqHooks - Request/Response hooks for HTTP request collections
# Author: Huberto Gastal Mayer (hubertogm@gmail.com)
# License: GPLv3 (https://www.gnu.org/licenses/gpl-3.0.html)
# Project: ReqHooks - A CLI tool for executing HTTP request collections defined in YAML
#

import json
import logging
from datetime import datetime, timezone

"""
Collection-level hooks, executed by the runner around every request.
In scripts, the request is available as 'req' and the response as 'res'.
"""

logger = logging.getLogger('reqhooks')

TIMESTAMP_HEADER = 'X-Request-Timestamp'
USER_AGENT_HEADER = 'User-Agent'
USER_AGENT = 'Bruno-Auth-Service-Collection/1.0.0'
DEFAULT_SUCCESS_MESSAGE = 'OK'


def iso_timestamp(now=None):
    """Returns a UTC ISO-8601 timestamp with milliseconds, e.g. 2025-01-01T12:00:00.000Z"""
    if now is None:
        now = datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class RequestContext:
    """
    Mutable view of an outgoing request, handed to the pre-request hook
    and to request pre-scripts before the request is dispatched.
    """

    def __init__(self, method, url, headers=None, data=None, json_payload=None, auth=None, files=None):
        self.method = method.upper()
        self.url = url
        self.headers = dict(headers or {})
        self.data = data
        self.json = json_payload
        self.auth = auth
        self.files = files

    def get_method(self):
        return self.method

    def get_url(self):
        return self.url

    def set_url(self, url):
        self.url = url

    def _find_header(self, name):
        for key in self.headers:
            if key.lower() == name.lower():
                return key
        return None

    def get_header(self, name):
        """Case-insensitive header lookup."""
        key = self._find_header(name)
        return self.headers[key] if key is not None else None

    def set_header(self, name, value):
        """Sets a header, replacing any existing one with the same name (any case)."""
        self.remove_header(name)
        self.headers[name] = value

    def remove_header(self, name):
        key = self._find_header(name)
        if key is not None:
            del self.headers[key]

    def get_headers(self):
        return self.headers

    def get_body(self):
        return self.json if self.json is not None else self.data

    def __repr__(self):
        return f"<RequestContext {self.method} {self.url}>"


class ResponseContext:
    """
    Read-only view of a received response, handed to the post-response hook
    and to request post-scripts.
    """

    def __init__(self, status, status_text='', body=None, headers=None, response_time=None):
        self.status = status
        self.status_text = status_text
        self.body = body
        self.headers = dict(headers or {})
        self.response_time = response_time

    @classmethod
    def from_response(cls, response, duration_ms=None):
        """Builds a context from a requests.Response, decoding JSON bodies when possible."""
        try:
            body = response.json()
        except ValueError:
            body = response.text
        return cls(
            response.status_code,
            response.reason or '',
            body,
            headers=response.headers,
            response_time=duration_ms
        )

    def get_status(self):
        return self.status

    def get_status_text(self):
        return self.status_text

    def get_body(self):
        return self.body

    def get_headers(self):
        return self.headers

    def get_response_time(self):
        return self.response_time

    def __repr__(self):
        return f"<ResponseContext {self.status} {self.status_text}>"


# --- Hooks ---

def pre_request(req, log=None):
    """Logs the outgoing request and adds the timestamp and User-Agent headers."""
    log = log or logger
    log.info(f"🚀 Executing: {req.get_method()} {req.get_url()}")

    req.set_header(TIMESTAMP_HEADER, iso_timestamp())
    req.set_header(USER_AGENT_HEADER, USER_AGENT)


def post_response(res, log=None):
    """Logs the response status, then either the error body or the success message."""
    log = log or logger
    status = res.get_status()
    log.info(f"📨 Response: {status} - {res.get_status_text()}")

    body = res.get_body()
    if status >= 400:
        log.error(f"❌ Error {status}: {json.dumps(body, indent=2, ensure_ascii=False, default=str)}")
    else:
        message = body.get('message') if isinstance(body, dict) else None
        log.info(f"✅ Success: {message or DEFAULT_SUCCESS_MESSAGE}")
