import threading

import pytest
import requests
from requests.utils import get_encoding_from_headers


class FakeResponse(requests.Response):
    """A real requests.Response with its body preloaded, so text decoding
    and iter_content behave exactly as they do off the wire."""

    def __init__(self, body, content_type="text/html; charset=utf-8", status=200):
        super().__init__()
        self.status_code = status
        if content_type:
            self.headers["Content-Type"] = content_type
        self._content = body if isinstance(body, bytes) else body.encode("utf-8")
        self._content_consumed = True
        self.encoding = get_encoding_from_headers(self.headers)


class FakeSession:
    """Stands in for requests.Session; routes are keyed by absolute URL."""

    def __init__(self, routes=None, on_get=None):
        self.routes = dict(routes or {})
        self.on_get = on_get
        self.calls = []
        self.headers_seen = []
        self._lock = threading.Lock()

    def get(self, url, timeout=None, headers=None, **kwargs):
        with self._lock:
            self.calls.append(url)
            self.headers_seen.append(dict(headers or {}))
        if self.on_get:
            self.on_get(url)
        route = self.routes.get(url)
        if route is None:
            return FakeResponse("not found", "text/plain", status=404)
        if isinstance(route, BaseException):
            raise route
        return route


@pytest.fixture
def fake_session():
    def make(routes=None, on_get=None):
        return FakeSession(routes, on_get)

    return make


def html(body, head=""):
    return FakeResponse(
        f"<!DOCTYPE html><html><head>{head}</head><body>{body}</body></html>"
    )


def css(text):
    return FakeResponse(text, "text/css")
