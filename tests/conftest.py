from collections import namedtuple
from urllib.parse import parse_qsl, urlsplit

import pytest

import stalker
from stalker import StalkerPortal

PORTAL_URL = "http://example.com/c"
MAC = "00:1A:79:12:34:56"

Call = namedtuple("Call", "url params headers timeout")

_INVALID_JSON = object()


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self._payload = payload
        self.status_code = status_code

    @property
    def text(self):
        return "<html>not json</html>" if self._payload is _INVALID_JSON else repr(self._payload)

    def json(self):
        if self._payload is _INVALID_JSON:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload


def invalid_json(status_code=200):
    return FakeResponse(_INVALID_JSON, status_code)


def data(*records):
    return {"js": {"data": list(records)}}


def paged(*pages):
    """Handler serving the given record lists as pages 1..n, empty afterwards."""
    def handler(params):
        index = int(params["p"]) - 1
        return data(*pages[index]) if index < len(pages) else data()
    return handler


class FakePortalSession:
    """Stands in for requests.Session, routing on the type/action query parameters."""

    def __init__(self):
        self.handlers = {}
        self.calls = []
        self.closed = False
        self.route("stb", "handshake", {"js": {"token": "abc"}})

    def route(self, type_, action, handler):
        self.handlers[(type_, action)] = handler

    def get(self, url, headers=None, timeout=None):
        params = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
        self.calls.append(Call(url, params, dict(headers or {}), timeout))
        handler = self.handlers.get((params.get("type"), params.get("action")))
        if handler is None:
            return FakeResponse(data())
        if callable(handler):
            handler = handler(params)
        if isinstance(handler, Exception):
            raise handler
        if isinstance(handler, FakeResponse):
            return handler
        return FakeResponse(handler)

    def close(self):
        self.closed = True

    def calls_for(self, action, type_=None):
        return [
            c for c in self.calls
            if c.params.get("action") == action and (type_ is None or c.params.get("type") == type_)
        ]


@pytest.fixture
def session():
    return FakePortalSession()


@pytest.fixture
def portal(session):
    return StalkerPortal(PORTAL_URL, MAC, session=session)


@pytest.fixture
def authed_portal(portal):
    portal.handshake()
    return portal


@pytest.fixture
def patched_session(monkeypatch, session):
    """Make every StalkerPortal built without a session use the fake one."""
    monkeypatch.setattr(stalker, "build_session", lambda max_retries, backoff_factor: session)
    return session
