"""
Shared fixtures and fake transports for the request execution tests.

Fake transports script responses per path (query string ignored).  Each
scripted entry is either a :class:`Response` or an exception instance to
raise; once a path's script runs out, its last entry repeats.  Every call is
recorded so tests can count attempts.
"""

from __future__ import annotations

import json
from concurrent.futures import Future

import pytest
import requests

from tinybird_sdk.config import ClientOptions
from tinybird_sdk.executor import RequestCoordinator
from tinybird_sdk.transport import Response


# ---------------------------------------------------------------------------
# Response builders
# ---------------------------------------------------------------------------

def make_response(
    status_code: int = 200,
    body: dict | list | str | None = None,
    headers: dict[str, str] | None = None,
) -> Response:
    """Build a Response; dict/list bodies are JSON-encoded."""
    if body is None:
        raw = b""
    elif isinstance(body, str):
        raw = body.encode("utf-8")
    else:
        raw = json.dumps(body).encode("utf-8")
    return Response(
        status_code=status_code,
        headers={name: [value] for name, value in (headers or {}).items()},
        body=raw,
    )


def make_requests_response(
    status_code: int = 200,
    content: bytes = b"",
    headers: dict[str, str] | None = None,
) -> requests.Response:
    """Build a real ``requests.Response`` without touching the network."""
    raw = requests.Response()
    raw.status_code = status_code
    raw._content = content
    raw.headers.update(headers or {})
    return raw


# ---------------------------------------------------------------------------
# Fake transports
# ---------------------------------------------------------------------------

class FakeTransport:
    """Blocking transport returning scripted responses per path."""

    def __init__(self, script: dict[str, list] | None = None) -> None:
        self.script = {path: list(entries) for path, entries in (script or {}).items()}
        self.calls: list[dict] = []

    def _next(self, path: str):
        route = path.split("?", 1)[0]
        entries = self.script.get(route)
        if not entries:
            return make_response(404, {"error": f"No route {route}"})
        return entries.pop(0) if len(entries) > 1 else entries[0]

    def send(self, method, path, headers, body=None):
        self.calls.append({"method": method, "path": path, "headers": dict(headers), "body": body})
        entry = self._next(path)
        if isinstance(entry, Exception):
            raise entry
        return entry

    def attempts(self, route: str) -> int:
        return sum(1 for call in self.calls if call["path"].split("?", 1)[0] == route)


class FakeAsyncTransport(FakeTransport):
    """FakeTransport that also offers ``send_async`` with settled futures."""

    def __init__(self, script: dict[str, list] | None = None) -> None:
        super().__init__(script)
        self.async_calls: list[str] = []

    def send_async(self, method, path, headers, body=None):
        self.async_calls.append(path)
        future: Future = Future()
        try:
            future.set_result(self.send(method, path, headers, body))
        except Exception as exc:
            future.set_exception(exc)
        return future


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def options():
    """Default options with a token; retry settings left at their defaults."""
    return ClientOptions(token="p.test-token-1234567890")


@pytest.fixture
def sleeps():
    """List that records every retry wait (seconds) instead of sleeping."""
    return []


@pytest.fixture
def make_coordinator(options, sleeps):
    """Factory: RequestCoordinator over the given transport, never sleeping."""
    def _make(transport, opts: ClientOptions | None = None) -> RequestCoordinator:
        return RequestCoordinator(opts or options, transport, sleep=sleeps.append)
    return _make
