"""
HTTP transports the request execution layer sends through.

The core only depends on two small contracts:

- :class:`Transport`: blocking ``send(method, path, headers, body)``.
- :class:`AsyncTransport`: additionally ``send_async(...)`` returning a
  :class:`concurrent.futures.Future` whose ``result()`` yields the response.

:func:`supports_async` is the capability check the coordinator uses to pick
the concurrent batch strategy.  The bundled implementations wrap one
``requests.Session``.  :class:`ThreadedRequestsTransport` calls it from
several worker threads at once, and ``requests`` does not document the
Session as thread-safe: a caller passing its own ``session`` must supply one
that tolerates concurrent use, or set ``max_workers=1``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import requests

from .config import DEFAULT_MAX_WORKERS, DEFAULT_TIMEOUT_SECONDS
from .errors import TransportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Response:
    """
    A completed HTTP exchange.

    ``headers`` maps each header name to all of its values so that repeated
    headers survive; ``body`` holds the raw bytes exactly as received.
    """

    status_code: int
    headers: Mapping[str, Sequence[str]] = field(default_factory=dict)
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def header(self, name: str) -> str | None:
        """First value of header ``name`` (case-insensitive), or ``None``."""
        wanted = name.lower()
        for key, values in self.headers.items():
            if key.lower() == wanted:
                return values[0] if values else None
        return None

    @classmethod
    def from_requests(cls, response: requests.Response) -> Response:
        return cls(
            status_code=response.status_code,
            headers={name: [value] for name, value in response.headers.items()},
            body=response.content or b"",
        )


@runtime_checkable
class Transport(Protocol):
    def send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> Response: ...


@runtime_checkable
class AsyncTransport(Transport, Protocol):
    def send_async(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> Future: ...


def supports_async(transport: Transport) -> AsyncTransport | None:
    """
    Return ``transport`` typed as :class:`AsyncTransport` if it can dispatch
    without blocking, else ``None``.
    """
    if callable(getattr(transport, "send_async", None)):
        return transport  # type: ignore[return-value]
    return None


# ---------------------------------------------------------------------------
# requests-based implementations
# ---------------------------------------------------------------------------

class RequestsTransport:
    """Blocking transport over a ``requests.Session``."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        default_headers: Mapping[str, str] | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        if default_headers:
            self.session.headers.update(default_headers)

    def send(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> Response:
        """
        Send one request and return the response, whatever its status.

        Args:
            method: HTTP verb.
            path: Absolute path (already version-prefixed and query-encoded).
            headers: Per-request headers, merged over the session defaults.
            body: Encoded body or ``None``.

        Returns:
            The :class:`Response`; non-2xx statuses are not raised here.

        Raises:
            TransportError: Connection failure, timeout, or any other
                ``requests`` error that produced no response.
        """
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            raw = self.session.request(
                method,
                url,
                headers=dict(headers),
                data=body.encode("utf-8") if body is not None else None,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            logger.debug("%s %s failed at transport level: %s", method, path, exc)
            raise TransportError(str(exc) or type(exc).__name__) from exc

        return Response.from_requests(raw)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> RequestsTransport:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ThreadedRequestsTransport(RequestsTransport):
    """
    :class:`RequestsTransport` that can also dispatch without blocking.

    ``send_async`` hands the blocking ``send`` to a thread pool and returns its
    future immediately, so a batch can have every request in flight at once.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        default_headers: Mapping[str, str] | None = None,
        session: requests.Session | None = None,
        max_workers: int = DEFAULT_MAX_WORKERS,
    ) -> None:
        super().__init__(base_url, timeout, default_headers, session)
        self._pool = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="tinybird-http",
        )

    def send_async(
        self,
        method: str,
        path: str,
        headers: Mapping[str, str],
        body: str | None = None,
    ) -> Future:
        return self._pool.submit(self.send, method, path, headers, body)

    def close(self) -> None:
        self._pool.shutdown(wait=True)
        super().close()
