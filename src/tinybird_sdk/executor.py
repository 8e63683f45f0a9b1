"""
Request construction and routing: the single entry point for API resources.

:class:`RequestCoordinator` turns ``(method, path, query, body, headers)``
into a prepared request and sends it either through the retry loop (one
request) or through a batch strategy (many).

Design notes:
- Paths are always version-prefixed: ``users`` and ``/users`` both become
  ``/v0/users``.
- Mapping bodies are JSON-encoded and tagged ``application/json``; string
  bodies pass through untouched (NDJSON, CSV, SQL text).
- Caller-supplied header dicts are never mutated.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable, Mapping, Sequence
from urllib.parse import urlencode

from .batch import (
    BatchExecutor,
    BatchRequestItem,
    BatchResult,
    K,
    PreparedRequest,
    execute_sequentially,
)
from .config import ClientOptions, build_default_headers
from .retry import RetryPolicy, execute_with_retry
from .transport import ThreadedRequestsTransport, Transport, supports_async

logger = logging.getLogger(__name__)

Body = Mapping[str, object] | str | None


# ---------------------------------------------------------------------------
# Path, query, and body encoding
# ---------------------------------------------------------------------------

def _encode_query_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        return ",".join(_encode_query_value(v) for v in value)
    return str(value)


def build_query(query: Mapping[str, object]) -> str:
    """
    URL-encode query parameters, preserving their order.

    ``None`` values are dropped, booleans become ``true``/``false``, and
    lists/tuples are comma-joined.

    Args:
        query: Parameter name → value.

    Returns:
        Encoded query string without the leading ``?``.
    """
    return urlencode(
        [(name, _encode_query_value(value)) for name, value in query.items() if value is not None]
    )


def build_path(path: str, query: Mapping[str, object] | None, api_version: str) -> str:
    """
    Version-prefix ``path`` and append the encoded ``query``.

    Examples::

        build_path("sql", {"q": "SELECT 1"}, "v0")  →  "/v0/sql?q=SELECT+1"
        build_path("/pipes/p.json?a=1", {"b": 2}, "v0")  →  "/v0/pipes/p.json?a=1&b=2"
    """
    full_path = f"/{api_version}/{path.lstrip('/')}"
    encoded = build_query(query or {})
    if not encoded:
        return full_path

    separator = "&" if "?" in full_path else "?"
    return f"{full_path}{separator}{encoded}"


def prepare_body(
    body: Body,
    headers: Mapping[str, str] | None = None,
) -> tuple[str | None, dict[str, str]]:
    """
    Encode a request body and compute the headers to send with it.

    Args:
        body: Mapping (JSON-encoded), string (sent verbatim), or ``None``.
            ``None``, ``""`` and an empty mapping all mean "no body".
        headers: Caller headers; copied, never mutated.

    Returns:
        Tuple of ``(encoded_body or None, headers)``.

    Raises:
        TypeError: The mapping holds values JSON cannot encode.
    """
    out_headers = dict(headers or {})

    if body is None or body == "" or (isinstance(body, Mapping) and len(body) == 0):
        return None, out_headers

    if isinstance(body, str):
        return body, out_headers

    out_headers["Content-Type"] = "application/json"
    return json.dumps(body), out_headers


# ---------------------------------------------------------------------------
# Coordinator
# ---------------------------------------------------------------------------

class RequestCoordinator:
    """
    Façade combining request preparation, retry, and batch execution.

    Args:
        options: Immutable client settings (API version, retry policy,
            timeout, base URL, token).
        transport: HTTP transport to send through.  Defaults to a
            :class:`~tinybird_sdk.transport.ThreadedRequestsTransport` built
            from ``options``, which supports concurrent batches.
        sleep: Blocking wait used between retries (seconds).
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        transport: Transport | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.options = options or ClientOptions()
        self.transport = transport or ThreadedRequestsTransport(
            self.options.base_url,
            timeout=self.options.timeout,
            default_headers=build_default_headers(self.options),
        )
        self.retry_policy = RetryPolicy.from_options(self.options)
        self._sleep = sleep

    def prepare(self, item: BatchRequestItem) -> PreparedRequest:
        body, headers = prepare_body(item.body, item.headers)
        return PreparedRequest(
            method=item.method,
            path=build_path(item.path, item.query, self.options.api_version),
            headers=headers,
            body=body,
        )

    def request(
        self,
        method: str,
        path: str,
        query: Mapping[str, object] | None = None,
        body: Body = None,
        headers: Mapping[str, str] | None = None,
    ) -> dict:
        """
        Execute one request with retry and return its decoded JSON body.

        Args:
            method: HTTP verb.
            path: Path relative to the API version (``"pipes"``).
            query: Query parameters.
            body: Mapping (sent as JSON), string (sent verbatim), or ``None``.
            headers: Extra request headers.

        Returns:
            Decoded JSON object (``{}`` for an empty body).

        Raises:
            AuthenticationError: 401/403.
            RateLimitError: 429 that persisted through every attempt.
            RequestTimeoutError: Transport failures on every attempt.
            ApiError: Any other failure status.
            ParseError: Malformed JSON in a success response.
            TypeError: A mapping body holds values JSON cannot encode; raised
                before anything is sent.
        """
        prepared = self.prepare(BatchRequestItem(method, path, query or {}, body, headers or {}))
        logger.debug("%s %s", prepared.method, prepared.path)

        return execute_with_retry(
            lambda: self.transport.send(
                prepared.method,
                prepared.path,
                prepared.headers,
                prepared.body,
            ),
            policy=self.retry_policy,
            token=self.options.token,
            sleep=self._sleep,
        )

    def _request_item(self, item: BatchRequestItem) -> dict:
        return self.request(item.method, item.path, item.query, item.body, item.headers)

    def batch_request(self, requests: Mapping[K, BatchRequestItem]) -> dict[K, BatchResult[dict]]:
        """
        Execute keyed requests and return one :class:`BatchResult` per key.

        Never raises for a failed item: inspect each result instead.

        Retry semantics depend on the transport:

        - If it supports non-blocking dispatch, every request is sent at once
          and each gets **exactly one attempt**; a 429 or 5xx is reported as
          that item's failure without retrying.
        - Otherwise items run one after another through :meth:`request`, with
          the full retry policy each, so one slow item delays the rest.

        Callers that need retries on a flaky Service should batch small sets
        and re-submit the failed keys.

        Args:
            requests: Mapping of caller key → :class:`BatchRequestItem`.

        Returns:
            Dict with exactly the input keys, in input order.
        """
        if not requests:
            return {}

        async_transport = supports_async(self.transport)
        if async_transport is None:
            logger.info("Transport has no async support; running %d requests sequentially", len(requests))
            return execute_sequentially(requests, self._request_item)

        executor = BatchExecutor(async_transport, token=self.options.token)
        return executor.execute(requests, self.prepare)

    def close(self) -> None:
        close = getattr(self.transport, "close", None)
        if callable(close):
            close()
