"""
Batched request execution with per-item failure isolation.

Two strategies, chosen by the coordinator from the transport's capabilities:

- **Concurrent** (:class:`BatchExecutor`): prepare every item, dispatch every
  prepared request without waiting, then resolve each future into its own
  result slot.  One HTTP round trip per item; no retries.
- **Sequential** (:func:`execute_sequentially`): run each item through the
  full single-request retry path, one after another.

Either way the returned dict has exactly the input keys, in input order, and
every failure (preparation, transport, HTTP status, malformed JSON) lands in
that key's :class:`BatchResult` instead of propagating.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Hashable, Mapping
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .errors import RequestTimeoutError, TinybirdError, TransportError
from .parser import parse_response
from .transport import AsyncTransport, Response

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BatchRequestItem:
    """One logical request inside a batch."""

    method: str
    path: str
    query: Mapping[str, object] = field(default_factory=dict)
    body: Mapping[str, object] | str | None = None
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Detach from the caller's containers so later mutation cannot leak in
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "query", dict(self.query))
        object.__setattr__(self, "headers", dict(self.headers))
        if isinstance(self.body, Mapping):
            object.__setattr__(self, "body", dict(self.body))

    @classmethod
    def get(cls, path: str, query: Mapping[str, object] | None = None) -> BatchRequestItem:
        return cls("GET", path, query or {})

    @classmethod
    def post(
        cls,
        path: str,
        body: Mapping[str, object] | str | None = None,
        query: Mapping[str, object] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> BatchRequestItem:
        return cls("POST", path, query or {}, body, headers or {})


@dataclass(frozen=True)
class PreparedRequest:
    """A batch item after path and body encoding; ready for the transport."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None


class BatchResult(Generic[T]):
    """
    Outcome of one batch item: either data or the error that replaced it.

    Build with :meth:`success` or :meth:`failure`.  :meth:`get_data` raises
    the captured error on a failure; :meth:`get_data_or_none` never raises.
    """

    __slots__ = ("_success", "_data", "_exception")

    def __init__(
        self,
        success: bool,
        data: T | None = None,
        exception: TinybirdError | None = None,
    ) -> None:
        if success and exception is not None:
            raise ValueError("A successful BatchResult cannot carry an exception")
        if not success and exception is None:
            raise ValueError("A failed BatchResult requires an exception")
        self._success = success
        self._data = data
        self._exception = exception

    @classmethod
    def success(cls, data: T) -> BatchResult[T]:
        return cls(True, data)

    @classmethod
    def failure(cls, exception: TinybirdError) -> BatchResult[T]:
        return cls(False, None, exception)

    def is_success(self) -> bool:
        return self._success

    def is_failure(self) -> bool:
        return not self._success

    def get_data(self) -> T:
        """
        Return the data of a successful item.

        Raises:
            TinybirdError: The captured error, when the item failed.
        """
        if not self._success:
            raise self._exception  # type: ignore[misc]
        return self._data  # type: ignore[return-value]

    def get_data_or_none(self) -> T | None:
        return self._data if self._success else None

    def get_exception(self) -> TinybirdError | None:
        return self._exception

    def map(self, func: Callable[[T], object]) -> BatchResult:
        """Transform the data of a success; failures pass through unchanged."""
        if not self._success:
            return self
        return BatchResult.success(func(self._data))  # type: ignore[arg-type]

    def __repr__(self) -> str:
        if self._success:
            return f"BatchResult.success({self._data!r})"
        return f"BatchResult.failure({self._exception!r})"


# ---------------------------------------------------------------------------
# Failure capture
# ---------------------------------------------------------------------------

def to_sdk_error(exc: BaseException) -> TinybirdError:
    """
    Normalize any exception caught while processing a batch item.

    Transport failures become :class:`RequestTimeoutError`; other SDK errors
    pass through; anything else is wrapped in :class:`TinybirdError` with the
    original kept as ``__cause__``.
    """
    if isinstance(exc, TransportError):
        wrapped: TinybirdError = RequestTimeoutError(str(exc))
        wrapped.__cause__ = exc
        return wrapped
    if isinstance(exc, TinybirdError):
        return exc
    wrapped = TinybirdError(f"{type(exc).__name__}: {exc}")
    wrapped.__cause__ = exc
    return wrapped


def _failed_future(exc: BaseException) -> Future:
    future: Future = Future()
    future.set_exception(exc)
    return future


def _log_summary(strategy: str, results: Mapping[K, BatchResult]) -> None:
    failed = [key for key, result in results.items() if result.is_failure()]
    logger.info(
        "Batch (%s) complete: %d succeeded, %d failed",
        strategy, len(results) - len(failed), len(failed),
    )
    for key in failed:
        logger.warning("Batch item %r failed: %s", key, results[key].get_exception())


# ---------------------------------------------------------------------------
# Concurrent strategy
# ---------------------------------------------------------------------------

class BatchExecutor:
    """
    Fire-all-then-collect execution over an :class:`AsyncTransport`.

    Each item gets a single attempt.  Resolution walks the futures in
    submission order, but every future was already in flight, so total
    latency tracks the slowest item rather than the sum.
    """

    def __init__(self, transport: AsyncTransport, token: str = "") -> None:
        self.transport = transport
        self.token = token

    def dispatch(self, request: PreparedRequest) -> Future:
        return self.transport.send_async(
            request.method,
            request.path,
            request.headers,
            request.body,
        )

    def dispatch_all(
        self,
        requests: Mapping[K, BatchRequestItem],
        prepare: Callable[[BatchRequestItem], PreparedRequest],
    ) -> dict[K, Future]:
        """
        Prepare every item, then dispatch every prepared request.

        An item that fails to prepare or dispatch gets an already-failed
        future; the others are unaffected.

        Args:
            requests: Keyed batch items.
            prepare: Encodes one item (path, query, body, headers).

        Returns:
            Dict key → future, in input key order.
        """
        futures: dict[K, Future] = {}
        prepared: dict[K, PreparedRequest] = {}

        for key, item in requests.items():
            try:
                prepared[key] = prepare(item)
            except Exception as exc:
                futures[key] = _failed_future(exc)

        for key, request in prepared.items():
            try:
                futures[key] = self.dispatch(request)
            except Exception as exc:
                futures[key] = _failed_future(exc)

        logger.debug("Dispatched %d of %d batch requests", len(prepared), len(requests))
        return {key: futures[key] for key in requests}

    def resolve(self, future: Future) -> BatchResult[dict]:
        """Wait for one future and turn its outcome into a :class:`BatchResult`."""
        try:
            response: Response = future.result()
            return BatchResult.success(parse_response(response, self.token))
        except Exception as exc:
            return BatchResult.failure(to_sdk_error(exc))

    def wait_all(self, futures: Mapping[K, Future]) -> dict[K, BatchResult[dict]]:
        results = {key: self.resolve(future) for key, future in futures.items()}
        _log_summary("concurrent", results)
        return results

    def execute(
        self,
        requests: Mapping[K, BatchRequestItem],
        prepare: Callable[[BatchRequestItem], PreparedRequest],
    ) -> dict[K, BatchResult[dict]]:
        return self.wait_all(self.dispatch_all(requests, prepare))


# ---------------------------------------------------------------------------
# Sequential fallback
# ---------------------------------------------------------------------------

def execute_sequentially(
    requests: Mapping[K, BatchRequestItem],
    request_fn: Callable[[BatchRequestItem], dict],
) -> dict[K, BatchResult[dict]]:
    """
    Run each item through ``request_fn`` (the full retry path) in order.

    A slow or retrying item delays every item after it; an item that fails
    does not stop the rest.

    Args:
        requests: Keyed batch items.
        request_fn: Executes one item and returns its decoded body.

    Returns:
        Dict key → :class:`BatchResult`, in input key order.
    """
    results: dict[K, BatchResult[dict]] = {}

    for key, item in requests.items():
        try:
            results[key] = BatchResult.success(request_fn(item))
        except Exception as exc:
            results[key] = BatchResult.failure(to_sdk_error(exc))

    _log_summary("sequential", results)
    return results
