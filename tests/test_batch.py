"""
Unit tests for tinybird_sdk/batch.py.

Covers the BatchResult accessors (get_data raises on failure,
get_data_or_none never does), BatchRequestItem immutability, and both batch
strategies: completeness (output keys == input keys), per-item isolation of
preparation, dispatch, transport, HTTP and parse failures, single-attempt
dispatch in the concurrent path, and full retries in the sequential path.
"""

from __future__ import annotations

import pytest

from tinybird_sdk.batch import (
    BatchExecutor,
    BatchRequestItem,
    BatchResult,
    PreparedRequest,
    execute_sequentially,
    to_sdk_error,
)
from tinybird_sdk.errors import (
    ApiError,
    AuthenticationError,
    ParseError,
    RequestTimeoutError,
    TinybirdError,
    TransportError,
)

from .conftest import FakeAsyncTransport, make_response


def _prepare(item: BatchRequestItem) -> PreparedRequest:
    """Minimal preparation: version prefix only, body ignored."""
    return PreparedRequest(item.method, f"/v0/{item.path.lstrip('/')}", dict(item.headers), None)


# ---------------------------------------------------------------------------
# BatchResult
# ---------------------------------------------------------------------------

class TestBatchResult:

    def test_success_exposes_data(self):
        result = BatchResult.success({"rows": 3})
        assert result.is_success() is True
        assert result.is_failure() is False
        assert result.get_data() == {"rows": 3}
        assert result.get_data_or_none() == {"rows": 3}
        assert result.get_exception() is None

    def test_failure_get_data_raises_captured_error(self):
        error = ApiError(500, message="boom")
        result = BatchResult.failure(error)
        with pytest.raises(ApiError) as excinfo:
            result.get_data()
        assert excinfo.value is error

    def test_failure_get_data_or_none_returns_none(self):
        result = BatchResult.failure(RequestTimeoutError("timed out"))
        assert result.get_data_or_none() is None
        assert result.is_failure() is True
        assert isinstance(result.get_exception(), RequestTimeoutError)

    def test_failure_without_exception_is_rejected(self):
        with pytest.raises(ValueError, match="requires an exception"):
            BatchResult(False)

    def test_success_with_exception_is_rejected(self):
        with pytest.raises(ValueError, match="cannot carry an exception"):
            BatchResult(True, {"rows": 1}, ApiError(500))

    def test_success_with_falsy_data(self):
        assert BatchResult.success({}).get_data() == {}

    def test_map_transforms_success_only(self):
        assert BatchResult.success({"n": 2}).map(lambda d: d["n"] * 10).get_data() == 20
        failure = BatchResult.failure(ApiError(400))
        assert failure.map(lambda d: d["n"]) is failure


# ---------------------------------------------------------------------------
# BatchRequestItem
# ---------------------------------------------------------------------------

class TestBatchRequestItem:

    def test_get_constructor(self):
        item = BatchRequestItem.get("pipes/top.json", {"limit": 5})
        assert item.method == "GET"
        assert item.query == {"limit": 5}
        assert item.body is None

    def test_post_constructor(self):
        item = BatchRequestItem.post("events", {"a": 1}, {"name": "ds"}, {"X-Trace": "1"})
        assert item.method == "POST"
        assert item.body == {"a": 1}
        assert item.headers == {"X-Trace": "1"}

    def test_method_is_uppercased(self):
        assert BatchRequestItem("get", "x").method == "GET"

    def test_caller_mutation_does_not_leak_in(self):
        query = {"q": "SELECT 1"}
        item = BatchRequestItem.get("sql", query)
        query["q"] = "DROP"
        assert item.query == {"q": "SELECT 1"}

    def test_is_frozen(self):
        item = BatchRequestItem.get("sql")
        with pytest.raises(AttributeError):
            item.path = "other"


# ---------------------------------------------------------------------------
# Concurrent strategy
# ---------------------------------------------------------------------------

class TestBatchExecutor:

    def test_all_success(self):
        transport = FakeAsyncTransport({
            "/v0/a": [make_response(200, {"v": "a"})],
            "/v0/b": [make_response(200, {"v": "b"})],
        })
        results = BatchExecutor(transport).execute(
            {"a": BatchRequestItem.get("a"), "b": BatchRequestItem.get("b")},
            _prepare,
        )
        assert results["a"].get_data() == {"v": "a"}
        assert results["b"].get_data() == {"v": "b"}

    def test_one_http_failure_is_isolated(self):
        transport = FakeAsyncTransport({
            "/v0/x": [make_response(200, {"data": [1]})],
            "/v0/y": [make_response(500, {"error": "boom"})],
        })
        results = BatchExecutor(transport).execute(
            {"a": BatchRequestItem.get("x"), "b": BatchRequestItem.get("y")},
            _prepare,
        )
        assert results["a"].get_data() == {"data": [1]}
        assert isinstance(results["b"].get_exception(), ApiError)
        assert results["b"].get_exception().status_code == 500

    def test_concurrent_path_is_single_attempt(self):
        transport = FakeAsyncTransport({
            "/v0/y": [make_response(503), make_response(200, {"late": True})],
        })
        results = BatchExecutor(transport).execute({"b": BatchRequestItem.get("y")}, _prepare)
        assert results["b"].is_failure()
        assert transport.attempts("/v0/y") == 1

    def test_transport_failure_becomes_timeout_error(self):
        transport = FakeAsyncTransport({
            "/v0/ok": [make_response(200, {"ok": 1})],
            "/v0/down": [TransportError("connection refused")],
        })
        results = BatchExecutor(transport).execute(
            {"ok": BatchRequestItem.get("ok"), "down": BatchRequestItem.get("down")},
            _prepare,
        )
        assert results["ok"].is_success()
        error = results["down"].get_exception()
        assert isinstance(error, RequestTimeoutError)
        assert isinstance(error.__cause__, TransportError)

    def test_malformed_success_body_is_parse_failure(self):
        transport = FakeAsyncTransport({"/v0/bad": [make_response(200, "nope")]})
        results = BatchExecutor(transport).execute({"k": BatchRequestItem.get("bad")}, _prepare)
        assert isinstance(results["k"].get_exception(), ParseError)

    def test_authentication_failure_keeps_token_masked(self):
        transport = FakeAsyncTransport({"/v0/p": [make_response(403, {"error": "Forbidden"})]})
        results = BatchExecutor(transport, token="p.supersecret42").execute(
            {"k": BatchRequestItem.get("p")}, _prepare,
        )
        error = results["k"].get_exception()
        assert isinstance(error, AuthenticationError)
        assert "supersecret" not in str(error)

    def test_preparation_failure_is_isolated(self):
        transport = FakeAsyncTransport({"/v0/good": [make_response(200, {"ok": True})]})

        def prepare(item):
            if item.path == "broken":
                raise TypeError("Object of type set is not JSON serializable")
            return _prepare(item)

        results = BatchExecutor(transport).execute(
            {"broken": BatchRequestItem.get("broken"), "good": BatchRequestItem.get("good")},
            prepare,
        )
        assert results["good"].get_data() == {"ok": True}
        error = results["broken"].get_exception()
        assert type(error) is TinybirdError
        assert isinstance(error.__cause__, TypeError)
        assert transport.async_calls == ["/v0/good"]

    def test_dispatch_failure_is_isolated(self):
        class ExplodingTransport(FakeAsyncTransport):
            def send_async(self, method, path, headers, body=None):
                if path == "/v0/explode":
                    raise RuntimeError("pool shut down")
                return super().send_async(method, path, headers, body)

        transport = ExplodingTransport({"/v0/fine": [make_response(200, {"n": 1})]})
        results = BatchExecutor(transport).execute(
            {"x": BatchRequestItem.get("explode"), "y": BatchRequestItem.get("fine")},
            _prepare,
        )
        assert results["x"].is_failure()
        assert results["y"].get_data() == {"n": 1}

    def test_all_prepared_before_any_dispatch(self):
        order: list[str] = []
        transport = FakeAsyncTransport({
            "/v0/a": [make_response(200, {})],
            "/v0/b": [make_response(200, {})],
        })
        original = transport.send_async

        def tracking_send_async(method, path, headers, body=None):
            order.append(f"dispatch {path}")
            return original(method, path, headers, body)

        transport.send_async = tracking_send_async

        def prepare(item):
            order.append(f"prepare {item.path}")
            return _prepare(item)

        BatchExecutor(transport).execute(
            {"a": BatchRequestItem.get("a"), "b": BatchRequestItem.get("b")}, prepare,
        )
        assert order == ["prepare a", "prepare b", "dispatch /v0/a", "dispatch /v0/b"]

    def test_output_keys_match_input_keys_in_order(self):
        transport = FakeAsyncTransport({"/v0/ok": [make_response(200, {})]})
        requests = {
            3: BatchRequestItem.get("missing"),
            "z": BatchRequestItem.get("ok"),
            "a": BatchRequestItem.get("ok"),
        }
        results = BatchExecutor(transport).execute(requests, _prepare)
        assert list(results) == [3, "z", "a"]
        assert results[3].is_failure()

    def test_every_item_failing_still_returns_all_keys(self):
        transport = FakeAsyncTransport({"/v0/x": [TransportError("down")]})
        requests = {f"k{i}": BatchRequestItem.get("x") for i in range(5)}
        results = BatchExecutor(transport).execute(requests, _prepare)
        assert set(results) == set(requests)
        assert all(result.is_failure() for result in results.values())


# ---------------------------------------------------------------------------
# Sequential fallback
# ---------------------------------------------------------------------------

class TestExecuteSequentially:

    def test_early_failure_does_not_abort_later_items(self):
        calls: list[str] = []

        def request_fn(item):
            calls.append(item.path)
            if item.path == "first":
                raise ApiError(400, message="bad")
            return {"path": item.path}

        results = execute_sequentially(
            {"one": BatchRequestItem.get("first"), "two": BatchRequestItem.get("second")},
            request_fn,
        )
        assert calls == ["first", "second"]
        assert results["one"].get_exception().status_code == 400
        assert results["two"].get_data() == {"path": "second"}

    def test_unexpected_exception_is_captured(self):
        def request_fn(item):
            raise KeyError("oops")

        results = execute_sequentially({"k": BatchRequestItem.get("x")}, request_fn)
        assert isinstance(results["k"].get_exception(), TinybirdError)

    def test_empty_batch(self):
        assert execute_sequentially({}, lambda item: {}) == {}


class TestToSdkError:

    def test_sdk_errors_pass_through(self):
        error = ApiError(404)
        assert to_sdk_error(error) is error

    def test_transport_error_becomes_request_timeout(self):
        assert isinstance(to_sdk_error(TransportError("x")), RequestTimeoutError)

    def test_foreign_exception_is_wrapped(self):
        wrapped = to_sdk_error(ValueError("bad value"))
        assert "ValueError: bad value" in str(wrapped)
        assert isinstance(wrapped.__cause__, ValueError)
