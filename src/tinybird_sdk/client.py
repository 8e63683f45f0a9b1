"""
Client façade and the resource groups that call into the coordinator.

    client = Client.for_region(token, "aws-us-east-1")
    client.query.sql("SELECT 1 AS x")
    results = client.query.batch_sql({"a": "SELECT 1", "b": "SELECT 2"})
    results["a"].get_data()

Batch methods return :class:`~tinybird_sdk.batch.BatchResult` per key and
never raise for a single failed item.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import TypeVar

from .batch import BatchRequestItem, BatchResult
from .config import DEFAULT_LOCAL_PORT, ClientOptions
from .executor import RequestCoordinator
from .params import TriggerSinkParams
from .transport import Transport

K = TypeVar("K", str, int)

# Separates a pipe name from a caller alias in batch_query keys
PIPE_ALIAS_SEPARATOR = "#"


def pipe_name_from_key(key: str) -> str:
    """``"top_pages#q1"`` → ``"top_pages"``; keys without an alias pass through."""
    return key.split(PIPE_ALIAS_SEPARATOR, 1)[0]


class QueryResource:
    """SQL queries against the Query API."""

    def __init__(self, coordinator: RequestCoordinator) -> None:
        self._coordinator = coordinator

    @staticmethod
    def _sql_item(sql: str, params: Mapping[str, object] | None = None) -> BatchRequestItem:
        return BatchRequestItem.get("sql", {"q": sql, **(params or {})})

    def sql(self, sql: str, params: Mapping[str, object] | None = None) -> dict:
        item = self._sql_item(sql, params)
        return self._coordinator.request(item.method, item.path, item.query)

    def batch_sql(self, queries: Mapping[K, str]) -> dict[K, BatchResult[dict]]:
        return self._coordinator.batch_request(
            {key: self._sql_item(sql) for key, sql in queries.items()}
        )


class PipesResource:
    """Published pipe endpoints and sink pipes."""

    def __init__(self, coordinator: RequestCoordinator) -> None:
        self._coordinator = coordinator

    def list(self) -> dict:
        return self._coordinator.request("GET", "pipes")

    def query(self, name: str, params: Mapping[str, object] | None = None) -> dict:
        return self._coordinator.request("GET", f"pipes/{name}.json", params or {})

    def batch_query(
        self,
        queries: Mapping[str, Mapping[str, object]],
    ) -> dict[str, BatchResult[dict]]:
        """
        Query several pipe endpoints at once.

        Keys are pipe names, optionally suffixed with ``#alias`` so one pipe
        can be queried with different parameters in the same batch
        (``{"top_pages#eu": {...}, "top_pages#us": {...}}``).
        """
        return self._coordinator.batch_request({
            key: BatchRequestItem.get(f"pipes/{pipe_name_from_key(key)}.json", params)
            for key, params in queries.items()
        })

    def trigger_sink(self, name: str, params: TriggerSinkParams | None = None) -> dict:
        query = (params or TriggerSinkParams()).to_dict()
        return self._coordinator.request("POST", f"pipes/{name}/sink", query)


class Client:
    """Entry point bundling the coordinator with the API resources."""

    def __init__(
        self,
        token: str = "",
        options: ClientOptions | None = None,
        transport: Transport | None = None,
    ) -> None:
        options = options or ClientOptions()
        if token:
            options = options.with_token(token)
        self.options = options
        self.coordinator = RequestCoordinator(options, transport)
        self.query = QueryResource(self.coordinator)
        self.pipes = PipesResource(self.coordinator)

    @classmethod
    def for_region(cls, token: str, region: str) -> Client:
        return cls(token, ClientOptions().with_region(region))

    @classmethod
    def local(cls, token: str, port: int = DEFAULT_LOCAL_PORT) -> Client:
        return cls(token, ClientOptions().use_local(port))

    @classmethod
    def from_env(cls) -> Client:
        return cls(options=ClientOptions.from_env())

    def close(self) -> None:
        self.coordinator.close()

    def __enter__(self) -> Client:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
