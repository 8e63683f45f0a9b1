"""
tinybird_sdk - request execution layer for the Tinybird analytics API.

Module layout
-------------
config.py   : ClientOptions, HTTP status constants, retry defaults, regions
errors.py   : typed error hierarchy and status classification
transport.py: Response, Transport protocols, requests-based transports
parser.py   : success check, JSON body decoding, error construction
retry.py    : retry decisions, backoff delays, single-request retry loop
batch.py    : batch items/results, concurrent and sequential batch execution
executor.py : path/query/body encoding, RequestCoordinator
params.py   : request parameter objects
client.py   : Client façade with query and pipes resources

Public interface
----------------
Single request with retry:
    RequestCoordinator(options).request("GET", "pipes")

Keyed batch with per-item isolation:
    RequestCoordinator(options).batch_request({"a": BatchRequestItem.get("sql", {"q": "SELECT 1"})})

High-level client:
    Client.for_region(token, "gcp-europe-west3").query.batch_sql({...})
"""

from .batch import BatchRequestItem, BatchResult
from .client import Client
from .config import ClientOptions
from .errors import (
    ApiError,
    AuthenticationError,
    ErrorKind,
    ParseError,
    RateLimitError,
    RequestTimeoutError,
    TinybirdError,
    TransportError,
)
from .executor import RequestCoordinator
from .params import TriggerSinkParams
from .transport import RequestsTransport, Response, ThreadedRequestsTransport

__all__ = [
    # Entry points
    "Client",
    "ClientOptions",
    "RequestCoordinator",
    # Batch values
    "BatchRequestItem",
    "BatchResult",
    "TriggerSinkParams",
    # Transports
    "Response",
    "RequestsTransport",
    "ThreadedRequestsTransport",
    # Errors
    "TinybirdError",
    "ApiError",
    "AuthenticationError",
    "RateLimitError",
    "RequestTimeoutError",
    "ParseError",
    "TransportError",
    "ErrorKind",
]
