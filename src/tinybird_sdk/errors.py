"""
Typed errors raised by the request execution layer.

Every failure the SDK surfaces is a :class:`TinybirdError`.  HTTP failures are
split into a closed set of kinds chosen by :func:`classify_status`, which is a
pure function of the status code:

  401, 403 → ``authentication``  (:class:`AuthenticationError`)
  429      → ``rate_limit``      (:class:`RateLimitError`)
  other    → ``api``             (:class:`ApiError`)

Transport-level failures (no HTTP response) become
:class:`RequestTimeoutError`; malformed success payloads become
:class:`ParseError`.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from .config import AUTHENTICATION_ERROR_STATUS_CODES, SERVICE_NAME, TOO_MANY_REQUESTS


# ---------------------------------------------------------------------------
# Error kinds
# ---------------------------------------------------------------------------

class ErrorKind:
    """Tag constants carried by every :class:`TinybirdError` as ``kind``."""

    GENERIC = "generic"
    API = "api"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    TIMEOUT = "timeout"
    PARSE = "parse"

    HTTP_KINDS: frozenset[str] = frozenset({API, AUTHENTICATION, RATE_LIMIT})


def classify_status(status_code: int) -> str:
    """
    Map an HTTP status code to its error kind.

    Args:
        status_code: Status code of a failed response.

    Returns:
        One of ``ErrorKind.AUTHENTICATION``, ``ErrorKind.RATE_LIMIT`` or
        ``ErrorKind.API``.
    """
    if status_code in AUTHENTICATION_ERROR_STATUS_CODES:
        return ErrorKind.AUTHENTICATION
    if status_code == TOO_MANY_REQUESTS:
        return ErrorKind.RATE_LIMIT
    return ErrorKind.API


def mask_token(token: str) -> str:
    """Return a diagnostic hint for ``token`` that never reveals it whole."""
    if not token:
        return "<none>"
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


def default_message(status_code: int) -> str:
    return f"Request to {SERVICE_NAME} API failed with status: {status_code}"


# ---------------------------------------------------------------------------
# Exception classes
# ---------------------------------------------------------------------------

class TinybirdError(Exception):
    """Root of every error raised by the SDK."""

    kind: str = ErrorKind.GENERIC


class TransportError(TinybirdError):
    """Raised by a transport when no HTTP response could be obtained."""

    kind = ErrorKind.TIMEOUT


class ParseError(TinybirdError):
    """A success response whose body is not a JSON object."""

    kind = ErrorKind.PARSE

    def __init__(self, message: str, raw_body: str = "") -> None:
        super().__init__(message)
        self.raw_body = raw_body


class ApiError(TinybirdError):
    """
    A failed HTTP exchange with the Service.

    Attributes:
        status_code: HTTP status (``0`` when no response was involved).
        headers: Response headers, name → list of values.
        raw_data: Decoded error payload (``{}`` when undecodable).
        message: Payload ``error`` field, or the default status message.
    """

    kind = ErrorKind.API

    def __init__(
        self,
        status_code: int = 0,
        headers: Mapping[str, Sequence[str]] | None = None,
        raw_data: Mapping | None = None,
        message: str = "",
    ) -> None:
        self.status_code = status_code
        self.headers = {name: list(values) for name, values in (headers or {}).items()}
        self.raw_data = dict(raw_data or {})
        self.message = message or default_message(status_code)
        super().__init__(self.message)

    @staticmethod
    def from_response_parts(
        status_code: int,
        headers: Mapping[str, Sequence[str]],
        raw_data: Mapping,
        message: str = "",
        token: str = "",
    ) -> ApiError:
        """
        Build the error subclass that :func:`classify_status` selects.

        Args:
            status_code: HTTP status of the failed response.
            headers: Response headers.
            raw_data: Decoded error payload.
            message: Error message from the payload (may be empty).
            token: Auth token, used only for the masked hint on auth errors.

        Returns:
            An :class:`AuthenticationError`, :class:`RateLimitError` or plain
            :class:`ApiError`.
        """
        kind = classify_status(status_code)
        if kind == ErrorKind.AUTHENTICATION:
            return AuthenticationError(status_code, headers, raw_data, message, token)
        if kind == ErrorKind.RATE_LIMIT:
            return RateLimitError(status_code, headers, raw_data, message)
        return ApiError(status_code, headers, raw_data, message)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status_code={self.status_code}, message={self.message!r})"


class AuthenticationError(ApiError):
    """401/403: credentials missing, invalid, or lacking permission."""

    kind = ErrorKind.AUTHENTICATION

    def __init__(
        self,
        status_code: int = 401,
        headers: Mapping[str, Sequence[str]] | None = None,
        raw_data: Mapping | None = None,
        message: str = "",
        token: str = "",
    ) -> None:
        super().__init__(status_code, headers, raw_data, message)
        self.token_hint = mask_token(token)

    def __str__(self) -> str:
        return f"{self.message} (token: {self.token_hint})"


class RateLimitError(ApiError):
    """429: the Service asked the client to slow down."""

    kind = ErrorKind.RATE_LIMIT


class RequestTimeoutError(ApiError):
    """The transport failed before any HTTP response arrived."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, message: str = "") -> None:
        super().__init__(0, {}, {}, message or f"Request to {SERVICE_NAME} API timed out")
