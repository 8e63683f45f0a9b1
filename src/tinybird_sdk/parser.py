"""
Response classification, JSON body decoding, and typed error construction.

No I/O occurs here; all functions are pure transformations of a
:class:`~tinybird_sdk.transport.Response` to support easy unit testing.
"""

from __future__ import annotations

import json

from .config import MULTIPLE_CHOICES
from .errors import ApiError, ParseError
from .transport import Response


def is_success(response: Response) -> bool:
    """``True`` for any status code below 300."""
    return response.status_code < MULTIPLE_CHOICES


def parse_body(response: Response) -> dict:
    """
    Decode a response body into a dict.

    Args:
        response: Response whose body should hold a JSON object.

    Returns:
        The decoded object, or ``{}`` for an empty body.

    Raises:
        ParseError: The body is not valid UTF-8 or not valid JSON, or decodes
            to something other than a JSON object.
    """
    if response.body == b"":
        return {}

    try:
        contents = response.body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(
            f"Response body is not valid UTF-8: {exc}",
            raw_body=response.text,
        ) from exc

    try:
        data = json.loads(contents)
    except json.JSONDecodeError as exc:
        raise ParseError(
            f"Unable to parse response body into JSON: {exc}",
            raw_body=contents,
        ) from exc

    if not isinstance(data, dict):
        raise ParseError(
            f"Expected a JSON object in response body, got {type(data).__name__}",
            raw_body=contents,
        )
    return data


def _parse_safely(response: Response) -> dict:
    # Error construction must never itself fail on an unreadable payload
    try:
        return parse_body(response)
    except ParseError:
        return {}


def create_exception(response: Response, token: str = "") -> ApiError:
    """
    Build the typed error for a failed response.

    The payload's ``error`` field becomes the message; an unparseable payload
    is treated as empty.  The variant is chosen from the status code alone
    (see :func:`~tinybird_sdk.errors.classify_status`).

    Args:
        response: Non-success response.
        token: Auth token; only a masked hint ends up on
            :class:`~tinybird_sdk.errors.AuthenticationError`.

    Returns:
        The error instance (not raised).
    """
    raw_data = _parse_safely(response)
    message = raw_data.get("error") or ""
    if not isinstance(message, str):
        message = json.dumps(message)

    return ApiError.from_response_parts(
        response.status_code,
        response.headers,
        raw_data,
        message,
        token,
    )


def parse_response(response: Response, token: str = "") -> dict:
    """
    Return the decoded body of a success response.

    Raises:
        ApiError: (or a subclass) when the status is not a success.
        ParseError: When a success body is malformed.
    """
    if not is_success(response):
        raise create_exception(response, token)
    return parse_body(response)
