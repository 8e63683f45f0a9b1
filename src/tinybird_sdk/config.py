"""
Client configuration, HTTP constants, and region base URLs.

All constants used across the request execution modules are centralized here
so that config is separated from logic.  :class:`ClientOptions` is immutable:
every ``with_*`` builder returns a new instance, so a coordinator built from
one set of options never sees them change mid-flight.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace

SERVICE_NAME = "Tinybird"
USER_AGENT = "tinybird-sdk-python (https://github.com/tinybirdco)"

# ---------------------------------------------------------------------------
# HTTP status constants
# ---------------------------------------------------------------------------

MULTIPLE_CHOICES = 300
TOO_MANY_REQUESTS = 429
AUTHENTICATION_ERROR_STATUS_CODES: frozenset[int] = frozenset({401, 403})

# Transient statuses: rate limit plus gateway/server hiccups
RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({429, 500, 502, 503, 504})

RETRY_AFTER_HEADER = "retry-after"

# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULT_API_VERSION = "v0"
DEFAULT_TIMEOUT_SECONDS = 60
DEFAULT_LOCAL_PORT = 7181
DEFAULT_LOCAL_BASE_PATH = "http://localhost"

DEFAULT_RETRY_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 2000
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2

# Worker threads used by the threaded transport for concurrent batches
DEFAULT_MAX_WORKERS = 8

# ---------------------------------------------------------------------------
# Regions
# ---------------------------------------------------------------------------

REGIONS: dict[str, str] = {
    "gcp-europe-west3": "https://api.tinybird.co",
    "gcp-europe-west2": "https://api.europe-west2.gcp.tinybird.co",
    "gcp-us-east4": "https://api.us-east.tinybird.co",
    "gcp-northamerica-northeast2": "https://api.northamerica-northeast2.gcp.tinybird.co",
    "aws-us-east-1": "https://api.us-east.aws.tinybird.co",
    "aws-us-west-2": "https://api.us-west-2.aws.tinybird.co",
    "aws-eu-central-1": "https://api.eu-central-1.aws.tinybird.co",
    "aws-eu-west-1": "https://api.eu-west-1.aws.tinybird.co",
}
DEFAULT_REGION = "gcp-europe-west3"

_TRUTHY = {"true", "1", "yes"}


def region_base_url(region: str) -> str:
    """
    Resolve a region identifier to its API base URL.

    Raises:
        ValueError: If ``region`` is not in :data:`REGIONS`.
    """
    try:
        return REGIONS[region]
    except KeyError:
        raise ValueError(
            f"Unknown region '{region}'. Known regions: {', '.join(sorted(REGIONS))}"
        ) from None


# ---------------------------------------------------------------------------
# Client options
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ClientOptions:
    """Immutable settings shared by the transport and the request coordinator."""

    token: str = ""
    base_url: str = REGIONS[DEFAULT_REGION]
    api_version: str = DEFAULT_API_VERSION
    timeout: int = DEFAULT_TIMEOUT_SECONDS
    compression: bool = False
    retry_max_retries: int = DEFAULT_RETRY_MAX_RETRIES
    retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS
    retry_backoff_multiplier: int = DEFAULT_RETRY_BACKOFF_MULTIPLIER

    def has_token(self) -> bool:
        return self.token != ""

    def with_token(self, token: str) -> ClientOptions:
        return replace(self, token=token)

    def with_base_url(self, base_url: str) -> ClientOptions:
        return replace(self, base_url=base_url.rstrip("/"))

    def with_region(self, region: str) -> ClientOptions:
        return self.with_base_url(region_base_url(region))

    def use_local(self, port: int = DEFAULT_LOCAL_PORT) -> ClientOptions:
        return self.with_base_url(f"{DEFAULT_LOCAL_BASE_PATH}:{port}")

    def with_api_version(self, api_version: str) -> ClientOptions:
        return replace(self, api_version=api_version)

    def with_timeout(self, timeout: int) -> ClientOptions:
        return replace(self, timeout=timeout)

    def with_compression(self, compression: bool) -> ClientOptions:
        return replace(self, compression=compression)

    def with_retry(
        self,
        max_retries: int | None = None,
        delay_ms: int | None = None,
        backoff_multiplier: int | None = None,
    ) -> ClientOptions:
        """Return a copy with any of the three retry settings overridden."""
        return replace(
            self,
            retry_max_retries=self.retry_max_retries if max_retries is None else max_retries,
            retry_delay_ms=self.retry_delay_ms if delay_ms is None else delay_ms,
            retry_backoff_multiplier=(
                self.retry_backoff_multiplier
                if backoff_multiplier is None
                else backoff_multiplier
            ),
        )

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> ClientOptions:
        """
        Build options from ``TINYBIRD_*`` environment variables.

        Recognized variables:
            TINYBIRD_TOKEN       : auth token
            TINYBIRD_LOCAL       : ``true``/``1``/``yes`` targets Tinybird Local
            TINYBIRD_PORT        : Tinybird Local port (default 7181)
            TINYBIRD_BASE_URL    : explicit base URL (wins over region)
            TINYBIRD_REGION      : region id from :data:`REGIONS`
            TINYBIRD_API_VERSION : API version prefix (default ``v0``)
            TINYBIRD_TIMEOUT     : transport timeout in seconds

        Args:
            environ: Mapping to read instead of ``os.environ`` (for tests).

        Returns:
            A new :class:`ClientOptions`.

        Raises:
            ValueError: On an unknown region or a non-integer port/timeout.
        """
        env = os.environ if environ is None else environ
        options = cls(token=env.get("TINYBIRD_TOKEN", ""))

        if env.get("TINYBIRD_LOCAL", "").strip().lower() in _TRUTHY:
            options = options.use_local(int(env.get("TINYBIRD_PORT", DEFAULT_LOCAL_PORT)))
        elif env.get("TINYBIRD_BASE_URL"):
            options = options.with_base_url(env["TINYBIRD_BASE_URL"])
        elif env.get("TINYBIRD_REGION"):
            options = options.with_region(env["TINYBIRD_REGION"])

        if env.get("TINYBIRD_API_VERSION"):
            options = options.with_api_version(env["TINYBIRD_API_VERSION"])
        if env.get("TINYBIRD_TIMEOUT"):
            options = options.with_timeout(int(env["TINYBIRD_TIMEOUT"]))

        return options


def build_default_headers(options: ClientOptions) -> dict[str, str]:
    """
    Headers attached to every request sent by a transport.

    Args:
        options: Client options.

    Returns:
        Dict with ``User-Agent``, plus ``Accept-Encoding`` when compression is
        enabled and ``Authorization`` when a token is configured.
    """
    headers = {"User-Agent": USER_AGENT}
    if options.compression:
        headers["Accept-Encoding"] = "gzip"
    if options.has_token():
        headers["Authorization"] = f"Bearer {options.token}"
    return headers
