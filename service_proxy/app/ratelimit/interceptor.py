"""
Rate-limit bookkeeping and single-retry handling for upstream responses.
"""

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, TYPE_CHECKING

import httpx

from shared.logging import get_logger
from shared.errors import InvalidTokenError, RateLimitError

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector
    from ..caching.response_cache import ResponseCache


DEFAULT_RETRY_WAIT_MS = 5000

LIMIT_HEADER = "x-ratelimit-limit"
REMAINING_HEADER = "x-ratelimit-remaining"
RESET_HEADER = "x-ratelimit-reset"
RETRY_AFTER_HEADER = "retry-after"


@dataclass(frozen=True)
class RateLimitInfo:
    """Quota as last reported by the upstream API."""

    limit: int
    remaining: int
    reset: datetime


@dataclass
class UpstreamCall:
    """A request as issued by the client, kept so it can be resent verbatim."""

    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    body: Optional[Dict[str, Any]] = None


def _parse_reset(value: str) -> Optional[datetime]:
    candidate = value.strip()
    try:
        return datetime.fromtimestamp(float(candidate), tz=timezone.utc)
    except (ValueError, OverflowError, OSError):
        pass

    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_rate_limit_headers(headers: Mapping[str, str]) -> Optional[RateLimitInfo]:
    """
    Build a RateLimitInfo from response headers.

    Returns None unless all three ``x-ratelimit-*`` headers are present and
    parse; a partial set is not an observation.
    """
    raw_limit = headers.get(LIMIT_HEADER)
    raw_remaining = headers.get(REMAINING_HEADER)
    raw_reset = headers.get(RESET_HEADER)
    if raw_limit is None or raw_remaining is None or raw_reset is None:
        return None

    try:
        limit = int(raw_limit)
        remaining = int(raw_remaining)
    except ValueError:
        return None

    reset = _parse_reset(raw_reset)
    if reset is None:
        return None

    return RateLimitInfo(limit=limit, remaining=remaining, reset=reset)


def retry_wait_ms(headers: Mapping[str, str], default_ms: int = DEFAULT_RETRY_WAIT_MS) -> float:
    """Milliseconds to wait after a 429: ``retry-after`` seconds, else the default."""
    raw = headers.get(RETRY_AFTER_HEADER)
    if raw is None:
        return default_ms
    try:
        seconds = float(raw)
    except ValueError:
        return default_ms
    if not math.isfinite(seconds) or seconds < 0:
        return default_ms
    return seconds * 1000


def _response_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class RateLimitInterceptor:
    """
    Wraps every upstream exchange.

    Success responses update the shared RateLimitInfo and are handed to the
    response cache. A 429 is retried exactly once after the server-provided
    wait; a 401 becomes InvalidTokenError; anything else is logged and the
    original ``httpx.HTTPStatusError`` is raised.
    """

    def __init__(
        self,
        cache: Optional["ResponseCache"] = None,
        *,
        default_wait_ms: int = DEFAULT_RETRY_WAIT_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.cache = cache
        self.default_wait_ms = default_wait_ms
        self.metrics = metrics
        self.rate_limit_info: Optional[RateLimitInfo] = None
        self._sleep = sleep
        self.logger = get_logger("proxy.rate_limit")

    async def execute(
        self,
        call: UpstreamCall,
        send: Callable[[UpstreamCall], Awaitable[httpx.Response]],
    ) -> httpx.Response:
        """Send ``call`` through ``send`` applying the rate-limit policy."""
        response = await self._send(call, send)

        if response.status_code == 429:
            wait_ms = retry_wait_ms(response.headers, self.default_wait_ms)
            self.logger.warning(
                "Rate limited, waiting before retry",
                method=call.method,
                path=call.path,
                wait_ms=wait_ms
            )
            if self.metrics:
                self.metrics.increment_counter("rate_limit_retries_total")
            await self._sleep(wait_ms / 1000)

            response = await self._send(call, send)
            if response.status_code == 429:
                self.logger.error(
                    "Rate limit still exceeded after retry",
                    method=call.method,
                    path=call.path,
                    body=_response_body(response)
                )
                raise RateLimitError(
                    details={
                        "path": call.path,
                        "retry_after_ms": retry_wait_ms(response.headers, self.default_wait_ms),
                        "upstream": _response_body(response),
                    }
                )

        if response.is_success:
            await self.handle_success(call, response)
            return response

        # handle_failure always raises
        self.handle_failure(call, response)
        return response

    async def _send(
        self,
        call: UpstreamCall,
        send: Callable[[UpstreamCall], Awaitable[httpx.Response]],
    ) -> httpx.Response:
        self.logger.debug("SpaceTraders API request", method=call.method.upper(), path=call.path)
        try:
            response = await send(call)
        except httpx.RequestError as e:
            self.logger.error(
                "No response received from SpaceTraders API",
                method=call.method,
                path=call.path,
                error=str(e)
            )
            raise

        if self.metrics:
            self.metrics.record_upstream_response(call.method, response.status_code)
        return response

    async def handle_success(self, call: UpstreamCall, response: httpx.Response) -> None:
        info = parse_rate_limit_headers(response.headers)
        if info is not None:
            self.rate_limit_info = info
            self.logger.debug("Rate limit", remaining=info.remaining, limit=info.limit)
            if self.metrics:
                self.metrics.set_gauge("rate_limit_remaining", info.remaining)

        if self.cache is None or not response.content:
            return

        try:
            payload = response.json()
        except ValueError:
            return
        await self.cache.store_response(call.method, call.path, call.params, payload)

    def handle_failure(self, call: UpstreamCall, response: httpx.Response) -> None:
        body = _response_body(response)
        self.logger.error(
            "SpaceTraders API error",
            method=call.method,
            path=call.path,
            status_code=response.status_code,
            body=body
        )

        if response.status_code == 401:
            raise InvalidTokenError(details={"upstream": body})

        # Propagates as httpx.HTTPStatusError, untouched.
        response.raise_for_status()

    # Status helpers

    def get_rate_limit_status(self) -> Optional[RateLimitInfo]:
        return self.rate_limit_info

    def is_rate_limited(self) -> bool:
        info = self.rate_limit_info
        if info is None:
            return False
        return info.remaining == 0 and datetime.now(timezone.utc) < info.reset

    def seconds_until_reset(self) -> float:
        info = self.rate_limit_info
        if info is None:
            return 0.0
        return max(0.0, (info.reset - datetime.now(timezone.utc)).total_seconds())
