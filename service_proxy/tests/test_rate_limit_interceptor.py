"""
Unit tests for the rate-limit interceptor.
"""

import pytest
import httpx
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.ratelimit.interceptor import (
    RateLimitInfo,
    RateLimitInterceptor,
    UpstreamCall,
    parse_rate_limit_headers,
    retry_wait_ms,
)
from shared.errors import InvalidTokenError, RateLimitError


BASE_URL = "https://api.spacetraders.io/v2"


def make_response(status_code: int, json_body=None, headers=None, path: str = "/systems") -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        json=json_body if json_body is not None else {},
        headers=headers or {},
        request=httpx.Request("GET", f"{BASE_URL}{path}"),
    )


RATE_HEADERS = {
    "x-ratelimit-limit": "30",
    "x-ratelimit-remaining": "12",
    "x-ratelimit-reset": "2030-01-01T00:00:10.000Z",
}


class TestHeaderParsing:

    def test_parse_full_headers(self):
        info = parse_rate_limit_headers(httpx.Headers(RATE_HEADERS))

        assert info == RateLimitInfo(
            limit=30,
            remaining=12,
            reset=datetime(2030, 1, 1, 0, 0, 10, tzinfo=timezone.utc),
        )

    def test_parse_epoch_reset(self):
        headers = httpx.Headers({**RATE_HEADERS, "x-ratelimit-reset": "1893456010"})
        info = parse_rate_limit_headers(headers)

        assert info.reset == datetime(2030, 1, 1, 0, 0, 10, tzinfo=timezone.utc)

    @pytest.mark.parametrize("missing", ["x-ratelimit-limit", "x-ratelimit-remaining", "x-ratelimit-reset"])
    def test_missing_header_is_no_observation(self, missing):
        headers = {k: v for k, v in RATE_HEADERS.items() if k != missing}
        assert parse_rate_limit_headers(httpx.Headers(headers)) is None

    def test_garbage_header_is_no_observation(self):
        headers = httpx.Headers({**RATE_HEADERS, "x-ratelimit-remaining": "lots"})
        assert parse_rate_limit_headers(headers) is None

    def test_retry_wait_from_header(self):
        assert retry_wait_ms(httpx.Headers({"retry-after": "3"})) == 3000

    def test_retry_wait_default(self):
        assert retry_wait_ms(httpx.Headers({})) == 5000
        assert retry_wait_ms(httpx.Headers({"retry-after": "Wed, 21 Oct 2015 07:28:00 GMT"})) == 5000

    @pytest.mark.parametrize("value", ["inf", "-inf", "nan", "Infinity", "-1"])
    def test_retry_wait_rejects_non_finite_and_negative(self, value):
        assert retry_wait_ms(httpx.Headers({"retry-after": value})) == 5000


class TestRateLimitInterceptor:
    """Test cases for RateLimitInterceptor."""

    @pytest.fixture
    def sleep(self):
        return AsyncMock()

    @pytest.fixture
    def cache(self):
        cache = MagicMock()
        cache.store_response = AsyncMock(return_value=True)
        return cache

    @pytest.fixture
    def interceptor(self, cache, sleep):
        return RateLimitInterceptor(cache, sleep=sleep)

    @pytest.fixture
    def call(self):
        return UpstreamCall(method="GET", path="/systems", params={"page": 1, "limit": 20})

    @pytest.mark.asyncio
    async def test_success_records_rate_limit(self, interceptor, call):
        send = AsyncMock(return_value=make_response(200, {"data": []}, RATE_HEADERS))

        await interceptor.execute(call, send)

        info = interceptor.get_rate_limit_status()
        assert info.limit == 30
        assert info.remaining == 12
        assert info.reset == datetime(2030, 1, 1, 0, 0, 10, tzinfo=timezone.utc)

    @pytest.mark.asyncio
    async def test_infinite_retry_after_uses_default_wait(self, interceptor, call, sleep):
        send = AsyncMock(side_effect=[
            make_response(429, {"error": {"message": "slow down"}}, {"retry-after": "inf"}),
            make_response(200, {"data": []}),
        ])

        await interceptor.execute(call, send)

        sleep.assert_awaited_once_with(5.0)
        assert send.await_count == 2

    @pytest.mark.asyncio
    async def test_latest_observation_overwrites(self, interceptor, call):
        first = make_response(200, {}, RATE_HEADERS)
        second = make_response(200, {}, {**RATE_HEADERS, "x-ratelimit-remaining": "11"})
        send = AsyncMock(side_effect=[first, second])

        await interceptor.execute(call, send)
        await interceptor.execute(call, send)

        assert interceptor.rate_limit_info.remaining == 11

    @pytest.mark.asyncio
    async def test_missing_headers_keep_previous_status(self, interceptor, call):
        send = AsyncMock(side_effect=[
            make_response(200, {}, RATE_HEADERS),
            make_response(200, {}, {}),
        ])

        await interceptor.execute(call, send)
        await interceptor.execute(call, send)

        assert interceptor.rate_limit_info.remaining == 12

    @pytest.mark.asyncio
    async def test_success_hands_payload_to_cache(self, interceptor, cache, call):
        payload = {"data": [{"symbol": "X1-DF55"}]}
        send = AsyncMock(return_value=make_response(200, payload))

        response = await interceptor.execute(call, send)

        assert response.status_code == 200
        cache.store_response.assert_awaited_once_with("GET", "/systems", {"page": 1, "limit": 20}, payload)

    @pytest.mark.asyncio
    async def test_429_retries_once_with_retry_after(self, interceptor, sleep, call):
        send = AsyncMock(side_effect=[
            make_response(429, {"error": {"code": 429}}, {"retry-after": "2"}),
            make_response(200, {"data": "ok"}),
        ])

        response = await interceptor.execute(call, send)

        assert response.json() == {"data": "ok"}
        assert send.await_count == 2
        sleep.assert_awaited_once_with(2.0)
        # Exact same request is resubmitted
        assert send.await_args_list[0].args == send.await_args_list[1].args == (call,)

    @pytest.mark.asyncio
    async def test_429_without_retry_after_waits_default(self, interceptor, sleep, call):
        send = AsyncMock(side_effect=[
            make_response(429),
            make_response(200, {"data": "ok"}),
        ])

        await interceptor.execute(call, send)

        sleep.assert_awaited_once_with(5.0)

    @pytest.mark.asyncio
    async def test_configured_default_wait(self, cache, sleep, call):
        interceptor = RateLimitInterceptor(cache, default_wait_ms=1500, sleep=sleep)
        send = AsyncMock(side_effect=[make_response(429), make_response(200)])

        await interceptor.execute(call, send)

        sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_second_429_raises_rate_limit_error(self, interceptor, sleep, cache, call):
        send = AsyncMock(side_effect=[
            make_response(429, headers={"retry-after": "1"}),
            make_response(429, headers={"retry-after": "1"}),
        ])

        with pytest.raises(RateLimitError) as exc_info:
            await interceptor.execute(call, send)

        assert exc_info.value.status_code == 429
        assert send.await_count == 2
        assert sleep.await_count == 1
        cache.store_response.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retry_failure_propagates(self, interceptor, call):
        send = AsyncMock(side_effect=[
            make_response(429),
            make_response(500, {"error": {"message": "boom"}}),
        ])

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await interceptor.execute(call, send)

        assert exc_info.value.response.status_code == 500

    @pytest.mark.asyncio
    async def test_401_raises_invalid_token_without_retry(self, interceptor, sleep, cache, call):
        send = AsyncMock(return_value=make_response(401, {"error": {"message": "Invalid token"}}))

        with pytest.raises(InvalidTokenError) as exc_info:
            await interceptor.execute(call, send)

        assert exc_info.value.code == "INVALID_TOKEN"
        assert not isinstance(exc_info.value, RateLimitError)
        assert send.await_count == 1
        sleep.assert_not_awaited()
        cache.store_response.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_other_errors_propagate_unchanged(self, interceptor, sleep, call):
        response = make_response(404, {"error": {"message": "System not found", "code": 404}})
        send = AsyncMock(return_value=response)

        with pytest.raises(httpx.HTTPStatusError) as exc_info:
            await interceptor.execute(call, send)

        assert exc_info.value.response is response
        assert send.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transport_error_propagates(self, interceptor, call):
        send = AsyncMock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(httpx.ConnectError):
            await interceptor.execute(call, send)

    @pytest.mark.asyncio
    async def test_metrics_recorded(self, cache, sleep, call):
        metrics = MagicMock()
        interceptor = RateLimitInterceptor(cache, sleep=sleep, metrics=metrics)
        send = AsyncMock(side_effect=[make_response(429), make_response(200, {}, RATE_HEADERS)])

        await interceptor.execute(call, send)

        metrics.increment_counter.assert_called_once_with("rate_limit_retries_total")
        metrics.set_gauge.assert_called_once_with("rate_limit_remaining", 12)
        assert metrics.record_upstream_response.call_count == 2


class TestRateLimitStatus:

    @pytest.fixture
    def interceptor(self):
        return RateLimitInterceptor()

    def test_no_observation(self, interceptor):
        assert interceptor.get_rate_limit_status() is None
        assert interceptor.is_rate_limited() is False
        assert interceptor.seconds_until_reset() == 0.0

    def test_exhausted_quota_before_reset(self, interceptor):
        interceptor.rate_limit_info = RateLimitInfo(
            limit=30, remaining=0, reset=datetime.now(timezone.utc) + timedelta(seconds=30)
        )

        assert interceptor.is_rate_limited() is True
        assert 0 < interceptor.seconds_until_reset() <= 30

    def test_exhausted_quota_after_reset(self, interceptor):
        interceptor.rate_limit_info = RateLimitInfo(
            limit=30, remaining=0, reset=datetime.now(timezone.utc) - timedelta(seconds=1)
        )

        assert interceptor.is_rate_limited() is False
        assert interceptor.seconds_until_reset() == 0.0

    def test_quota_left(self, interceptor):
        interceptor.rate_limit_info = RateLimitInfo(
            limit=30, remaining=5, reset=datetime.now(timezone.utc) + timedelta(seconds=30)
        )

        assert interceptor.is_rate_limited() is False
