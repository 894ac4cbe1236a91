from unittest.mock import AsyncMock, patch

import pytest

from sonarcwe.constants import NVD_RATE_LIMIT_CALLS, NVD_RATE_LIMIT_WITH_KEY_CALLS
from sonarcwe.core.rate_limiter import RateLimiter, get_nvd_rate_limiter


class TestRateLimiter:
    @pytest.mark.asyncio
    async def test_calls_within_limit_do_not_wait(self):
        limiter = RateLimiter(calls=3, period=60)

        with patch("sonarcwe.core.rate_limiter.asyncio.sleep", AsyncMock()) as mock_sleep:
            for _ in range(3):
                await limiter.acquire()

        mock_sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_call_over_limit_waits(self):
        limiter = RateLimiter(calls=2, period=60)

        with patch("sonarcwe.core.rate_limiter.asyncio.sleep", AsyncMock()) as mock_sleep:
            for _ in range(3):
                await limiter.acquire()

        mock_sleep.assert_awaited_once()
        assert 59 < mock_sleep.await_args.args[0] <= 60.1


class TestNvdRateLimiter:
    def test_limits_depend_on_api_key(self):
        assert get_nvd_rate_limiter(has_api_key=False).calls == NVD_RATE_LIMIT_CALLS
        assert get_nvd_rate_limiter(has_api_key=True).calls == NVD_RATE_LIMIT_WITH_KEY_CALLS
