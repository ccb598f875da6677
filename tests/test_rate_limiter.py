# =============================================================================
# Unit Tests — Submission Rate Limiter
# =============================================================================
#
# Redis is mocked at `_get_rate_limit_redis`; the pipeline's second result is
# the ZCARD count seen before this hit is added.
# =============================================================================

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException

from trustcenter.services.rate_limiter import (
    check_public_form_rate_limit,
    check_submission_rate_limit,
)


@pytest.fixture
def enabled(monkeypatch):
    from trustcenter.config import settings

    monkeypatch.setattr(settings, "rate_limit_enabled", True)
    return settings


def _redis_with_counts(*counts: int) -> tuple[MagicMock, MagicMock]:
    mock_pipe = MagicMock()
    mock_pipe.execute = AsyncMock(side_effect=[[0, c, 1, True] for c in counts])
    mock_redis = MagicMock()
    mock_redis.pipeline.return_value = mock_pipe
    return mock_redis, mock_pipe


class TestSubmissionRateLimit:
    """Per-IP and per-email sliding windows."""

    async def test_disabled_is_a_no_op(self):
        """RATE_LIMIT_ENABLED=false never touches Redis."""
        with patch("trustcenter.services.rate_limiter._get_rate_limit_redis") as get_redis:
            await check_submission_rate_limit("1.2.3.4", "jane@acme.io")
        get_redis.assert_not_called()

    async def test_under_both_limits(self, enabled):
        mock_redis, mock_pipe = _redis_with_counts(3, 1)
        with patch(
            "trustcenter.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            await check_submission_rate_limit("1.2.3.4", "Jane@Acme.io")

        keys = [c.args[0] for c in mock_pipe.zcard.call_args_list]
        assert keys == [
            "ratelimit:requests:ip:1.2.3.4",
            "ratelimit:requests:email:jane@acme.io",
        ]

    async def test_ip_limit_hit(self, enabled):
        """10th prior hit from one IP within 15 minutes → 429."""
        mock_redis, _ = _redis_with_counts(10)
        with patch(
            "trustcenter.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            with pytest.raises(HTTPException) as exc_info:
                await check_submission_rate_limit("1.2.3.4", "jane@acme.io")

        assert exc_info.value.status_code == 429
        assert "IP address" in exc_info.value.detail
        assert exc_info.value.headers == {"Retry-After": "900"}

    async def test_email_limit_hit(self, enabled):
        mock_redis, _ = _redis_with_counts(0, 5)
        with patch(
            "trustcenter.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            with pytest.raises(HTTPException) as exc_info:
                await check_submission_rate_limit("1.2.3.4", "jane@acme.io")

        assert "email address" in exc_info.value.detail
        assert exc_info.value.headers == {"Retry-After": "3600"}

    async def test_redis_unavailable_allows_through(self, enabled):
        """Redis outage degrades to no limiting."""
        with patch(
            "trustcenter.services.rate_limiter._get_rate_limit_redis",
            side_effect=ConnectionError("Redis down"),
        ):
            await check_submission_rate_limit("1.2.3.4", "jane@acme.io")


class TestPublicFormRateLimit:
    """Contact form and subscribe: per-IP only, separate keys."""

    async def test_form_gets_its_own_key(self, enabled):
        mock_redis, mock_pipe = _redis_with_counts(2)
        with patch(
            "trustcenter.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            await check_public_form_rate_limit("contact", "1.2.3.4")

        [call] = mock_pipe.zcard.call_args_list
        assert call.args[0] == "ratelimit:contact:ip:1.2.3.4"

    async def test_limit_hit(self, enabled):
        mock_redis, _ = _redis_with_counts(10)
        with patch(
            "trustcenter.services.rate_limiter._get_rate_limit_redis",
            return_value=mock_redis,
        ):
            with pytest.raises(HTTPException) as exc_info:
                await check_public_form_rate_limit("subscribe", "1.2.3.4")

        assert exc_info.value.status_code == 429

    async def test_unknown_ip_is_not_limited(self, enabled):
        with patch("trustcenter.services.rate_limiter._get_rate_limit_redis") as get_redis:
            await check_public_form_rate_limit("contact", None)
        get_redis.assert_not_called()
