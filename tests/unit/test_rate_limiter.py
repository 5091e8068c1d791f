"""Unit tests for the per-action cooldown check — pure, no DB needed."""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from agora.errors import RateLimitedError
from agora.services.rate_limit_service import (
    ActionKind,
    check_rate_limit,
    ensure_allowed,
    last_performed,
)

COOLDOWNS = {"message": 0, "vote": 30, "report": 60}


class TestCheckRateLimit:
    def test_first_action_is_allowed(self, now):
        decision = check_rate_limit(None, ActionKind.vote, now, COOLDOWNS)
        assert decision.allowed
        assert decision.wait_seconds == 0

    def test_vote_at_29s_rejected_with_one_second_left(self, now):
        decision = check_rate_limit(now, ActionKind.vote, now + timedelta(seconds=29), COOLDOWNS)
        assert not decision.allowed
        assert decision.wait_seconds == 1
        assert decision.retry_at == now + timedelta(seconds=30)

    def test_vote_at_30s_allowed(self, now):
        decision = check_rate_limit(now, ActionKind.vote, now + timedelta(seconds=30), COOLDOWNS)
        assert decision.allowed

    def test_partial_second_rounds_up(self, now):
        decision = check_rate_limit(
            now, ActionKind.report, now + timedelta(seconds=59, milliseconds=500), COOLDOWNS
        )
        assert not decision.allowed
        assert decision.wait_seconds == 1

    def test_zero_window_never_limits(self, now):
        decision = check_rate_limit(now, ActionKind.message, now, COOLDOWNS)
        assert decision.allowed

    def test_configured_message_cooldown_applies(self, now):
        cooldowns = {**COOLDOWNS, "message": 300}
        decision = check_rate_limit(now, ActionKind.message, now + timedelta(minutes=2), cooldowns)
        assert not decision.allowed
        assert decision.wait_seconds == 180

    def test_kinds_are_independent(self, now):
        agent = SimpleNamespace(
            id="a1", last_message_at=None, last_vote_at=now, last_report_at=None
        )
        assert last_performed(agent, ActionKind.vote) == now
        assert last_performed(agent, ActionKind.report) is None


class TestEnsureAllowed:
    def test_raises_with_wait_and_retry(self, now):
        agent = SimpleNamespace(
            id="a1", last_message_at=None, last_vote_at=now, last_report_at=None
        )
        with pytest.raises(RateLimitedError) as exc_info:
            ensure_allowed(agent, ActionKind.vote, now + timedelta(seconds=10), COOLDOWNS)
        assert exc_info.value.wait_seconds == 20
        assert exc_info.value.retry_at == now + timedelta(seconds=30)
        assert exc_info.value.error_type == "rate_limited"

    def test_passes_when_elapsed(self, now):
        agent = SimpleNamespace(
            id="a1", last_message_at=None, last_vote_at=None, last_report_at=now
        )
        ensure_allowed(agent, ActionKind.report, now + timedelta(seconds=60), COOLDOWNS)
