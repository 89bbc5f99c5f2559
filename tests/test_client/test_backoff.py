"""Tests for the jittered exponential backoff schedule."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from promptwire.client.backoff import BASE_DELAY, BackoffPolicy
from promptwire.client.cancel import CancelToken


class TestDelay:
    @pytest.mark.parametrize("attempt", [0, 1, 2, 5])
    def test_delay_within_jitter_window(self, attempt: int) -> None:
        policy = BackoffPolicy()
        low = BASE_DELAY * 2**attempt
        for _ in range(50):
            assert low <= policy.delay(attempt) <= low + BASE_DELAY

    def test_delay_doubles_per_attempt(self) -> None:
        policy = BackoffPolicy(base_delay=1.0)
        with patch("promptwire.client.backoff.random.uniform", return_value=0.0):
            assert [policy.delay(i) for i in range(4)] == [1.0, 2.0, 4.0, 8.0]

    def test_jitter_drawn_up_to_base(self) -> None:
        policy = BackoffPolicy(base_delay=0.5)
        with patch("promptwire.client.backoff.random.uniform", return_value=0.25) as uniform:
            assert policy.delay(1) == pytest.approx(1.25)
        uniform.assert_called_once_with(0, 0.5)


class TestWait:
    def test_wait_delegates_to_token(self) -> None:
        token = MagicMock(spec=CancelToken)
        token.wait.return_value = False
        policy = BackoffPolicy(base_delay=0.1)
        with patch("promptwire.client.backoff.random.uniform", return_value=0.0):
            assert policy.wait(2, token) is False
        token.wait.assert_called_once_with(pytest.approx(0.4))

    def test_wait_reports_cancellation(self) -> None:
        token = CancelToken()
        token.cancel()
        assert BackoffPolicy(base_delay=10.0).wait(0, token) is True
