"""Jittered exponential backoff between retry attempts."""

from __future__ import annotations

import random

from promptwire.client.cancel import CancelToken

BASE_DELAY = 0.2
"""Seconds; the first retry waits between ``BASE_DELAY`` and ``2 * BASE_DELAY``."""


class BackoffPolicy:
    """Delay schedule ``base * 2**attempt + uniform(0, base)``.

    Args:
        base_delay: Base delay in seconds.
    """

    def __init__(self, base_delay: float = BASE_DELAY) -> None:
        self.base_delay = base_delay

    def delay(self, attempt: int) -> float:
        """Return the wait in seconds after the zero-based *attempt* failed."""
        return self.base_delay * (2**attempt) + random.uniform(0, self.base_delay)

    def wait(self, attempt: int, cancel: CancelToken) -> bool:
        """Wait out the backoff for *attempt*, racing the cancellation token.

        Returns:
            ``True`` if the token fired before (or as) the delay elapsed, in
            which case the caller must stop retrying.
        """
        return cancel.wait(self.delay(attempt))
