"""Cooperative cancellation for blocking calls.

:class:`CancelToken` is the Python stand-in for a request context: another
thread may call :meth:`CancelToken.cancel`, and a token created with a
deadline cancels itself once the deadline passes. The dispatcher consults the
token before each attempt, caps each transport timeout by the remaining
deadline, and races its backoff wait against the token.
"""

from __future__ import annotations

import threading
import time
from typing import Optional

from promptwire.exceptions import CancelledError_


class CancelToken:
    """A thread-safe cancellation signal with an optional monotonic deadline.

    Args:
        deadline: Absolute :func:`time.monotonic` value after which the token
            counts as cancelled. ``None`` means no deadline.

    Example::

        token = CancelToken.with_timeout(30)
        client.create_chat_completion(request, cancel=token)
    """

    def __init__(self, deadline: Optional[float] = None) -> None:
        self._event = threading.Event()
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> CancelToken:
        """Create a token that cancels itself *seconds* from now."""
        return cls(deadline=time.monotonic() + seconds)

    @property
    def deadline(self) -> Optional[float]:
        return self._deadline

    @property
    def cancelled(self) -> bool:
        """``True`` once :meth:`cancel` was called or the deadline passed."""
        if self._event.is_set():
            return True
        return self._deadline is not None and time.monotonic() >= self._deadline

    def cancel(self) -> None:
        self._event.set()

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, ``None`` without a deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def wait(self, timeout: float) -> bool:
        """Block for up to *timeout* seconds or until the token is cancelled.

        Returns:
            ``True`` if the token is cancelled when the wait ends, ``False``
            if the full timeout elapsed first. A cancellation that becomes
            visible at the same moment the timer expires still wins.
        """
        remaining = self.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        self._event.wait(timeout)
        return self.cancelled

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancelledError_(self.reason())

    def reason(self) -> str:
        if self._event.is_set():
            return "request failed due to canceled context"
        return "request failed due to exceeded deadline"
