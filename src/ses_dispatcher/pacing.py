# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Burst pacing for the dispatch loop.

SES accounts have a maximum send rate (messages per second). The loop keeps
one pacing window per burst: the time the burst's first message was
checked and the number of messages checked since. A message is held back
for one throttle tick when its position in the burst is beyond
``ceil(elapsed) * rate_limit``.

The window is reset whenever the loop finds the queue empty, so the first
message after an idle period always goes out immediately.

Example:
    Pacing a burst::

        pacer = PacingTracker(rate_limit=14)
        for item in burst:
            if pacer.check():
                await asyncio.sleep(1.0)
            await client.send(item.to_request())
        pacer.reset()
"""

from __future__ import annotations

import math
import time
from collections.abc import Callable

from .errors import ConfigurationError


class PacingTracker:
    """Ceiling-based sliding window over one burst.

    Attributes:
        rate_limit: Messages allowed per elapsed second of the window.
        window_start: Clock value of the burst's first check, or None.
        count: Position of the last checked message in the burst.
    """

    def __init__(self, rate_limit: int, clock: Callable[[], float] = time.monotonic):
        """Initialize an empty window.

        Args:
            rate_limit: Positive number of messages per second.
            clock: Monotonic time source in seconds, injectable for tests.

        Raises:
            ConfigurationError: If ``rate_limit`` is not positive.
        """
        if int(rate_limit) < 1:
            raise ConfigurationError(f"rate_limit must be a positive integer, got {rate_limit}")
        self.rate_limit = int(rate_limit)
        self._clock = clock
        self.window_start: float | None = None
        self.count = 1

    def check(self) -> bool:
        """Register the next message and tell whether it must wait one tick.

        Returns:
            True when the message exceeds the allowance of the window.
        """
        now = self._clock()
        if self.window_start is None:
            self.window_start = now
            self.count = 1
            return False

        self.count += 1
        # The first, possibly partial, second of a window counts as a whole one.
        elapsed = max(1, math.ceil(now - self.window_start))
        return self.count > elapsed * self.rate_limit

    def reset(self) -> None:
        """Forget the current burst."""
        self.window_start = None
        self.count = 1

    @property
    def active(self) -> bool:
        return self.window_start is not None
