# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Outcome delivery for the dispatch loop.

Two ways to observe outcomes:

- Observers registered with :meth:`Notifier.subscribe_success` and
  :meth:`Notifier.subscribe_failure`. They run on the dispatch loop, in
  registration order, before the item leaves the queue. Coroutine
  functions are awaited. An observer that raises is logged and counted;
  the remaining observers and the loop are unaffected.
- The channel returned by :meth:`Notifier.results`, an async iterator the
  owner consumes at its own pace. Outcomes are buffered only while a
  consumer is attached.
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any

from .logger import get_logger
from .models import DispatchOutcome

Observer = Callable[[DispatchOutcome], Awaitable[None] | None]


class Notifier:
    """Fan-out of dispatch outcomes to observers and result channels."""

    def __init__(self, *, logger=None, metrics=None, channel_size: int = 1000):
        self.logger = logger or get_logger("Notifier")
        self.metrics = metrics
        self._channel_size = max(1, int(channel_size))
        self._on_success: list[Observer] = []
        self._on_failure: list[Observer] = []
        self._channels: list[asyncio.Queue[DispatchOutcome]] = []

    # ------------------------------------------------------------ registration
    def subscribe_success(self, observer: Observer) -> Observer:
        """Register ``observer`` for successful sends; returns it for decorator use."""
        self._on_success.append(observer)
        return observer

    def subscribe_failure(self, observer: Observer) -> Observer:
        """Register ``observer`` for failed sends; returns it for decorator use."""
        self._on_failure.append(observer)
        return observer

    def unsubscribe_success(self, observer: Observer) -> bool:
        return self._remove(self._on_success, observer)

    def unsubscribe_failure(self, observer: Observer) -> bool:
        return self._remove(self._on_failure, observer)

    @staticmethod
    def _remove(observers: list[Observer], observer: Observer) -> bool:
        try:
            observers.remove(observer)
        except ValueError:
            return False
        return True

    # ------------------------------------------------------------------ notify
    async def notify(self, outcome: DispatchOutcome) -> None:
        """Deliver ``outcome`` to the matching observers and to open channels."""
        observers = self._on_success if outcome.ok else self._on_failure
        for observer in list(observers):
            await self._invoke(observer, outcome)
        self._publish(outcome)

    async def _invoke(self, observer: Observer, outcome: DispatchOutcome) -> None:
        try:
            result: Any = observer(outcome)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self.logger.exception(
                "Outcome observer %r failed for message to %s",
                observer,
                outcome.destination or "-",
            )
            if self.metrics is not None:
                self.metrics.inc_observer_error()

    def _publish(self, outcome: DispatchOutcome) -> None:
        for channel in self._channels:
            try:
                channel.put_nowait(outcome)
            except asyncio.QueueFull:
                self.logger.error(
                    "Result channel full; dropping %s outcome for %s",
                    outcome.status,
                    outcome.destination or "-",
                )

    # ----------------------------------------------------------------- channel
    def results(self) -> OutcomeChannel:
        """Open a channel receiving every outcome from now on.

        The channel is attached immediately, so outcomes produced before the
        first ``async for`` step are not lost. Close it (or leave its
        ``async with`` block) to detach.
        """
        channel = OutcomeChannel(self, asyncio.Queue(maxsize=self._channel_size))
        self._channels.append(channel.queue)
        return channel

    def _detach(self, queue: asyncio.Queue[DispatchOutcome]) -> None:
        if queue in self._channels:
            self._channels.remove(queue)

    @property
    def observer_count(self) -> int:
        return len(self._on_success) + len(self._on_failure)


class OutcomeChannel:
    """Async iterator over outcomes, returned by :meth:`Notifier.results`.

    Example:
        Consuming outcomes next to the dispatcher::

            async with dispatcher.results() as outcomes:
                async for outcome in outcomes:
                    print(outcome.status, outcome.destination)
    """

    def __init__(self, notifier: Notifier, queue: asyncio.Queue[DispatchOutcome]):
        self._notifier = notifier
        self.queue = queue

    def __aiter__(self) -> AsyncIterator[DispatchOutcome]:
        return self

    async def __anext__(self) -> DispatchOutcome:
        return await self.queue.get()

    async def get(self, timeout: float | None = None) -> DispatchOutcome:
        """Wait for the next outcome, optionally bounded by ``timeout`` seconds."""
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout=timeout)

    def close(self) -> None:
        self._notifier._detach(self.queue)

    async def __aenter__(self) -> OutcomeChannel:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        self.close()
        return False
