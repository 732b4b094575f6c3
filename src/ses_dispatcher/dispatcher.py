# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Core dispatch loop of the SES dispatcher.

This module provides :class:`SesDispatcher`, the single consumer of the send
queue. Producers call :meth:`SesDispatcher.enqueue` from any thread; one
background task drains the queue in FIFO order:

- peek the head message (it stays queued while being sent)
- ask the pacing tracker whether the burst exceeds the rate limit and, if
  so, wait one throttle tick
- hand the message to the delivery client
- notify success or failure observers
- remove the message, whatever the outcome

When the queue is empty the pacing window is reset and the loop sleeps for
the idle poll interval (or until :meth:`SesDispatcher.run_now`).

Failed sends are reported and discarded: there is no retry and no
dead-letter queue.

Example:
    Running the dispatcher::

        from ses_dispatcher.dispatcher import create_dispatcher

        dispatcher = create_dispatcher()
        dispatcher.on_failure(lambda outcome: print("failed", outcome.error))

        await dispatcher.start()
        dispatcher.enqueue("user@example.com", "Welcome", "<p>Hello</p>",
                           from_address="noreply@example.com")
        await dispatcher.wait_for_drain()
        await dispatcher.stop()
"""

from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable, Mapping
from email.utils import parseaddr
from typing import Any

from .config import DispatcherConfig, load_config
from .envelope import EnvelopeBuilder, build_envelope, resolve_sender
from .errors import ConfigurationError, DispatchError, ValidationError
from .logger import get_logger
from .models import DispatchOutcome, SupportsSesRequest, first_address
from .notifier import Observer, OutcomeChannel, Notifier
from .pacing import PacingTracker
from .prometheus import DispatchMetrics
from .send_queue import SendQueue
from .ses_client import DeliveryClient, SesClient, resolve_credentials


class SesDispatcher:
    """Rate-limited, single-consumer dispatcher in front of a delivery client.

    Attributes:
        client: Delivery client used exclusively by the dispatch loop.
        config: Runtime settings.
        logger: Logger instance for diagnostic output.
        metrics: Prometheus metrics collector.
        queue: FIFO of messages waiting to be sent.
        pacer: Pacing window of the current burst.
        notifier: Observer registry and outcome channels.
        idle_cycles: Number of times the loop found the queue empty.
    """

    def __init__(
        self,
        client: DeliveryClient,
        *,
        config: DispatcherConfig | None = None,
        logger=None,
        metrics: DispatchMetrics | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Build a stopped dispatcher; call :meth:`start` to run the loop.

        Args:
            client: Object implementing ``open``/``send``/``close``.
            config: Runtime settings; defaults to :class:`DispatcherConfig`.
            logger: Custom logger instance. If None, uses default logger.
            metrics: Metrics collector. If None, creates a new instance.
            clock: Monotonic time source for pacing, injectable for tests.

        Raises:
            ConfigurationError: If ``config`` holds out-of-range values.
        """
        self.config = config or DispatcherConfig()
        self.config.validate()
        self.client = client
        self.logger = logger or get_logger()
        self.metrics = metrics or DispatchMetrics()
        self.queue: SendQueue[SupportsSesRequest] = SendQueue()
        self.pacer = PacingTracker(self.config.rate_limit, clock=clock)
        self.notifier = Notifier(
            logger=self.logger,
            metrics=self.metrics,
            channel_size=self.config.result_queue_size,
        )
        self.idle_cycles = 0

        self._stop = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    # ---------------------------------------------------------------- producers
    def enqueue(
        self,
        target_address: str,
        subject: str,
        body_html: str,
        from_address: str | None = None,
        from_display_name: str | None = None,
        envelope_builder: EnvelopeBuilder | None = None,
    ) -> None:
        """Validate a message and append it to the queue.

        Safe to call from any thread. Missing or blank sender fields fall
        back to the configured defaults.

        Args:
            target_address: Recipient address.
            subject: Subject line.
            body_html: HTML body.
            from_address: Sender address; defaults to ``default_sender_address``.
            from_display_name: Sender name; defaults to ``default_sender_name``.
            envelope_builder: Optional transform applied to the built
                :class:`~ses_dispatcher.models.EmailRequest`, typically to
                attach caller metadata.

        Raises:
            ValidationError: If the resolved sender or the target is blank,
                or the builder returns something SES cannot send. The queue
                is left untouched.
        """
        sender, sender_name = resolve_sender(
            from_address,
            from_display_name,
            self.config.default_sender_address,
            self.config.default_sender_name,
        )
        item: Any = build_envelope(target_address, subject, body_html, sender, sender_name)
        if envelope_builder is not None:
            item = envelope_builder(item)
            if not isinstance(item, SupportsSesRequest):
                raise ValidationError("envelope_builder must return an object providing to_request()")
        self.queue.enqueue(item)
        self.metrics.set_pending(len(self.queue))

    def is_empty(self) -> bool:
        return self.queue.is_empty()

    @property
    def pending(self) -> int:
        return len(self.queue)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def wait_for_drain(self, poll_interval: float | None = None) -> None:
        """Return once the queue is empty, polling at a fixed interval.

        An empty queue means every enqueued message has been sent (or has
        failed) and its observers have run.
        """
        interval = self.config.drain_poll_interval if poll_interval is None else float(poll_interval)
        while not self.queue.is_empty():
            await asyncio.sleep(interval)

    # ---------------------------------------------------------------- observers
    def on_success(self, observer: Observer) -> Observer:
        return self.notifier.subscribe_success(observer)

    def on_failure(self, observer: Observer) -> Observer:
        return self.notifier.subscribe_failure(observer)

    def remove_success(self, observer: Observer) -> bool:
        return self.notifier.unsubscribe_success(observer)

    def remove_failure(self, observer: Observer) -> bool:
        return self.notifier.unsubscribe_failure(observer)

    def results(self) -> OutcomeChannel:
        """Open a channel yielding every outcome from now on."""
        return self.notifier.results()

    # ------------------------------------------------------------------ commands
    async def handle_command(self, cmd: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        """Execute an external control command.

        Supported commands:
        - ``run now``: wake an idle loop immediately
        - ``status``: running flag, queue depth and observer count
        - ``addMessages``: enqueue a batch of messages

        Returns:
            dict: Command result with ``ok`` status and command-specific data.
        """
        payload = payload or {}
        match cmd:
            case "run now":
                self.run_now()
                return {"ok": True}
            case "status":
                return {
                    "ok": True,
                    "running": self.running,
                    "pending": self.pending,
                    "observers": self.notifier.observer_count,
                }
            case "addMessages":
                return self._handle_add_messages(payload)
            case _:
                return {"ok": False, "error": "unknown command"}

    def _handle_add_messages(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Enqueue each message of ``payload["messages"]``, one item per recipient.

        Each message is a dict with ``to`` (string or list), ``subject``,
        ``body`` and optional ``from``, ``from_name`` and ``metadata``.
        """
        messages = payload.get("messages")
        if not isinstance(messages, list):
            return {"ok": False, "error": "messages must be a list"}

        queued = 0
        rejected: list[dict[str, Any]] = []
        for index, message in enumerate(messages):
            if not isinstance(message, dict):
                rejected.append({"index": index, "reason": "invalid payload"})
                continue
            recipients = message.get("to")
            if isinstance(recipients, str) or not recipients:
                recipients = [recipients or None]
            metadata = message.get("metadata") or {}

            def attach(item, metadata=metadata):
                item.metadata.update(metadata)
                return item

            for target in recipients:
                try:
                    self.enqueue(
                        target,
                        message.get("subject") or "",
                        message.get("body") or "",
                        from_address=message.get("from"),
                        from_display_name=message.get("from_name"),
                        envelope_builder=attach if metadata else None,
                    )
                except ValidationError as exc:
                    rejected.append({"index": index, "to": target, "reason": str(exc)})
                else:
                    queued += 1

        return {"ok": queued > 0 or not rejected, "queued": queued, "rejected": rejected}

    # ----------------------------------------------------------------- lifecycle
    async def start(self) -> asyncio.Task:
        """Open the delivery client and spawn the dispatch loop.

        Returns:
            The loop task; calling ``start`` again while it runs returns it.
        """
        if self.running:
            return self._task
        self.logger.info(
            "Starting SES dispatcher (rate_limit=%d/s, idle_poll_interval=%ss)",
            self.config.rate_limit,
            self.config.idle_poll_interval,
        )
        await self.client.open()
        self._loop = asyncio.get_running_loop()
        self._stop.clear()
        self._wake_event.clear()
        self._task = asyncio.create_task(self._dispatch_loop(), name="ses-dispatch-loop")
        return self._task

    async def stop(self, *, drain: bool = False) -> None:
        """Stop the loop and close the client.

        A message already in flight is sent and notified before the loop
        exits. Messages still queued stay in memory and are lost with the
        process unless ``drain`` is True.

        Args:
            drain: Wait for the queue to empty before stopping.
        """
        if drain and self.running:
            await self.wait_for_drain()
        self._stop.set()
        self._wake_event.set()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self.client.close()
        self.logger.info("SES dispatcher stopped (%d messages left in queue)", len(self.queue))

    def run_now(self) -> None:
        """Wake an idle loop without waiting for the poll interval. Thread-safe."""
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is loop:
            self._wake_event.set()
        else:
            loop.call_soon_threadsafe(self._wake_event.set)

    async def __aenter__(self) -> SesDispatcher:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.stop(drain=exc_type is None)
        return False

    # ------------------------------------------------------------- dispatch loop
    async def _dispatch_loop(self) -> None:
        """Background loop draining the queue until :meth:`stop` is called."""
        self.logger.debug("Dispatch loop started")
        while not self._stop.is_set():
            try:
                if self.queue.is_empty():
                    self._on_idle()
                    await self._wait_for_wakeup(self.config.idle_poll_interval)
                    continue
                await self._dispatch_head()
            except Exception as exc:  # pragma: no cover
                self.logger.exception("Unhandled error in dispatch loop: %s", exc)
        self.logger.debug("Dispatch loop stopped")

    def _on_idle(self) -> None:
        if self.pacer.active:
            self.logger.debug("Queue drained after %d messages, pacing window reset", self.pacer.count)
        self.pacer.reset()
        self.idle_cycles += 1
        self.metrics.set_pending(0)

    async def _dispatch_head(self) -> None:
        """Send, notify and remove the head of the queue.

        The head leaves the queue exactly once, whatever the outcome. Only a
        cancellation before the attempt resolves leaves it queued.
        """
        item = self.queue.peek()
        if item is None:
            return
        try:
            outcome = await self._attempt(item)
        except Exception as exc:
            outcome = self._failure(item, exc, destination=first_address(getattr(item, "to_addresses", None)))
        try:
            await self.notifier.notify(outcome)
        finally:
            self.queue.dequeue()
            self.metrics.set_pending(len(self.queue))

    async def _attempt(self, item: SupportsSesRequest) -> DispatchOutcome:
        """Pace and send one message, turning any error into a failure outcome."""
        throttled = False
        destination = None
        try:
            throttled = await self._pace()
            destination = first_address(item.to_addresses)
            if self.config.log_delivery_activity:
                self.logger.info("Attempting delivery to %s from %s", destination or "-", item.source)
            response = await self.client.send(item.to_request())
        except Exception as exc:
            return self._failure(item, exc, destination=destination, throttled=throttled)

        self.metrics.inc_sent(_sender_label(item))
        outcome = DispatchOutcome.success(item, response, throttled=throttled)
        if self.config.log_delivery_activity:
            self.logger.info("Delivery succeeded to %s (message_id=%s)", destination or "-", outcome.message_id or "-")
        return outcome

    async def _pace(self) -> bool:
        """Hold the head back one throttle tick when the burst is over the rate limit."""
        if not self.pacer.check():
            return False
        self.metrics.inc_throttled()
        self.logger.debug(
            "Message %d of burst exceeds %d/s, waiting %ss",
            self.pacer.count,
            self.config.rate_limit,
            self.config.throttle_tick,
        )
        await asyncio.sleep(self.config.throttle_tick)
        return True

    def _failure(
        self,
        item: SupportsSesRequest,
        exc: Exception,
        *,
        destination: str | None,
        throttled: bool = False,
    ) -> DispatchOutcome:
        source = getattr(item, "source", None)
        self.logger.error(
            "Error sending email to %s from %s: %s",
            destination or "-",
            source or "-",
            exc,
            exc_info=exc,
        )
        self.metrics.inc_error(_sender_label(item))
        error = DispatchError(str(exc) or type(exc).__name__, destination=destination, sender=source)
        error.__cause__ = exc
        return DispatchOutcome.failure(item, error, throttled=throttled)

    async def _wait_for_wakeup(self, timeout: float | None) -> None:
        """Pause the loop until timeout, :meth:`run_now` or :meth:`stop`.

        Args:
            timeout: Maximum seconds to wait. None or infinity waits indefinitely.
        """
        if self._stop.is_set():
            return
        if timeout is None or math.isinf(float(timeout)):
            await self._wake_event.wait()
            self._wake_event.clear()
            return
        timeout = max(0.0, float(timeout))
        if timeout == 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wake_event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return
        self._wake_event.clear()


def _sender_label(item: Any) -> str | None:
    """Bare sender address used as the metrics label."""
    source = getattr(item, "source", None)
    if not isinstance(source, str):
        return None
    return parseaddr(source)[1] or source


def create_dispatcher(
    config: DispatcherConfig | None = None,
    *,
    env: Mapping[str, str] | None = None,
    logger=None,
    metrics: DispatchMetrics | None = None,
) -> SesDispatcher:
    """Build a dispatcher backed by SES from configuration and environment.

    Args:
        config: Runtime settings; loaded with :func:`load_config` when None.
        env: Environment holding ``SESAccess``/``SESSecret``/``SESRegion``;
            defaults to ``os.environ``.
        logger: Custom logger instance.
        metrics: Metrics collector.

    Returns:
        A stopped :class:`SesDispatcher`.

    Raises:
        ConfigurationError: Logged at CRITICAL level and re-raised, so a
            dispatcher that could never deliver is not handed out.
    """
    log = logger or get_logger()
    try:
        config = config if config is not None else load_config()
        credentials = resolve_credentials(env)
        client = SesClient(credentials, send_timeout=config.send_timeout)
        return SesDispatcher(client, config=config, logger=log, metrics=metrics)
    except ConfigurationError as exc:
        log.critical("Error starting SES dispatcher: %s", exc)
        raise
