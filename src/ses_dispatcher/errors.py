# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Exception hierarchy for the SES dispatcher.

Every error carries a stable ``code`` so HTTP and CLI surfaces can report
it without parsing messages:

- :class:`ConfigurationError`: credentials, region or numeric settings are
  missing or invalid. Raised while building a dispatcher.
- :class:`ValidationError`: a message cannot be enqueued (blank sender or
  target). Raised synchronously by ``enqueue``.
- :class:`DispatchError`: the delivery service rejected one message. Never
  raised out of the dispatch loop; delivered to failure observers instead.
"""

from __future__ import annotations


class DispatcherError(RuntimeError):
    """Base class for all dispatcher errors."""

    code = "dispatcher_error"


class ConfigurationError(DispatcherError):
    """Raised when the dispatcher cannot be configured."""

    code = "configuration_error"


class ValidationError(DispatcherError):
    """Raised when an outbound message fails enqueue-time validation."""

    code = "validation_error"


class DispatchError(DispatcherError):
    """Failure of a single send attempt.

    Attributes:
        destination: First recipient of the failed message, or None.
        sender: Formatted sender of the failed message, or None.
    """

    code = "dispatch_error"

    def __init__(self, message: str, *, destination: str | None = None, sender: str | None = None):
        super().__init__(message)
        self.destination = destination
        self.sender = sender
