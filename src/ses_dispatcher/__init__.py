# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Rate-limited asynchronous dispatcher for Amazon SES.

Producers enqueue HTML messages from any thread; a single background task
drains the queue in order, paces sends to stay within the SES per-second
quota and reports every outcome to success/failure observers.

Features:
    - Unbounded FIFO queue safe for concurrent producers
    - Burst pacing against a configurable messages-per-second limit
    - Explicit start/stop lifecycle and drain waiting
    - Observer callbacks and an async outcome channel
    - Prometheus metrics, FastAPI control surface and click CLI

Example:
    Basic usage::

        from ses_dispatcher import create_dispatcher

        dispatcher = create_dispatcher()
        async with dispatcher:
            dispatcher.enqueue("user@example.com", "Hello", "<p>Hi</p>",
                               from_address="noreply@example.com")
"""

from .config import DispatcherConfig, load_config
from .dispatcher import SesDispatcher, create_dispatcher
from .errors import ConfigurationError, DispatchError, DispatcherError, ValidationError
from .models import DispatchOutcome, EmailRequest, SupportsSesRequest

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "DispatchError",
    "DispatchOutcome",
    "DispatcherConfig",
    "DispatcherError",
    "EmailRequest",
    "SesDispatcher",
    "SupportsSesRequest",
    "ValidationError",
    "create_dispatcher",
    "load_config",
]
