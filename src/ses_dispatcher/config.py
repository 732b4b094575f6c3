# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Configuration loading for the SES dispatcher.

Settings are read from an INI-style file with environment variables as
fallbacks. Priority: config file > environment variables > defaults.

Example:
    Configuration file format (config.ini)::

        [dispatcher]
        rate_limit = 14
        idle_poll_interval = 30
        throttle_tick = 1
        drain_poll_interval = 1
        default_from = noreply@example.com
        default_from_name = Example Notifications
        send_timeout = 30
        log_delivery_activity = true

        [server]
        host = 0.0.0.0
        port = 8000
        api_token = secret

    Loading the dispatcher configuration::

        config = load_config("/etc/ses-dispatcher/config.ini")
        # Returns DispatcherConfig dataclass

AWS credentials are not part of this file; see
:func:`ses_dispatcher.ses_client.resolve_credentials`.
"""

from __future__ import annotations

import configparser
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from .errors import ConfigurationError
from .logger import get_logger

DEFAULT_RATE_LIMIT = 20
DEFAULT_IDLE_POLL_INTERVAL = 30.0
DEFAULT_THROTTLE_TICK = 1.0
DEFAULT_DRAIN_POLL_INTERVAL = 1.0

logger = get_logger("config")


@dataclass
class DispatcherConfig:
    """Runtime settings of a :class:`~ses_dispatcher.dispatcher.SesDispatcher`."""

    rate_limit: int = DEFAULT_RATE_LIMIT
    """Maximum messages handed to SES per second."""

    idle_poll_interval: float = DEFAULT_IDLE_POLL_INTERVAL
    """Seconds the loop sleeps when the queue is empty."""

    throttle_tick: float = DEFAULT_THROTTLE_TICK
    """Delay in seconds (at least 1) applied to a message that exceeds the pacing window."""

    drain_poll_interval: float = DEFAULT_DRAIN_POLL_INTERVAL
    """Seconds between emptiness checks in ``wait_for_drain``."""

    default_sender_address: str | None = None
    """Sender used when ``enqueue`` receives no from address."""

    default_sender_name: str | None = None
    """Display name used when ``enqueue`` receives no from name."""

    send_timeout: float = 30.0
    """Upper bound in seconds for a single SES call."""

    result_queue_size: int = 1000
    """Capacity of the outcome channel returned by ``results()``."""

    log_delivery_activity: bool = False
    """Log every delivery attempt at INFO level."""

    def validate(self) -> None:
        """Raise :class:`ConfigurationError` on values the loop cannot run with."""
        if int(self.rate_limit) < 1:
            raise ConfigurationError(f"rate_limit must be a positive integer, got {self.rate_limit}")
        if float(self.throttle_tick) < 1.0:
            # A throttled send must land in a later second of the window.
            raise ConfigurationError(f"throttle_tick must be at least 1 second, got {self.throttle_tick}")
        for name in ("idle_poll_interval", "drain_poll_interval", "send_timeout"):
            if float(getattr(self, name)) < 0:
                raise ConfigurationError(f"{name} must not be negative")
        if int(self.result_queue_size) < 1:
            raise ConfigurationError("result_queue_size must be a positive integer")

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ServerSettings:
    """Settings of the HTTP front-end."""

    host: str = "0.0.0.0"
    port: int = 8000
    api_token: str | None = field(default=None, repr=False)


def _parse_bool(value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _read_parser(config_path: str | None) -> configparser.ConfigParser | None:
    path = config_path or os.environ.get("SESD_CONFIG")
    if not path or not Path(path).exists():
        return None
    parser = configparser.ConfigParser()
    parser.read(path)
    return parser


def _resolve(
    parser: configparser.ConfigParser | None,
    section: str,
    mapping: dict[str, tuple[str, Any, Any]],
) -> dict[str, Any]:
    """Resolve each key from file, then environment, then default.

    ``mapping`` is ``{key: (env_var, type_fn, default)}``. Unparseable
    values are logged and replaced by the default.
    """
    values: dict[str, Any] = {}
    for key, (env_var, type_fn, default) in mapping.items():
        raw: str | None = None
        if parser is not None and parser.has_option(section, key):
            raw = parser.get(section, key)
        elif env_var in os.environ:
            raw = os.environ[env_var]

        if raw is None or not raw.strip():
            values[key] = default
            continue
        try:
            values[key] = type_fn(raw.strip())
        except (ValueError, TypeError):
            logger.warning(f"Invalid value for {section}.{key} ({env_var}), using default")
            values[key] = default
    return values


def load_config(config_path: str | None = None, **overrides: Any) -> DispatcherConfig:
    """Load dispatcher configuration from config file or environment.

    Environment variables:
        SESD_CONFIG: Path to the INI file when ``config_path`` is not given
        SESD_RATE_LIMIT: Messages per second (default 20)
        SESD_IDLE_POLL_INTERVAL: Idle sleep in seconds (default 30)
        SESD_THROTTLE_TICK: Throttle delay in seconds (default 1)
        SESD_DRAIN_POLL_INTERVAL: Drain polling interval in seconds (default 1)
        SESD_DEFAULT_FROM: Default sender address
        SESD_DEFAULT_FROM_NAME: Default sender display name
        SESD_SEND_TIMEOUT: Per-call SES timeout in seconds (default 30)
        SESD_LOG_DELIVERY_ACTIVITY: Log every delivery attempt (default false)

    Args:
        config_path: Optional path to config.ini file.
        **overrides: Values that win over both file and environment
            (``None`` values are ignored).

    Returns:
        A validated :class:`DispatcherConfig`.

    Raises:
        ConfigurationError: If a resolved value is out of range.
    """
    parser = _read_parser(config_path)
    values = _resolve(
        parser,
        "dispatcher",
        {
            "rate_limit": ("SESD_RATE_LIMIT", int, DEFAULT_RATE_LIMIT),
            "idle_poll_interval": ("SESD_IDLE_POLL_INTERVAL", float, DEFAULT_IDLE_POLL_INTERVAL),
            "throttle_tick": ("SESD_THROTTLE_TICK", float, DEFAULT_THROTTLE_TICK),
            "drain_poll_interval": ("SESD_DRAIN_POLL_INTERVAL", float, DEFAULT_DRAIN_POLL_INTERVAL),
            "default_from": ("SESD_DEFAULT_FROM", str, None),
            "default_from_name": ("SESD_DEFAULT_FROM_NAME", str, None),
            "send_timeout": ("SESD_SEND_TIMEOUT", float, 30.0),
            "log_delivery_activity": ("SESD_LOG_DELIVERY_ACTIVITY", _parse_bool, False),
        },
    )
    values["default_sender_address"] = values.pop("default_from")
    values["default_sender_name"] = values.pop("default_from_name")
    values.update({key: value for key, value in overrides.items() if value is not None})

    config = DispatcherConfig(**values)
    config.validate()
    return config


def load_server_settings(config_path: str | None = None) -> ServerSettings:
    """Load HTTP server settings (``[server]`` section, ``SESD_HOST``/``SESD_PORT``/``SESD_API_TOKEN``)."""
    parser = _read_parser(config_path)
    values = _resolve(
        parser,
        "server",
        {
            "host": ("SESD_HOST", str, "0.0.0.0"),
            "port": ("SESD_PORT", int, 8000),
            "api_token": ("SESD_API_TOKEN", str, None),
        },
    )
    return ServerSettings(**values)


__all__ = [
    "DispatcherConfig",
    "ServerSettings",
    "load_config",
    "load_server_settings",
]
