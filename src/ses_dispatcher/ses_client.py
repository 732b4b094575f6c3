# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Amazon SES delivery client.

The dispatch loop only needs an object implementing :class:`DeliveryClient`:
``open()`` before the first send, ``send()`` once per message and
``close()`` on shutdown. :class:`SesClient` implements it on top of
aioboto3; tests substitute a fake with the same three coroutines.

Credentials come from the environment variables ``SESAccess``,
``SESSecret`` and ``SESRegion``.

Example:
    Sending one request outside the dispatcher::

        credentials = resolve_credentials()
        async with SesClient(credentials) as client:
            response = await client.send(request.to_request())
            print(response["MessageId"])
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Mapping
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Any, Protocol

import aioboto3

from .errors import ConfigurationError
from .logger import get_logger

ACCESS_KEY_VAR = "SESAccess"
SECRET_KEY_VAR = "SESSecret"
REGION_VAR = "SESRegion"


@dataclass(frozen=True)
class SesCredentials:
    """Static AWS credentials and region for SES."""

    access_key: str
    secret_key: str = field(repr=False)
    region: str

    def masked(self) -> dict[str, str]:
        """Return a printable view with the secret hidden."""
        return {
            "access_key": self.access_key,
            "secret_key": "****",
            "region": self.region,
        }


class DeliveryClient(Protocol):
    """Boundary between the dispatch loop and the delivery service."""

    async def open(self) -> None: ...

    async def close(self) -> None: ...

    async def send(self, request: dict[str, Any]) -> dict[str, Any]: ...


def _ses_regions() -> list[str]:
    return aioboto3.Session().get_available_regions("ses")


def resolve_credentials(env: Mapping[str, str] | None = None) -> SesCredentials:
    """Read SES credentials from the environment.

    Args:
        env: Mapping to read from; defaults to ``os.environ``.

    Raises:
        ConfigurationError: If a variable is unset or the region is unknown.
    """
    env = os.environ if env is None else env
    access_key = env.get(ACCESS_KEY_VAR)
    secret_key = env.get(SECRET_KEY_VAR)
    region = env.get(REGION_VAR)

    if not access_key:
        raise ConfigurationError(f"{ACCESS_KEY_VAR} Environment Variable is not set")
    if not secret_key:
        raise ConfigurationError(f"{SECRET_KEY_VAR} Environment Variable is not set")
    if not region:
        raise ConfigurationError(f"{REGION_VAR} Environment Variable is not set")

    region = region.strip()
    if region not in _ses_regions():
        raise ConfigurationError("Invalid AWS Region")
    return SesCredentials(access_key=access_key, secret_key=secret_key, region=region)


class SesClient:
    """Long-lived aioboto3 SES client.

    The underlying client is opened once and reused for every send; only
    the dispatch loop calls :meth:`send`, so no locking is needed.

    Attributes:
        credentials: Credentials and region used to open the client.
        send_timeout: Upper bound in seconds for one ``send_email`` call.
    """

    def __init__(self, credentials: SesCredentials, *, send_timeout: float = 30.0, logger=None):
        self.credentials = credentials
        self.send_timeout = float(send_timeout)
        self.logger = logger or get_logger("SesClient")
        self._stack: AsyncExitStack | None = None
        self._client: Any = None

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def open(self) -> None:
        """Create the aioboto3 session and enter its SES client context."""
        if self._client is not None:
            return
        session = aioboto3.Session(
            aws_access_key_id=self.credentials.access_key,
            aws_secret_access_key=self.credentials.secret_key,
            region_name=self.credentials.region,
        )
        stack = AsyncExitStack()
        self._client = await stack.enter_async_context(session.client("ses"))
        self._stack = stack
        self.logger.debug("SES client opened for region %s", self.credentials.region)

    async def close(self) -> None:
        if self._stack is None:
            return
        stack, self._stack, self._client = self._stack, None, None
        await stack.aclose()
        self.logger.debug("SES client closed")

    async def send(self, request: dict[str, Any]) -> dict[str, Any]:
        """Send one message; returns the SES response (``MessageId`` et al.).

        Raises:
            RuntimeError: If the client has not been opened.
            asyncio.TimeoutError: If SES does not answer within ``send_timeout``.
            botocore.exceptions.ClientError: If SES rejects the message.
        """
        if self._client is None:
            raise RuntimeError("SES client is not open")
        return await asyncio.wait_for(self._client.send_email(**request), timeout=self.send_timeout)

    async def __aenter__(self) -> SesClient:
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> bool:
        await self.close()
        return False
