# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Queue items and dispatch outcomes.

:class:`EmailRequest` is the item held by the send queue. It knows how to
render itself as the keyword arguments of the SES ``SendEmail`` call.
Callers that need extra fields can pass an ``envelope_builder`` to
``enqueue`` returning any object that satisfies :class:`SupportsSesRequest`.

:class:`DispatchOutcome` is built once per send attempt and handed to the
notifier; it is not retained after notification.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from .errors import DispatchError

DEFAULT_CHARSET = "UTF-8"


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def first_address(addresses: Any) -> str | None:
    """First recipient of a list of addresses, or None when there is none."""
    if isinstance(addresses, (list, tuple)) and addresses and isinstance(addresses[0], str):
        return addresses[0]
    return None


@runtime_checkable
class SupportsSesRequest(Protocol):
    """Anything the dispatch loop can hand to SES."""

    source: str
    to_addresses: list[str]

    def to_request(self) -> dict[str, Any]: ...


@dataclass
class EmailRequest:
    """One outbound HTML message.

    Attributes:
        source: Formatted sender, e.g. ``"Example <noreply@example.com>"``.
        to_addresses: Recipient addresses.
        subject: Subject line.
        html_body: HTML body.
        charset: Charset declared for subject and body.
        metadata: Caller data carried through to the outcome, never sent.
        created_at: ISO-8601 enqueue timestamp.
    """

    source: str
    to_addresses: list[str]
    subject: str
    html_body: str
    charset: str = DEFAULT_CHARSET
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: str = field(default_factory=_utc_now_iso)

    def to_request(self) -> dict[str, Any]:
        """Return the keyword arguments for ``ses.send_email``."""
        return {
            "Source": self.source,
            "Destination": {"ToAddresses": list(self.to_addresses)},
            "Message": {
                "Subject": {"Data": self.subject, "Charset": self.charset},
                "Body": {"Html": {"Data": self.html_body, "Charset": self.charset}},
            },
        }


@dataclass
class DispatchOutcome:
    """Result of one send attempt.

    Exactly one of ``response`` and ``error`` is set.
    """

    item: SupportsSesRequest
    response: dict[str, Any] | None = None
    error: DispatchError | None = None
    throttled: bool = False
    timestamp: str = field(default_factory=_utc_now_iso)

    @classmethod
    def success(cls, item: SupportsSesRequest, response: dict[str, Any] | None, *, throttled: bool = False) -> DispatchOutcome:
        return cls(item=item, response=response or {}, throttled=throttled)

    @classmethod
    def failure(cls, item: SupportsSesRequest, error: DispatchError, *, throttled: bool = False) -> DispatchOutcome:
        return cls(item=item, error=error, throttled=throttled)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def status(self) -> str:
        return "sent" if self.ok else "error"

    @property
    def destination(self) -> str | None:
        return first_address(getattr(self.item, "to_addresses", None))

    @property
    def message_id(self) -> str | None:
        """SES message id of a successful send."""
        if not self.response:
            return None
        return self.response.get("MessageId")

    def to_dict(self) -> dict[str, Any]:
        """Serialisable summary used by logs, the CLI and the HTTP layer."""
        data: dict[str, Any] = {
            "status": self.status,
            "to": list(getattr(self.item, "to_addresses", None) or []),
            "from": getattr(self.item, "source", None),
            "throttled": self.throttled,
            "timestamp": self.timestamp,
        }
        if self.ok:
            data["message_id"] = self.message_id
        else:
            data["error"] = str(self.error)
        metadata = getattr(self.item, "metadata", None)
        if metadata:
            data["metadata"] = dict(metadata)
        return data
