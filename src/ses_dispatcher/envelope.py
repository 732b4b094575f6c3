# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Envelope construction for outbound SES messages."""

from __future__ import annotations

from collections.abc import Callable
from email.utils import formataddr

from .errors import ValidationError
from .models import DEFAULT_CHARSET, EmailRequest, SupportsSesRequest

EnvelopeBuilder = Callable[[EmailRequest], SupportsSesRequest]


def _blank(value: object) -> bool:
    return not isinstance(value, str) or not value.strip()


def resolve_sender(
    from_address: str | None,
    from_display_name: str | None,
    default_address: str | None,
    default_display_name: str | None,
) -> tuple[str | None, str | None]:
    """Pick the explicit sender fields or fall back to the defaults.

    Blank explicit values count as missing.
    """
    address = default_address if _blank(from_address) else from_address
    name = default_display_name if _blank(from_display_name) else from_display_name
    return (address.strip() if address else address), (name.strip() if name else name)


def format_sender(address: str, display_name: str | None = None) -> str:
    """Format ``"Display Name <address>"`` (RFC 5322), or the bare address."""
    return formataddr((display_name or "", address))


def validate_addresses(sender: str | None, target: str | None) -> None:
    if _blank(sender):
        raise ValidationError("From Email Is Required")
    if _blank(target):
        raise ValidationError("Target Email Is Required")


def build_envelope(
    target_address: str,
    subject: str,
    body_html: str,
    from_address: str,
    from_display_name: str | None = None,
    *,
    charset: str = DEFAULT_CHARSET,
) -> EmailRequest:
    """Build the SES envelope for one recipient.

    Raises:
        ValidationError: If the sender or the target address is blank.
    """
    validate_addresses(from_address, target_address)
    return EmailRequest(
        source=format_sender(from_address.strip(), from_display_name),
        to_addresses=[target_address.strip()],
        subject=subject,
        html_body=body_html,
        charset=charset,
    )
