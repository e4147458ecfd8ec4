"""PagBank notification decoding.

PagBank has posted several payload shapes over its API versions. A raw
webhook body decodes into exactly one of:

- ChargeNotification: JSON (or form fields) with reference_id, a charges
  list and/or a top-level status
- LegacyNotification: form-encoded `notificationCode` from the v2 API
- UnrecognizedNotification: anything else (acknowledged, never retried)
"""

import json
from dataclasses import dataclass, field
from urllib.parse import parse_qsl

PAID_CHARGE_STATUSES = ("PAID", "AUTHORIZED")


@dataclass(frozen=True)
class ChargeNotification:
    reference_id: str
    status: str = ""
    charge_statuses: tuple = field(default_factory=tuple)
    notification_type: str = ""

    @property
    def is_paid(self):
        return (
            any(s in PAID_CHARGE_STATUSES for s in self.charge_statuses)
            or self.status == "PAID"
        )


@dataclass(frozen=True)
class LegacyNotification:
    notification_code: str


@dataclass(frozen=True)
class UnrecognizedNotification:
    reason: str


def _from_mapping(data):
    charges = data.get("charges")
    if not isinstance(charges, list):
        charges = []

    return ChargeNotification(
        reference_id=str(data.get("reference_id") or ""),
        status=str(data.get("status") or "").upper(),
        charge_statuses=tuple(
            str(charge.get("status") or "").upper()
            for charge in charges
            if isinstance(charge, dict)
        ),
        notification_type=str(
            data.get("notificationType") or data.get("event") or data.get("type") or ""
        ),
    )


def parse_notification(body, content_type=None):
    """Decode a raw webhook body. Never raises."""
    content_type = (content_type or "").lower()
    if not body or not body.strip():
        return UnrecognizedNotification("empty_body")

    try:
        data = json.loads(body)
    except ValueError:
        if "application/x-www-form-urlencoded" not in content_type and "=" not in body:
            return UnrecognizedNotification("unknown_format")
        # Decoded from the raw body: it was already read for the signature
        # check, and PagBank sometimes omits the form Content-Type.
        data = dict(parse_qsl(body, keep_blank_values=True))
        if not data:
            return UnrecognizedNotification("unknown_format")
        if data.get("notificationCode"):
            return LegacyNotification(data["notificationCode"])

    if not isinstance(data, dict):
        return UnrecognizedNotification("unexpected_shape")

    return _from_mapping(data)
