"""
Shared builders for the backend tests.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Optional

from contest_backend.config import Settings
from contest_backend.db import InMemoryEntryStore
from contest_backend.dependencies import Backends
from contest_backend.fees import calculate_fees, to_minor_units
from contest_backend.files import InlineFileStore
from contest_backend.gateway import InMemoryPaymentGateway

WEBHOOK_SECRET = "whsec_test_secret"

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"
PPTX_TYPE = "application/vnd.openxmlformats-officedocument.presentationml.presentation"


def words(count: int) -> str:
    return " ".join(f"word{i}" for i in range(count))


def make_settings(**overrides) -> Settings:
    values = {
        "use_in_memory_backends": True,
        "environment": "test",
        "stripe_webhook_secret": WEBHOOK_SECRET,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_backends(**overrides) -> Backends:
    settings = make_settings(**overrides)
    return Backends(
        settings=settings,
        store=InMemoryEntryStore(),
        gateway=InMemoryPaymentGateway(webhook_secret=WEBHOOK_SECRET),
        files=InlineFileStore(settings.api_prefix),
    )


def paid_intent(
    gateway: InMemoryPaymentGateway,
    category: str = "business",
    entry_type: str = "text",
    status: str = "succeeded",
) -> str:
    """Create an intent the way the API does and settle it."""
    fees = calculate_fees(category)
    intent = gateway.create_intent(
        to_minor_units(fees.total_amount),
        "usd",
        {
            "category": category,
            "entryType": entry_type,
            "entryFee": fees.entry_fee,
            "surcharge": fees.surcharge,
        },
    )
    gateway.set_status(intent.id, status)
    return intent.id


def sign_payload(
    payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None
) -> str:
    """Build a Stripe-Signature header (``t=...,v1=...``) for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + payload
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def event_payload(event_type: str, intent_id: str) -> bytes:
    return json.dumps(
        {
            "id": "evt_test_1",
            "object": "event",
            "type": event_type,
            "data": {"object": {"id": intent_id, "object": "payment_intent"}},
        }
    ).encode("utf-8")
