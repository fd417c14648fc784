"""Pytest configuration and fixtures."""

import hashlib
import hmac
import json
import os
import time
from contextlib import nullcontext
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

# Settings are read at import time
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["RESEND_API_KEY"] = "re_test_key"
os.environ["EMAIL_FROM"] = "SnapShield <orders@snapshield.test>"
os.environ["OUTBOX_FLUSH_TOKEN"] = "flush-test-token"

import pytest
from fastapi.testclient import TestClient

WEBHOOK_SECRET = "whsec_test_secret"


def sign(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header (v1 scheme)."""
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{ts}.{payload}".encode(), hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def make_address(**overrides) -> dict:
    address = {
        "line1": "1 Market St",
        "line2": None,
        "city": "San Francisco",
        "state": "CA",
        "postal_code": "94105",
        "country": "US",
    }
    address.update(overrides)
    return address


def make_session(**overrides) -> dict:
    session = {
        "id": "cs_test_123",
        "object": "checkout.session",
        "metadata": {"userId": "u1", "orderId": "o1"},
        "customer_details": {
            "email": "a@b.com",
            "name": "Ada Lovelace",
            "address": make_address(),
        },
        "shipping_details": {
            "name": "Ada Lovelace",
            "address": make_address(line1="2 Mission St", postal_code="94107"),
        },
    }
    session.update(overrides)
    return session


def make_event(session: dict | None = None, event_type: str = "checkout.session.completed", event_id: str = "evt_1") -> dict:
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "data": {"object": session if session is not None else make_session()},
    }


@pytest.fixture
def client():
    from app.main import app

    return TestClient(app)


@pytest.fixture
def post_event(client):
    """POST an event to the webhook with a valid signature."""

    def _post(event: dict, signature: str | None = None):
        payload = json.dumps(event)
        headers = {"Content-Type": "application/json"}
        headers["Stripe-Signature"] = signature if signature is not None else sign(payload)
        return client.post("/api/webhooks", content=payload, headers=headers)

    return _post


@pytest.fixture
def order_row() -> dict:
    return {
        "id": "o1",
        "user_id": "u1",
        "is_paid": True,
        "shipping_address_id": "ship-1",
        "billing_address_id": "bill-1",
        "created_at": datetime(2026, 10, 18, 9, 30, tzinfo=timezone.utc),
    }


@pytest.fixture
def collaborators(order_row):
    """Replace the database and email provider behind the webhook route."""
    conn = MagicMock(name="conn")
    with patch("app.main.get_conn", side_effect=lambda: nullcontext(conn)) as get_conn, \
            patch("app.main.record_event", return_value=True) as record_event, \
            patch("app.main.mark_order_paid", return_value=order_row) as mark_order_paid, \
            patch("app.main.mark_event_processed") as mark_event_processed, \
            patch("app.main.enqueue_email", return_value="outbox-1") as enqueue_email, \
            patch("app.main.mark_sent") as mark_sent, \
            patch("app.main.record_failure") as record_failure, \
            patch("app.main.send_email", new_callable=AsyncMock, return_value="email-1") as send_email:
        yield {
            "conn": conn,
            "get_conn": get_conn,
            "record_event": record_event,
            "mark_order_paid": mark_order_paid,
            "mark_event_processed": mark_event_processed,
            "enqueue_email": enqueue_email,
            "mark_sent": mark_sent,
            "record_failure": record_failure,
            "send_email": send_email,
        }
