from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

import hmac
import json
import logging
import stripe

from .checkout import CHECKOUT_COMPLETED, extract_checkout_details
from .db import get_conn
from .emails import build_confirmation_message, send_email
from .exceptions import EmailDeliveryError, InvalidSignatureError
from .logging import redact_payload, setup_logging
from .models import EmailMessage, OrderConfirmation
from .orders import mark_event_processed, mark_order_paid, record_event
from .outbox import enqueue_email, flush_outbox, mark_sent, record_failure
from .settings import (
    LOG_FORMAT,
    LOG_LEVEL,
    OUTBOX_FLUSH_TOKEN,
    STRIPE_SIGNATURE_TOLERANCE_SECONDS,
    STRIPE_WEBHOOK_SECRET,
)

setup_logging(LOG_LEVEL, LOG_FORMAT)
logger = logging.getLogger(__name__)

app = FastAPI(title="Checkout Webhooks", version="0.1.0")


@app.get("/health")
def health():
    return {"ok": True}


def verify_event(body: bytes, signature: str) -> dict:
    """Check the Stripe-Signature header against the raw body and parse the event."""
    if not STRIPE_WEBHOOK_SECRET:
        logger.warning("STRIPE_WEBHOOK_SECRET not set; rejecting webhook")
        raise InvalidSignatureError("Webhook secret not configured")

    try:
        payload = body.decode("utf-8")
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            STRIPE_WEBHOOK_SECRET,
            STRIPE_SIGNATURE_TOLERANCE_SECONDS,
        )
        event = json.loads(payload)
    except (UnicodeDecodeError, ValueError, stripe.SignatureVerificationError) as e:
        raise InvalidSignatureError(str(e)) from e

    if not isinstance(event, dict) or "id" not in event or "type" not in event:
        raise InvalidSignatureError("Payload is not a Stripe event")
    return event


async def deliver_confirmation(outbox_id: str, message: EmailMessage) -> None:
    try:
        await send_email(message, outbox_id)
    except EmailDeliveryError as e:
        # Order stays paid; the outbox row remains PENDING for /_outbox/flush
        with get_conn() as conn:
            record_failure(conn, outbox_id, str(e))
        raise

    with get_conn() as conn:
        mark_sent(conn, outbox_id)


async def handle_checkout_completed(event: dict) -> bool:
    """
    Mark the order paid and send the confirmation email.
    Returns True when the event had already been processed.
    """
    session = event["data"]["object"]
    logger.debug("Checkout session: %s", redact_payload(session))

    details = extract_checkout_details(session)

    outbox_id = None
    with get_conn() as conn:
        if not record_event(conn, event, details.order_id):
            logger.info("Duplicate event %s for order %s ignored", event["id"], details.order_id)
            return True

        order = mark_order_paid(conn, details)
        if order:
            confirmation = OrderConfirmation(
                order_id=details.order_id,
                order_date=order["created_at"],
                shipping_address=details.shipping_address,
            )
            message = build_confirmation_message(details.email, confirmation)
            outbox_id = enqueue_email(conn, details.order_id, message)

        mark_event_processed(conn, event["id"])

    if outbox_id:
        await deliver_confirmation(outbox_id, message)
    return False


@app.post("/api/webhooks")
async def stripe_webhook(request: Request, stripe_signature: str = Header(None, alias="Stripe-Signature")):
    body = await request.body()

    if not stripe_signature:
        return PlainTextResponse("Invalid signature", status_code=400)

    try:
        event = verify_event(body, stripe_signature)
    except InvalidSignatureError as e:
        logger.warning("Stripe signature verification failed: %s", e)
        return PlainTextResponse("Invalid signature", status_code=400)

    logger.info("Stripe event %s (%s)", event["id"], event["type"])
    logger.debug("Stripe event payload: %s", redact_payload(event))

    try:
        duplicate = False
        if event["type"] == CHECKOUT_COMPLETED:
            duplicate = await handle_checkout_completed(event)
    except Exception:
        logger.exception("Error processing webhook %s", event["id"])
        return JSONResponse(
            status_code=500,
            content={"message": "Something went wrong", "ok": False},
        )

    resp = {"result": event, "ok": True}
    if duplicate:
        resp["duplicate"] = True
    return resp


@app.post("/_outbox/flush")
async def outbox_flush(outbox_token: str = Header(None, alias="X-Outbox-Token")):
    """
    Retry confirmation emails whose inline delivery failed.
    Internal: requires X-Outbox-Token to match OUTBOX_FLUSH_TOKEN; rejects every call when unset.
    """
    if not OUTBOX_FLUSH_TOKEN or not outbox_token or not hmac.compare_digest(outbox_token, OUTBOX_FLUSH_TOKEN):
        raise HTTPException(status_code=403, detail="Forbidden")

    with get_conn() as conn:
        return await flush_outbox(conn)
