"""Order confirmation email: template rendering and delivery through Resend."""

import html
import logging
from datetime import datetime
from typing import Optional

import httpx

from .exceptions import EmailDeliveryError
from .logging import redact_email
from .models import Address, EmailMessage, OrderConfirmation
from .settings import EMAIL_FROM, EMAIL_TIMEOUT_SECONDS, RESEND_API_KEY, RESEND_API_URL

logger = logging.getLogger(__name__)


def format_order_date(value: datetime) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def _address_lines(address: Address) -> list[str]:
    locality = " ".join(part for part in (address.city, address.state, address.postal_code) if part)
    return [address.name, address.street, locality, address.country]


class OrderReceivedEmail:
    subject = "Thanks for your order!"

    @staticmethod
    def render(confirmation: OrderConfirmation) -> dict:
        order_date = format_order_date(confirmation.order_date)
        lines = _address_lines(confirmation.shipping_address)

        text = (
            "Thank you for your order!\n\n"
            "We're preparing everything for delivery and will notify you once your order ships.\n\n"
            f"Order number: {confirmation.order_id}\n"
            f"Order date: {order_date}\n\n"
            "Shipping to:\n" + "\n".join(lines) + "\n"
        )
        body = (
            "<h1>Thank you!</h1>"
            "<p>We're preparing everything for delivery and will notify you once your order ships.</p>"
            f"<p><strong>Order number:</strong> {html.escape(confirmation.order_id)}<br>"
            f"<strong>Order date:</strong> {html.escape(order_date)}</p>"
            "<p><strong>Shipping to:</strong><br>"
            + "<br>".join(html.escape(line) for line in lines)
            + "</p>"
        )
        return {"subject": OrderReceivedEmail.subject, "html": body, "text": text}


def build_confirmation_message(recipient: str, confirmation: OrderConfirmation) -> EmailMessage:
    rendered = OrderReceivedEmail.render(confirmation)
    return EmailMessage(
        sender=EMAIL_FROM,
        to=[recipient],
        subject=rendered["subject"],
        html=rendered["html"],
        text=rendered["text"],
    )


async def send_email(
    message: EmailMessage,
    idempotency_key: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> str:
    """
    POST the message to the Resend API.
    Requests sharing an idempotency_key (the outbox row id) are delivered once by Resend.
    Returns the provider message id; raises EmailDeliveryError on any failure.
    """
    if not RESEND_API_KEY:
        raise EmailDeliveryError("RESEND_API_KEY is not configured")

    payload = {
        "from": message.sender,
        "to": message.to,
        "subject": message.subject,
        "html": message.html,
        "text": message.text,
    }
    headers = {"Authorization": f"Bearer {RESEND_API_KEY}"}
    if idempotency_key:
        headers["Idempotency-Key"] = idempotency_key
    try:
        async with httpx.AsyncClient(base_url=RESEND_API_URL, transport=transport) as client:
            r = await client.post(
                "/emails",
                json=payload,
                headers=headers,
                timeout=EMAIL_TIMEOUT_SECONDS,
            )
            r.raise_for_status()
            message_id = r.json().get("id", "")
    except httpx.HTTPStatusError as e:
        raise EmailDeliveryError(f"Email provider returned {e.response.status_code}") from e
    except httpx.HTTPError as e:
        raise EmailDeliveryError(f"Email provider unreachable: {e}") from e

    logger.info(
        "Email sent to %s (id=%s)",
        ", ".join(redact_email(addr) for addr in message.to),
        message_id,
    )
    return message_id
