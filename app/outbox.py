"""
Email outbox.

Confirmation emails are written to email_outbox in the same transaction
that marks the order paid. Delivery happens after commit; rows that fail
stay PENDING and are retried by flush_outbox.
"""
import logging

from .emails import send_email
from .exceptions import EmailDeliveryError
from .models import EmailMessage
from .settings import OUTBOX_BATCH_SIZE, OUTBOX_GRACE_SECONDS, OUTBOX_MAX_ATTEMPTS

logger = logging.getLogger(__name__)


def enqueue_email(conn, order_id: str, message: EmailMessage) -> str:
    row = conn.execute(
        "INSERT INTO email_outbox(order_id, sender, recipient, subject, html, text) "
        "VALUES (%s, %s, %s, %s, %s, %s) RETURNING id",
        (order_id, message.sender, message.to[0], message.subject, message.html, message.text),
    ).fetchone()
    return str(row["id"])


def mark_sent(conn, outbox_id: str) -> None:
    conn.execute(
        "UPDATE email_outbox SET status = 'SENT', attempts = attempts + 1, sent_at = NOW(), "
        "last_error = NULL WHERE id = %s",
        (outbox_id,),
    )


def record_failure(conn, outbox_id: str, error: str) -> None:
    conn.execute(
        "UPDATE email_outbox SET attempts = attempts + 1, last_error = %s WHERE id = %s",
        (error, outbox_id),
    )


def _message_from_row(row: dict) -> EmailMessage:
    return EmailMessage(
        sender=row["sender"],
        to=[row["recipient"]],
        subject=row["subject"],
        html=row["html"],
        text=row["text"],
    )


async def flush_outbox(conn) -> dict:
    """Resend PENDING emails, oldest first. Returns sent/failed counts."""
    rows = conn.execute(
        "SELECT id, order_id, sender, recipient, subject, html, text FROM email_outbox "
        "WHERE status = 'PENDING' AND attempts < %s "
        "AND (attempts > 0 OR created_at < NOW() - make_interval(secs => %s)) "
        "ORDER BY created_at LIMIT %s FOR UPDATE SKIP LOCKED",
        (OUTBOX_MAX_ATTEMPTS, OUTBOX_GRACE_SECONDS, OUTBOX_BATCH_SIZE),
    ).fetchall()

    sent = failed = 0
    for row in rows:
        outbox_id = str(row["id"])
        try:
            await send_email(_message_from_row(row), outbox_id)
        except EmailDeliveryError as e:
            logger.warning("Outbox email %s for order %s failed: %s", outbox_id, row["order_id"], e)
            record_failure(conn, outbox_id, str(e))
            failed += 1
        else:
            mark_sent(conn, outbox_id)
            sent += 1

    if rows:
        logger.info("Outbox flush: sent=%d failed=%d", sent, failed)
    return {"sent": sent, "failed": failed}
