import json
import logging
from typing import Optional

from .exceptions import OrderNotFoundError
from .models import Address, CheckoutDetails

logger = logging.getLogger(__name__)


def record_event(conn, event: dict, order_id: Optional[str]) -> bool:
    """
    Store the event id as a dedupe key.
    Returns False when the event was already recorded (replayed delivery).
    """
    row = conn.execute(
        "INSERT INTO webhook_events(event_id, event_type, order_id, payload) "
        "VALUES (%s, %s, %s, %s) ON CONFLICT (event_id) DO NOTHING RETURNING event_id",
        (event["id"], event["type"], order_id, json.dumps(event)),
    ).fetchone()
    return row is not None


def mark_event_processed(conn, event_id: str) -> None:
    conn.execute(
        "UPDATE webhook_events SET processed_at = NOW() WHERE event_id = %s",
        (event_id,),
    )


def _insert_address(conn, table: str, address: Address) -> str:
    row = conn.execute(
        f"INSERT INTO {table}(name, city, country, postal_code, street, state) "
        "VALUES (%s, %s, %s, %s, %s, %s) RETURNING id",
        (
            address.name,
            address.city,
            address.country,
            address.postal_code,
            address.street,
            address.state,
        ),
    ).fetchone()
    return row["id"]


def mark_order_paid(conn, details: CheckoutDetails) -> Optional[dict]:
    """
    Set is_paid and attach freshly created billing/shipping addresses.
    The order row is locked for the rest of the transaction, so concurrent
    deliveries for one order serialize here. Returns None when the order
    was already paid.
    """
    order = conn.execute(
        "SELECT id, is_paid FROM orders WHERE id = %s FOR UPDATE",
        (details.order_id,),
    ).fetchone()
    if not order:
        raise OrderNotFoundError(f"Order {details.order_id} not found")

    if order["is_paid"]:
        logger.info("Order %s already paid; skipping update", details.order_id)
        return None

    shipping_id = _insert_address(conn, "shipping_addresses", details.shipping_address)
    billing_id = _insert_address(conn, "billing_addresses", details.billing_address)

    updated = conn.execute(
        "UPDATE orders SET is_paid = TRUE, shipping_address_id = %s, billing_address_id = %s, "
        "updated_at = NOW() WHERE id = %s "
        "RETURNING id, user_id, is_paid, shipping_address_id, billing_address_id, created_at",
        (shipping_id, billing_id, details.order_id),
    ).fetchone()

    logger.info(
        "Order %s marked paid (shipping_address=%s, billing_address=%s)",
        updated["id"],
        shipping_id,
        billing_id,
    )
    return updated
