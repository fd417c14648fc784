"""
Field extraction for Stripe checkout.session.completed events.

The session object arrives as plain JSON. Every lookup tolerates missing
or null intermediate blocks; required fields raise, optional ones fall
back to "Unknown" (or None for the state/region).
"""
import logging

from .exceptions import InvalidMetadataError, MissingAddressError, MissingCustomerEmailError
from .logging import redact_email
from .models import UNKNOWN, Address, CheckoutDetails

logger = logging.getLogger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"


def _shipping_address_block(session: dict):
    shipping = session.get("shipping_details") or {}
    if shipping.get("address"):
        return shipping["address"]
    # API versions from 2025 move shipping under collected_information
    collected = (session.get("collected_information") or {}).get("shipping_details") or {}
    return collected.get("address")


def build_address(name, block: dict) -> Address:
    return Address(
        name=name or UNKNOWN,
        city=block.get("city") or UNKNOWN,
        country=block.get("country") or UNKNOWN,
        postal_code=block.get("postal_code") or UNKNOWN,
        street=block.get("line1") or UNKNOWN,
        state=block.get("state") or None,
    )


def extract_checkout_details(session: dict) -> CheckoutDetails:
    customer = session.get("customer_details") or {}

    email = customer.get("email")
    if not email:
        raise MissingCustomerEmailError("Missing customer email")

    metadata = session.get("metadata") or {}
    user_id = metadata.get("userId")
    order_id = metadata.get("orderId")
    if not user_id or not order_id:
        logger.error("Missing userId or orderId in session metadata (session=%s)", session.get("id"))
        raise InvalidMetadataError("Invalid request metadata")

    billing_block = customer.get("address")
    shipping_block = _shipping_address_block(session)
    if not billing_block or not shipping_block:
        logger.error("Missing billing or shipping address for order %s", order_id)
        raise MissingAddressError("Missing address information")

    logger.info(
        "Checkout completed: order=%s user=%s customer=%s",
        order_id,
        user_id,
        redact_email(email),
    )

    name = customer.get("name")
    return CheckoutDetails(
        user_id=user_id,
        order_id=order_id,
        email=email,
        billing_address=build_address(name, billing_block),
        shipping_address=build_address(name, shipping_block),
    )
