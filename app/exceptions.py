"""Exception hierarchy for the checkout webhook service."""


class WebhookError(Exception):
    """Base exception for all webhook handling errors."""


class InvalidSignatureError(WebhookError):
    """Raised when the Stripe-Signature header does not match the body."""


class MissingCustomerEmailError(WebhookError):
    """Raised when a checkout session carries no customer email."""


class InvalidMetadataError(WebhookError):
    """Raised when userId or orderId is missing from session metadata."""


class MissingAddressError(WebhookError):
    """Raised when the billing or shipping address block is absent."""


class OrderNotFoundError(WebhookError):
    """Raised when the order referenced by an event does not exist."""


class EmailDeliveryError(WebhookError):
    """Raised when the email provider rejects or cannot receive a message."""
