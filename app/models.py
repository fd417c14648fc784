from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

UNKNOWN = "Unknown"


class Address(BaseModel):
    name: str = UNKNOWN
    city: str = UNKNOWN
    country: str = UNKNOWN
    postal_code: str = UNKNOWN
    street: str = UNKNOWN
    state: Optional[str] = None


class CheckoutDetails(BaseModel):
    user_id: str
    order_id: str
    email: str
    billing_address: Address
    shipping_address: Address


class OrderConfirmation(BaseModel):
    order_id: str
    order_date: datetime
    shipping_address: Address


class EmailMessage(BaseModel):
    sender: str
    to: list[str] = Field(min_length=1)
    subject: str
    html: str
    text: str
