"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``OrderItemDTO`` / ``ShippingAddressDTO``: value objects of a new order.
- ``CreateOrderDTO``: input for order creation; resolves the vendor.
- ``StatusUpdateDTO`` / ``CancelOrderDTO``: lifecycle commands.
- ``OrderListParams``: filters and pagination for order listings.
- ``OrderPage``: one page of a listing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from modules.orders.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_IDEMPOTENCY_KEY_LENGTH,
    MAX_ITEM_QUANTITY,
    MAX_ORDER_AMOUNT,
    MAX_PAGE_SIZE,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.filters import parse_date_bound

if TYPE_CHECKING:
    from modules.orders.models import Order


def _blank_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


# ---------------------------------------------------------------------------
# Value objects
# ---------------------------------------------------------------------------


class OrderItemDTO(BaseModel):
    """Immutable line item of a new order.

    ``price`` is the catalog price the product service quoted at checkout.
    ``vendor_id`` is optional: when present it must match the order vendor.
    """

    model_config = ConfigDict(frozen=True)

    product_id: str
    quantity: int
    price: Decimal
    vendor_id: Optional[str] = None

    @field_validator("product_id")
    @classmethod
    def product_id_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Product id is required.")
        return v

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        if v > MAX_ITEM_QUANTITY:
            raise ValueError(f"Quantity must be at most {MAX_ITEM_QUANTITY}.")
        return v

    @field_validator("price")
    @classmethod
    def price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must not be negative.")
        return v

    @field_validator("vendor_id")
    @classmethod
    def blank_vendor_is_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @property
    def subtotal(self) -> Decimal:
        return self.price * self.quantity


class ShippingAddressDTO(BaseModel):
    """Immutable shipping address embedded in the order."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    line1: str
    line2: Optional[str] = None
    city: str
    province: Optional[str] = None
    postal_code: str
    country: str

    @field_validator("line1", "city", "postal_code")
    @classmethod
    def required_text(cls, v: str) -> str:
        if not v:
            raise ValueError("This field is required.")
        return v

    @field_validator("line2", "province")
    @classmethod
    def optional_text(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @field_validator("country")
    @classmethod
    def country_is_alpha2(cls, v: str) -> str:
        if len(v) != 2 or not v.isalpha():
            raise ValueError("Country must be a 2-letter ISO 3166-1 code.")
        return v.upper()

    def as_document(self) -> Dict[str, Any]:
        return self.model_dump()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Validates:
    - ``payment_id`` is present.
    - ``items`` contains at least one item.
    - all items belong to a single vendor, which is either given
      explicitly or taken from the first item.
    - the subtotal fits the stored amount (``MAX_ORDER_AMOUNT``).
    - ``idempotency_key`` is at most 255 characters.
    """

    model_config = ConfigDict(frozen=True)

    consumer_id: Optional[str] = None
    vendor_id: Optional[str] = None
    payment_id: str
    payment_status: PaymentStatus = PaymentStatus.SUCCEEDED
    items: List[OrderItemDTO]
    shipping_address: ShippingAddressDTO
    idempotency_key: Optional[str] = None

    @field_validator("payment_id")
    @classmethod
    def payment_id_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Payment ID is required.")
        return v

    @field_validator("consumer_id", "vendor_id", "idempotency_key")
    @classmethod
    def blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)

    @field_validator("idempotency_key")
    @classmethod
    def idempotency_key_fits(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and len(v) > MAX_IDEMPOTENCY_KEY_LENGTH:
            raise ValueError(
                f"Idempotency key must be at most {MAX_IDEMPOTENCY_KEY_LENGTH} characters."
            )
        return v

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[OrderItemDTO]) -> List[OrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @model_validator(mode="after")
    def subtotal_fits(self) -> CreateOrderDTO:
        if self.subtotal_amount > MAX_ORDER_AMOUNT:
            raise ValueError(f"Order subtotal must not exceed {MAX_ORDER_AMOUNT}.")
        return self

    @model_validator(mode="after")
    def single_vendor(self) -> CreateOrderDTO:
        """An order belongs to exactly one vendor."""
        vendor = self.resolved_vendor_id
        if vendor is None:
            raise ValueError("vendor_id is required (on the order or its first item).")
        for item in self.items:
            if item.vendor_id is not None and item.vendor_id != vendor:
                raise ValueError("All order items must belong to the same vendor.")
        return self

    @property
    def resolved_vendor_id(self) -> Optional[str]:
        return self.vendor_id or self.items[0].vendor_id

    @property
    def subtotal_amount(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0.00"))


class StatusUpdateDTO(BaseModel):
    """Immutable DTO for a vendor/admin status update."""

    model_config = ConfigDict(frozen=True)

    order_status: str
    carrier: str = ""
    tracking_number: str = ""
    note: str = ""
    expected_version: Optional[int] = None


class CancelOrderDTO(BaseModel):
    """Immutable DTO for a cancellation request."""

    model_config = ConfigDict(frozen=True)

    reason: Optional[str] = None
    expected_version: Optional[int] = None

    @field_validator("reason")
    @classmethod
    def blank_reason_is_none(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class OrderListParams(BaseModel):
    """Filters and offset pagination for order listings.

    ``limit`` above ``MAX_PAGE_SIZE`` is clamped rather than rejected.
    ``date_from`` / ``date_to`` are ISO 8601 dates or datetimes, both
    inclusive.
    """

    model_config = ConfigDict(frozen=True)

    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    order_status: Optional[OrderStatus] = None
    date_from: Optional[str] = None
    date_to: Optional[str] = None

    @field_validator("page")
    @classmethod
    def page_is_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Page must be at least 1.")
        return v

    @field_validator("limit")
    @classmethod
    def limit_is_bounded(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Limit must be at least 1.")
        return min(v, MAX_PAGE_SIZE)

    @field_validator("date_from", "date_to")
    @classmethod
    def date_bound_is_iso(cls, v: Optional[str]) -> Optional[str]:
        v = _blank_to_none(v)
        if v is not None:
            parse_date_bound(v)
        return v

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def filter_data(self) -> Dict[str, str]:
        """Values in the shape ``OrderFilter`` expects (query-string style)."""
        data = {
            "order_status": self.order_status.value if self.order_status else None,
            "date_from": self.date_from,
            "date_to": self.date_to,
        }
        return {key: value for key, value in data.items() if value}


@dataclass(frozen=True)
class OrderPage:
    """One page of orders plus the size of the whole result set."""

    page: int
    limit: int
    total: int
    orders: List[Order] = field(default_factory=list)
