"""Unit tests for Order DTOs (Pydantic v2).

Covers:
- Item validation (quantity >= 1, price >= 0, product id required).
- Shipping address normalisation and required fields.
- Vendor resolution and the single-vendor rule.
- List parameters: page/limit bounds, limit clamping, date bounds.
- Immutability (frozen=True).
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from pydantic import ValidationError

from modules.orders.constants import (
    MAX_ITEM_QUANTITY,
    MAX_ORDER_AMOUNT,
    MAX_PAGE_SIZE,
    OrderStatus,
)
from modules.orders.dtos import (
    CancelOrderDTO,
    CreateOrderDTO,
    OrderItemDTO,
    OrderListParams,
    ShippingAddressDTO,
)
from tests.conftest import make_create_dto

pytestmark = pytest.mark.unit

ADDRESS = {
    "line1": "1 Main St",
    "city": "Austin",
    "postal_code": "73301",
    "country": "US",
}


class TestOrderItemDTO:
    def test_valid_item(self):
        item = OrderItemDTO(product_id="sku-1", quantity=3, price=Decimal("4.50"))
        assert item.subtotal == Decimal("13.50")
        assert item.vendor_id is None

    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError, match="Quantity must be at least 1"):
            OrderItemDTO(product_id="sku-1", quantity=0, price=Decimal("1.00"))

    def test_quantity_above_column_range_rejected(self):
        with pytest.raises(ValidationError, match="Quantity must be at most"):
            OrderItemDTO(product_id="sku-1", quantity=MAX_ITEM_QUANTITY + 1, price=Decimal("1.00"))

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError, match="Price must not be negative"):
            OrderItemDTO(product_id="sku-1", quantity=1, price=Decimal("-0.01"))

    def test_free_item_allowed(self):
        item = OrderItemDTO(product_id="sku-1", quantity=1, price=Decimal("0"))
        assert item.subtotal == Decimal("0")

    def test_blank_product_id_rejected(self):
        with pytest.raises(ValidationError):
            OrderItemDTO(product_id="  ", quantity=1, price=Decimal("1.00"))

    def test_blank_vendor_becomes_none(self):
        item = OrderItemDTO(product_id="sku-1", quantity=1, price=Decimal("1"), vendor_id=" ")
        assert item.vendor_id is None


class TestShippingAddressDTO:
    def test_country_is_upper_cased(self):
        address = ShippingAddressDTO(**{**ADDRESS, "country": "gb"})
        assert address.country == "GB"

    def test_whitespace_stripped_and_optional_blank_dropped(self):
        address = ShippingAddressDTO(**{**ADDRESS, "city": "  Austin ", "line2": " "})
        assert address.city == "Austin"
        assert address.line2 is None

    @pytest.mark.parametrize("field", ["line1", "city", "postal_code"])
    def test_required_fields(self, field):
        with pytest.raises(ValidationError):
            ShippingAddressDTO(**{**ADDRESS, field: ""})

    def test_country_must_be_two_letters(self):
        with pytest.raises(ValidationError, match="2-letter"):
            ShippingAddressDTO(**{**ADDRESS, "country": "USA"})

    def test_as_document(self):
        document = ShippingAddressDTO(**ADDRESS).as_document()
        assert document == {
            "line1": "1 Main St",
            "line2": None,
            "city": "Austin",
            "province": None,
            "postal_code": "73301",
            "country": "US",
        }


class TestCreateOrderDTO:
    def test_subtotal_amount(self):
        dto = make_create_dto()
        assert dto.subtotal_amount == Decimal("45.50")

    def test_empty_items_rejected(self):
        with pytest.raises(ValidationError, match="at least one item"):
            make_create_dto(items=[])

    def test_subtotal_must_fit_stored_amount(self):
        item = OrderItemDTO(product_id="sku-1", quantity=10**9, price=Decimal("99999999.99"))
        with pytest.raises(ValidationError, match="subtotal must not exceed"):
            make_create_dto(items=[item])

    def test_subtotal_at_limit_allowed(self):
        item = OrderItemDTO(product_id="sku-1", quantity=1, price=MAX_ORDER_AMOUNT)
        assert make_create_dto(items=[item]).subtotal_amount == MAX_ORDER_AMOUNT

    def test_overlong_idempotency_key_rejected(self):
        with pytest.raises(ValidationError, match="at most 255 characters"):
            make_create_dto(idempotency_key="k" * 256)

    def test_payment_id_required(self):
        with pytest.raises(ValidationError, match="Payment ID is required"):
            make_create_dto(payment_id="   ")

    def test_vendor_taken_from_first_item(self):
        dto = make_create_dto(
            vendor_id=None,
            items=[OrderItemDTO(product_id="a", quantity=1, price=Decimal("1"), vendor_id="v-9")],
        )
        assert dto.resolved_vendor_id == "v-9"

    def test_vendor_required(self):
        with pytest.raises(ValidationError, match="vendor_id is required"):
            make_create_dto(
                vendor_id=None,
                items=[OrderItemDTO(product_id="a", quantity=1, price=Decimal("1"))],
            )

    def test_mixed_vendors_rejected(self):
        with pytest.raises(ValidationError, match="same vendor"):
            make_create_dto(
                vendor_id="v-1",
                items=[
                    OrderItemDTO(product_id="a", quantity=1, price=Decimal("1"), vendor_id="v-1"),
                    OrderItemDTO(product_id="b", quantity=1, price=Decimal("1"), vendor_id="v-2"),
                ],
            )

    def test_dto_is_frozen(self):
        dto = make_create_dto()
        with pytest.raises(ValidationError):
            dto.payment_id = "other"

    def test_builds_from_plain_dicts(self):
        dto = CreateOrderDTO(
            payment_id="pay_1",
            items=[{"product_id": "a", "quantity": 1, "price": "2.00", "vendor_id": "v-1"}],
            shipping_address=ADDRESS,
        )
        assert dto.resolved_vendor_id == "v-1"
        assert dto.consumer_id is None


class TestCancelOrderDTO:
    def test_blank_reason_is_none(self):
        assert CancelOrderDTO(reason="   ").reason is None

    def test_reason_kept(self):
        assert CancelOrderDTO(reason="Found it cheaper").reason == "Found it cheaper"


class TestOrderListParams:
    def test_defaults(self):
        params = OrderListParams()
        assert params.page == 1
        assert params.limit == 20
        assert params.offset == 0
        assert params.filter_data() == {}

    def test_limit_clamped(self):
        assert OrderListParams(limit=1000).limit == MAX_PAGE_SIZE

    @pytest.mark.parametrize("field", ["page", "limit"])
    def test_non_positive_rejected(self, field):
        with pytest.raises(ValidationError):
            OrderListParams(**{field: 0})

    def test_offset(self):
        assert OrderListParams(page=3, limit=10).offset == 20

    def test_invalid_date_rejected(self):
        with pytest.raises(ValidationError):
            OrderListParams(date_from="yesterday")

    def test_filter_data(self):
        params = OrderListParams(
            order_status=OrderStatus.SHIPPED,
            date_from="2024-01-01",
            date_to="2024-01-31T12:00:00Z",
        )
        assert params.filter_data() == {
            "order_status": "shipped",
            "date_from": "2024-01-01",
            "date_to": "2024-01-31T12:00:00Z",
        }
