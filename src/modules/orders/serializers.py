"""Order DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Business logic lives in the Service Layer, which receives
Pydantic DTOs from ``dtos.py``.
"""

from __future__ import annotations

from decimal import Decimal

from rest_framework import serializers

from modules.orders.constants import OrderStatus, PaymentMethod, ShippingMethod
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class AddressSerializer(serializers.Serializer):
    full_name = serializers.CharField(max_length=120)
    phone = serializers.CharField(min_length=7, max_length=20)
    street_address = serializers.CharField(max_length=255)
    city = serializers.CharField(max_length=100)
    state = serializers.CharField(max_length=100)
    postal_code = serializers.CharField(max_length=20, required=False, default="", allow_blank=True)
    country = serializers.CharField(max_length=60, required=False, default="Nepal")
    address_type = serializers.ChoiceField(
        choices=["home", "office", "other"], required=False, default="home"
    )
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class BusinessRulesSerializer(serializers.Serializer):
    """Per-order overrides of the configured business rules (staff only)."""

    cod_limit = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01"), required=False
    )
    allow_cancellation = serializers.BooleanField(required=False)
    allow_return = serializers.BooleanField(required=False)
    return_window_days = serializers.IntegerField(min_value=0, required=False)
    allow_exchange = serializers.BooleanField(required=False)
    exchange_window_days = serializers.IntegerField(min_value=0, required=False)


class CreateOrderSerializer(serializers.Serializer):
    """Validates the order creation request payload.

    Items are taken from the authenticated customer's cart.
    """

    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    shipping_address = AddressSerializer(required=False)
    billing_address = AddressSerializer(required=False)
    use_shipping_as_billing = serializers.BooleanField(required=False, default=True)
    shipping_method = serializers.ChoiceField(
        choices=ShippingMethod.choices, required=False, default=ShippingMethod.STANDARD
    )
    customer_notes = serializers.CharField(required=False, default="", allow_blank=True)
    business_rules = BusinessRulesSerializer(required=False)
    metadata = serializers.DictField(required=False, default=dict)


class UpdateOrderStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=OrderStatus.choices)
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class CancelOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


class ExchangeItemSerializer(serializers.Serializer):
    original_item_id = serializers.UUIDField()
    new_product_id = serializers.UUIDField()
    new_variant_id = serializers.UUIDField()
    new_quantity = serializers.IntegerField(min_value=1)


class RequestExchangeSerializer(serializers.Serializer):
    exchange_type = serializers.ChoiceField(choices=["size", "color"])
    exchange_reason = serializers.CharField()
    exchange_items = ExchangeItemSerializer(many=True, allow_empty=False)
    customer_notes = serializers.CharField(required=False, default="", allow_blank=True)


class ApproveExchangeSerializer(serializers.Serializer):
    admin_notes = serializers.CharField(required=False, default="", allow_blank=True)
    exchange_tracking_number = serializers.CharField(
        required=False, default="", allow_blank=True
    )
    exchange_carrier = serializers.CharField(required=False, default="", allow_blank=True)


class RejectExchangeSerializer(serializers.Serializer):
    admin_notes = serializers.CharField(required=False, default="", allow_blank=True)


class ConfirmCODPaymentSerializer(serializers.Serializer):
    amount_received = serializers.DecimalField(
        max_digits=12, decimal_places=2, min_value=Decimal("0.01")
    )
    delivery_notes = serializers.CharField(required=False, default="", allow_blank=True)
    agent_signature = serializers.CharField(required=False, allow_null=True, default=None)
    customer_signature = serializers.CharField(
        required=False, allow_null=True, default=None
    )


class OrderStatsQuerySerializer(serializers.Serializer):
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)
    customer = serializers.UUIDField(required=False)

    def validate(self, attrs):
        start, end = attrs.get("start_date"), attrs.get("end_date")
        if start and end and start > end:
            raise serializers.ValidationError(
                {"end_date": "end_date must not be before start_date."}
            )
        return attrs


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Read serializer for order items with a variant snapshot."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    variant_sku = serializers.CharField(source="variant.sku", read_only=True)
    size = serializers.CharField(source="variant.size", read_only=True)
    color = serializers.CharField(source="variant.color", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "variant_id",
            "variant_sku",
            "size",
            "color",
            "quantity",
            "unit_price",
            "sale_price",
            "total_price",
            "discount_amount",
            "tax_amount",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    """Read serializer for order status history records."""

    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "actor",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Read serializer for orders with nested items and history."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)
    order_summary = serializers.DictField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "short_order_id",
            "customer_id",
            "parent_order_id",
            "status",
            "payment_status",
            "payment_method",
            "subtotal",
            "discount_total",
            "tax_total",
            "shipping_cost",
            "total_amount",
            "amount_paid",
            "amount_refunded",
            "transaction_id",
            "shipping_address",
            "billing_address",
            "workflow_kind",
            "workflow",
            "cod_details",
            "business_rules",
            "shipping",
            "customer_notes",
            "confirmed_at",
            "processed_at",
            "shipped_at",
            "delivered_at",
            "created_at",
            "updated_at",
            "order_summary",
            "items",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "short_order_id",
            "customer_id",
            "status",
            "payment_status",
            "payment_method",
            "total_amount",
            "created_at",
        ]
        read_only_fields = fields


class ExchangeApprovalSerializer(serializers.Serializer):
    original_order = OrderSerializer(read_only=True)
    exchange_order = OrderSerializer(read_only=True)
    price_difference = serializers.DecimalField(max_digits=12, decimal_places=2)
    customer_payment_required = serializers.DecimalField(max_digits=12, decimal_places=2)
    customer_refund_amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class ExchangeCompletionSerializer(serializers.Serializer):
    original_order = OrderSerializer(read_only=True)
    exchange_order = OrderSerializer(read_only=True)
