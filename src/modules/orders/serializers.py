"""Order DRF serializers for API input/output.

Business logic lives in the Service Layer, which receives Pydantic DTOs
from ``dtos.py``.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.orders.models import Order, OrderItem

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class CreateOrderItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class DeliveryAddressSerializer(serializers.Serializer):
    region = serializers.CharField(required=False, allow_blank=True, max_length=120)
    street_address = serializers.CharField(
        required=False, allow_blank=True, max_length=255
    )
    city = serializers.CharField(required=False, allow_blank=True, max_length=120)
    province = serializers.CharField(required=False, allow_blank=True, max_length=120)
    full_address = serializers.CharField(required=False, allow_blank=True)


class CreateOrderSerializer(serializers.Serializer):
    customer_id = serializers.UUIDField()
    items = CreateOrderItemSerializer(many=True, allow_empty=False)
    delivery_address = DeliveryAddressSerializer(required=False)
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class RejectOrderSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Line item with product snapshot and fulfilment flag."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    product_sku = serializers.CharField(source="product.sku", read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "product_sku",
            "quantity",
            "unit_price",
            "subtotal",
            "is_fulfilled",
            "fulfilled_at",
        ]
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "approval_status",
            "delivery_status",
            "delivery_address",
            "region_key",
            "total_weight",
            "batch_id",
            "total_amount",
            "notes",
            "approved_at",
            "delivered_at",
            "created_at",
            "updated_at",
            "items",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_id",
            "approval_status",
            "delivery_status",
            "region_key",
            "total_weight",
            "batch_id",
            "total_amount",
            "created_at",
        ]
        read_only_fields = fields
