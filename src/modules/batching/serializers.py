"""Batch DRF serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.batching.models import Batch


class BatchSerializer(serializers.ModelSerializer):
    remaining_capacity = serializers.DecimalField(
        max_digits=12, decimal_places=2, read_only=True
    )
    order_count = serializers.SerializerMethodField()

    class Meta:
        model = Batch
        fields = [
            "id",
            "region_key",
            "sequence",
            "status",
            "accumulated_weight",
            "capacity",
            "remaining_capacity",
            "order_count",
            "assigned_driver_id",
            "ready_at",
            "assigned_at",
            "in_transit_at",
            "delivered_at",
            "cancelled_at",
            "cancellation_reason",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields

    def get_order_count(self, obj: Batch) -> int:
        annotated = getattr(obj, "order_count", None)
        if annotated is not None:
            return annotated
        return obj.orders.count()


class BatchDetailSerializer(BatchSerializer):
    order_ids = serializers.SerializerMethodField()

    class Meta(BatchSerializer.Meta):
        fields = BatchSerializer.Meta.fields + ["order_ids"]
        read_only_fields = fields

    def get_order_ids(self, obj: Batch) -> list[str]:
        return [str(pk) for pk in obj.orders.values_list("id", flat=True)]


class AssignDriverSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField(min_value=1)


class CancelBatchSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True)
    rebatch = serializers.BooleanField(required=False, default=False)


class ConsolidateSerializer(serializers.Serializer):
    region_key = serializers.CharField(required=False, allow_blank=True, default="")
