from rest_framework import serializers

from .models import Shift


class ShiftOpenSerializer(serializers.Serializer):
    branch_id = serializers.IntegerField(min_value=1)
    cashier_id = serializers.IntegerField(min_value=1)
    opening_cash = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class ShiftCloseSerializer(serializers.Serializer):
    # 0 is a valid closing count; missing is not.
    closing_cash = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        min_value=0,
        error_messages={"required": "Closing cash is required", "null": "Closing cash is required"},
    )
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")


class ShiftSerializer(serializers.ModelSerializer):
    payment_breakdown = serializers.DictField(read_only=True)
    expected_cash = serializers.DecimalField(max_digits=14, decimal_places=2, read_only=True)

    class Meta:
        model = Shift
        fields = [
            "id",
            "cashier",
            "branch",
            "started_at",
            "ended_at",
            "opening_cash",
            "opening_orders",
            "opening_revenue",
            "closing_cash",
            "closing_orders",
            "closing_revenue",
            "payment_breakdown",
            "expected_cash",
            "is_closed",
            "notes",
        ]
        read_only_fields = fields
