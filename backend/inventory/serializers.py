from rest_framework import serializers

from .models import InventoryTransaction, InventoryTransfer, InventoryTransferItem


class TransferItemInputSerializer(serializers.Serializer):
    ingredient_id = serializers.IntegerField(min_value=1)
    quantity = serializers.DecimalField(max_digits=14, decimal_places=4)

    def validate_quantity(self, value):
        if value <= 0:
            raise serializers.ValidationError("Quantity must be positive for a transfer.")
        return value


class TransferCreateSerializer(serializers.Serializer):
    source_branch_id = serializers.IntegerField(min_value=1)
    target_branch_id = serializers.IntegerField(min_value=1)
    items = TransferItemInputSerializer(many=True, allow_empty=False)
    notes = serializers.CharField(required=False, allow_blank=True, max_length=500, default="")

    def validate_items(self, items):
        ingredient_ids = [item["ingredient_id"] for item in items]
        if len(ingredient_ids) != len(set(ingredient_ids)):
            raise serializers.ValidationError("Each ingredient may appear only once per transfer.")
        return items

    def validate(self, data):
        if data["source_branch_id"] == data["target_branch_id"]:
            raise serializers.ValidationError("Source and destination branches cannot be the same.")
        return data


class TransferStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=InventoryTransfer.Status.choices)


class StockAdjustmentSerializer(serializers.Serializer):
    ingredient_id = serializers.IntegerField(min_value=1)
    quantity_change = serializers.DecimalField(max_digits=14, decimal_places=4)
    reason = serializers.CharField(max_length=255)
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")

    def validate_quantity_change(self, value):
        if value == 0:
            raise serializers.ValidationError("Quantity change cannot be zero.")
        return value


class InventoryTransactionSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source="ingredient.name", read_only=True)
    unit = serializers.CharField(source="ingredient.unit", read_only=True)
    actor_email = serializers.EmailField(source="actor.email", read_only=True, default=None)

    class Meta:
        model = InventoryTransaction
        fields = [
            "id",
            "branch",
            "ingredient",
            "ingredient_name",
            "unit",
            "transaction_type",
            "quantity_change",
            "stock_before",
            "stock_after",
            "order",
            "transfer",
            "actor",
            "actor_email",
            "reason",
            "reference",
            "created_at",
        ]
        read_only_fields = fields


class InventoryTransferItemSerializer(serializers.ModelSerializer):
    ingredient_name = serializers.CharField(source="ingredient.name", read_only=True)

    class Meta:
        model = InventoryTransferItem
        fields = ["id", "ingredient", "ingredient_name", "quantity"]
        read_only_fields = fields


class InventoryTransferSerializer(serializers.ModelSerializer):
    items = InventoryTransferItemSerializer(many=True, read_only=True)

    class Meta:
        model = InventoryTransfer
        fields = [
            "id",
            "transfer_number",
            "source_branch",
            "target_branch",
            "status",
            "notes",
            "requested_by",
            "approved_by",
            "approved_at",
            "shipped_by",
            "shipped_at",
            "completed_by",
            "completed_at",
            "cancelled_by",
            "cancelled_at",
            "created_at",
            "items",
        ]
        read_only_fields = fields
