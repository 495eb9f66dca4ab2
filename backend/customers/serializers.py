from rest_framework import serializers

from .models import Customer, CustomerAddress, LoyaltyTransaction


class LoyaltyRedeemSerializer(serializers.Serializer):
    points = serializers.DecimalField(max_digits=14, decimal_places=4)

    def validate_points(self, value):
        if value <= 0:
            raise serializers.ValidationError("Points to redeem must be positive.")
        return value


class LoyaltyAdjustSerializer(serializers.Serializer):
    points = serializers.DecimalField(max_digits=14, decimal_places=4)
    notes = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")

    def validate_points(self, value):
        if value == 0:
            raise serializers.ValidationError("Adjustment cannot be zero.")
        return value


class LoyaltyTransactionSerializer(serializers.ModelSerializer):
    class Meta:
        model = LoyaltyTransaction
        fields = ["id", "points", "transaction_type", "order", "amount", "notes", "created_by", "created_at"]
        read_only_fields = fields


class CustomerAddressSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomerAddress
        fields = ["id", "label", "address", "delivery_area", "is_default", "order_count"]
        read_only_fields = ["id", "order_count"]


class CustomerSerializer(serializers.ModelSerializer):
    addresses = CustomerAddressSerializer(many=True, read_only=True)

    class Meta:
        model = Customer
        fields = [
            "id",
            "name",
            "phone",
            "email",
            "loyalty_points",
            "total_spent",
            "order_count",
            "tier",
            "addresses",
            "created_at",
        ]
        read_only_fields = ["id", "loyalty_points", "total_spent", "order_count", "tier", "created_at"]
