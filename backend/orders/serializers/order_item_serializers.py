from rest_framework import serializers

from orders.models import OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderItem
        fields = [
            "id",
            "menu_item",
            "item_name",
            "variant",
            "variant_name",
            "quantity",
            "unit_price",
            "subtotal",
            "recipe_version",
        ]
        read_only_fields = fields
