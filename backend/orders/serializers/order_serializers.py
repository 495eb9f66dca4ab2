from django.conf import settings
from rest_framework import serializers

from orders.models import Order

from .order_item_serializers import OrderItemSerializer


def max_order_lines():
    return getattr(settings, "POS_MAX_ORDER_LINES", 50)


def max_line_quantity():
    return getattr(settings, "POS_MAX_LINE_QUANTITY", 99)


class OrderLineSerializer(serializers.Serializer):
    menu_item_id = serializers.IntegerField(min_value=1)
    variant_id = serializers.IntegerField(min_value=1, required=False, allow_null=True, default=None)
    quantity = serializers.IntegerField(min_value=1)

    def validate_quantity(self, value):
        if value > max_line_quantity():
            raise serializers.ValidationError(
                f"Quantity cannot exceed {max_line_quantity()} per line."
            )
        return value


class OrderCreateSerializer(serializers.Serializer):
    """
    Validates an order request. Catalog and stock checks happen later, inside
    the order transaction.
    """

    branch_id = serializers.IntegerField(min_value=1)
    cashier_id = serializers.IntegerField(min_value=1)
    items = OrderLineSerializer(many=True, allow_empty=False)
    payment_method = serializers.ChoiceField(choices=Order.PaymentMethod.choices)
    order_type = serializers.ChoiceField(
        choices=Order.OrderType.choices, default=Order.OrderType.DINE_IN
    )

    delivery_address = serializers.CharField(max_length=500, required=False, allow_blank=True, default="")
    delivery_area = serializers.RegexField(
        r"^[a-z0-9-_]+$", max_length=100, required=False, allow_blank=True, default=""
    )
    delivery_fee = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0, required=False, default=0
    )
    customer_address_id = serializers.UUIDField(required=False, allow_null=True, default=None)

    customer_id = serializers.UUIDField(required=False, allow_null=True, default=None)
    customer_name = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    customer_phone = serializers.RegexField(
        r"^[0-9+ ]{6,14}$", required=False, allow_blank=True, default=""
    )

    def validate_items(self, items):
        if len(items) > max_order_lines():
            raise serializers.ValidationError(
                f"An order cannot have more than {max_order_lines()} lines."
            )
        return items

    def validate(self, data):
        if data["order_type"] == Order.OrderType.DELIVERY:
            if not data.get("delivery_address") and not data.get("customer_address_id"):
                raise serializers.ValidationError(
                    {"delivery_address": "Delivery orders need a delivery address."}
                )
        elif data.get("delivery_fee"):
            raise serializers.ValidationError(
                {"delivery_fee": "Only delivery orders can carry a delivery fee."}
            )
        if data.get("customer_address_id") and not data.get("customer_id"):
            raise serializers.ValidationError(
                {"customer_address_id": "A customer address requires a customer."}
            )
        return data


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    branch_name = serializers.CharField(source="branch.name", read_only=True)
    cashier_email = serializers.EmailField(source="cashier.email", read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "branch",
            "branch_name",
            "order_number",
            "cashier",
            "cashier_email",
            "shift",
            "customer",
            "customer_address",
            "customer_name",
            "customer_phone",
            "subtotal",
            "delivery_fee",
            "total_amount",
            "payment_method",
            "order_type",
            "delivery_address",
            "delivery_area",
            "transaction_hash",
            "is_refunded",
            "refund_reason",
            "refunded_by",
            "refunded_at",
            "refund_payment_method",
            "created_at",
            "items",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.Serializer):
    """Paging for order listings."""

    limit = serializers.IntegerField(min_value=1, max_value=500, required=False, default=100)
    offset = serializers.IntegerField(min_value=0, required=False, default=0)
