"""
Orders serializers package.

Input serializers validate requests before any transaction opens; output
serializers render persisted orders.
"""

from .order_serializers import (
    OrderLineSerializer,
    OrderCreateSerializer,
    OrderListSerializer,
    OrderSerializer,
)

from .order_item_serializers import OrderItemSerializer

__all__ = [
    "OrderLineSerializer",
    "OrderCreateSerializer",
    "OrderListSerializer",
    "OrderSerializer",
    "OrderItemSerializer",
]
