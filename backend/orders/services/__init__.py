"""
Orders services package.

- OrderService: order creation (pricing, stock deduction, loyalty, audit)
"""

from .order_service import OrderService

__all__ = [
    "OrderService",
]
