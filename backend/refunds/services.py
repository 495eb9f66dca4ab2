"""
Full-order refund processing.

A refund is the exact inverse of order creation: every ingredient deducted at
sale is returned using the recipe recorded on the order items (not the current
catalog), the customer's spend, order count and earned points are reversed,
and the order is flagged refunded. Refunds are one-way; a refunded order
cannot be refunded again.
"""

import logging

from django.db import transaction
from django.utils import timezone

from core_backend.audit import record_audit
from core_backend.exceptions import (
    AlreadyRefundedError,
    NotFoundError,
    UnauthorizedError,
    validate_or_raise,
)
from core_backend.models import AuditLog
from customers.models import Customer
from customers.services import LoyaltyService
from inventory.services import InventoryService, RecipeService
from orders.calculators import aggregate_restorations
from orders.models import Order
from users.permissions import can_refund_order

from .serializers import FullOrderRefundRequestSerializer

logger = logging.getLogger(__name__)


class RefundService:

    @staticmethod
    def refund_order(order_id, principal, reason: str = "") -> Order:
        """
        Refund a whole order.

        Args:
            order_id: UUID of the order
            principal: authenticated user performing the refund
            reason: free text, defaults to "No reason provided"

        Raises:
            RequestValidationError: malformed order id or reason
            NotFoundError: order does not exist
            UnauthorizedError: principal is not an admin or the order branch's manager
            AlreadyRefundedError: order was refunded before
        """
        data = validate_or_raise(
            FullOrderRefundRequestSerializer(data={"order_id": order_id, "reason": reason or ""})
        )
        return RefundService._refund_validated(data["order_id"], principal, data["reason"])

    @staticmethod
    @transaction.atomic
    def _refund_validated(order_id, principal, reason) -> Order:
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": str(order_id)})

        if not can_refund_order(principal, order):
            logger.warning(f"User {principal} refused refund of order #{order.order_number} at branch {order.branch_id}")
            raise UnauthorizedError(
                "Only administrators and the branch's managers can refund this order",
                details={"order_id": str(order.pk), "branch_id": order.branch_id},
            )

        if order.is_refunded:
            logger.warning(f"Order #{order.order_number} at branch {order.branch_id} is already refunded")
            raise AlreadyRefundedError(
                f"Order #{order.order_number} has already been refunded",
                details={"order_id": str(order.pk), "refunded_at": order.refunded_at.isoformat() if order.refunded_at else None},
            )

        order.is_refunded = True
        order.refund_reason = reason
        order.refunded_by = principal
        order.refunded_at = timezone.now()
        order.refund_payment_method = order.payment_method
        order.save(
            update_fields=[
                "is_refunded",
                "refund_reason",
                "refunded_by",
                "refunded_at",
                "refund_payment_method",
                "updated_at",
            ]
        )

        # Customer before inventory rows, the same order create_order locks them in.
        customer = None
        if order.customer_id:
            customer = Customer.objects.select_for_update().get(pk=order.customer_id)

        items = list(order.items.all())
        restorations = aggregate_restorations(items, RecipeService.resolve_snapshot)
        InventoryService.restore_for_order(
            order.branch,
            restorations,
            order,
            actor=principal,
            reason=f"Refund of order #{order.order_number}",
        )

        if customer is not None:
            LoyaltyService.reverse_order(customer, order, actor=principal)

        record_audit(
            AuditLog.Action.ORDER_REFUNDED,
            order,
            user=principal,
            branch=principal.branch or order.branch,
            details={
                "order_number": order.order_number,
                "refund_amount": str(order.total_amount),
                "refund_reason": reason,
            },
        )
        logger.info(
            f"Order #{order.order_number} at branch {order.branch_id} refunded by {principal}: "
            f"{order.total_amount} ({len(restorations)} ingredients restored)"
        )
        return order
