from decimal import Decimal
import logging

from django.db import transaction
from rest_framework import serializers

from branches.models import Branch
from core_backend.audit import record_audit
from core_backend.exceptions import (
    NotFoundError,
    RequestValidationError,
    StateConflictError,
    validate_lookup,
    validate_or_raise,
)
from core_backend.models import AuditLog
from core_backend.utils.money import quantize_money, to_decimal
from customers.models import Customer, CustomerAddress
from customers.services import LoyaltyService
from inventory.services import InventoryService, RecipeService
from orders.calculators import OrderBuilder
from orders.filters import OrderFilter
from orders.models import BranchOrderSequence, Order, OrderItem
from orders.serializers import OrderCreateSerializer, OrderListSerializer
from users.models import User

logger = logging.getLogger(__name__)


class OrderService:
    """Creates orders: pricing, stock deduction, loyalty credit and audit in one transaction."""

    @staticmethod
    def create_order(
        branch_id,
        cashier_id,
        items,
        payment_method,
        order_type=Order.OrderType.DINE_IN,
        delivery_address="",
        delivery_area="",
        delivery_fee=Decimal("0"),
        customer_address_id=None,
        customer_id=None,
        customer_name="",
        customer_phone="",
    ) -> Order:
        """
        Validate and persist an order.

        Args:
            items: list of ``{"menu_item_id", "variant_id" (optional), "quantity"}``

        Raises:
            RequestValidationError: malformed request (before any write)
            NotFoundError: branch, cashier, menu item, variant, customer or
                address missing
            ItemUnavailableError: archived menu item or variant
            StateConflictError: cashier has no open shift at this branch
            InsufficientInventoryError: stock short for any ingredient
        """
        data = validate_or_raise(
            OrderCreateSerializer(
                data={
                    "branch_id": branch_id,
                    "cashier_id": cashier_id,
                    "items": items,
                    "payment_method": payment_method,
                    "order_type": order_type,
                    "delivery_address": delivery_address,
                    "delivery_area": delivery_area,
                    "delivery_fee": delivery_fee,
                    "customer_address_id": customer_address_id,
                    "customer_id": customer_id,
                    "customer_name": customer_name,
                    "customer_phone": customer_phone,
                }
            )
        )
        return OrderService._create_validated_order(data)

    @staticmethod
    def _resolve_shift(cashier: User, branch: Branch):
        """
        The shift the new order belongs to. Cashiers must hold an open shift at
        the order's branch; other roles attach their open shift when it is at
        this branch.
        """
        shift = cashier.current_shift
        shift_matches = shift is not None and not shift.is_closed and shift.branch_id == branch.pk

        if cashier.role == User.Role.CASHIER:
            if not shift_matches:
                logger.warning(f"Cashier {cashier} has no open shift at {branch}; order rejected")
                raise StateConflictError(
                    "Cashier must have an open shift at this branch to take orders",
                    details={"cashier_id": cashier.pk, "branch_id": branch.pk},
                )
            return shift

        if cashier.role == User.Role.BRANCH_MANAGER and cashier.branch_id != branch.pk:
            raise StateConflictError(
                "Branch managers can only take orders at their own branch",
                details={"cashier_id": cashier.pk, "branch_id": branch.pk},
            )
        return shift if shift_matches else None

    @staticmethod
    @transaction.atomic
    def _create_validated_order(data) -> Order:
        branch = Branch.objects.filter(pk=data["branch_id"]).first()
        if branch is None:
            raise NotFoundError(f"Branch {data['branch_id']} not found", details={"branch_id": data["branch_id"]})
        if not branch.is_active:
            raise StateConflictError(f"Branch {branch} is not active", details={"branch_id": branch.pk})

        # Locking the cashier serializes order creation with shift close.
        cashier = (
            User.objects.select_for_update()
            .filter(pk=data["cashier_id"], is_active=True)
            .first()
        )
        if cashier is None:
            raise NotFoundError(f"Cashier {data['cashier_id']} not found", details={"cashier_id": data["cashier_id"]})

        shift = OrderService._resolve_shift(cashier, branch)

        builder = OrderBuilder()
        for line in data["items"]:
            resolved = RecipeService.resolve(line["menu_item_id"], line.get("variant_id"))
            builder.add_line(resolved, line["quantity"])

        customer = None
        customer_address = None
        if data.get("customer_id"):
            customer = Customer.objects.select_for_update().filter(pk=data["customer_id"]).first()
            if customer is None:
                raise NotFoundError(
                    f"Customer {data['customer_id']} not found",
                    details={"customer_id": str(data["customer_id"])},
                )
            if data.get("customer_address_id"):
                customer_address = (
                    CustomerAddress.objects.select_for_update()
                    .filter(pk=data["customer_address_id"], customer=customer)
                    .first()
                )
                if customer_address is None:
                    raise NotFoundError(
                        f"Address {data['customer_address_id']} not found for customer",
                        details={"customer_address_id": str(data["customer_address_id"])},
                    )

        is_delivery = data["order_type"] == Order.OrderType.DELIVERY
        delivery_fee = quantize_money(to_decimal(data.get("delivery_fee") or 0)) if is_delivery else Decimal("0.00")
        delivery_address = data.get("delivery_address") or (customer_address.address if customer_address else "")
        delivery_area = data.get("delivery_area") or (customer_address.delivery_area if customer_address else "")

        order = Order(
            branch=branch,
            order_number=BranchOrderSequence.next_number(branch),
            cashier=cashier,
            shift=shift,
            customer=customer,
            customer_address=customer_address,
            customer_name=data.get("customer_name") or (customer.name if customer else ""),
            customer_phone=data.get("customer_phone") or (customer.phone if customer else ""),
            subtotal=builder.subtotal,
            delivery_fee=delivery_fee,
            total_amount=builder.total(delivery_fee),
            payment_method=data["payment_method"],
            order_type=data["order_type"],
            delivery_address=delivery_address if is_delivery else "",
            delivery_area=delivery_area if is_delivery else "",
        )
        order.transaction_hash = order.compute_transaction_hash()
        order.save()

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    menu_item=line.menu_item,
                    item_name=line.menu_item.name,
                    variant=line.variant,
                    variant_name=line.variant_name,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    subtotal=line.subtotal,
                    recipe_version=line.menu_item.version,
                    recipe_snapshot=RecipeService.snapshot(line.recipe_lines),
                )
                for line in builder.lines
            ]
        )

        InventoryService.deduct_for_order(branch, builder.deductions, order, actor=cashier)

        if customer is not None:
            LoyaltyService.record_order(customer, order, actor=cashier)
            if is_delivery and customer_address is not None:
                customer_address.order_count += 1
                customer_address.save(update_fields=["order_count", "updated_at"])

        record_audit(
            AuditLog.Action.ORDER_CREATED,
            order,
            user=cashier,
            branch=branch,
            details={
                "order_number": order.order_number,
                "subtotal": str(order.subtotal),
                "total_amount": str(order.total_amount),
                "payment_method": order.payment_method,
                "items": len(builder.lines),
            },
        )
        logger.info(
            f"Order #{order.order_number} created at {branch} by {cashier}: "
            f"{len(builder.lines)} lines, total {order.total_amount}"
        )
        return order

    @staticmethod
    def get_order(order_id) -> Order:
        order_id = validate_lookup("order_id", order_id, serializers.UUIDField())
        order = (
            Order.objects.select_related("branch", "cashier", "customer")
            .prefetch_related("items")
            .filter(pk=order_id)
            .first()
        )
        if order is None:
            raise NotFoundError(f"Order {order_id} not found", details={"order_id": str(order_id)})
        return order

    @staticmethod
    def list_orders(params=None, limit=100, offset=0) -> dict:
        """
        Orders newest first, narrowed by OrderFilter query parameters
        (branch, start_date, end_date, payment_method, is_refunded).

        Returns:
            dict with ``orders``, ``total``, ``limit``, ``offset`` and
            ``has_more``
        """
        paging = validate_or_raise(OrderListSerializer(data={"limit": limit, "offset": offset}))
        queryset = Order.objects.select_related("branch", "cashier").prefetch_related("items")
        filterset = OrderFilter(params or {}, queryset=queryset)
        if not filterset.is_valid():
            raise RequestValidationError("Invalid order filters", details=filterset.errors)

        matching = filterset.qs.order_by("-created_at", "-order_number")
        total = matching.count()
        start = paging["offset"]
        orders = list(matching[start:start + paging["limit"]])
        return {
            "orders": orders,
            "total": total,
            "limit": paging["limit"],
            "offset": start,
            "has_more": start + len(orders) < total,
        }
