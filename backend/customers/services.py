"""
Loyalty program: tier derivation and the points ledger.

Tiers follow lifetime spend (``POS_LOYALTY_TIERS``). Points are earned at
``POS_POINTS_PER_CURRENCY`` per currency unit of order subtotal and are worth
``POS_POINT_VALUE`` each on redemption. A refund reverses exactly the points
its order earned.
"""
from decimal import Decimal
from typing import Optional
import logging

from django.conf import settings
from django.db import transaction
from django.db.models import Sum
from rest_framework import serializers

from core_backend.audit import record_audit
from core_backend.exceptions import (
    NotFoundError,
    RequestValidationError,
    UnauthorizedError,
    validate_lookup,
    validate_or_raise,
)
from core_backend.models import AuditLog
from core_backend.utils.money import quantize_money, quantize_quantity, to_decimal
from users.permissions import can_adjust_loyalty

from .models import Customer, LoyaltyTransaction
from .serializers import LoyaltyAdjustSerializer, LoyaltyRedeemSerializer

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

DEFAULT_TIERS = [
    ("BRONZE", Decimal("0")),
    ("SILVER", Decimal("2000")),
    ("GOLD", Decimal("5000")),
    ("PLATINUM", Decimal("10000")),
]


def get_tier_thresholds():
    return [(tier, to_decimal(threshold)) for tier, threshold in getattr(settings, "POS_LOYALTY_TIERS", DEFAULT_TIERS)]


def get_points_per_currency() -> Decimal:
    return to_decimal(getattr(settings, "POS_POINTS_PER_CURRENCY", Decimal("0.01")))


def get_point_value() -> Decimal:
    return to_decimal(getattr(settings, "POS_POINT_VALUE", Decimal("1")))


class LoyaltyService:

    @staticmethod
    def tier_for_spend(total_spent) -> str:
        """
        Highest tier whose threshold ``total_spent`` has reached.

        >>> LoyaltyService.tier_for_spend(Decimal("2050"))
        'SILVER'
        """
        total_spent = to_decimal(total_spent)
        tier = Customer.Tier.BRONZE.value
        for name, threshold in get_tier_thresholds():
            if total_spent >= threshold:
                tier = name
        return tier

    @staticmethod
    def next_tier(total_spent):
        """Return ``(tier, threshold)`` of the next tier up, or ``(None, None)``."""
        total_spent = to_decimal(total_spent)
        for name, threshold in get_tier_thresholds():
            if total_spent < threshold:
                return name, threshold
        return None, None

    @staticmethod
    def points_for_amount(amount) -> Decimal:
        return quantize_quantity(to_decimal(amount) * get_points_per_currency())

    @staticmethod
    def _lock_customer(customer_id) -> Customer:
        customer_id = validate_lookup("customer_id", customer_id, serializers.UUIDField())
        customer = Customer.objects.select_for_update().filter(pk=customer_id).first()
        if customer is None:
            raise NotFoundError(f"Customer {customer_id} not found", details={"customer_id": str(customer_id)})
        return customer

    @staticmethod
    def _append(customer, points, transaction_type, order=None, amount=None, notes="", actor=None):
        return LoyaltyTransaction.objects.create(
            customer=customer,
            points=points,
            transaction_type=LoyaltyTransaction.TransactionType(transaction_type),
            order=order,
            amount=amount,
            notes=notes,
            created_by=actor,
        )

    @staticmethod
    def record_order(customer: Customer, order, actor=None) -> LoyaltyTransaction:
        """
        Credit a new order to a locked customer: spend, order count, earned
        points and tier. Must run inside the order's transaction.
        """
        points = LoyaltyService.points_for_amount(order.subtotal)

        customer.total_spent = quantize_money(customer.total_spent + order.subtotal)
        customer.order_count += 1
        customer.loyalty_points = quantize_quantity(customer.loyalty_points + points)
        customer.tier = LoyaltyService.tier_for_spend(customer.total_spent)
        customer.save(update_fields=["total_spent", "order_count", "loyalty_points", "tier", "updated_at"])

        entry = LoyaltyService._append(
            customer,
            points,
            LoyaltyTransaction.TransactionType.EARNED,
            order=order,
            amount=order.subtotal,
            notes=f"Order #{order.order_number}",
            actor=actor,
        )
        logger.info(
            f"Customer {customer.pk} earned {points} points on order #{order.order_number}; tier {customer.tier}"
        )
        return entry

    @staticmethod
    def reverse_order(customer: Customer, order, actor=None) -> Optional[LoyaltyTransaction]:
        """
        Undo ``record_order`` for a refunded order.

        The reversed points are those recorded as EARNED for this order, so an
        order followed by its refund nets to zero. The balance may go negative
        if the earned points were redeemed in the meantime.
        """
        earned = quantize_quantity(
            LoyaltyTransaction.objects.filter(
                customer=customer,
                order=order,
                transaction_type=LoyaltyTransaction.TransactionType.EARNED,
            ).aggregate(total=Sum("points"))["total"]
            or ZERO
        )

        customer.total_spent = quantize_money(customer.total_spent - order.subtotal)
        customer.order_count = max(customer.order_count - 1, 0)
        customer.loyalty_points = quantize_quantity(customer.loyalty_points - earned)
        customer.tier = LoyaltyService.tier_for_spend(customer.total_spent)
        customer.save(update_fields=["total_spent", "order_count", "loyalty_points", "tier", "updated_at"])

        if earned == ZERO:
            return None

        entry = LoyaltyService._append(
            customer,
            -earned,
            LoyaltyTransaction.TransactionType.REDEEMED,
            order=order,
            amount=order.subtotal,
            notes=f"Refund of order #{order.order_number}",
            actor=actor,
        )
        logger.info(
            f"Reversed {earned} points for customer {customer.pk} on refunded order #{order.order_number}; "
            f"tier {customer.tier}"
        )
        return entry

    @staticmethod
    @transaction.atomic
    def redeem_points(customer_id, points, order=None, actor=None) -> dict:
        """
        Spend points for a discount.

        Returns:
            dict with ``points_redeemed``, ``discount_value``,
            ``remaining_points`` and the ledger ``transaction``
        """
        points = validate_or_raise(LoyaltyRedeemSerializer(data={"points": points}))["points"]
        customer = LoyaltyService._lock_customer(customer_id)

        if customer.loyalty_points < points:
            logger.warning(
                f"Customer {customer.pk} tried to redeem {points} points with {customer.loyalty_points} available"
            )
            raise RequestValidationError(
                "Insufficient points",
                details={"available": str(customer.loyalty_points), "requested": str(points)},
            )

        customer.loyalty_points = quantize_quantity(customer.loyalty_points - points)
        customer.save(update_fields=["loyalty_points", "updated_at"])

        discount_value = quantize_money(points * get_point_value())
        entry = LoyaltyService._append(
            customer,
            -points,
            LoyaltyTransaction.TransactionType.REDEEMED,
            order=order,
            amount=discount_value,
            actor=actor,
        )
        logger.info(f"Customer {customer.pk} redeemed {points} points for {discount_value}")
        return {
            "points_redeemed": points,
            "discount_value": discount_value,
            "remaining_points": customer.loyalty_points,
            "tier": customer.tier,
            "transaction": entry,
        }

    @staticmethod
    @transaction.atomic
    def adjust_points(customer_id, points, actor, notes: str = "") -> LoyaltyTransaction:
        """
        Manual correction of a customer's balance. May not take the balance
        below zero.
        """
        if not can_adjust_loyalty(actor):
            raise UnauthorizedError(f"User {actor} may not adjust loyalty points")

        data = validate_or_raise(LoyaltyAdjustSerializer(data={"points": points, "notes": notes}))
        customer = LoyaltyService._lock_customer(customer_id)

        new_balance = quantize_quantity(customer.loyalty_points + data["points"])
        if new_balance < ZERO:
            raise RequestValidationError(
                "Cannot reduce points below zero",
                details={"available": str(customer.loyalty_points), "adjustment": str(data["points"])},
            )

        customer.loyalty_points = new_balance
        customer.save(update_fields=["loyalty_points", "updated_at"])

        entry = LoyaltyService._append(
            customer,
            data["points"],
            LoyaltyTransaction.TransactionType.ADJUSTMENT,
            notes=data["notes"],
            actor=actor,
        )
        record_audit(
            AuditLog.Action.LOYALTY_ADJUSTED,
            customer,
            user=actor,
            details={"points": str(data["points"]), "balance": str(new_balance), "notes": data["notes"]},
        )
        logger.info(f"Adjusted customer {customer.pk} points by {data['points']} to {new_balance}")
        return entry

    @staticmethod
    def ledger_balance(customer) -> Decimal:
        total = LoyaltyTransaction.objects.filter(customer=customer).aggregate(total=Sum("points"))["total"]
        return quantize_quantity(total) if total is not None else ZERO

    @staticmethod
    def get_loyalty_summary(customer_id=None, phone=None, history: int = 20) -> dict:
        """Balance, tier progress and recent ledger rows for one customer."""
        if customer_id is not None:
            customer_id = validate_lookup("customer_id", customer_id, serializers.UUIDField())
            customer = Customer.objects.filter(pk=customer_id).first()
        elif phone:
            customer = Customer.objects.filter(phone=phone).first()
        else:
            customer = None
        if customer is None:
            raise NotFoundError("Customer not found", details={"customer_id": str(customer_id), "phone": phone})

        next_tier, next_threshold = LoyaltyService.next_tier(customer.total_spent)
        return {
            "customer": customer,
            "tier": customer.tier,
            "loyalty_points": customer.loyalty_points,
            "points_value": quantize_money(customer.loyalty_points * get_point_value()),
            "total_spent": customer.total_spent,
            "next_tier": next_tier,
            "spend_to_next_tier": (next_threshold - customer.total_spent) if next_threshold is not None else None,
            "transactions": list(customer.loyalty_transactions.order_by("-created_at", "-id")[:history]),
        }
