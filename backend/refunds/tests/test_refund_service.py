"""
Refund Service Tests

Tests that a full refund is the exact inverse of placing the order, and that
refunds are authorized and happen at most once.
"""
import pytest
import uuid
from decimal import Decimal

from core_backend.exceptions import (
    AlreadyRefundedError,
    NotFoundError,
    RequestValidationError,
    UnauthorizedError,
)
from core_backend.models import AuditLog
from customers.models import Customer, LoyaltyTransaction
from customers.services import LoyaltyService
from inventory.models import InventoryTransaction
from inventory.services import InventoryService
from refunds.services import RefundService


@pytest.mark.django_db
class TestFullRefund:
    """Test refunding whole orders"""

    def test_refund_restores_stock(self, place_order, stocked_branch_a, manager_a, espresso, milk, vanilla_syrup):
        """Every deducted ingredient returns to its pre-order level"""
        order = place_order(quantity=2)

        refunded = RefundService.refund_order(order.pk, manager_a, reason="Wrong order")

        assert refunded.is_refunded
        assert refunded.refund_reason == "Wrong order"
        assert refunded.refunded_by == manager_a
        assert refunded.refund_payment_method == "cash"
        assert InventoryService.get_stock_level(stocked_branch_a, espresso) == Decimal("10")
        assert InventoryService.get_stock_level(stocked_branch_a, milk) == Decimal("20")
        assert InventoryService.get_stock_level(stocked_branch_a, vanilla_syrup) == Decimal("5")

        refund_rows = InventoryTransaction.objects.filter(
            order=order, transaction_type=InventoryTransaction.TransactionType.REFUND
        )
        assert refund_rows.count() == 3
        assert InventoryService.replay_ledger(stocked_branch_a.pk, espresso.pk).is_consistent

    def test_refund_uses_recorded_recipe(self, place_order, stocked_branch_a, admin_user, latte, espresso):
        """Recipe edits after the sale do not change what the refund returns"""
        order = place_order(quantity=2)
        latte.recipe_lines.filter(ingredient=espresso, variant__isnull=True).update(quantity_required=Decimal("0.5"))

        RefundService.refund_order(order.pk, admin_user)

        assert InventoryService.get_stock_level(stocked_branch_a, espresso) == Decimal("10")

    def test_refund_reverses_customer_and_tier(self, place_order, manager_a, customer):
        """Spend, order count, points and tier return to their pre-order values"""
        Customer.objects.filter(pk=customer.pk).update(total_spent=Decimal("1900.00"))

        order = place_order(quantity=27, customer_id=customer.pk)
        customer.refresh_from_db()
        assert order.subtotal == Decimal("148.50")
        assert customer.tier == Customer.Tier.SILVER
        assert customer.loyalty_points == Decimal("1.485")

        RefundService.refund_order(order.pk, manager_a)
        customer.refresh_from_db()

        assert customer.total_spent == Decimal("1900.00")
        assert customer.order_count == 0
        assert customer.loyalty_points == Decimal("0")
        assert customer.tier == Customer.Tier.BRONZE
        assert LoyaltyService.ledger_balance(customer) == customer.loyalty_points

    def test_refund_after_points_redeemed(self, place_order, manager_a, customer):
        """
        Points earned by the order and spent before its refund are still taken
        back: the balance goes negative and the ledger still matches it.
        """
        order = place_order(quantity=27, customer_id=customer.pk)
        LoyaltyService.redeem_points(customer.pk, Decimal("1.4850"), actor=manager_a)

        RefundService.refund_order(order.pk, manager_a)
        customer.refresh_from_db()

        assert customer.loyalty_points == Decimal("-1.4850")
        assert LoyaltyService.ledger_balance(customer) == customer.loyalty_points
        reversal = LoyaltyTransaction.objects.get(
            order=order, transaction_type=LoyaltyTransaction.TransactionType.REDEEMED
        )
        assert reversal.points == Decimal("-1.4850")

    def test_default_reason(self, place_order, admin_user):
        """A blank reason is recorded as 'No reason provided'"""
        order = place_order()

        refunded = RefundService.refund_order(order.pk, admin_user, reason="")

        assert refunded.refund_reason == "No reason provided"

    def test_refund_is_audited(self, place_order, manager_a):
        """Refunds write an audit row with the amount"""
        order = place_order(quantity=2)

        RefundService.refund_order(order.pk, manager_a)

        audit = AuditLog.objects.get(action=AuditLog.Action.ORDER_REFUNDED)
        assert audit.entity_id == str(order.pk)
        assert audit.details["refund_amount"] == "11.00"


@pytest.mark.django_db
class TestRefundRejections:
    """Test refunds that must be refused"""

    def test_double_refund_fails_without_writes(self, place_order, manager_a, customer):
        """A second refund raises and leaves every ledger untouched"""
        order = place_order(quantity=2, customer_id=customer.pk)
        RefundService.refund_order(order.pk, manager_a)
        stock_rows = InventoryTransaction.objects.count()
        loyalty_rows = LoyaltyTransaction.objects.count()
        audit_rows = AuditLog.objects.count()

        with pytest.raises(AlreadyRefundedError, match="already been refunded"):
            RefundService.refund_order(order.pk, manager_a)

        assert InventoryTransaction.objects.count() == stock_rows
        assert LoyaltyTransaction.objects.count() == loyalty_rows
        assert AuditLog.objects.count() == audit_rows

    def test_cashier_cannot_refund(self, place_order, cashier_a):
        """Cashiers are not allowed to refund"""
        order = place_order()

        with pytest.raises(UnauthorizedError):
            RefundService.refund_order(order.pk, cashier_a)

        order.refresh_from_db()
        assert not order.is_refunded

    def test_other_branch_manager_cannot_refund(self, place_order, manager_b):
        """Managers only refund orders of their own branch"""
        order = place_order()

        with pytest.raises(UnauthorizedError):
            RefundService.refund_order(order.pk, manager_b)

    def test_unknown_order(self, admin_user):
        """Unknown orders are not found"""
        with pytest.raises(NotFoundError):
            RefundService.refund_order(uuid.uuid4(), admin_user)

    def test_malformed_order_id(self, admin_user):
        """Order ids must be UUIDs"""
        with pytest.raises(RequestValidationError) as exc_info:
            RefundService.refund_order("not-a-uuid", admin_user)

        assert "order_id" in exc_info.value.details
