"""
Loyalty Tests

Tests for tier derivation, point redemption, manual adjustments and the
points ledger.
"""
import pytest
from decimal import Decimal
from django.test import override_settings

from core_backend.exceptions import NotFoundError, RequestValidationError, UnauthorizedError
from core_backend.models import AuditLog
from customers.models import Customer, LoyaltyTransaction
from customers.serializers import CustomerSerializer
from customers.services import LoyaltyService


class TestTiers:
    """Test spend-based tier derivation"""

    @pytest.mark.parametrize(
        "spent,tier",
        [
            ("0", "BRONZE"),
            ("1999.99", "BRONZE"),
            ("2000", "SILVER"),
            ("4999.99", "SILVER"),
            ("5000", "GOLD"),
            ("10000", "PLATINUM"),
            ("250000", "PLATINUM"),
        ],
    )
    def test_tier_for_spend(self, spent, tier):
        """Tier is the highest threshold reached"""
        assert LoyaltyService.tier_for_spend(Decimal(spent)) == tier

    def test_crossing_into_silver(self):
        """1900 spent plus a 150 order lands in SILVER"""
        assert LoyaltyService.tier_for_spend(Decimal("1900") + Decimal("150")) == Customer.Tier.SILVER

    def test_next_tier(self):
        """The next tier and its threshold are reported until the top"""
        assert LoyaltyService.next_tier(Decimal("2500")) == ("GOLD", Decimal("5000"))
        assert LoyaltyService.next_tier(Decimal("10000")) == (None, None)

    def test_points_for_amount(self):
        """Points accrue per currency unit"""
        assert LoyaltyService.points_for_amount(Decimal("148.50")) == Decimal("1.4850")

    @override_settings(POS_POINTS_PER_CURRENCY=Decimal("1"))
    def test_points_rate_is_configurable(self):
        """The earning rate comes from settings"""
        assert LoyaltyService.points_for_amount(Decimal("12.34")) == Decimal("12.3400")


@pytest.mark.django_db
class TestPointOperations:
    """Test redeeming and adjusting points"""

    def test_adjust_then_redeem(self, customer, manager_a):
        """Redeeming converts points to a discount and keeps the ledger balanced"""
        LoyaltyService.adjust_points(customer.pk, Decimal("50"), manager_a, notes="Goodwill")

        result = LoyaltyService.redeem_points(customer.pk, Decimal("20"), actor=manager_a)
        customer.refresh_from_db()

        assert result["points_redeemed"] == Decimal("20")
        assert result["discount_value"] == Decimal("20.00")
        assert result["remaining_points"] == Decimal("30")
        assert customer.loyalty_points == Decimal("30")
        assert LoyaltyService.ledger_balance(customer) == customer.loyalty_points
        assert result["transaction"].transaction_type == LoyaltyTransaction.TransactionType.REDEEMED

    def test_redeem_more_than_balance(self, customer):
        """Redeeming beyond the balance is refused"""
        with pytest.raises(RequestValidationError, match="Insufficient points"):
            LoyaltyService.redeem_points(customer.pk, Decimal("1"))

        assert not LoyaltyTransaction.objects.exists()

    def test_redeem_non_positive(self, customer):
        """Only positive amounts can be redeemed"""
        with pytest.raises(RequestValidationError):
            LoyaltyService.redeem_points(customer.pk, Decimal("0"))

    def test_adjust_below_zero(self, customer, admin_user):
        """Adjustments cannot take the balance negative"""
        with pytest.raises(RequestValidationError, match="Cannot reduce points below zero"):
            LoyaltyService.adjust_points(customer.pk, Decimal("-5"), admin_user)

    def test_adjust_is_audited(self, customer, admin_user):
        """Adjustments write an audit row"""
        LoyaltyService.adjust_points(customer.pk, Decimal("5"), admin_user, notes="Complaint")

        audit = AuditLog.objects.get(action=AuditLog.Action.LOYALTY_ADJUSTED)
        assert audit.entity_id == str(customer.pk)
        assert audit.details["notes"] == "Complaint"

    def test_cashier_cannot_adjust(self, customer, cashier_a):
        """Cashiers cannot adjust points"""
        with pytest.raises(UnauthorizedError):
            LoyaltyService.adjust_points(customer.pk, Decimal("5"), cashier_a)

    def test_unknown_customer(self, admin_user):
        """Unknown customers are not found"""
        with pytest.raises(NotFoundError):
            LoyaltyService.adjust_points("00000000-0000-0000-0000-000000000001", Decimal("5"), admin_user)

    def test_malformed_customer_id(self, admin_user):
        """Customer ids must be UUIDs"""
        with pytest.raises(RequestValidationError) as exc_info:
            LoyaltyService.redeem_points("nope", Decimal("1"))
        assert "customer_id" in exc_info.value.details

        with pytest.raises(RequestValidationError):
            LoyaltyService.get_loyalty_summary(customer_id="nope")

    def test_reversal_uses_ledger_precision(self, place_order, customer):
        """Reversed points are stored and reported at four decimal places"""
        order = place_order(quantity=1, customer_id=customer.pk)
        customer.refresh_from_db()

        entry = LoyaltyService.reverse_order(customer, order)

        assert str(entry.points) == "-0.0550"


@pytest.mark.django_db
class TestLoyaltySummary:
    """Test the customer loyalty summary"""

    def test_summary_after_orders(self, place_order, customer):
        """Orders feed the summary's balance, tier progress and history"""
        place_order(quantity=2, customer_id=customer.pk)
        place_order(quantity=1, customer_id=customer.pk)

        summary = LoyaltyService.get_loyalty_summary(phone="5550001111")

        assert summary["customer"] == customer
        assert summary["tier"] == "BRONZE"
        assert summary["total_spent"] == Decimal("16.50")
        assert summary["loyalty_points"] == Decimal("0.165")
        assert summary["points_value"] == Decimal("0.17")
        assert summary["next_tier"] == "SILVER"
        assert summary["spend_to_next_tier"] == Decimal("1983.50")
        assert len(summary["transactions"]) == 2

    def test_summary_requires_lookup(self, db):
        """Either an id or a phone number is needed"""
        with pytest.raises(NotFoundError):
            LoyaltyService.get_loyalty_summary()

    def test_serialized_customer(self, customer_address):
        """Customers serialize with their addresses"""
        data = CustomerSerializer(customer_address.customer).data

        assert data["tier"] == "BRONZE"
        assert data["addresses"][0]["delivery_area"] == "north-side"
