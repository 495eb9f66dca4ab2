"""
Customer and loyalty models.
"""
from decimal import Decimal
import uuid

from django.conf import settings
from django.db import models

from core_backend.models import AppendOnlyModel


class Customer(models.Model):
    """
    A walk-in or delivery customer identified by phone number.

    ``loyalty_points`` always equals the sum of the customer's
    LoyaltyTransaction rows; ``total_spent`` and ``order_count`` count
    non-refunded orders only.
    """

    class Tier(models.TextChoices):
        BRONZE = "BRONZE", "Bronze"
        SILVER = "SILVER", "Silver"
        GOLD = "GOLD", "Gold"
        PLATINUM = "PLATINUM", "Platinum"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, help_text="Customer's full name")
    phone = models.CharField(
        max_length=20,
        unique=True,
        help_text="Customer's phone number, used for lookup at the counter",
    )
    email = models.EmailField(blank=True)

    loyalty_points = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=Decimal("0"),
        help_text="Current points balance",
    )
    total_spent = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Lifetime spend, net of refunds",
    )
    order_count = models.PositiveIntegerField(default=0)
    tier = models.CharField(max_length=10, choices=Tier.choices, default=Tier.BRONZE)

    notes = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        indexes = [
            models.Index(fields=["phone"]),
            models.Index(fields=["tier"]),
        ]

    def __str__(self):
        return f"{self.name} ({self.phone})"


class CustomerAddress(models.Model):
    """Delivery address book entry"""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    customer = models.ForeignKey(
        Customer,
        on_delete=models.CASCADE,
        related_name="addresses",
    )
    label = models.CharField(max_length=50, blank=True, help_text="e.g. 'Home', 'Work'")
    address = models.CharField(max_length=500)
    delivery_area = models.CharField(max_length=100, blank=True)
    is_default = models.BooleanField(default=False)
    order_count = models.PositiveIntegerField(
        default=0, help_text="Delivery orders sent to this address"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Customer Address"
        verbose_name_plural = "Customer Addresses"

    def __str__(self):
        return f"{self.label or 'Address'}: {self.address}"


class LoyaltyTransaction(AppendOnlyModel):
    """
    Immutable loyalty points ledger row. Points are signed: positive for
    earned points, negative for redeemed or reversed ones.
    """

    class TransactionType(models.TextChoices):
        EARNED = "EARNED", "Earned"
        REDEEMED = "REDEEMED", "Redeemed"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"

    customer = models.ForeignKey(
        Customer,
        on_delete=models.PROTECT,
        related_name="loyalty_transactions",
    )
    points = models.DecimalField(max_digits=14, decimal_places=4)
    transaction_type = models.CharField(max_length=20, choices=TransactionType.choices)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="loyalty_transactions",
    )
    amount = models.DecimalField(
        max_digits=14,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Currency amount the points were earned on or redeemed for",
    )
    notes = models.CharField(max_length=255, blank=True)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="loyalty_transactions",
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["customer", "created_at"]),
        ]

    def __str__(self):
        return f"{self.transaction_type} {self.points} for {self.customer.name}"
