from decimal import Decimal
import hashlib
import uuid

from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class BranchOrderSequence(models.Model):
    """
    Per-branch order number counter.

    ``next_number`` must be called inside a transaction: it locks the row, so
    concurrent orders at the same branch receive distinct, increasing numbers
    and a rolled-back order releases its number with the transaction.
    """

    branch = models.OneToOneField(
        "branches.Branch", on_delete=models.CASCADE, related_name="order_sequence"
    )
    last_number = models.PositiveIntegerField(default=0)

    def __str__(self):
        return f"{self.branch}: {self.last_number}"

    @classmethod
    def next_number(cls, branch) -> int:
        sequence, _ = cls.objects.select_for_update().get_or_create(branch=branch)
        sequence.last_number += 1
        sequence.save(update_fields=["last_number"])
        return sequence.last_number


class Order(models.Model):
    class PaymentMethod(models.TextChoices):
        CASH = "cash", _("Cash")
        CARD = "card", _("Card")
        DIGITAL_WALLET = "digital_wallet", _("Digital Wallet")

    class OrderType(models.TextChoices):
        DINE_IN = "dine-in", _("Dine In")
        TAKE_AWAY = "take-away", _("Take Away")
        DELIVERY = "delivery", _("Delivery")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    branch = models.ForeignKey(
        "branches.Branch", on_delete=models.PROTECT, related_name="orders"
    )
    order_number = models.PositiveIntegerField(
        help_text=_("Sequential number, unique within the branch.")
    )
    cashier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="processed_orders",
    )
    shift = models.ForeignKey(
        "shifts.Shift",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    customer_address = models.ForeignKey(
        "customers.CustomerAddress",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="orders",
    )
    customer_name = models.CharField(max_length=100, blank=True)
    customer_phone = models.CharField(max_length=20, blank=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("0.00"))
    total_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text=_("subtotal + delivery_fee"),
    )
    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices)
    order_type = models.CharField(
        max_length=20, choices=OrderType.choices, default=OrderType.DINE_IN
    )
    delivery_address = models.CharField(max_length=500, blank=True)
    delivery_area = models.CharField(max_length=100, blank=True)

    transaction_hash = models.CharField(max_length=64, blank=True)

    # --- Refund fields (set once, by RefundService) ---
    is_refunded = models.BooleanField(default=False, db_index=True)
    refund_reason = models.TextField(blank=True)
    refunded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="refunded_orders",
    )
    refunded_at = models.DateTimeField(null=True, blank=True)
    refund_payment_method = models.CharField(
        max_length=20, choices=PaymentMethod.choices, blank=True
    )

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-order_number"]
        verbose_name = _("Order")
        verbose_name_plural = _("Orders")
        constraints = [
            models.UniqueConstraint(
                fields=["branch", "order_number"],
                name="unique_order_number_per_branch",
            ),
        ]
        indexes = [
            models.Index(fields=["branch", "-created_at"]),
            models.Index(fields=["shift", "payment_method"]),
            models.Index(fields=["cashier", "branch"]),
        ]

    def __str__(self):
        return f"Order #{self.order_number} @ {self.branch_id} - {self.total_amount}"

    def compute_transaction_hash(self) -> str:
        """
        SHA-256 digest over the order's identifying and monetary fields.
        Recomputing it later detects edits to those fields.
        """
        payload = "|".join(
            [
                str(self.pk),
                str(self.branch_id),
                str(self.order_number),
                str(self.cashier_id),
                str(self.subtotal),
                str(self.delivery_fee),
                str(self.total_amount),
                self.payment_method,
            ]
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def verify_transaction_hash(self) -> bool:
        return bool(self.transaction_hash) and self.transaction_hash == self.compute_transaction_hash()


class OrderItem(models.Model):
    """
    One order line. Name, price, variant and recipe are copied at sale time so
    later catalog edits never change a historical order or its refund.
    """

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name="items")
    menu_item = models.ForeignKey(
        "products.MenuItem", on_delete=models.PROTECT, related_name="order_items"
    )
    item_name = models.CharField(max_length=200)
    variant = models.ForeignKey(
        "products.MenuItemVariant",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="order_items",
    )
    variant_name = models.CharField(max_length=200, blank=True)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text=_("Base price plus variant modifier at the time of sale."),
    )
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    recipe_version = models.PositiveIntegerField(default=1)
    recipe_snapshot = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Recipe lines consumed per unit: [{ingredient_id, quantity_required, unit}]"),
    )

    class Meta:
        ordering = ["id"]
        verbose_name = _("Order Item")
        verbose_name_plural = _("Order Items")

    def __str__(self):
        label = f"{self.item_name} ({self.variant_name})" if self.variant_name else self.item_name
        return f"{self.quantity} x {label} in Order #{self.order.order_number}"
