from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _


class Shift(models.Model):
    """
    A cashier's working session at one branch.

    Opening figures are the cashier's cumulative order totals at that branch
    when the shift opened. Closing figures aggregate the orders bound to the
    shift and are frozen once ``is_closed`` is set.
    """

    cashier = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.PROTECT, related_name="shifts"
    )
    branch = models.ForeignKey(
        "branches.Branch", on_delete=models.PROTECT, related_name="shifts"
    )
    started_at = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)

    opening_cash = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    opening_orders = models.PositiveIntegerField(default=0)
    opening_revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    closing_cash = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    closing_orders = models.PositiveIntegerField(null=True, blank=True)
    closing_revenue = models.DecimalField(max_digits=14, decimal_places=2, null=True, blank=True)

    # Revenue by payment method at close; delivery fees excluded.
    cash_revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    card_revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    other_revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    is_closed = models.BooleanField(default=False, db_index=True)
    notes = models.TextField(blank=True)

    class Meta:
        verbose_name = _("Shift")
        verbose_name_plural = _("Shifts")
        ordering = ["-started_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["cashier"],
                condition=models.Q(is_closed=False),
                name="one_open_shift_per_cashier",
            ),
        ]
        indexes = [
            models.Index(fields=["branch", "started_at"]),
        ]

    def __str__(self):
        return f"{self.cashier} @ {self.branch} - {self.started_at.date()}"

    @property
    def duration(self):
        if self.ended_at:
            return self.ended_at - self.started_at
        return timezone.now() - self.started_at

    @property
    def payment_breakdown(self):
        return {
            "cash": self.cash_revenue,
            "card": self.card_revenue,
            "other": self.other_revenue,
        }

    @property
    def expected_cash(self):
        return self.opening_cash + self.cash_revenue
