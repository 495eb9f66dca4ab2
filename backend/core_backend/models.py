from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _


class AppendOnlyModel(models.Model):
    """
    Abstract base for ledger and audit rows.

    Rows may be inserted once; updating an existing row or deleting one raises.
    Corrections are new rows, never edits.
    """

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if self.pk is not None and not self._state.adding:
            raise ValueError(f"{self.__class__.__name__} rows are append-only and cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise ValueError(f"{self.__class__.__name__} rows are append-only and cannot be deleted.")


class AuditLog(AppendOnlyModel):
    """
    Immutable audit trail for order, refund, shift and transfer events.

    Written inside the same transaction as the change it records, so an
    aborted operation leaves no audit row behind.
    """

    class Action(models.TextChoices):
        ORDER_CREATED = "ORDER_CREATED", _("Order Created")
        ORDER_REFUNDED = "ORDER_REFUNDED", _("Order Refunded")
        SHIFT_OPENED = "SHIFT_OPENED", _("Shift Opened")
        SHIFT_CLOSED = "SHIFT_CLOSED", _("Shift Closed")
        TRANSFER_CREATED = "TRANSFER_CREATED", _("Transfer Created")
        TRANSFER_STATUS_CHANGED = "TRANSFER_STATUS_CHANGED", _("Transfer Status Changed")
        STOCK_ADJUSTED = "STOCK_ADJUSTED", _("Stock Adjusted")
        LOYALTY_ADJUSTED = "LOYALTY_ADJUSTED", _("Loyalty Adjusted")

    action = models.CharField(max_length=50, choices=Action.choices, db_index=True)
    entity_type = models.CharField(
        max_length=50, help_text=_("Model name of the audited entity (e.g. 'Order').")
    )
    entity_id = models.CharField(max_length=64, db_index=True)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
        help_text=_("User who performed the action"),
    )
    branch = models.ForeignKey(
        "branches.Branch",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    details = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["entity_type", "entity_id"]),
            models.Index(fields=["branch", "created_at"]),
        ]

    def __str__(self):
        return f"Audit: {self.action} {self.entity_type}#{self.entity_id}"
