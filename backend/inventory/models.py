from django.conf import settings
from django.db import models
from django.utils.translation import gettext_lazy as _

from core_backend.models import AppendOnlyModel
from products.models import Ingredient, MenuItem, MenuItemVariant


class Recipe(models.Model):
    """
    One ingredient line of a menu item's recipe.

    Lines with no variant form the item's base recipe. Lines bound to a variant
    form that variant's recipe, which is used instead of the base set (the two
    are never merged).
    """

    menu_item = models.ForeignKey(
        MenuItem,
        on_delete=models.PROTECT,
        related_name="recipe_lines",
        help_text=_("The menu item this recipe line is for."),
    )
    variant = models.ForeignKey(
        MenuItemVariant,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="recipe_lines",
        help_text=_("Variant this line applies to. Empty for the base recipe."),
    )
    ingredient = models.ForeignKey(
        Ingredient,
        on_delete=models.PROTECT,
        related_name="recipe_lines",
    )
    quantity_required = models.DecimalField(
        max_digits=10,
        decimal_places=4,
        help_text=_("Quantity of the ingredient consumed per unit sold."),
    )
    unit = models.CharField(
        max_length=20,
        help_text=_("Unit of measure, e.g., 'kg', 'l', 'pcs'."),
    )

    class Meta:
        verbose_name = _("Recipe Line")
        verbose_name_plural = _("Recipe Lines")
        constraints = [
            models.UniqueConstraint(
                fields=["menu_item", "ingredient"],
                condition=models.Q(variant__isnull=True),
                name="unique_base_recipe_ingredient",
            ),
            models.UniqueConstraint(
                fields=["menu_item", "variant", "ingredient"],
                condition=models.Q(variant__isnull=False),
                name="unique_variant_recipe_ingredient",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity_required__gt=0),
                name="recipe_quantity_positive",
            ),
        ]
        indexes = [
            models.Index(fields=["menu_item", "variant"]),
        ]

    def __str__(self):
        return f"{self.quantity_required} {self.unit} of {self.ingredient} for {self.menu_item}"


class BranchInventory(models.Model):
    """
    Current stock of one ingredient at one branch.

    Only InventoryService.apply_change writes ``current_stock``; every write is
    mirrored by an InventoryTransaction row.
    """

    branch = models.ForeignKey(
        "branches.Branch", on_delete=models.PROTECT, related_name="inventory"
    )
    ingredient = models.ForeignKey(
        Ingredient, on_delete=models.PROTECT, related_name="stock_levels"
    )
    current_stock = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        default=0,
        help_text=_("Quantity of stock on hand."),
    )
    low_stock_notified = models.BooleanField(
        default=False,
        help_text=_("Whether a low stock warning was already raised for the current dip."),
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Branch Inventory")
        verbose_name_plural = _("Branch Inventory")
        constraints = [
            models.UniqueConstraint(
                fields=["branch", "ingredient"],
                name="unique_inventory_per_branch_ingredient",
            ),
            models.CheckConstraint(
                condition=models.Q(current_stock__gte=0),
                name="inventory_stock_non_negative",
            ),
        ]

    def __str__(self):
        return f"{self.ingredient} @ {self.branch}: {self.current_stock}"

    @property
    def is_low_stock(self):
        return self.current_stock <= self.ingredient.reorder_threshold


class InventoryTransaction(AppendOnlyModel):
    """
    Immutable stock ledger row.

    For each (branch, ingredient), rows ordered by id form a chain: every
    row's ``stock_before`` equals the previous row's ``stock_after`` and the
    last ``stock_after`` equals ``BranchInventory.current_stock``.
    """

    class TransactionType(models.TextChoices):
        SALE = "SALE", _("Sale")
        REFUND = "REFUND", _("Refund")
        ADJUSTMENT = "ADJUSTMENT", _("Adjustment")

    branch = models.ForeignKey(
        "branches.Branch", on_delete=models.PROTECT, related_name="inventory_transactions"
    )
    ingredient = models.ForeignKey(
        Ingredient, on_delete=models.PROTECT, related_name="inventory_transactions"
    )
    transaction_type = models.CharField(
        max_length=20, choices=TransactionType.choices, db_index=True
    )
    quantity_change = models.DecimalField(
        max_digits=14,
        decimal_places=4,
        help_text=_("Change in quantity (positive for additions, negative for subtractions)"),
    )
    stock_before = models.DecimalField(max_digits=14, decimal_places=4)
    stock_after = models.DecimalField(max_digits=14, decimal_places=4)
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="inventory_transactions",
    )
    transfer = models.ForeignKey(
        "inventory.InventoryTransfer",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="inventory_transactions",
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="inventory_transactions",
        help_text=_("User who performed the operation"),
    )
    reason = models.CharField(max_length=255, blank=True)
    reference = models.CharField(
        max_length=100,
        blank=True,
        db_index=True,
        help_text=_("External reference (order number, transfer number)."),
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = _("Inventory Transaction")
        verbose_name_plural = _("Inventory Transactions")
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["branch", "ingredient", "id"]),
            models.Index(fields=["branch", "created_at"]),
            models.Index(fields=["transaction_type", "created_at"]),
        ]

    def __str__(self):
        sign = "+" if self.quantity_change >= 0 else ""
        return f"{self.transaction_type} {sign}{self.quantity_change} {self.ingredient} @ {self.branch}"


class InventoryTransfer(models.Model):
    """
    A request to move ingredient stock between two branches.

    Status only moves along the transitions in TransferService; stock moves
    exactly once, on completion.
    """

    class Status(models.TextChoices):
        PENDING = "PENDING", _("Pending")
        APPROVED = "APPROVED", _("Approved")
        IN_TRANSIT = "IN_TRANSIT", _("In Transit")
        COMPLETED = "COMPLETED", _("Completed")
        CANCELLED = "CANCELLED", _("Cancelled")

    transfer_number = models.CharField(max_length=30, unique=True)
    source_branch = models.ForeignKey(
        "branches.Branch", on_delete=models.PROTECT, related_name="outgoing_transfers"
    )
    target_branch = models.ForeignKey(
        "branches.Branch", on_delete=models.PROTECT, related_name="incoming_transfers"
    )
    status = models.CharField(
        max_length=20, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    notes = models.TextField(blank=True)

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        related_name="requested_transfers",
    )
    approved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="approved_transfers",
    )
    approved_at = models.DateTimeField(null=True, blank=True)
    shipped_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="shipped_transfers",
    )
    shipped_at = models.DateTimeField(null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="completed_transfers",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_transfers",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)

    # Set when completion has written its ledger rows; never cleared.
    ledger_posted_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Inventory Transfer")
        verbose_name_plural = _("Inventory Transfers")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=~models.Q(source_branch=models.F("target_branch")),
                name="transfer_branches_differ",
            ),
        ]

    def __str__(self):
        return f"{self.transfer_number} ({self.source_branch} -> {self.target_branch}): {self.status}"


class InventoryTransferItem(models.Model):
    transfer = models.ForeignKey(
        InventoryTransfer, on_delete=models.CASCADE, related_name="items"
    )
    ingredient = models.ForeignKey(
        Ingredient, on_delete=models.PROTECT, related_name="transfer_items"
    )
    quantity = models.DecimalField(max_digits=14, decimal_places=4)
    source_inventory = models.ForeignKey(
        BranchInventory,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="outgoing_transfer_items",
    )
    target_inventory = models.ForeignKey(
        BranchInventory,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="incoming_transfer_items",
    )

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["transfer", "ingredient"],
                name="unique_ingredient_per_transfer",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gt=0),
                name="transfer_quantity_positive",
            ),
        ]

    def __str__(self):
        return f"{self.quantity} {self.ingredient.unit} {self.ingredient}"
