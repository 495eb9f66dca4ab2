from django.db import models
from django.utils.translation import gettext_lazy as _

from core_backend.utils.archiving import ArchivableMixin


class Ingredient(ArchivableMixin):
    """
    A stock-keeping raw material (espresso beans, milk, syrup). Stock levels
    are tracked per branch in ``inventory.BranchInventory``.
    """

    name = models.CharField(max_length=100, unique=True)
    unit = models.CharField(
        max_length=20, help_text=_("Unit stock is counted in (kg, l, pcs).")
    )
    cost_per_unit = models.DecimalField(
        max_digits=10,
        decimal_places=4,
        default=0,
        help_text=_("Purchase cost of one unit."),
    )
    reorder_threshold = models.DecimalField(
        max_digits=12,
        decimal_places=4,
        default=0,
        help_text=_("Stock at or below this level is considered low."),
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Ingredient")
        verbose_name_plural = _("Ingredients")
        ordering = ["name"]

    def __str__(self):
        return self.name


class MenuItem(ArchivableMixin):
    name = models.CharField(max_length=200, help_text=_("Name of the menu item."))
    category = models.CharField(max_length=100, blank=True)
    description = models.TextField(blank=True)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        help_text=_("Base selling price before variant modifiers."),
    )
    # Bumped whenever the recipe changes; copied onto each OrderItem.
    version = models.PositiveIntegerField(default=1)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Menu Item")
        verbose_name_plural = _("Menu Items")
        ordering = ["name"]
        indexes = [
            models.Index(fields=["category", "is_active"]),
        ]

    def __str__(self):
        return self.name


class MenuItemVariant(ArchivableMixin):
    """
    A selectable option of a menu item (Size: Large, Milk: Oat). A variant may
    carry its own recipe set, which replaces the item's base recipe.
    """

    menu_item = models.ForeignKey(
        MenuItem, on_delete=models.CASCADE, related_name="variants"
    )
    variant_type = models.CharField(
        max_length=50, help_text=_("e.g., 'Size'")
    )
    option = models.CharField(max_length=100, help_text=_("e.g., 'Large'"))
    price_modifier = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=0,
        help_text=_("The amount to add or subtract from the base item price."),
    )
    sort_order = models.PositiveIntegerField(default=0)

    class Meta:
        ordering = ["sort_order", "option"]
        constraints = [
            models.UniqueConstraint(
                fields=["menu_item", "variant_type", "option"],
                name="unique_variant_option_per_item",
            ),
        ]

    def __str__(self):
        return f"{self.menu_item.name} - {self.display_name}"

    @property
    def display_name(self):
        return f"{self.variant_type}: {self.option}"
