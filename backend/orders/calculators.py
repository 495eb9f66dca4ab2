"""
Pure order pricing and stock-deduction arithmetic.

Nothing here touches the database: the builder receives lines whose menu item,
variant and recipe have already been resolved, and produces the priced line
snapshots, the order subtotal and the per-ingredient deduction totals that the
order service then persists.

Usage:
    from orders.calculators import OrderBuilder
    builder = OrderBuilder()
    for resolved, quantity in lines:
        builder.add_line(resolved, quantity)
    builder.subtotal        # Decimal
    builder.deductions      # {ingredient_id: Decimal}
"""

from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List

from core_backend.utils.money import quantize_money, quantize_quantity


@dataclass
class PricedLine:
    menu_item: object
    variant: object
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    recipe_lines: List = field(default_factory=list)

    @property
    def variant_name(self) -> str:
        return self.variant.display_name if self.variant is not None else ""


class OrderBuilder:
    """
    Accumulates priced lines for one order.

    unit price = base price + variant price modifier
    line subtotal = unit price x quantity
    order subtotal = sum of line subtotals
    deduction[ingredient] = sum over lines of quantity_required x quantity
    """

    def __init__(self):
        self.lines: List[PricedLine] = []
        self._deductions: Dict[int, Decimal] = defaultdict(Decimal)

    @staticmethod
    def unit_price(menu_item, variant=None) -> Decimal:
        price = menu_item.price
        if variant is not None:
            price += variant.price_modifier
        return quantize_money(price)

    def add_line(self, resolved, quantity: int) -> PricedLine:
        """
        Args:
            resolved: ResolvedMenuItem from RecipeService.resolve
            quantity: units ordered (positive)
        """
        if quantity <= 0:
            raise ValueError("Line quantity must be positive")

        unit_price = self.unit_price(resolved.menu_item, resolved.variant)
        line = PricedLine(
            menu_item=resolved.menu_item,
            variant=resolved.variant,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=quantize_money(unit_price * quantity),
            recipe_lines=list(resolved.lines),
        )
        for recipe_line in line.recipe_lines:
            self._deductions[recipe_line.ingredient_id] += recipe_line.quantity_required * quantity
        self.lines.append(line)
        return line

    @property
    def subtotal(self) -> Decimal:
        return quantize_money(sum((line.subtotal for line in self.lines), Decimal("0")))

    @property
    def deductions(self) -> Dict[int, Decimal]:
        return {
            ingredient_id: quantize_quantity(total)
            for ingredient_id, total in sorted(self._deductions.items())
        }

    def total(self, delivery_fee=Decimal("0")) -> Decimal:
        return quantize_money(self.subtotal + delivery_fee)


def aggregate_restorations(order_items, snapshot_resolver) -> Dict[int, Decimal]:
    """
    Per-ingredient quantities to return to stock for refunded ``order_items``,
    computed from each item's recorded recipe snapshot.
    """
    totals: Dict[int, Decimal] = defaultdict(Decimal)
    for item in order_items:
        for recipe_line in snapshot_resolver(item):
            totals[recipe_line.ingredient_id] += recipe_line.quantity_required * item.quantity
    return {ingredient_id: quantize_quantity(total) for ingredient_id, total in sorted(totals.items())}
