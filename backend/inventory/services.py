from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging

from django.db import transaction

from core_backend.audit import record_audit
from core_backend.exceptions import (
    InsufficientInventoryError,
    ItemUnavailableError,
    NotFoundError,
    RequestValidationError,
    UnauthorizedError,
    validate_or_raise,
)
from core_backend.models import AuditLog
from core_backend.utils.money import quantize_quantity, to_decimal
from products.models import Ingredient, MenuItem, MenuItemVariant
from users.permissions import can_manage_branch_inventory

from .filters import InventoryTransactionFilter
from .models import BranchInventory, InventoryTransaction, Recipe
from .serializers import StockAdjustmentSerializer

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class RecipeLine:
    ingredient_id: int
    quantity_required: Decimal
    unit: str

    def as_snapshot(self) -> dict:
        return {
            "ingredient_id": self.ingredient_id,
            "quantity_required": str(self.quantity_required),
            "unit": self.unit,
        }

    @classmethod
    def from_snapshot(cls, data: dict) -> "RecipeLine":
        return cls(
            ingredient_id=int(data["ingredient_id"]),
            quantity_required=Decimal(data["quantity_required"]),
            unit=data.get("unit", ""),
        )


@dataclass
class ResolvedMenuItem:
    menu_item: MenuItem
    variant: Optional[MenuItemVariant]
    lines: List[RecipeLine] = field(default_factory=list)


class RecipeService:
    """
    Maps a menu item (and optional variant) to the ingredient quantities one
    unit of it consumes.
    """

    @staticmethod
    def resolve(menu_item_id, variant_id=None) -> ResolvedMenuItem:
        """
        Resolve the catalog entry and recipe for one order line.

        A selected variant uses only the recipe lines bound to that variant;
        without a variant only the base lines apply. The two sets are never
        merged.

        Raises:
            NotFoundError: menu item missing, or variant not of this item
            ItemUnavailableError: menu item or variant archived
        """
        menu_item = MenuItem.all_objects.filter(pk=menu_item_id).first()
        if menu_item is None:
            raise NotFoundError(
                f"Menu item {menu_item_id} not found",
                details={"menu_item_id": menu_item_id},
            )
        if not menu_item.is_active:
            raise ItemUnavailableError(
                f"Menu item '{menu_item.name}' is not available",
                details={"menu_item_id": menu_item.pk},
            )

        variant = None
        if variant_id is not None:
            variant = MenuItemVariant.all_objects.filter(pk=variant_id, menu_item=menu_item).first()
            if variant is None:
                raise NotFoundError(
                    f"Variant {variant_id} not found for menu item '{menu_item.name}'",
                    details={"menu_item_id": menu_item.pk, "variant_id": variant_id},
                )
            if not variant.is_active:
                raise ItemUnavailableError(
                    f"Variant '{variant.display_name}' of '{menu_item.name}' is not available",
                    details={"menu_item_id": menu_item.pk, "variant_id": variant.pk},
                )

        recipe_lines = Recipe.objects.filter(menu_item=menu_item, variant=variant).order_by("ingredient_id")
        lines = [
            RecipeLine(
                ingredient_id=line.ingredient_id,
                quantity_required=line.quantity_required,
                unit=line.unit,
            )
            for line in recipe_lines
        ]
        return ResolvedMenuItem(menu_item=menu_item, variant=variant, lines=lines)

    @staticmethod
    def snapshot(lines: Iterable[RecipeLine]) -> list:
        return [line.as_snapshot() for line in lines]

    @staticmethod
    def resolve_snapshot(order_item) -> List[RecipeLine]:
        """Recipe lines as they were when ``order_item`` was sold."""
        return [RecipeLine.from_snapshot(data) for data in order_item.recipe_snapshot or []]


@dataclass
class LedgerReplay:
    branch_id: int
    ingredient_id: int
    replayed_stock: Decimal
    current_stock: Decimal
    entries: int
    chain_breaks: List[int] = field(default_factory=list)

    @property
    def is_consistent(self) -> bool:
        return not self.chain_breaks and self.replayed_stock == self.current_stock


class InventoryService:
    """
    Stock ledger for branch inventory.

    Every change to ``BranchInventory.current_stock`` goes through
    ``apply_change`` (or the bulk helpers built on it), which locks the row,
    refuses negative results and appends the matching InventoryTransaction.
    """

    @staticmethod
    def _lock_inventory(branch, ingredient) -> BranchInventory:
        inventory, created = BranchInventory.objects.select_for_update().get_or_create(
            branch=branch,
            ingredient=ingredient,
            defaults={"current_stock": ZERO},
        )
        if created:
            logger.info(f"Created inventory row for {ingredient} at {branch}")
        return inventory

    @staticmethod
    def lock_inventory_rows(branch, ingredient_ids) -> Dict[int, BranchInventory]:
        """
        Lock (creating where missing) the inventory rows of ``branch`` for the
        given ingredients, in ascending ingredient id order.
        """
        ingredients = Ingredient.all_objects.in_bulk(set(ingredient_ids))
        missing = set(ingredient_ids) - set(ingredients)
        if missing:
            raise NotFoundError(
                f"Ingredients not found: {sorted(missing)}",
                details={"ingredient_ids": sorted(missing)},
            )
        return {
            ingredient_id: InventoryService._lock_inventory(branch, ingredients[ingredient_id])
            for ingredient_id in sorted(ingredients)
        }

    @staticmethod
    def _append_entry(
        inventory: BranchInventory,
        transaction_type,
        quantity_change: Decimal,
        actor=None,
        order=None,
        transfer=None,
        reason: str = "",
        reference: str = "",
    ) -> InventoryTransaction:
        """
        Write one stock change on an already locked inventory row.
        """
        transaction_type = InventoryTransaction.TransactionType(transaction_type)
        quantity_change = quantize_quantity(quantity_change)

        stock_before = inventory.current_stock
        stock_after = stock_before + quantity_change
        if stock_after < ZERO:
            logger.warning(
                f"Rejected {transaction_type} of {quantity_change} for {inventory.ingredient} "
                f"at {inventory.branch}: only {stock_before} available"
            )
            raise InsufficientInventoryError(inventory.ingredient, stock_before, -quantity_change)

        inventory.current_stock = stock_after
        update_fields = ["current_stock", "updated_at"]

        threshold = inventory.ingredient.reorder_threshold
        if stock_after <= threshold and not inventory.low_stock_notified:
            inventory.low_stock_notified = True
            update_fields.append("low_stock_notified")
            logger.warning(
                f"Low stock: {inventory.ingredient} at {inventory.branch} is {stock_after} "
                f"(threshold {threshold})"
            )
        elif stock_after > threshold and inventory.low_stock_notified:
            inventory.low_stock_notified = False
            update_fields.append("low_stock_notified")

        inventory.save(update_fields=update_fields)

        return InventoryTransaction.objects.create(
            branch_id=inventory.branch_id,
            ingredient_id=inventory.ingredient_id,
            transaction_type=transaction_type,
            quantity_change=quantity_change,
            stock_before=stock_before,
            stock_after=stock_after,
            order=order,
            transfer=transfer,
            actor=actor,
            reason=reason,
            reference=reference,
        )

    @staticmethod
    @transaction.atomic
    def apply_change(
        branch,
        ingredient,
        transaction_type,
        quantity_change,
        actor=None,
        order=None,
        transfer=None,
        reason: str = "",
        reference: str = "",
    ) -> InventoryTransaction:
        """
        Apply a signed stock change to (branch, ingredient) and record it.

        Raises:
            InsufficientInventoryError: if the change would make stock negative
            ValueError: if ``transaction_type`` is not a ledger type
        """
        inventory = InventoryService._lock_inventory(branch, ingredient)
        return InventoryService._append_entry(
            inventory,
            transaction_type,
            to_decimal(quantity_change),
            actor=actor,
            order=order,
            transfer=transfer,
            reason=reason,
            reference=reference,
        )

    @staticmethod
    @transaction.atomic
    def deduct_for_order(branch, deductions: Dict[int, Decimal], order, actor=None) -> List[InventoryTransaction]:
        """
        Deduct aggregated ingredient quantities for a sale.

        All rows are locked and checked before any is written, so a shortfall
        on any ingredient leaves every row untouched.
        """
        locked = InventoryService.lock_inventory_rows(branch, deductions.keys())

        for ingredient_id, inventory in locked.items():
            required = quantize_quantity(deductions[ingredient_id])
            if inventory.current_stock < required:
                logger.warning(
                    f"Insufficient stock for {inventory.ingredient} at {branch}. "
                    f"Required: {required}, Available: {inventory.current_stock}"
                )
                raise InsufficientInventoryError(inventory.ingredient, inventory.current_stock, required)

        return [
            InventoryService._append_entry(
                inventory,
                InventoryTransaction.TransactionType.SALE,
                -deductions[ingredient_id],
                actor=actor,
                order=order,
                reason=f"Order #{order.order_number}",
                reference=str(order.order_number),
            )
            for ingredient_id, inventory in locked.items()
        ]

    @staticmethod
    @transaction.atomic
    def restore_for_order(branch, restorations: Dict[int, Decimal], order, actor=None, reason: str = "") -> List[InventoryTransaction]:
        """Return refunded ingredient quantities to stock."""
        locked = InventoryService.lock_inventory_rows(branch, restorations.keys())
        return [
            InventoryService._append_entry(
                inventory,
                InventoryTransaction.TransactionType.REFUND,
                restorations[ingredient_id],
                actor=actor,
                order=order,
                reason=reason or f"Refund of order #{order.order_number}",
                reference=str(order.order_number),
            )
            for ingredient_id, inventory in locked.items()
        ]

    @staticmethod
    @transaction.atomic
    def adjust_stock(branch, ingredient, quantity_change, actor, reason: str, reference: str = "") -> InventoryTransaction:
        """
        Manual stock correction or receipt, recorded as an ADJUSTMENT.

        Only admins and managers of ``branch`` may adjust its stock.
        """
        data = validate_or_raise(
            StockAdjustmentSerializer(
                data={
                    "ingredient_id": ingredient.pk,
                    "quantity_change": quantity_change,
                    "reason": reason,
                    "reference": reference,
                }
            )
        )
        if not can_manage_branch_inventory(actor, branch):
            raise UnauthorizedError(
                f"User {actor} may not adjust inventory at {branch}",
                details={"branch_id": branch.pk},
            )

        entry = InventoryService.apply_change(
            branch,
            ingredient,
            InventoryTransaction.TransactionType.ADJUSTMENT,
            data["quantity_change"],
            actor=actor,
            reason=data["reason"],
            reference=data["reference"],
        )
        record_audit(
            AuditLog.Action.STOCK_ADJUSTED,
            entry,
            user=actor,
            branch=branch,
            details={
                "ingredient_id": ingredient.pk,
                "quantity_change": str(entry.quantity_change),
                "stock_after": str(entry.stock_after),
                "reason": reason,
            },
        )
        logger.info(
            f"Adjusted {ingredient} at {branch} by {entry.quantity_change} "
            f"({entry.stock_before} -> {entry.stock_after}): {reason}"
        )
        return entry

    @staticmethod
    def get_stock_level(branch, ingredient) -> Decimal:
        stock = (
            BranchInventory.objects.filter(branch=branch, ingredient=ingredient)
            .values_list("current_stock", flat=True)
            .first()
        )
        return stock if stock is not None else ZERO

    @staticmethod
    def list_transactions(branch, params=None, limit: int = 50):
        """
        Ledger rows of a branch, newest first, narrowed by
        InventoryTransactionFilter query parameters.
        """
        queryset = InventoryTransaction.objects.filter(branch=branch).select_related(
            "ingredient", "actor", "order"
        )
        filterset = InventoryTransactionFilter(params or {}, queryset=queryset)
        if not filterset.is_valid():
            raise RequestValidationError("Invalid transaction filters", details=filterset.errors)
        return list(filterset.qs[:limit])

    @staticmethod
    def replay_ledger(branch_id, ingredient_id) -> LedgerReplay:
        """
        Rebuild the stock of (branch, ingredient) from zero by replaying its
        ledger rows in insertion order, noting any row whose stock_before does
        not continue the chain.
        """
        running = ZERO
        breaks = []
        entries = InventoryTransaction.objects.filter(
            branch_id=branch_id, ingredient_id=ingredient_id
        ).order_by("id")

        count = 0
        for entry in entries.iterator():
            count += 1
            if entry.stock_before != running or entry.stock_before + entry.quantity_change != entry.stock_after:
                breaks.append(entry.pk)
            running = entry.stock_after

        current = (
            BranchInventory.objects.filter(branch_id=branch_id, ingredient_id=ingredient_id)
            .values_list("current_stock", flat=True)
            .first()
        )
        return LedgerReplay(
            branch_id=branch_id,
            ingredient_id=ingredient_id,
            replayed_stock=running,
            current_stock=current if current is not None else ZERO,
            entries=count,
            chain_breaks=breaks,
        )

    @staticmethod
    def verify_ledger(branch=None) -> List[LedgerReplay]:
        """Replay every inventory row (optionally of one branch)."""
        inventories = BranchInventory.objects.all()
        if branch is not None:
            inventories = inventories.filter(branch=branch)

        results = []
        for branch_id, ingredient_id in inventories.order_by("branch_id", "ingredient_id").values_list(
            "branch_id", "ingredient_id"
        ):
            replay = InventoryService.replay_ledger(branch_id, ingredient_id)
            if not replay.is_consistent:
                logger.error(
                    f"Ledger mismatch for ingredient {ingredient_id} at branch {branch_id}: "
                    f"replayed {replay.replayed_stock}, stored {replay.current_stock}, "
                    f"chain breaks at {replay.chain_breaks}"
                )
            results.append(replay)
        return results
