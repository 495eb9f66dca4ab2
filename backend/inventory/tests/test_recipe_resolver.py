"""
Recipe Resolver Tests

Tests for mapping a menu item and optional variant to ingredient quantities.
"""
import pytest
from decimal import Decimal

from core_backend.exceptions import ItemUnavailableError, NotFoundError
from inventory.services import RecipeLine, RecipeService
from products.models import MenuItem, MenuItemVariant


@pytest.mark.django_db
class TestRecipeResolver:
    """Test recipe resolution"""

    def test_base_recipe(self, latte, espresso, milk, vanilla_syrup):
        """Without a variant the base lines apply"""
        resolved = RecipeService.resolve(latte.pk)

        assert resolved.menu_item == latte
        assert resolved.variant is None
        assert {line.ingredient_id: line.quantity_required for line in resolved.lines} == {
            espresso.pk: Decimal("0.018"),
            milk.pk: Decimal("0.2"),
            vanilla_syrup.pk: Decimal("0.015"),
        }

    def test_variant_recipe_replaces_base(self, latte, large_latte, espresso, milk):
        """A variant with its own lines uses only those lines"""
        resolved = RecipeService.resolve(latte.pk, large_latte.pk)

        assert resolved.variant == large_latte
        assert {line.ingredient_id: line.quantity_required for line in resolved.lines} == {
            espresso.pk: Decimal("0.036"),
            milk.pk: Decimal("0.3"),
        }

    def test_variant_without_lines_consumes_nothing(self, latte):
        """A variant with no lines of its own does not fall back to the base set"""
        oat = MenuItemVariant.objects.create(menu_item=latte, variant_type="Milk", option="Oat")

        resolved = RecipeService.resolve(latte.pk, oat.pk)

        assert resolved.lines == []

    def test_unknown_menu_item(self, db):
        """Unknown ids are not found"""
        with pytest.raises(NotFoundError, match="Menu item 404 not found"):
            RecipeService.resolve(404)

    def test_variant_of_another_item(self, latte, large_latte):
        """A variant must belong to the requested item"""
        mocha = MenuItem.objects.create(name="Mocha", price=Decimal("6.00"))

        with pytest.raises(NotFoundError):
            RecipeService.resolve(mocha.pk, large_latte.pk)

    def test_archived_item_unavailable(self, latte, admin_user):
        """Archived items resolve as unavailable, not missing"""
        latte.archive(archived_by=admin_user)

        with pytest.raises(ItemUnavailableError, match="Vanilla Latte"):
            RecipeService.resolve(latte.pk)

        assert not MenuItem.objects.filter(pk=latte.pk).exists()
        assert MenuItem.objects.with_archived().filter(pk=latte.pk).exists()

    def test_archived_variant_unavailable(self, latte, large_latte):
        """Archived variants are unavailable"""
        large_latte.archive()

        with pytest.raises(ItemUnavailableError, match="Size: Large"):
            RecipeService.resolve(latte.pk, large_latte.pk)

    def test_delete_archives(self, latte):
        """Deleting a menu item archives it; the row and its recipe stay"""
        latte.delete()

        archived = MenuItem.all_objects.get(pk=latte.pk)
        assert not archived.is_active
        assert archived.archived_at is not None
        assert archived.recipe_lines.count() == 3

    def test_unarchived_item_resolves_again(self, latte, admin_user):
        """Restoring an archived item makes it orderable again"""
        latte.archive(archived_by=admin_user)
        latte.unarchive()

        resolved = RecipeService.resolve(latte.pk)

        assert len(resolved.lines) == 3
        assert MenuItem.objects.get(pk=latte.pk).archived_by is None

    def test_snapshot_keeps_lines(self, latte):
        """Snapshots hold the exact quantities as strings and load back unchanged"""
        lines = RecipeService.resolve(latte.pk).lines

        snapshot = RecipeService.snapshot(lines)

        assert all(isinstance(entry["quantity_required"], str) for entry in snapshot)
        assert [RecipeLine.from_snapshot(entry) for entry in snapshot] == lines
