"""
Shared test fixtures for all backend tests.

This module provides reusable pytest fixtures for common test objects
like branches, staff users, ingredients, menu items and recipes.
"""
import pytest
from decimal import Decimal

from branches.models import Branch
from customers.models import Customer, CustomerAddress
from inventory.models import Recipe
from inventory.services import InventoryService
from orders.models import Order
from orders.services import OrderService
from products.models import Ingredient, MenuItem, MenuItemVariant
from shifts.services import ShiftService
from users.models import User


# ============================================================================
# BRANCH FIXTURES
# ============================================================================

@pytest.fixture
def branch_a(db):
    """Create branch A (Downtown)"""
    return Branch.objects.create(name="Downtown", code="DT", address="1 Main St")


@pytest.fixture
def branch_b(db):
    """Create branch B (Uptown)"""
    return Branch.objects.create(name="Uptown", code="UP", address="99 Hill Rd")


# ============================================================================
# USER FIXTURES
# ============================================================================

@pytest.fixture
def admin_user(db):
    """Create an admin with no home branch"""
    return User.objects.create_user(
        email="admin@pos.test",
        username="admin",
        password="password123",
        role=User.Role.ADMIN,
    )


@pytest.fixture
def manager_a(branch_a):
    """Create branch manager for branch A"""
    return User.objects.create_user(
        email="manager.a@pos.test",
        username="manager_a",
        password="password123",
        role=User.Role.BRANCH_MANAGER,
        branch=branch_a,
    )


@pytest.fixture
def manager_b(branch_b):
    """Create branch manager for branch B"""
    return User.objects.create_user(
        email="manager.b@pos.test",
        username="manager_b",
        password="password123",
        role=User.Role.BRANCH_MANAGER,
        branch=branch_b,
    )


@pytest.fixture
def cashier_a(branch_a):
    """Create cashier for branch A"""
    return User.objects.create_user(
        email="cashier.a@pos.test",
        username="cashier_a",
        password="password123",
        role=User.Role.CASHIER,
        branch=branch_a,
    )


# ============================================================================
# CATALOG FIXTURES
# ============================================================================

@pytest.fixture
def espresso(db):
    """Espresso beans, counted in kg"""
    return Ingredient.objects.create(
        name="Espresso Beans", unit="kg", cost_per_unit=Decimal("20.00"), reorder_threshold=Decimal("0.5")
    )


@pytest.fixture
def milk(db):
    """Whole milk, counted in litres"""
    return Ingredient.objects.create(
        name="Whole Milk", unit="l", cost_per_unit=Decimal("1.20"), reorder_threshold=Decimal("2")
    )


@pytest.fixture
def vanilla_syrup(db):
    """Vanilla syrup, counted in litres"""
    return Ingredient.objects.create(
        name="Vanilla Syrup", unit="l", cost_per_unit=Decimal("8.00"), reorder_threshold=Decimal("0.5")
    )


@pytest.fixture
def latte(espresso, milk, vanilla_syrup):
    """
    Vanilla latte at 5.50 with its base recipe:
    0.018 kg espresso, 0.2 l milk, 0.015 l syrup per cup.
    """
    item = MenuItem.objects.create(name="Vanilla Latte", category="Coffee", price=Decimal("5.50"))
    Recipe.objects.create(menu_item=item, ingredient=espresso, quantity_required=Decimal("0.018"), unit="kg")
    Recipe.objects.create(menu_item=item, ingredient=milk, quantity_required=Decimal("0.2"), unit="l")
    Recipe.objects.create(menu_item=item, ingredient=vanilla_syrup, quantity_required=Decimal("0.015"), unit="l")
    return item


@pytest.fixture
def large_latte(latte, espresso, milk):
    """
    Large size variant (+1.00) with its own recipe set: a double shot and more
    milk, no syrup.
    """
    variant = MenuItemVariant.objects.create(
        menu_item=latte, variant_type="Size", option="Large", price_modifier=Decimal("1.00")
    )
    Recipe.objects.create(
        menu_item=latte, variant=variant, ingredient=espresso, quantity_required=Decimal("0.036"), unit="kg"
    )
    Recipe.objects.create(
        menu_item=latte, variant=variant, ingredient=milk, quantity_required=Decimal("0.3"), unit="l"
    )
    return variant


@pytest.fixture
def stocked_branch_a(branch_a, admin_user, espresso, milk, vanilla_syrup):
    """
    Branch A stocked with 10 kg espresso, 20 l milk and 5 l syrup through the
    ledger.
    """
    InventoryService.adjust_stock(branch_a, espresso, Decimal("10"), admin_user, reason="Opening stock")
    InventoryService.adjust_stock(branch_a, milk, Decimal("20"), admin_user, reason="Opening stock")
    InventoryService.adjust_stock(branch_a, vanilla_syrup, Decimal("5"), admin_user, reason="Opening stock")
    return branch_a


# ============================================================================
# CUSTOMER FIXTURES
# ============================================================================

@pytest.fixture
def customer(db):
    """Create a bronze customer with no history"""
    return Customer.objects.create(name="Jordan Lee", phone="5550001111")


@pytest.fixture
def customer_address(customer):
    """Default delivery address for the customer"""
    return CustomerAddress.objects.create(
        customer=customer,
        label="Home",
        address="12 Elm St, Apt 3",
        delivery_area="north-side",
        is_default=True,
    )


# ============================================================================
# SHIFT / ORDER FIXTURES
# ============================================================================

@pytest.fixture
def open_shift_a(cashier_a, branch_a):
    """Open a shift for cashier A with 100.00 in the drawer"""
    return ShiftService.open_shift(branch_a.pk, cashier_a.pk, Decimal("100.00"))


@pytest.fixture
def place_order(stocked_branch_a, cashier_a, open_shift_a, latte):
    """
    Factory that places an order of lattes at branch A through OrderService.

    Usage:
        order = place_order(quantity=2, payment_method="card", customer_id=customer.pk)
    """

    def _place(quantity=1, variant_id=None, payment_method=Order.PaymentMethod.CASH, **kwargs):
        line = {"menu_item_id": latte.pk, "quantity": quantity}
        if variant_id is not None:
            line["variant_id"] = variant_id
        return OrderService.create_order(
            branch_id=stocked_branch_a.pk,
            cashier_id=cashier_a.pk,
            items=[line],
            payment_method=payment_method,
            **kwargs,
        )

    return _place
