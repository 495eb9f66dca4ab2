"""
Order Listing Tests

Tests for filtering and paging order history.
"""
import pytest
from datetime import datetime, time, timedelta
from django.utils import timezone

from core_backend.exceptions import RequestValidationError
from orders.models import Order
from orders.services import OrderService


@pytest.fixture
def order_history(place_order):
    """
    Three orders at branch A: one placed now, one late in the evening three
    days ago and one ten days ago.
    """
    today, recent, old = place_order(), place_order(), place_order()
    three_days_ago = timezone.localdate() - timedelta(days=3)
    Order.objects.filter(pk=recent.pk).update(
        created_at=timezone.make_aware(datetime.combine(three_days_ago, time(23, 30)))
    )
    Order.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=10))
    return today, recent, old


@pytest.mark.django_db
class TestListOrders:
    """Test order history queries"""

    def test_newest_first(self, order_history):
        """Orders come back newest first with the total count"""
        today, recent, old = order_history

        result = OrderService.list_orders()

        assert [order.pk for order in result["orders"]] == [today.pk, recent.pk, old.pk]
        assert result["total"] == 3
        assert result["has_more"] is False
        assert (result["limit"], result["offset"]) == (100, 0)

    def test_end_date_includes_whole_day(self, order_history):
        """An order late on the end date is still inside the range"""
        _, recent, _ = order_history
        local_today = timezone.localdate()

        result = OrderService.list_orders(
            {
                "start_date": (local_today - timedelta(days=5)).isoformat(),
                "end_date": (local_today - timedelta(days=3)).isoformat(),
            }
        )

        assert [order.pk for order in result["orders"]] == [recent.pk]

    def test_paging(self, order_history):
        """limit/offset page through the results and report whether more remain"""
        first_page = OrderService.list_orders(limit=2)
        second_page = OrderService.list_orders(limit=2, offset=2)

        assert len(first_page["orders"]) == 2
        assert first_page["has_more"] is True
        assert len(second_page["orders"]) == 1
        assert second_page["has_more"] is False
        assert second_page["total"] == 3

    def test_branch_filter(self, order_history, branch_a, branch_b):
        """Orders can be narrowed to one branch, or all branches"""
        assert OrderService.list_orders({"branch": str(branch_a.pk)})["total"] == 3
        assert OrderService.list_orders({"branch": str(branch_b.pk)})["total"] == 0
        assert OrderService.list_orders({"branch": "all"})["total"] == 3

    def test_refunded_filter(self, order_history, manager_a):
        """Refunded orders can be listed on their own"""
        from refunds.services import RefundService

        today, _, _ = order_history
        RefundService.refund_order(today.pk, manager_a)

        result = OrderService.list_orders({"is_refunded": "true"})

        assert [order.pk for order in result["orders"]] == [today.pk]

    def test_invalid_paging(self, db):
        """Paging values are validated"""
        with pytest.raises(RequestValidationError) as exc_info:
            OrderService.list_orders(limit=0)

        assert "limit" in exc_info.value.details

    def test_invalid_filters(self, db):
        """Malformed filter values are rejected"""
        with pytest.raises(RequestValidationError, match="Invalid order filters"):
            OrderService.list_orders({"start_date": "yesterday"})
