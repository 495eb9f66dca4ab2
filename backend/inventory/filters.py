import django_filters

from .models import InventoryTransaction


class InventoryTransactionFilter(django_filters.FilterSet):
    """
    Filters for the stock ledger.

    ``direction`` narrows to incoming (positive) or outgoing (negative) rows.
    """

    ingredient = django_filters.NumberFilter(field_name="ingredient_id")
    transaction_type = django_filters.ChoiceFilter(
        choices=InventoryTransaction.TransactionType.choices
    )
    order = django_filters.UUIDFilter(field_name="order_id")
    transfer = django_filters.NumberFilter(field_name="transfer_id")
    reference = django_filters.CharFilter(field_name="reference")
    created_at__gte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at__lte = django_filters.DateTimeFilter(field_name="created_at", lookup_expr="lte")
    direction = django_filters.ChoiceFilter(
        choices=[("in", "Incoming"), ("out", "Outgoing")],
        method="filter_direction",
    )

    class Meta:
        model = InventoryTransaction
        fields = ["ingredient", "transaction_type", "order", "transfer", "reference"]

    def filter_direction(self, queryset, name, value):
        if value == "in":
            return queryset.filter(quantity_change__gt=0)
        return queryset.filter(quantity_change__lt=0)
