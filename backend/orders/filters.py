from datetime import datetime, time

import django_filters
from django.utils import timezone

from .models import Order


class OrderFilter(django_filters.FilterSet):
    """
    Filters for order listings.

    ``branch`` accepts a branch id or ``all``. Date-only bounds are widened to
    whole days, so ``end_date`` includes orders up to 23:59:59.999999.
    """

    branch = django_filters.CharFilter(method="filter_branch")
    start_date = django_filters.DateFilter(method="filter_start_date")
    end_date = django_filters.DateFilter(method="filter_end_date")
    payment_method = django_filters.ChoiceFilter(choices=Order.PaymentMethod.choices)
    is_refunded = django_filters.BooleanFilter()

    class Meta:
        model = Order
        fields = ["branch", "payment_method", "is_refunded"]

    def filter_branch(self, queryset, name, value):
        if value == "all":
            return queryset
        if not value.isdigit():
            return queryset.none()
        return queryset.filter(branch_id=int(value))

    def filter_start_date(self, queryset, name, value):
        start = timezone.make_aware(datetime.combine(value, time.min))
        return queryset.filter(created_at__gte=start)

    def filter_end_date(self, queryset, name, value):
        end = timezone.make_aware(datetime.combine(value, time.max))
        return queryset.filter(created_at__lte=end)
