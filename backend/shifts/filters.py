from datetime import datetime, time

import django_filters
from django.utils import timezone

from .models import Shift


class ShiftFilter(django_filters.FilterSet):
    """
    Filters for shift listings.

    ``status`` is open, closed or all. ``start_date``/``end_date`` bound the
    shift's start; the end date includes the whole day.
    """

    cashier = django_filters.NumberFilter(field_name="cashier_id")
    status = django_filters.ChoiceFilter(
        choices=[("open", "Open"), ("closed", "Closed"), ("all", "All")],
        method="filter_status",
    )
    start_date = django_filters.DateFilter(method="filter_start_date")
    end_date = django_filters.DateFilter(method="filter_end_date")

    class Meta:
        model = Shift
        fields = ["cashier", "status"]

    def filter_status(self, queryset, name, value):
        if value == "open":
            return queryset.filter(is_closed=False)
        if value == "closed":
            return queryset.filter(is_closed=True)
        return queryset

    def filter_start_date(self, queryset, name, value):
        start = timezone.make_aware(datetime.combine(value, time.min))
        return queryset.filter(started_at__gte=start)

    def filter_end_date(self, queryset, name, value):
        end = timezone.make_aware(datetime.combine(value, time.max))
        return queryset.filter(started_at__lte=end)
