from __future__ import annotations

from datetime import date, datetime, time

import django_filters
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from modules.orders.constants import OrderStatus
from modules.orders.models import Order


def parse_date_bound(value: str) -> date | datetime:
    """Parse an ISO 8601 date or datetime; naive datetimes use the current zone."""
    value = value.strip()
    parsed_dt = parse_datetime(value) if "T" in value or " " in value else None
    if parsed_dt is not None:
        if timezone.is_naive(parsed_dt):
            parsed_dt = timezone.make_aware(parsed_dt)
        return parsed_dt
    parsed = parse_date(value)
    if parsed is None:
        raise ValueError(f"'{value}' is not an ISO 8601 date or datetime.")
    return parsed


def _day_start(day: date) -> datetime:
    return timezone.make_aware(datetime.combine(day, time.min))


def _day_end(day: date) -> datetime:
    return timezone.make_aware(datetime.combine(day, time.max))


class OrderFilter(django_filters.FilterSet):
    """Exact status match plus an inclusive creation-date window.

    A date-only ``date_to`` covers that whole calendar day.
    """

    order_status = django_filters.ChoiceFilter(
        field_name="order_status", choices=OrderStatus.choices
    )
    date_from = django_filters.CharFilter(method="filter_date_from")
    date_to = django_filters.CharFilter(method="filter_date_to")

    class Meta:
        model = Order
        fields = ["order_status", "date_from", "date_to"]

    def filter_date_from(self, queryset, name, value):
        bound = parse_date_bound(value)
        if not isinstance(bound, datetime):
            bound = _day_start(bound)
        return queryset.filter(created_at__gte=bound)

    def filter_date_to(self, queryset, name, value):
        bound = parse_date_bound(value)
        if not isinstance(bound, datetime):
            bound = _day_end(bound)
        return queryset.filter(created_at__lte=bound)
