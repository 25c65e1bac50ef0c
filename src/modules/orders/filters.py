import django_filters

from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    approval_status = django_filters.CharFilter(
        field_name="approval_status", lookup_expr="iexact"
    )
    delivery_status = django_filters.CharFilter(
        field_name="delivery_status", lookup_expr="iexact"
    )
    region_key = django_filters.CharFilter(field_name="region_key", lookup_expr="iexact")
    batch = django_filters.UUIDFilter(field_name="batch_id")
    unbatched = django_filters.BooleanFilter(field_name="batch", lookup_expr="isnull")
    customer = django_filters.UUIDFilter(field_name="customer_id")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Order
        fields = [
            "approval_status",
            "delivery_status",
            "region_key",
            "batch",
            "unbatched",
            "customer",
            "start_date",
            "end_date",
        ]
