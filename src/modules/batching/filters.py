import django_filters

from modules.batching.models import Batch


class BatchFilter(django_filters.FilterSet):
    region_key = django_filters.CharFilter(field_name="region_key", lookup_expr="iexact")
    status = django_filters.CharFilter(field_name="status", lookup_expr="iexact")
    driver = django_filters.NumberFilter(field_name="assigned_driver_id")
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Batch
        fields = ["region_key", "status", "driver", "start_date", "end_date"]
