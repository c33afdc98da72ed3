import django_filters as filters
from django.db.models import Q

from payments.models import Payout


class PayoutFilter(filters.FilterSet):
    status = filters.CharFilter(field_name="status", lookup_expr="iexact")
    owner = filters.CharFilter(method="filter_owner")
    created_at_after = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="gte")
    created_at_before = filters.IsoDateTimeFilter(field_name="created_at", lookup_expr="lte")

    class Meta:
        model = Payout
        fields = ["status"]

    def filter_owner(self, queryset, name, value):
        if value is None:
            return queryset
        value = str(value).strip()
        if not value:
            return queryset

        if value.isdigit():
            return queryset.filter(admin_kos_id=int(value))

        query = Q()
        for token in value.split():
            query &= (
                Q(admin_kos__email__icontains=token)
                | Q(admin_kos__username__icontains=token)
                | Q(admin_kos__first_name__icontains=token)
                | Q(admin_kos__last_name__icontains=token)
            )
        return queryset.filter(query)
