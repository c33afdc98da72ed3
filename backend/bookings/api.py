"""API viewsets and permissions for bookings."""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from rest_framework import mixins, permissions, status, viewsets
from rest_framework.decorators import action

from core.authz import (
    ActorContext,
    HasRole,
    Role,
    require_booking_access,
    require_booking_customer,
    require_front_desk,
)
from core.errors import Forbidden
from core.responses import envelope
from payments.serializers import PaymentSerializer

from . import domain, extensions
from .models import Booking
from .serializers import (
    BookingCancelSerializer,
    BookingCreateSerializer,
    BookingDetailSerializer,
    BookingSerializer,
    ExtensionApplySerializer,
    ExtensionQuoteQuerySerializer,
)

logger = logging.getLogger(__name__)

# Customers may only walk away from a booking before they have moved in.
CUSTOMER_CANCELLABLE_STATUSES = frozenset(
    {
        Booking.Status.UNPAID,
        Booking.Status.PENDING,
        Booking.Status.DEPOSIT_PAID,
        Booking.Status.CONFIRMED,
    }
)


def scope_bookings_for(actor: ActorContext, queryset):
    """Restrict a booking queryset to what ``actor`` may see."""
    if actor.is_superadmin:
        return queryset
    if actor.is_owner:
        return queryset.filter(property__owner_id=actor.user_id)
    if actor.is_receptionist:
        if not actor.assigned_property_id:
            return queryset.none()
        return queryset.filter(property_id=actor.assigned_property_id)
    return queryset.filter(customer_id=actor.user_id)


class BookingViewSet(mixins.ListModelMixin, mixins.RetrieveModelMixin, viewsets.GenericViewSet):
    """Booking creation, lookup and lifecycle transitions."""

    serializer_class = BookingSerializer
    permission_classes = (permissions.IsAuthenticated,)
    filterset_fields = ("status", "payment_status", "lease_type", "property", "room")
    ordering_fields = ("created_at", "check_in_date")

    def get_queryset(self):
        actor = ActorContext.from_request(self.request)
        queryset = Booking.objects.select_related("customer", "property", "room").order_by(
            "-created_at"
        )
        return scope_bookings_for(actor, queryset)

    def get_object(self):
        """Fetch a single booking; 403 rather than 404 when it exists but is not yours."""
        booking = get_object_or_404(
            Booking.objects.select_related("customer", "property", "room"),
            pk=self.kwargs["pk"],
        )
        require_booking_access(ActorContext.from_request(self.request), booking)
        return booking

    def get_serializer_class(self):
        if self.action == "retrieve":
            return BookingDetailSerializer
        return BookingSerializer

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        return envelope(self.get_serializer(queryset, many=True).data)

    def retrieve(self, request, *args, **kwargs):
        booking = self.get_object()
        return envelope(self.get_serializer(booking).data)

    def create(self, request, *args, **kwargs):
        actor = ActorContext.from_request(request)
        if not actor.is_customer:
            raise Forbidden("Only customers can create bookings.")
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        booking = domain.create_booking(
            customer=request.user,
            room_id=data["room"],
            lease_type=data["lease_type"],
            check_in_date=data["check_in_date"],
            check_out_date=data.get("check_out_date"),
            open_ended=data.get("open_ended", False),
        )
        return envelope(BookingSerializer(booking).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="check-in")
    def check_in(self, request, pk=None):
        booking = self.get_object()
        require_front_desk(ActorContext.from_request(request), booking)
        booking = domain.check_in(booking.id)
        return envelope(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"], url_path="check-out")
    def check_out(self, request, pk=None):
        booking = self.get_object()
        require_front_desk(ActorContext.from_request(request), booking)
        booking = domain.check_out(booking.id)
        return envelope(BookingSerializer(booking).data)

    @action(
        detail=True,
        methods=["post"],
        url_path="complete",
        permission_classes=[HasRole.with_roles([Role.SUPERADMIN, Role.ADMINKOS, Role.RECEPTIONIST])],
    )
    def complete(self, request, pk=None):
        booking = self.get_object()
        require_front_desk(ActorContext.from_request(request), booking)
        booking = domain.complete(booking.id)
        return envelope(BookingSerializer(booking).data)

    @action(detail=True, methods=["post"], url_path="cancel")
    def cancel(self, request, pk=None):
        booking = self.get_object()
        actor = ActorContext.from_request(request)
        if not actor.is_front_desk_for(booking):
            require_booking_customer(actor, booking)
            if booking.status not in CUSTOMER_CANCELLABLE_STATUSES:
                raise Forbidden("Ask the property staff to cancel a stay that has started.")
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        booking = domain.cancel(booking.id, serializer.validated_data.get("reason", ""))
        return envelope(BookingSerializer(booking).data)

    @action(detail=True, methods=["get", "post"], url_path="extension")
    def extension(self, request, pk=None):
        """GET quotes an extension; POST opens the extension payment."""
        booking = self.get_object()
        actor = ActorContext.from_request(request)
        if request.method == "GET":
            query = ExtensionQuoteQuerySerializer(data=request.query_params)
            query.is_valid(raise_exception=True)
            quote = extensions.quote(booking.id, query.validated_data["periods"])
            return envelope(quote.as_dict())

        require_booking_customer(actor, booking)
        serializer = ExtensionApplySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payment, quote = extensions.apply(
            booking.id,
            serializer.validated_data["periods"],
            serializer.validated_data["deposit_option"],
        )
        return envelope(
            {"payment": PaymentSerializer(payment).data, "quote": quote.as_dict()},
            status=status.HTTP_201_CREATED,
        )
