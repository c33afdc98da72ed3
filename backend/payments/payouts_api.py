"""Owner withdrawal and superadmin payout review endpoints."""

from __future__ import annotations

from django.shortcuts import get_object_or_404
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import generics, status
from rest_framework.views import APIView

from core.authz import ActorContext, HasRole, Role
from core.errors import Forbidden, ValidationFailed
from core.responses import envelope

from . import payouts
from .filters import PayoutFilter
from .ledger import compute_balance
from .models import BankAccount, Payout
from .serializers import (
    BankAccountSerializer,
    PayoutApproveSerializer,
    PayoutCompleteSerializer,
    PayoutRejectSerializer,
    PayoutRequestSerializer,
    PayoutSerializer,
)

OWNER_ROLES = (Role.ADMINKOS,)
REVIEWER_ROLES = (Role.SUPERADMIN,)
LEDGER_ROLES = (Role.ADMINKOS, Role.SUPERADMIN)


def _payout_queryset():
    return Payout.objects.select_related("admin_kos", "bank_account").prefetch_related("attachments")


class BalanceView(APIView):
    permission_classes = [HasRole.with_roles(LEDGER_ROLES)]
    http_method_names = ["get"]

    def get(self, request):
        actor = ActorContext.from_request(request)
        owner_id = actor.user_id
        if actor.is_superadmin:
            raw_owner = (request.query_params.get("owner") or "").strip()
            if not raw_owner.isdigit():
                raise ValidationFailed("Pass ?owner=<id> to read an owner's balance.")
            owner_id = int(raw_owner)
        return envelope(compute_balance(owner_id).as_dict())


class PayoutListCreateView(generics.ListAPIView):
    """Owners see and request their own payouts; superadmins see every payout."""

    serializer_class = PayoutSerializer
    permission_classes = [HasRole.with_roles(LEDGER_ROLES)]
    filter_backends = [DjangoFilterBackend]
    filterset_class = PayoutFilter
    http_method_names = ["get", "post"]

    def get_queryset(self):
        actor = ActorContext.from_request(self.request)
        queryset = _payout_queryset()
        if actor.is_superadmin:
            return queryset
        return queryset.filter(admin_kos_id=actor.user_id)

    def list(self, request, *args, **kwargs):
        queryset = self.filter_queryset(self.get_queryset())
        return envelope(self.get_serializer(queryset, many=True).data)

    def post(self, request):
        actor = ActorContext.from_request(request)
        if not actor.is_owner:
            raise Forbidden("Only property owners can request payouts.")
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        payout = payouts.request_payout(
            owner=request.user,
            bank_account_id=data["bank_account_id"],
            amount=data["amount"],
            notes=data.get("notes", ""),
        )
        payout = _payout_queryset().get(pk=payout.pk)
        return envelope(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)


class PayoutDetailView(APIView):
    permission_classes = [HasRole.with_roles(LEDGER_ROLES)]
    http_method_names = ["get"]

    def get(self, request, pk: int):
        actor = ActorContext.from_request(request)
        queryset = _payout_queryset()
        if not actor.is_superadmin:
            queryset = queryset.filter(admin_kos_id=actor.user_id)
        payout = get_object_or_404(queryset, pk=pk)
        return envelope(PayoutSerializer(payout).data)


class PayoutApproveView(APIView):
    permission_classes = [HasRole.with_roles(REVIEWER_ROLES)]
    http_method_names = ["post"]

    def post(self, request, pk: int):
        serializer = PayoutApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payout = payouts.approve_payout(
            pk,
            approver=request.user,
            attachments=serializer.validated_data["attachments"],
        )
        return envelope(PayoutSerializer(_payout_queryset().get(pk=payout.pk)).data)


class PayoutRejectView(APIView):
    permission_classes = [HasRole.with_roles(REVIEWER_ROLES)]
    http_method_names = ["post"]

    def post(self, request, pk: int):
        serializer = PayoutRejectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payout = payouts.reject_payout(
            pk,
            approver=request.user,
            reason=serializer.validated_data["reason"],
        )
        return envelope(PayoutSerializer(_payout_queryset().get(pk=payout.pk)).data)


class PayoutCompleteView(APIView):
    permission_classes = [HasRole.with_roles(REVIEWER_ROLES)]
    http_method_names = ["post"]

    def post(self, request, pk: int):
        serializer = PayoutCompleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payout = payouts.complete_payout(
            pk,
            actor=request.user,
            attachments=serializer.validated_data.get("attachments") or [],
        )
        return envelope(PayoutSerializer(_payout_queryset().get(pk=payout.pk)).data)


class BankAccountListCreateView(APIView):
    permission_classes = [HasRole.with_roles(OWNER_ROLES)]
    http_method_names = ["get", "post"]

    def get(self, request):
        accounts = BankAccount.objects.filter(admin_kos=request.user)
        return envelope(BankAccountSerializer(accounts, many=True).data)

    def post(self, request):
        serializer = BankAccountSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        account = serializer.save(admin_kos=request.user, status=BankAccount.Status.PENDING)
        return envelope(BankAccountSerializer(account).data, status=status.HTTP_201_CREATED)


class BankAccountVerifyView(APIView):
    """Superadmin verdict on an owner's bank account."""

    permission_classes = [HasRole.with_roles(REVIEWER_ROLES)]
    http_method_names = ["post"]

    def post(self, request, pk: int):
        account = get_object_or_404(BankAccount, pk=pk)
        payload = request.data if isinstance(request.data, dict) else {}
        decision = str(payload.get("status") or "").upper()
        if decision not in (BankAccount.Status.APPROVED, BankAccount.Status.REJECTED):
            raise ValidationFailed("status must be APPROVED or REJECTED.")
        account.status = decision
        account.save(update_fields=["status"])
        return envelope(BankAccountSerializer(account).data)
