from __future__ import annotations

from django.contrib.auth import get_user_model
from rest_framework import generics, permissions
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import FlexibleTokenObtainPairSerializer, ProfileSerializer, SignupSerializer

User = get_user_model()


class TenantSignupView(generics.CreateAPIView):
    """
    Self-registration for tenants looking for a room.

    The account is always created as a CUSTOMER; owner and staff accounts are
    provisioned by a super admin, so any ``role`` sent here is dropped.
    """

    queryset = User.objects.all()
    serializer_class = SignupSerializer
    permission_classes = [permissions.AllowAny]


class CurrentUserView(generics.RetrieveUpdateAPIView):
    """Contact details, role and assigned kos of whoever holds the access token."""

    serializer_class = ProfileSerializer
    permission_classes = [permissions.IsAuthenticated]
    http_method_names = ["get", "patch", "head", "options"]

    def get_object(self):
        return self.request.user


class IdentifierLoginView(TokenObtainPairView):
    """Issue a JWT pair for a username, e-mail address or Indonesian phone number."""

    permission_classes = [permissions.AllowAny]
    serializer_class = FlexibleTokenObtainPairSerializer
