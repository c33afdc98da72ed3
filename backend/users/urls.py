from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from .api import CurrentUserView, IdentifierLoginView, TenantSignupView

app_name = "users"

urlpatterns = [
    path("signup/", TenantSignupView.as_view(), name="signup"),
    path("token/", IdentifierLoginView.as_view(), name="token_obtain_pair"),
    path("token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    path("me/", CurrentUserView.as_view(), name="me"),
]
