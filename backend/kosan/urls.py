from django.urls import include, path

from core.health import healthz

urlpatterns = [
    path("api/healthz", healthz),
    path("api/users/", include("users.urls")),
    path("api/bookings/", include(("bookings.urls", "bookings"), namespace="bookings")),
    path("api/payments/", include("payments.urls")),
    path("api/payouts/", include("payments.urls_payouts")),
]
