from django.urls import path

from . import api

app_name = "payments"

urlpatterns = [
    path("config/", api.payment_config, name="config"),
    path("intents/", api.create_payment_intent, name="intent-create"),
    path("midtrans/notify/", api.midtrans_notify, name="midtrans-notify"),
    path("confirm-client/", api.confirm_client, name="confirm-client"),
    path("<str:order_id>/", api.payment_detail, name="detail"),
    path("<str:order_id>/refresh/", api.refresh_payment, name="refresh"),
    path("<str:order_id>/void/", api.void_payment, name="void"),
]
