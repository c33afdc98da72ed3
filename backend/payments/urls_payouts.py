from django.urls import path

from . import payouts_api

app_name = "payouts"

urlpatterns = [
    path("", payouts_api.PayoutListCreateView.as_view(), name="list"),
    path("balance/", payouts_api.BalanceView.as_view(), name="balance"),
    path("bank-accounts/", payouts_api.BankAccountListCreateView.as_view(), name="bank-accounts"),
    path(
        "bank-accounts/<int:pk>/verify/",
        payouts_api.BankAccountVerifyView.as_view(),
        name="bank-account-verify",
    ),
    path("<int:pk>/", payouts_api.PayoutDetailView.as_view(), name="detail"),
    path("<int:pk>/approve/", payouts_api.PayoutApproveView.as_view(), name="approve"),
    path("<int:pk>/reject/", payouts_api.PayoutRejectView.as_view(), name="reject"),
    path("<int:pk>/complete/", payouts_api.PayoutCompleteView.as_view(), name="complete"),
]
