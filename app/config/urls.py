"""
URL configuration for the payout engine.

URL Structure:
    /admin/                        - Django admin interface
    /payouts/webhooks/stripe/      - Stripe Connect webhook endpoint (POST)
    /payouts/webhooks/paypal/      - PayPal IPN endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    path("admin/", admin.site.urls),
    path("payouts/", include("payouts.urls")),
]

admin.site.site_header = "Payouts Admin"
admin.site.site_title = "Payouts Admin"
admin.site.index_title = "Payouts"
