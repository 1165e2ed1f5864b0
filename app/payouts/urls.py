from django.urls import path

from payouts.webhooks.views import paypal_ipn, stripe_webhook

app_name = "payouts"

urlpatterns = [
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    path("webhooks/paypal/", paypal_ipn, name="paypal_ipn"),
]
