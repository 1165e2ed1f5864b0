"""
Inbound processor webhooks.

- views: HTTP endpoints for Stripe events and PayPal IPNs
- handlers: Routing of stored events to processors
"""
