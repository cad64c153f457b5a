"""
Webhook handling for payment gateway events.

Deliveries are verified, stored idempotently as WebhookEvent rows and
applied synchronously through PaymentService.apply_webhook.

Usage:
    # In urls.py
    from payments.webhooks.views import gateway_webhook

    urlpatterns = [
        path("webhooks/<slug:gateway>/", gateway_webhook, name="gateway_webhook"),
    ]
"""

from payments.webhooks.views import gateway_webhook

__all__ = [
    "gateway_webhook",
]
