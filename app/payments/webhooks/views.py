"""
Webhook endpoint view for payment gateways.

One endpoint serves every gateway in PAYMENT_GATEWAYS; the gateway name
comes from the URL. The view:
1. Resolves the gateway (unknown name -> 404)
2. Hands the raw body and headers to PaymentService.apply_webhook, which
   verifies the signature, stores the WebhookEvent idempotently and
   applies the payment outcome
3. Returns 200 for accepted, duplicate and ignored events

Usage:
    # In urls.py
    from payments.webhooks.views import gateway_webhook

    urlpatterns = [
        path("webhooks/<slug:gateway>/", gateway_webhook, name="gateway_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.exceptions import GatewayConfigurationError
from payments.services import PaymentService


logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def gateway_webhook(request: HttpRequest, gateway: str) -> HttpResponse:
    """
    Receive and apply a gateway webhook delivery.

    Security:
    - Signature verification prevents spoofed webhooks
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - WebhookEvent is unique per (gateway, event_id)
    - Redeliveries of a processed event return 200 without reprocessing

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new, duplicate or ignored)
        - 400: Invalid signature or payload
        - 404: Unknown gateway
        - 500: Processing failed; the gateway is expected to redeliver
    """
    try:
        result = PaymentService().apply_webhook(gateway, request.body, request.headers)
    except GatewayConfigurationError as e:
        logger.warning(
            f"Webhook for unknown gateway '{gateway}'",
            extra={"gateway": gateway, "error": e.message},
        )
        return HttpResponse("Unknown gateway", status=404)
    except Exception as e:
        logger.error(
            f"Webhook processing failed: {type(e).__name__}",
            extra={"gateway": gateway},
            exc_info=True,
        )
        return HttpResponse("Processing error", status=500)

    if not result.success:
        return HttpResponse(result.error or "Invalid webhook", status=400)

    return HttpResponse("Accepted", status=200)
