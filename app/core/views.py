"""
Core views providing infrastructure endpoints.

This module contains views that are not part of the business domain but are
essential for application infrastructure, such as health checks.
"""

from django.conf import settings
from django.db import connection
from django.http import JsonResponse


def health_check(request):
    """
    Health check endpoint for monitoring and orchestration.

    Used by Docker and Kubernetes health checks and by load balancers.

    Returns:
        JsonResponse with status and component health:
        - status: "healthy" or "unhealthy"
        - database: "connected" or "disconnected"
        - gateways: configured payment gateway names

    HTTP Status Codes:
        200: All systems operational
        503: Database unreachable or no gateway configured

    Example Response:
        {
            "status": "healthy",
            "database": "connected",
            "gateways": ["stripe"]
        }
    """
    gateways = sorted(getattr(settings, "PAYMENT_GATEWAYS", {}))
    health_status = {
        "status": "healthy",
        "database": "unknown",
        "gateways": gateways,
    }
    is_healthy = bool(gateways)

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        health_status["database"] = "connected"
    except Exception:
        health_status["database"] = "disconnected"
        is_healthy = False

    if not is_healthy:
        health_status["status"] = "unhealthy"

    status_code = 200 if is_healthy else 503

    return JsonResponse(health_status, status=status_code)
