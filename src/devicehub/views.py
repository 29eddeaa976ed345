"""Project-level views for Device Hub."""

import logging

from django.http import JsonResponse

logger = logging.getLogger(__name__)


def health_check(request):
    """Health check endpoint for monitoring and load balancers."""
    from django.db import DatabaseError, connection

    db_ok = True
    try:
        connection.ensure_connection()
    except DatabaseError:
        logger.warning("Health check: database unreachable", exc_info=True)
        db_ok = False

    cache_ok = True
    try:
        from django.core.cache import cache

        cache.set("_health_check", "1", timeout=10)
        cache_ok = cache.get("_health_check") == "1"
    except Exception:
        logger.warning("Health check: cache unreachable", exc_info=True)
        cache_ok = False

    status = "ok" if db_ok and cache_ok else "degraded"
    status_code = 200 if db_ok else 503

    return JsonResponse(
        {"status": status, "db": db_ok, "cache": cache_ok},
        status=status_code,
    )
