# =============================================================================
# Sentry Error Tracking Integration
# =============================================================================
#
# Setup:
#   1. pip install "gymdesk[sentry]"
#   2. Set SENTRY_DSN in .env
#
# Usage:
#   init_sentry() is called from the app lifespan (gymdesk/api/app.py)
#
# Authorization rejections are expected outcomes, not errors: they are
# never reported, and bearer tokens are scrubbed from request headers.
#
# =============================================================================

import logging

from gymdesk.auth.errors import AuthorizationError
from gymdesk.config import get_settings
from gymdesk.storage.base import RecordNotFound

logger = logging.getLogger(__name__)

# Sentry SDK is an optional extra - error tracking is off without it
try:
    import sentry_sdk
    from sentry_sdk.integrations.fastapi import FastApiIntegration
    from sentry_sdk.integrations.logging import LoggingIntegration
    from sentry_sdk.integrations.starlette import StarletteIntegration
    SENTRY_AVAILABLE = True
except ImportError:
    SENTRY_AVAILABLE = False
    sentry_sdk = None

SCRUBBED_HEADERS = ("authorization", "cookie", "x-api-key")
QUIET_TRANSACTIONS = ("/health", "/healthz", "/ready")


def init_sentry() -> bool:
    """
    Initialize Sentry error tracking.

    Returns True if initialized, False if skipped.
    """
    if not SENTRY_AVAILABLE:
        logger.info("Sentry SDK not installed - error tracking disabled")
        return False

    settings = get_settings()

    if not settings.sentry_dsn:
        logger.info("SENTRY_DSN not set - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        traces_sample_rate=0.1 if settings.is_production else 1.0,
        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(transaction_style="endpoint"),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR,
            ),
        ],
        send_default_pii=False,
        before_send=filter_event,
        before_send_transaction=filter_transaction,
    )

    logger.info("Sentry initialized for %s", settings.environment)
    return True


def filter_event(event: dict, hint: dict) -> dict | None:
    """Drop expected rejections and scrub credentials."""
    if "exc_info" in hint:
        _, exc_value, _ = hint["exc_info"]
        if isinstance(exc_value, (AuthorizationError, RecordNotFound)):
            return None

    headers = event.get("request", {}).get("headers")
    if isinstance(headers, dict):
        for key in list(headers.keys()):
            if key.lower() in SCRUBBED_HEADERS:
                headers[key] = "[Filtered]"

    return event


def filter_transaction(event: dict, hint: dict) -> dict | None:
    if event.get("transaction", "") in QUIET_TRANSACTIONS:
        return None
    return event
