"""Optional Sentry error tracking for the API and the worker."""

import logging

import sentry_sdk
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from adledger.core.config import settings

logger = logging.getLogger(__name__)


def init_error_tracking(*integrations) -> bool:
    """
    Initialize Sentry when SENTRY_DSN is set outside dev.

    Returns True if Sentry was initialized.
    """
    if not settings.SENTRY_DSN or settings.is_dev:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENV,
        release=settings.VERSION,
        integrations=[SqlalchemyIntegration(), *integrations],
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,  # Don't send PII to Sentry
    )
    logger.info("Sentry initialized for error tracking")
    return True


def report_exception(error: BaseException | None = None) -> None:
    """Send an exception (the one being handled by default) to Sentry."""
    sentry_sdk.capture_exception(error)
