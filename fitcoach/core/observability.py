"""
Error tracking for the scheduling API and its Celery worker.

Events go to GlitchTip (Sentry-compatible). Nothing is sent unless
``GLITCHTIP_DSN`` is configured.
"""
import logging

import sentry_sdk
from sentry_sdk.integrations.celery import CeleryIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from fitcoach.config.settings import settings
from fitcoach.core.exceptions import DomainException

logger = logging.getLogger(__name__)

# Database hiccups the sweep retries on its next run anyway
TRANSIENT_ERROR_MARKERS = ("connection refused", "connection reset", "broken pipe")


def init_observability() -> None:
    """Initialize GlitchTip/Sentry for the API process or the worker."""
    if not settings.GLITCHTIP_DSN:
        logger.info("Observability disabled - no DSN configured")
        return

    full_sampling = settings.is_development
    sentry_sdk.init(
        dsn=settings.GLITCHTIP_DSN,
        environment=settings.APP_ENV,
        release=f"fitcoach-api@{settings.APP_VERSION}",
        traces_sample_rate=1.0 if full_sampling else settings.GLITCHTIP_TRACES_SAMPLE_RATE,
        profiles_sample_rate=1.0 if full_sampling else settings.GLITCHTIP_PROFILES_SAMPLE_RATE,
        send_default_pii=False,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
            SqlalchemyIntegration(),
            CeleryIntegration(),
        ],
        before_send=_before_send,
    )
    sentry_sdk.set_tag("operating_timezone", settings.OPERATING_TIMEZONE)

    logger.info("Observability initialized for %s", settings.APP_ENV)


def _before_send(event: dict, hint: dict) -> dict | None:
    """Drop client errors (booking conflicts, validation) and transient I/O failures."""
    if "exc_info" not in hint:
        return event

    _, exc_value, _ = hint["exc_info"]
    if isinstance(exc_value, DomainException):
        return None
    if any(marker in str(exc_value).lower() for marker in TRANSIENT_ERROR_MARKERS):
        return None
    return event


def capture_exception(
    exception: Exception,
    extra: dict | None = None,
    tags: dict[str, str] | None = None,
) -> str | None:
    """Report a handled exception, e.g. a session the reconciler had to skip."""
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return scope.capture_exception(exception)
