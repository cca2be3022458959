"""Structured logging helpers (secret-safe)."""

import logging
import re
from typing import Any

from adledger.core.config import settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"

_TOKEN_PARAM_RE = re.compile(r"(access_token=)[^&\s\"']+")


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for worker and CLI processes."""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


def redact_secrets(text: str, secrets: tuple[str, ...] = ()) -> str:
    """Strip access tokens from URLs and error bodies before they are logged or stored."""
    redacted = _TOKEN_PARAM_RE.sub(r"\1[REDACTED]", text)
    for secret in secrets:
        if secret:
            redacted = redacted.replace(secret, "[REDACTED]")
    return redacted


def build_log_context(
    *,
    job_id: str | None = None,
    job_type: str | None = None,
    worker_id: str | None = None,
    queue_name: str | None = None,
    ad_account_id: str | None = None,
    attempt: int | None = None,
) -> dict[str, Any]:
    """Return a log context dict for ``extra=``."""
    context: dict[str, Any] = {}
    if job_id:
        context["job_id"] = job_id
    if job_type:
        context["job_type"] = job_type
    if worker_id:
        context["worker_id"] = worker_id
    if queue_name:
        context["queue_name"] = queue_name
    if ad_account_id:
        context["ad_account_id"] = ad_account_id
    if attempt is not None:
        context["attempt"] = attempt
    return context
