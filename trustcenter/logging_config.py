# =============================================================================
# Logging Setup
# =============================================================================
#
# Every module logs through `logging.getLogger(__name__)`. This module wires
# the root handler once, at API startup and in the Celery worker.
#
# DESIGN DECISION: Requester email addresses are personal data. Log lines
# that concern a requester use `mask_email()` so only the domain is written.
# =============================================================================

from __future__ import annotations

import logging
import logging.config

from trustcenter.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Install the console handler (idempotent)."""
    global _configured
    if _configured:
        return

    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "default": {"format": LOG_FORMAT},
            },
            "handlers": {
                "console": {
                    "class": "logging.StreamHandler",
                    "formatter": "default",
                },
            },
            "root": {
                "handlers": ["console"],
                "level": (level or settings.log_level).upper(),
            },
            "loggers": {
                # SQL echo is controlled by the engine's `echo` flag
                "sqlalchemy.engine": {"level": "WARNING"},
                "httpx": {"level": "WARNING"},
            },
        }
    )
    _configured = True


def mask_email(email: str | None) -> str:
    """Reduce an address to '@domain' for log output."""
    if not email or "@" not in email:
        return "@unknown"
    return "@" + email.rsplit("@", 1)[1]
