"""
Logging setup shared by the API and the console importer.

Pipeline stages log through ``logging.getLogger(__name__)`` under the
``payroll_import`` namespace. Per-row chatter (dropped lines, failed date
parses) goes to DEBUG/WARNING; stage summaries go to INFO.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Dict, Optional

# Third-party loggers that flood INFO during bulk imports
QUIET_LOGGERS: Dict[str, str] = {
    "sqlalchemy.engine": "WARNING",
    "multipart": "WARNING",
    "python_multipart": "WARNING",
}

_is_configured = False


def configure_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Install the console handler once per process.

    Args:
        level: Log level name for the root and package loggers (default INFO)
        force: Reconfigure even if logging was already set up
    """
    global _is_configured

    if _is_configured and not force:
        return

    log_level = (level or "INFO").upper()

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {
                "pipeline": {
                    "format": "%(asctime)s %(levelname)-7s [%(name)s] %(message)s",
                    "datefmt": "%Y-%m-%d %H:%M:%S",
                }
            },
            "handlers": {
                "stdout": {
                    "class": "logging.StreamHandler",
                    "formatter": "pipeline",
                    "stream": "ext://sys.stdout",
                }
            },
            "loggers": {
                "payroll_import": {"level": log_level},
                **{name: {"level": quiet_level} for name, quiet_level in QUIET_LOGGERS.items()},
            },
            "root": {
                "handlers": ["stdout"],
                "level": log_level,
            },
        }
    )

    _is_configured = True
