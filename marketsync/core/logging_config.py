# marketsync/core/logging_config.py
"""
Centralized logging configuration for the sync engine.

Keeps marketsync logs at the configured level while clamping verbose
libraries (HTTP clients, database drivers, scheduler) to WARNING.
"""

import logging
import os


def configure_logging(level: str = None):
    """
    Configure logging for the application.

    Sets appropriate log levels for different modules:
    - marketsync code: INFO (or whatever LOG_LEVEL says)
    - HTTP clients (httpx, httpcore): WARNING only
    - Database (sqlalchemy, asyncpg, aiosqlite): WARNING only
    - Scheduler (apscheduler): WARNING only
    """
    log_level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    resolved = getattr(logging, log_level, logging.INFO)

    logging.basicConfig(
        level=resolved,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler()]
    )

    for noisy in (
        "httpx",
        "httpcore",
        "sqlalchemy",
        "sqlalchemy.engine",
        "asyncpg",
        "aiosqlite",
        "apscheduler",
        "uvicorn.access",
    ):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.getLogger("marketsync").setLevel(resolved)
    logging.getLogger("__main__").setLevel(resolved)

    logger = logging.getLogger(__name__)
    logger.info(f"Logging configured at level: {log_level}")
