"""Loguru configuration for CLI and service entry points."""

import sys
from pathlib import Path

from loguru import logger

from engineering_partner.core.config import Settings

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def configure_logging(settings: Settings, console: bool = True) -> None:
    """Configure loguru sinks based on settings.

    Args:
        settings: Application settings (log level, debug flag, log directory).
        console: Whether to also log to stderr.
    """
    logger.remove()  # Remove default handler

    logs_dir = Path(settings.partner_log_dir)
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger.add(
        str(logs_dir / "partner_{time:YYYY-MM-DD}.log"),
        rotation="1 day",
        retention="7 days",
        level=settings.partner_log_level,
        format=LOG_FORMAT,
    )

    if console:
        logger.add(
            sys.stderr,
            level="DEBUG" if settings.partner_debug else settings.partner_log_level,
            format=LOG_FORMAT,
            colorize=True,
        )
