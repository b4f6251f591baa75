"""Loguru sinks for meshbot."""

import sys
from typing import Optional

from loguru import logger

from meshbot.config.schema import LoggingConfig


def configure_logging(
    config: Optional[LoggingConfig] = None,
    verbose: bool = False,
    level: Optional[str] = None,
) -> None:
    """
    Replace loguru's default sink with meshbot's console and file sinks.

    Args:
        config: Logging section of the meshbot config
        verbose: Force DEBUG on the console
        level: Console level overriding config.level (the CLI uses WARNING for chat)
    """
    config = config or LoggingConfig()
    console_level = "DEBUG" if verbose else (level or config.level)
    log_file = config.log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stderr, level=console_level, format=config.console_format)
    logger.add(
        str(log_file),
        level=config.file_level,
        format=config.file_format,
        rotation=config.rotation,
        retention=config.retention,
        compression="zip",
        enqueue=True,
    )
    logger.debug(f"meshbot logging to {log_file} (console {console_level}, file {config.file_level})")


def short_id(user_id: str) -> str:
    """Truncate a user id for log lines."""
    return f"{user_id[:8]}..."
