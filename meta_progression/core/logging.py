"""
Logging setup.

Engine modules log through the standard ``logging`` module; this routes
every record into loguru so the engine, uvicorn and FastAPI share one set of
sinks.
"""
import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from meta_progression.core.config import Settings, settings as default_settings

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"

# Reward grants, claims and unlocks, kept in their own file for support requests
REWARD_MODULES = ("meta_progression.gamification",)


class InterceptHandler(logging.Handler):
    """Forward stdlib log records to loguru, keeping the original call site"""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _is_reward_record(record) -> bool:
    return record["name"].startswith(REWARD_MODULES)


def setup_logging(config: Optional[Settings] = None) -> None:
    config = config or default_settings
    level = config.LOG_LEVEL.upper()

    logger.remove()
    logger.add(sys.stdout, colorize=True, format=CONSOLE_FORMAT, level=level)

    if config.ENVIRONMENT == "production":
        log_dir = Path(config.STORAGE_DIR) / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_dir / "engine_{time:YYYY-MM-DD}.log",
            rotation="50 MB",
            retention="14 days",
            enqueue=True,
            level=level,
            format=FILE_FORMAT,
        )
        logger.add(
            log_dir / "rewards_{time:YYYY-MM-DD}.log",
            rotation="1 day",
            retention="90 days",
            enqueue=True,
            level="INFO",
            format=FILE_FORMAT,
            filter=_is_reward_record,
        )

    logging.root.handlers = [InterceptHandler()]
    logging.root.setLevel(level)

    # Everything propagates to the root handler
    for name in list(logging.root.manager.loggerDict):
        logging.getLogger(name).handlers = []
        logging.getLogger(name).propagate = True

    # Per-event access lines drown out engine output unless debugging
    logging.getLogger("uvicorn.access").setLevel(logging.DEBUG if config.DEBUG else logging.WARNING)

    logger.info(f"Logging configured - level {level}, environment {config.ENVIRONMENT}")
