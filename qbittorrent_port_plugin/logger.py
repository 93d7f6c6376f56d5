import os
import sys
from typing import Optional

from loguru import logger

from .config import Config
from .config import LOG_LEVEL as DEFAULT_LOG_LEVEL
from .exceptions import ConfigError


LOG_LEVEL = Config.LOG_LEVEL
LOG_PATH = Config.LOG_PATH
LOG_ROTATION = Config.LOG_ROTATION
LOG_RETENTION = Config.LOG_RETENTION


def setup_logging(level: Optional[str] = None, path: Optional[str] = None) -> None:
    """
    Replace every sink with a console sink and, if a path is set, a rotating file sink.

    Settings not passed in are read from the environment at call time, so
    variables loaded from an env file after import still apply.

    Raises:
        ConfigError: If loguru does not accept the level, rotation or retention
    """
    level = (level or os.getenv("LOG_LEVEL", LOG_LEVEL)).upper()
    path = os.getenv("LOG_PATH", LOG_PATH) if path is None else path
    rotation = os.getenv("LOG_ROTATION", LOG_ROTATION)
    retention = os.getenv("LOG_RETENTION", LOG_RETENTION)

    logger.remove()

    try:
        # Log to console
        logger.add(sys.stderr, level=level)

        # Log to a file
        if path:
            logger.add(
                path,
                rotation=rotation,
                retention=retention,
                level=level,
            )
    except (ValueError, TypeError, OSError) as e:
        logger.remove()
        logger.add(sys.stderr, level=DEFAULT_LOG_LEVEL)
        raise ConfigError(f"invalid logging configuration: {e}") from e


try:
    setup_logging()
except ConfigError as e:
    logger.warning(f"{e}, logging at {DEFAULT_LOG_LEVEL} to the console")
