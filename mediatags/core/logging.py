import sys
import os
from typing import Optional
from loguru import logger

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def setup_logging(debug_mode: bool = True, log_dir: Optional[str] = "logs") -> None:
    """
    Configures Loguru logger for the tag engine.

    Args:
        debug_mode: DEBUG on the console when True, INFO otherwise
        log_dir: Directory for the rotating file sink; None disables it
    """
    logger.remove()

    level = "DEBUG" if debug_mode else "INFO"
    logger.add(sys.stderr, level=level, format=CONSOLE_FORMAT)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        # Write failures log their whole bulk payload, keep a week of it
        logger.add(
            os.path.join(log_dir, "mediatags_{time}.log"),
            rotation="10 MB",
            retention="1 week",
            level="DEBUG",
            enqueue=True,
        )

    logger.info(f"Logging initialized (level={level}, log_dir={log_dir})")
