import os
import sys
from loguru import logger
from callsynth.core.config import settings


def _safe_stdout_sink(message: str) -> None:
    """Write to stdout, replacing unencodable characters to avoid Windows cp1252 errors.
    Args:
        message (str): Formatted log line
    """
    try:
        sys.stdout.write(message)
    except UnicodeEncodeError:
        enc = sys.stdout.encoding or "utf-8"
        sys.stdout.write(message.encode(enc, errors="replace").decode(enc, errors="replace"))


def setup_logging(level: str = None, log_dir: str = None):
    """Configure console and file logging for the application.

    Args:
        level (str): Console log level, defaults to settings.log_level
        log_dir (str): Directory for log files, defaults to settings.log_dir
    """
    level = level or settings.log_level
    log_dir = log_dir or settings.log_dir
    os.makedirs(log_dir, exist_ok=True)

    # Remove default handler
    logger.remove()

    logger.add(
        _safe_stdout_sink,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
               "<level>{level: <8}</level> | "
               "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
               "<level>{message}</level>",
        level=level,
        colorize=True
    )

    # Persistent structured log
    logger.add(
        os.path.join(log_dir, "callsynth.log"),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} | {message}",
        level="DEBUG",
        rotation="100 MB",
        retention="30 days",
        compression="zip",
        serialize=True
    )

    # Call-audio pipeline runs, one record per stage event
    logger.add(
        os.path.join(log_dir, "pipeline.log"),
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {extra[run_id]} | {message}",
        level="DEBUG",
        rotation="50 MB",
        retention="30 days",
        filter=lambda record: "run_id" in record["extra"],
        serialize=True
    )

    return logger


__all__ = ["logger", "setup_logging"]
