from loguru import logger
import sys
import os


def setup_logging(log_dir: str = "logs", console_level: str = "INFO") -> None:
    """Configure loguru with a console handler and a daily rotating debug file"""
    os.makedirs(log_dir, exist_ok=True)

    logger.remove()  # Remove default handler

    logger.add(sys.stderr, level=console_level)

    logger.add(
        os.path.join(log_dir, "app_{time:YYYY-MM-DD}.log"),
        rotation="1 day",    # New file is created each day
        retention="1 week",  # Logs are kept for 1 week
        level="DEBUG",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} - {message}",
        backtrace=True,
        diagnose=True
    )


def get_logger(name):
    """Get a logger with the specified name"""
    return logger.bind(name=name)
