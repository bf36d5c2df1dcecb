"""
Logging configuration
"""
from loguru import logger
import os
import sys
from notifier.config import get_settings

settings = get_settings()

# Modules whose records also go to the message audit file
MESSAGE_LOG_MODULES = (
    "notifier.connectors.whatsapp",
    "notifier.services.notification_service",
    "notifier.services.inbound_service",
)


def _is_message_record(record) -> bool:
    return record["name"].startswith(MESSAGE_LOG_MODULES)


def setup_logger():
    """Configure logger with appropriate settings"""
    logger.remove()  # Remove default handler

    # Console logging
    logger.add(
        sys.stdout,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level
    )

    if not settings.log_to_file:
        return logger

    # Application log
    logger.add(
        os.path.join(settings.log_dir, "notifier_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO"
    )

    # Sends, replies and delivery callbacks
    logger.add(
        os.path.join(settings.log_dir, "messages_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="90 days",
        compression="zip",
        level="INFO",
        filter=_is_message_record
    )

    # Error file
    logger.add(
        os.path.join(settings.log_dir, "errors_{time:YYYY-MM-DD}.log"),
        rotation="00:00",
        retention="90 days",
        level="ERROR"
    )

    return logger


# Initialize logger
log = setup_logger()
