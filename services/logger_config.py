# services/logger_config.py
import logging
from logging.handlers import RotatingFileHandler
import os
from config import settings

def setup_logging():
    """
    Configures the application logger: rotating log file plus console.
    Safe to call more than once; existing handlers are replaced.
    """
    logger = logging.getLogger(settings.LOGGER_NAME)

    if logger.hasHandlers():
        logger.handlers.clear()

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
    )

    try:
        log_dir = os.path.dirname(settings.LOG_FILE_PATH)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = RotatingFileHandler(
            settings.LOG_FILE_PATH,
            maxBytes=5 * 1024 * 1024,  # 5MB
            backupCount=5,
            encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except OSError as e:
        # Read-only deployments still get console logs
        print(f"Error setting up file logger: {e}")

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    logger.propagate = False

    logger.info(f"Logging configured (level={logging.getLevelName(level)}, file={settings.LOG_FILE_PATH})")
    return logger
