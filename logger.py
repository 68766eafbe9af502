# logger.py
import os
import logging
from logging.handlers import RotatingFileHandler

LOGGER_NAME = "pharmacy_pos"

# Defaults for the "logging" section of the pharmacy config
LOG_DEFAULTS = {
    "level": "INFO",
    "file": "logs/pharmacy.log",
    "max_size": 2 * 1024 * 1024,
    "backup_count": 5
}

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def _rotating_handler(log_config, formatter):
    log_dir = os.path.dirname(log_config["file"])
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    handler = RotatingFileHandler(
        log_config["file"],
        maxBytes=int(log_config["max_size"]),
        backupCount=int(log_config["backup_count"]),
        encoding="utf-8"
    )
    handler.setFormatter(formatter)
    return handler


def setup_logger(config=None):
    """
    (Re)configure the pharmacy_pos logger from config["logging"].

    Always logs to the console. A rotating file handler is added when
    "file" is set, sized by "max_size" bytes and "backup_count" files.
    Calling it again replaces the previous handlers.
    """
    log_config = {**LOG_DEFAULTS, **(config or {}).get("logging", {})}

    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()

    level = logging.getLevelName(str(log_config["level"]).upper())
    logger.setLevel(level if isinstance(level, int) else logging.INFO)

    formatter = logging.Formatter(LOG_FORMAT)
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_config["file"]:
        try:
            logger.addHandler(_rotating_handler(log_config, formatter))
        except OSError as e:
            logger.error(f"Failed to set up file logging: {e}")

    return logger
