"""
Настройка логирования приложения.

Все модули пишут через logging.getLogger(__name__), здесь только
настраивается корневой логгер.
"""

import logging
import logging.handlers
import os

from storefront.core.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured = False


def setup_logging(level: str = None, log_file: str = None) -> None:
    """
    Настроить корневой логгер: вывод в stdout и, опционально, в файл с ротацией.

    Повторный вызов ничего не делает.
    """
    global _configured
    if _configured:
        return

    level = (level or settings.LOG_LEVEL).upper()
    log_file = log_file if log_file is not None else settings.LOG_FILE

    formatter = logging.Formatter(LOG_FORMAT)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # stdout важен для docker logs
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        os.makedirs(os.path.dirname(os.path.abspath(log_file)), exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=10 * 1024 * 1024, backupCount=5
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configured = True
    logging.getLogger(__name__).info("Logging configured (level=%s)", level)
