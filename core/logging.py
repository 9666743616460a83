import logging
import os
import sys
import json
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# --- Constants ---
LOG_DIR = Path(os.environ.get("GENUI_LOG_DIR", Path.cwd() / 'logs'))
LOG_FILE = LOG_DIR / 'genui.log'
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

class JsonFormatter(logging.Formatter):
    """
    Formats log records as a JSON string.
    """
    def format(self, record):
        log_object = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_object['exc_info'] = self.formatException(record.exc_info)

        return json.dumps(log_object)

def setup_logging(log_level=logging.INFO, log_file: Optional[Path] = LOG_FILE):
    """
    Configures logging.
    - Console: Human-readable plain text.
    - File: Machine-readable JSON, with rotation. Skipped when log_file is None.
    """
    # --- Root Logger Configuration ---
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # --- Formatters ---
    plain_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    # --- Console Handler ---
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(plain_formatter)

    # Clear existing handlers to avoid duplicates
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    root_logger.addHandler(console_handler)

    # --- Rotating File Handler (JSON) ---
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding='utf-8'
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)

    return root_logger

def _level_from_env() -> int:
    name = os.environ.get("LOG_LEVEL", "INFO").upper()
    return logging.getLevelName(name) if isinstance(logging.getLevelName(name), int) else logging.INFO

def _file_logging_enabled() -> bool:
    return os.environ.get("GENUI_LOG_TO_FILE", "1").lower() in {"1", "true", "yes", "on"}

# --- Initial Setup ---
# Initialize logging when the module is imported
logger = setup_logging(
    log_level=_level_from_env(),
    log_file=LOG_FILE if _file_logging_enabled() else None,
)
