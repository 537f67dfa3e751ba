"""
FILE DESCRIPTION: Settings read from the environment (and .env) plus the shared logger.
KEY FUNCTIONS/CLASSES: setup_logger, SnapshotLogFormatter, logger
"""

import logging
import sys
import os
from datetime import datetime, timezone
from pathlib import Path
from dotenv import load_dotenv

# === CONFIGURATION SECTION ===

# Load .env from the repository root before reading any setting
load_dotenv(Path(__file__).resolve().parents[1] / '.env')


def _env_bool(name, default):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# Root of snapshots/ and manifest.json
DATA_DIR = Path(os.getenv("WAYBACK_DATA_DIR", Path(__file__).resolve().parents[1] / 'data'))

# Network timeout for lightweight HTTP requests (seconds)
REQUEST_TIMEOUT = int(os.getenv("REQUEST_TIMEOUT", 15))
USER_AGENT = os.getenv("USER_AGENT", "Wayback-Lite/1.0")
BROWSER_USER_AGENT = os.getenv(
    "BROWSER_USER_AGENT",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
)

# Playwright waiting periods (seconds)
JS_GOTO_TIMEOUT = int(os.getenv("JS_GOTO_TIMEOUT", 60))
JS_LAUNCH_TIMEOUT = int(os.getenv("JS_LAUNCH_TIMEOUT", 30))

# Crawl budget and scheduling
DEFAULT_MAX_PAGES = int(os.getenv("DEFAULT_MAX_PAGES", 20))
MAX_PAGES_LIMIT = int(os.getenv("MAX_PAGES_LIMIT", 50))
CRAWL_CONCURRENCY = int(os.getenv("CRAWL_CONCURRENCY", 3))

# Fetch strategy: "http" (requests) or "browser" (playwright), the other one is the fallback
FETCH_STRATEGY = os.getenv("FETCH_STRATEGY", "http").strip().lower()
FETCH_FALLBACK = _env_bool("FETCH_FALLBACK", True)

# A progress stream with no event for this long is ended (seconds)
PROGRESS_IDLE_TIMEOUT = int(os.getenv("PROGRESS_IDLE_TIMEOUT", 300))

LOG_FILE = os.getenv("LOG_FILE") or None
PORT = int(os.getenv("PORT", 4000))


# === LOGGING SECTION ===

LOGGER_NAME = "wayback"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper()


class SnapshotLogFormatter(logging.Formatter):
    """
    One line per record: [ Tue Jan 06 05:32:41 AM UTC 2026 ] : LEVEL : context : message
    `context` comes from extra={"context": ...} and defaults to the logger's short name.
    """
    TIME_FORMAT = "%a %b %d %I:%M:%S %p UTC %Y"

    def format(self, record):
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(self.TIME_FORMAT)
        context = getattr(record, "context", record.name.rsplit(".", 1)[-1])
        line = f"[ {stamp} ] : {record.levelname} : {context} : {record.getMessage()}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logger(name=LOGGER_NAME, log_file=None, level=LOG_LEVEL):
    """
    Configure the shared logger once. Child loggers ("wayback.<x>") get no handlers
    of their own and propagate into it.
    """
    root_name = name.split(".", 1)[0]
    logger = logging.getLogger(name)
    if name != root_name:
        setup_logger(root_name, log_file=log_file, level=level)
        return logger

    logger.setLevel(level)
    if logger.handlers:
        return logger

    formatter = SnapshotLogFormatter()
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    for handler in handlers:
        handler.setFormatter(formatter)
        logger.addHandler(handler)
    logger.propagate = False
    return logger


# Global logger instance
logger = setup_logger(log_file=LOG_FILE)
