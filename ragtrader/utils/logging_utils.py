"""Logging setup: console output plus a daily JSON-lines trading log"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import TimedRotatingFileHandler
from typing import Optional

TRADE = 25
logging.addLevelName(TRADE, "TRADE")

CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(name)s - %(message)s'


class JsonLineFormatter(logging.Formatter):
    """Formats each record as one JSON object per line"""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def daily_log_path(log_dir: str, day: Optional[datetime] = None) -> Path:
    """Path of the trading log file for a UTC day."""
    day = day or datetime.fromtimestamp(time.time(), tz=timezone.utc)
    return Path(log_dir) / f"trading-{day.strftime('%Y-%m-%d')}.log"


class DailyLogFileHandler(TimedRotatingFileHandler):
    """
    Writes to trading-YYYY-MM-DD.log and moves to the next day's file at UTC midnight

    Files are never renamed; each day simply gets its own file.
    """

    def __init__(self, log_dir: str):
        self.log_dir = str(log_dir)
        super().__init__(daily_log_path(self.log_dir), when="midnight", utc=True, encoding="utf-8", delay=True)

    def doRollover(self) -> None:
        if self.stream:
            self.stream.close()
            self.stream = None

        now = time.time()
        self.baseFilename = os.path.abspath(daily_log_path(self.log_dir))

        next_rollover = self.computeRollover(int(now))
        while next_rollover <= now:
            next_rollover += self.interval
        self.rolloverAt = next_rollover


def setup_logging(log_level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """
    Configure root logging

    Args:
        log_level: Level name (DEBUG, INFO, TRADE, WARNING, ...)
        log_dir: If set, also write JSON lines to trading-YYYY-MM-DD.log there
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers = [logging.StreamHandler()]
    handlers[0].setFormatter(logging.Formatter(CONSOLE_FORMAT))

    if log_dir:
        path = daily_log_path(log_dir)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = DailyLogFileHandler(log_dir)
            file_handler.setFormatter(JsonLineFormatter())
            handlers.append(file_handler)
        except OSError as e:
            logging.getLogger(__name__).warning(f"File logging disabled, cannot open {path}: {e}")

    logging.basicConfig(level=level, handlers=handlers, force=True)


def log_trade(logger: logging.Logger, message: str, *args) -> None:
    """Log an order/execution event at TRADE level."""
    logger.log(TRADE, message, *args)
