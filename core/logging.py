import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional


CONTEXT_FIELDS = ("appointment_id", "staff_id", "remote_id", "sync_window")


class JSONFormatter(logging.Formatter):
    """JSON formatter carrying appointment and sync context passed via ``extra``."""

    def __init__(self, app_name: str = "calendar_sync"):
        super().__init__()
        self.app_name = app_name

    def format(self, record: logging.LogRecord) -> str:
        log_obj = {
            "timestamp": self.formatTime(record),
            "app": self.app_name,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_obj[field] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


def setup_logging(
    log_level: str = "INFO",
    log_dir: Optional[str] = None,
    app_name: str = "calendar_sync",
) -> logging.Logger:
    """
    Configure the root logger with a console handler and a rotating JSON file.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files (defaults to ./logs)
        app_name: Log file prefix

    Returns:
        The configured root logger
    """
    log_path_dir = Path(log_dir) if log_dir else Path.cwd() / "logs"
    log_path_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_path_dir / f"{app_name}.log"
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger()
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    )
    logger.addHandler(console_handler)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=10485760,  # 10MB
        backupCount=5,
    )
    file_handler.setLevel(level)
    file_handler.setFormatter(JSONFormatter(app_name))
    logger.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))

    return logger
