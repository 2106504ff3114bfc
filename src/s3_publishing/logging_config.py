import logging
import os
from datetime import datetime
from pathlib import Path

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy below these levels
QUIET_LOGGERS = {
    "aiosqlite": logging.INFO,
    "asyncio": logging.INFO,
    "urllib3": logging.INFO,
    "boto3": logging.WARNING,
    "botocore": logging.WARNING,
    "s3transfer": logging.WARNING,
    "aioboto3": logging.WARNING,
    "aiobotocore": logging.WARNING,
    "fsspec": logging.WARNING,
}


def default_log_file() -> Path:
    """Timestamped log file under $S3_PUBLISHING_LOG_DIR (default: logs/)."""
    logs_dir = Path(os.environ.get("S3_PUBLISHING_LOG_DIR", "logs"))
    return logs_dir / f"s3_publishing_{datetime.now().strftime('%Y%m%d_%H%M%S')}.log"


def setup_logging(level: str = "INFO", log_file: Path | None = None, append: bool = True) -> Path:
    """
    Configure the root logger for publishing runs.

    Everything at `level` goes to the log file; warnings and errors are also
    printed to the console.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        log_file: Log file path, a timestamped file in the log directory if omitted
        append: Append to an existing log file instead of truncating it

    Returns:
        Path of the log file in use
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    root_logger.handlers.clear()

    for name, logger_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(logger_level)

    log_file = log_file or default_log_file()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(str(log_file), mode="a" if append else "w")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    root_logger.addHandler(console_handler)

    logging.getLogger(__name__).info(f"Logging to {log_file} at {level} level")
    return log_file
