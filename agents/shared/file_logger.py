"""
File Logger Utility

Configures the service loggers (``orchestrator``, ``agents``) to write to a
rotating log file and, optionally, the console. Module loggers created with
``logging.getLogger(__name__)`` propagate into these service loggers.
"""

import logging
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Iterable, List, Optional

SERVICE_LOGGERS = ("orchestrator", "agents")

DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
CONSOLE_FORMAT = '[%(name)s] %(levelname)s: %(message)s'


def setup_file_logger(
    service_name: str,
    log_level: str = "INFO",
    output_dir: str = "output/logs",
    console_output: bool = True,
    max_bytes: int = 10 * 1024 * 1024,  # 10 MB
    backup_count: int = 5,
    log_file: Optional[Path] = None
) -> logging.Logger:
    """
    Set up logging for one service logger.

    Args:
        service_name: Logger name (e.g., "orchestrator", "agents")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        output_dir: Directory to write log files
        console_output: Whether to also output to console
        max_bytes: Maximum size of each log file before rotation
        backup_count: Number of backup files to keep
        log_file: Explicit log file path (shared between services)

    Returns:
        Configured logger instance
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    logger = logging.getLogger(service_name)
    logger.setLevel(level)

    # Calling twice must not duplicate output
    logger.handlers.clear()

    if log_file is None:
        output_path = Path(output_dir)
        output_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = output_path / f"{service_name}_{timestamp}.log"

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)  # Capture all levels in file
    file_handler.setFormatter(logging.Formatter(fmt=DETAILED_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
    logger.addHandler(file_handler)

    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(fmt=CONSOLE_FORMAT))
        logger.addHandler(console_handler)

    logger.propagate = False
    logger.debug(f"File logging initialized: {log_file}")

    return logger


def setup_service_logging(
    log_level: str = "INFO",
    output_dir: str = "output/logs",
    console_output: bool = True,
    services: Iterable[str] = SERVICE_LOGGERS
) -> List[logging.Logger]:
    """
    Configure every service logger to share one log file.

    Returns:
        The configured loggers, in the order given
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = output_path / f"conductor_{timestamp}.log"

    return [
        setup_file_logger(
            service,
            log_level=log_level,
            output_dir=output_dir,
            console_output=console_output,
            log_file=log_file
        )
        for service in services
    ]
