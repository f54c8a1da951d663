"""Logging configuration for the Darkstar decoder."""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Union


def setup_logging(log_dir: Optional[Union[str, Path]] = None, log_level: int = logging.INFO) -> Optional[Path]:
    """Setup logging configuration.

    Args:
        log_dir: Directory to store log files, or None for console only
        log_level: Logging level (default: INFO)

    Creates up to two handlers:
    1. File handler that writes to a timestamped file in log_dir
    2. Console handler that writes to stderr

    Returns:
        Path of the log file, if one was created
    """
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_formatter = logging.Formatter(
        '%(levelname)s: %(message)s'
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    log_file = None
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        log_file = log_path / f'darkstar_decoder_{timestamp}.log'
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setFormatter(file_formatter)
        file_handler.setLevel(log_level)
        root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    root_logger.info(f"Logging initialized at {logging.getLevelName(log_level)}")
    if log_file is not None:
        root_logger.info(f"Log file: {log_file}")
    return log_file


def setup_logging_from_config(config) -> Optional[Path]:
    """Configure logging from a DecoderConfig."""
    return setup_logging(config.log_dir, config.log_level)
