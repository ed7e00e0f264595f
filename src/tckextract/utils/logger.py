"""
Logging utilities for tckextract

Console output for interactive runs, optional timestamped log file for batch jobs.
"""

import logging
import sys
from pathlib import Path
from datetime import datetime
from typing import Optional


class TckExtractLogger:
    """Centralized logger for extraction runs"""

    def __init__(
        self,
        name: str = "tckextract",
        log_dir: Optional[str] = None,
        level: int = logging.WARNING,
        console: bool = True
    ):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level)
        self.logger.handlers = []  # Clear existing handlers
        self.log_dir: Optional[Path] = None
        self.log_file: Optional[Path] = None
        self._file_handler: Optional[logging.FileHandler] = None

        simple_formatter = logging.Formatter(
            '%(levelname)s: %(message)s'
        )

        if console:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(simple_formatter)
            self.logger.addHandler(console_handler)

        # File logging is opt-in; batch jobs pass a directory
        if log_dir is not None:
            self.set_log_dir(log_dir)

    def set_log_dir(self, log_dir: str):
        """Log to a new timestamped file in log_dir, replacing any previous log file"""
        log_path = Path(log_dir)
        if self._file_handler is not None:
            if log_path == self.log_dir:
                return
            self.logger.removeHandler(self._file_handler)
            self._file_handler.close()

        log_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
        self.log_dir = log_path
        self.log_file = log_path / f"tckextract_{timestamp}.log"

        detailed_formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(funcName)s:%(lineno)d - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )
        self._file_handler = logging.FileHandler(self.log_file)
        self._file_handler.setLevel(logging.DEBUG)
        self._file_handler.setFormatter(detailed_formatter)
        self.logger.addHandler(self._file_handler)

        self.logger.info(f"Logging to: {self.log_file}")

    def get_logger(self) -> logging.Logger:
        """Get the configured logger instance"""
        return self.logger


# Global logger instance
_global_logger: Optional[TckExtractLogger] = None


def get_logger(name: str = "tckextract", log_dir: Optional[str] = None) -> logging.Logger:
    """
    Get or create global logger

    A log_dir given after the logger exists redirects the file log there.
    """
    global _global_logger
    if _global_logger is None:
        _global_logger = TckExtractLogger(name, log_dir=log_dir)
    elif log_dir is not None:
        _global_logger.set_log_dir(log_dir)
    return _global_logger.get_logger()


def set_verbosity(verbose: bool = False, debug: bool = False) -> logging.Logger:
    """Map CLI verbosity flags onto the package logger level"""
    level = logging.DEBUG if debug else (logging.INFO if verbose else logging.WARNING)
    logger = get_logger()
    logger.setLevel(level)
    return logger
