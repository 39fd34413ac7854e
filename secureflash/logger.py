"""
Centralized logging configuration for secureflash.

Usage in any module:
    from secureflash.logger import get_logger
    log = get_logger(__name__)

    log.info("Normal operational messages")
    log.error("Error conditions")

Three destinations are configured by setup_logging():
    - console: the operator transcript, message text only (INFO and above)
    - <log_dir>/secureflash.log: rotating debug log with format
      [HH:MM:SS.mmm] [LEVEL] [module] message
    - syslog: the durable system log, tagged with the configured log tag

Syslog only receives records from the ``secureflash`` logger hierarchy, and
can be switched off temporarily with syslog_suppressed() (service menu).
"""

import logging
import os
import sys
from contextlib import contextmanager
from logging.handlers import RotatingFileHandler, SysLogHandler
from pathlib import Path
from typing import Optional

LOG_FILE_NAME = 'secureflash.log'
SYSLOG_SOCKET = '/dev/log'
PACKAGE_LOGGER = 'secureflash'

# Flag to track if logging has been configured
_logging_configured = False
_log_file_path: Optional[str] = None


class _SyslogGate(logging.Filter):
    """Drops records while syslog output is suppressed."""

    def __init__(self):
        super().__init__()
        self.open = True

    def filter(self, record):
        return self.open


_syslog_gate = _SyslogGate()


def setup_logging(log_dir=None, log_tag='secureboot', level=logging.DEBUG, use_syslog=True):
    """Configure console, rotating file and syslog handlers.

    Call this once at application startup (in cli.main). Later calls are
    ignored and return the file path chosen the first time.

    Args:
        log_dir: Directory for the rotating debug log (default: cwd)
        log_tag: Syslog identifier, mirrors ``logger -t <tag>``
        level: Root logger level
        use_syslog: Attach the syslog handler when a local socket exists

    Returns:
        Path of the rotating log file
    """
    global _logging_configured, _log_file_path
    if _logging_configured:
        return _log_file_path

    log_dir = Path(log_dir or os.getcwd())
    log_dir.mkdir(parents=True, exist_ok=True)
    _log_file_path = str(log_dir / LOG_FILE_NAME)

    formatter = logging.Formatter(
        '[%(asctime)s.%(msecs)03d] [%(levelname)s] [%(name)s] %(message)s',
        datefmt='%H:%M:%S'
    )

    # File handler with rotation (5MB max, keep 3 backups)
    file_handler = RotatingFileHandler(
        _log_file_path,
        maxBytes=5*1024*1024,  # 5MB
        backupCount=3,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)
    file_handler.setLevel(logging.DEBUG)

    # Operator transcript: plain messages, like the echo output of a shell tool
    console_handler = logging.StreamHandler(sys.__stdout__)
    console_handler.setFormatter(logging.Formatter('%(message)s'))
    console_handler.setLevel(logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(file_handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.addHandler(console_handler)

    if use_syslog and os.path.exists(SYSLOG_SOCKET):
        syslog_handler = SysLogHandler(address=SYSLOG_SOCKET)
        syslog_handler.setFormatter(logging.Formatter(f'{log_tag}: %(message)s'))
        syslog_handler.setLevel(logging.INFO)
        syslog_handler.addFilter(_syslog_gate)
        package_logger.addHandler(syslog_handler)

    # Suppress noisy third-party loggers
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('pynnex').setLevel(logging.WARNING)

    _logging_configured = True

    logging.getLogger(__name__).debug(f"Logging initialized, writing to {_log_file_path}")
    return _log_file_path


@contextmanager
def syslog_suppressed():
    """Keep records out of syslog for the duration of the block."""
    previous = _syslog_gate.open
    _syslog_gate.open = False
    try:
        yield
    finally:
        _syslog_gate.open = previous


def syslog_enabled() -> bool:
    return _syslog_gate.open


def get_logger(name: str) -> logging.Logger:
    """Get a logger for the given module name.

    Args:
        name: Usually __name__ of the calling module

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
