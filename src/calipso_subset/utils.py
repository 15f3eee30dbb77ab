"""
Utility functions for CALIPSO subsetting
=========================================

Common helper functions used across different stages: logging setup,
timestamp arithmetic and progress reporting.
"""

import logging
from typing import Optional
from datetime import datetime

logger = logging.getLogger(__name__)

# 30 days hath September, April, June and November...
DAYS_PER_MONTH = (
    (31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31),  # Non-leap year
    (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31),  # Leap year
)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """
    Configure logging for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path to log file
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f'Invalid log level: {log_level}')

    handlers = [logging.StreamHandler()]

    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )


def format_bytes(size_bytes: int) -> str:
    """
    Format byte size as human-readable string.

    Args:
        size_bytes: Size in bytes

    Returns:
        Formatted string (e.g., "1.5 MB")
    """
    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if size_bytes < 1024.0:
            return f"{size_bytes:.1f} {unit}"
        size_bytes /= 1024.0
    return f"{size_bytes:.1f} PB"


def is_leap_year(yyyy: int) -> bool:
    return yyyy % 4 == 0 and (yyyy % 100 != 0 or yyyy % 400 == 0)


def is_valid_yyyymmddhh(yyyymmddhh: int) -> bool:
    """Is the yyyymmddhh timestamp a real calendar hour?"""
    yyyy = yyyymmddhh // 1000000
    mm = yyyymmddhh // 10000 % 100
    dd = yyyymmddhh // 100 % 100
    hh = yyyymmddhh % 100

    if not (1900 <= yyyy <= 9999 and 1 <= mm <= 12):
        return False

    days = DAYS_PER_MONTH[is_leap_year(yyyy)][mm - 1]
    return 1 <= dd <= days and 0 <= hh <= 23


def is_valid_yyyymmddhhmm(yyyymmddhhmm: int) -> bool:
    return (is_valid_yyyymmddhh(yyyymmddhhmm // 100) and
            0 <= yyyymmddhhmm % 100 <= 59)


def is_valid_yyyydddhhmm(yyyydddhhmm: int) -> bool:
    yyyy = yyyydddhhmm // 10000000
    ddd = yyyydddhhmm // 10000 % 1000
    hh = yyyydddhhmm // 100 % 100
    mm = yyyydddhhmm % 100
    return (1900 <= yyyy <= 9999 and
            1 <= ddd <= 365 + is_leap_year(yyyy) and
            0 <= hh <= 23 and
            0 <= mm <= 59)


def convert_timestamp(yyyymmddhhmm: int) -> int:
    """
    Convert a calendar timestamp to day-of-year form.

    Args:
        yyyymmddhhmm: Timestamp such as 200607052330

    Returns:
        yyyydddhhmm timestamp such as 20061862330
    """
    if not is_valid_yyyymmddhhmm(yyyymmddhhmm):
        raise ValueError(f"Invalid yyyymmddhhmm timestamp: {yyyymmddhhmm}")

    yyyy = yyyymmddhhmm // 100000000
    mo = yyyymmddhhmm // 1000000 % 100
    dd = yyyymmddhhmm // 10000 % 100
    hh = yyyymmddhhmm // 100 % 100
    mm = yyyymmddhhmm % 100
    ddd = dd + sum(DAYS_PER_MONTH[is_leap_year(yyyy)][:mo - 1])
    return ((yyyy * 1000 + ddd) * 100 + hh) * 100 + mm


def offset_timestamp(yyyydddhhmm: int, hours: int) -> int:
    """
    Compute timestamp + hours, rolling over days and years.

    Args:
        yyyydddhhmm: Initial timestamp
        hours: Non-negative number of hours to add

    Returns:
        Offset yyyydddhhmm timestamp
    """
    if not is_valid_yyyydddhhmm(yyyydddhhmm) or hours < 0:
        raise ValueError(f"Invalid timestamp offset: {yyyydddhhmm} + {hours}h")

    mm = yyyydddhhmm % 100
    yyyy = yyyydddhhmm // 10000000
    ddd = yyyydddhhmm // 10000 % 1000
    hh = yyyydddhhmm // 100 % 100 + hours

    ddd += hh // 24
    hh %= 24

    while ddd > 365 + is_leap_year(yyyy):
        ddd -= 365 + is_leap_year(yyyy)
        yyyy += 1

    return ((yyyy * 1000 + ddd) * 100 + hh) * 100 + mm


class ProgressTracker:
    """Per-file progress of a subset run, counting files that were skipped."""

    def __init__(self, total: int, description: str = "Processing"):
        """
        Args:
            total: Number of files to process
            description: Label used in log messages
        """
        self.total = total
        self.current = 0
        self.skipped = 0
        self.description = description
        self.start_time = datetime.now()

    def update(self, n: int = 1, skipped: bool = False):
        """Count n processed files, optionally as skipped."""
        self.current += n
        if skipped:
            self.skipped += n
        self._log_progress()

    def _log_progress(self):
        if self.total <= 0:
            return

        pct = (self.current / self.total) * 100
        elapsed = (datetime.now() - self.start_time).total_seconds()
        rate = self.current / elapsed if elapsed > 0 else 0
        eta = f"{(self.total - self.current) / rate:.0f}s" if rate > 0 else "N/A"

        logger.info(
            f"{self.description}: {self.current}/{self.total} "
            f"({pct:.1f}%) - ETA: {eta}"
        )

    def finish(self):
        """Log the summary line."""
        elapsed = (datetime.now() - self.start_time).total_seconds()
        logger.info(
            f"{self.description} completed: {self.current - self.skipped} of "
            f"{self.total} files in {elapsed:.1f}s ({self.skipped} skipped)"
        )
