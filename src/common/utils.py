"""Utility functions for common operations across the application."""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union


class StringUtils:
    """Key building and text helpers."""

    @staticmethod
    def generate_progress_key(project_id: Union[int, str], set_id: Union[int, str]) -> str:
        """
        Generate Redis key for a translation progress record.

        Args:
            project_id: Project identifier
            set_id: Translation set identifier

        Returns:
            Redis key string in format 'translation_progress:project:set'
        """
        return f"translation_progress:{project_id}:{set_id}"

    @staticmethod
    def generate_log_key(log_id: Union[int, str]) -> str:
        """Redis key holding one serialized translation log."""
        return f"translation_log:{log_id}"

    @staticmethod
    def generate_run_key(trigger: str) -> str:
        """Redis key for the single-flight gate of a trigger."""
        return f"single_flight:{trigger}"

    @staticmethod
    def sanitize_api_key(value: Optional[str]) -> str:
        """
        Strip every character that cannot appear in an API key.

        Args:
            value: Raw user input

        Returns:
            Key containing only letters, digits and dashes
        """
        if not value:
            return ""
        return re.sub(r"[^a-zA-Z0-9\-]", "", value.strip())

    @staticmethod
    def mask_secret(value: Optional[str], visible: int = 4) -> str:
        """
        Mask a secret, keeping the first and last characters readable.

        Example:
            >>> StringUtils.mask_secret("sk-abcdef123456")
            'sk-a*******3456'
        """
        if not value:
            return ""
        if len(value) <= visible * 2:
            return "*" * len(value)
        return value[:visible] + "*" * (len(value) - visible * 2) + value[-visible:]

    @staticmethod
    def truncate_for_logging(text: str, max_length: int = 200) -> str:
        """Shorten text for log output."""
        if len(text) <= max_length:
            return text
        return text[:max_length] + "..."


class DateTimeUtils:
    """Date and time utility functions."""

    @staticmethod
    def get_current_utc_datetime() -> datetime:
        """
        Get the current UTC datetime.

        Returns:
            Current datetime in UTC timezone
        """
        return datetime.now(timezone.utc)

    @staticmethod
    def get_date_string_for_log_file() -> str:
        """
        Get current date string for log file naming.

        Returns:
            Date string in YYYYMMDD format
        """
        return datetime.now().strftime("%Y%m%d")

    @staticmethod
    def get_retention_cutoff(days: int, now: Optional[datetime] = None) -> float:
        """
        Timestamp before which retained records are considered expired.

        Args:
            days: Retention horizon in days
            now: Reference time, defaults to the current UTC time

        Returns:
            POSIX timestamp of the cutoff
        """
        reference = now or datetime.now(timezone.utc)
        return (reference - timedelta(days=days)).timestamp()
