# exceptions.py
"""
Custom exceptions for the chat filter module.
"""

from typing import Optional, Any, Dict


class FilterError(Exception):
    """Base exception for all filter-related errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize filter error.

        Args:
            message: Error message
            details: Optional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidPatternError(FilterError):
    """Exception raised when a regex pattern fails to compile."""

    def __init__(self, source: str, reason: str):
        """
        Initialize invalid pattern error.

        Args:
            source: The pattern source text that was rejected
            reason: Diagnostic text from the regex engine
        """
        super().__init__(f"Invalid regex: {reason}", {'source': source, 'reason': reason})
        self.source = source
        self.reason = reason


class StorageDecodeError(FilterError):
    """Exception raised when a structured-store value cannot be decoded."""

    def __init__(self, key: str, reason: str):
        super().__init__(f"{key} present in modstorage, but failed to parse. Error: {reason}",
                         {'key': key, 'reason': reason})
        self.key = key


class StorageIOError(FilterError):
    """Exception raised when the structured store cannot be read or written."""
    pass


class FileIOError(FilterError):
    """Exception raised when a list file cannot be read or written."""

    def __init__(self, message: str, path: Optional[str] = None, **kwargs):
        details = {'path': path, **kwargs}
        super().__init__(message, details)
        self.path = path


class UsageError(FilterError):
    """Exception raised for a malformed console command; the message is the usage text."""
    pass
