#!/usr/bin/env python3
"""
Security Triage Exceptions Module

Custom exception classes for the repository security triage pipeline.
Centralized exception definitions for consistent error handling.
"""

__all__ = [
    "TriageError",
    "ConfigurationError",
    "FileListingError",
    "ReasoningError",
    "ReasoningResponseError",
]


class TriageError(Exception):
    """Base exception for all triage-related errors"""
    pass


class ConfigurationError(TriageError):
    """Raised when the configuration cannot be used for a run"""
    pass


class FileListingError(TriageError):
    """Raised when the file-listing provider cannot answer a request"""

    def __init__(self, message: str, status_code: int = None):
        super().__init__(message)
        self.status_code = status_code


class ReasoningError(TriageError):
    """Raised when the reasoning engine call fails or times out"""
    pass


class ReasoningResponseError(ReasoningError):
    """Raised when the reasoning engine returns content that does not parse"""

    def __init__(self, message: str, raw_response: str = ""):
        super().__init__(message)
        self.raw_response = raw_response
