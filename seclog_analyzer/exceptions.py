"""
Custom exceptions for security log analysis.

This module defines a hierarchy of exceptions for handling errors
specific to per-file processing, scheduling and export.
"""

from typing import Optional


class SecurityAnalysisError(Exception):
    """Base exception for all security log analysis errors."""

    pass


class FileProcessingError(SecurityAnalysisError):
    """Raised when a whole input file cannot be processed.

    Attributes:
        file_path: Path to the file that failed.
    """

    def __init__(self, message: str, file_path: Optional[str] = None) -> None:
        self.file_path = file_path
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.file_path:
            return f"{base} (file: {self.file_path})"
        return base


class TaskTimeoutError(FileProcessingError):
    """Raised when a file task exceeds its deadline and is terminated.

    Attributes:
        timeout: The deadline, in seconds, that was exceeded.
    """

    def __init__(
        self,
        message: str,
        file_path: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.timeout = timeout
        super().__init__(message, file_path=file_path)

    def __str__(self) -> str:
        base = super().__str__()
        if self.timeout is not None:
            return f"{base} (timeout: {self.timeout:g}s)"
        return base


class ExportError(SecurityAnalysisError):
    """Raised when an output file cannot be written.

    Attributes:
        output_path: Path of the output that failed.
    """

    def __init__(self, message: str, output_path: Optional[str] = None) -> None:
        self.output_path = output_path
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.output_path:
            return f"{base} (output: {self.output_path})"
        return base


class NoFilesProcessedError(SecurityAnalysisError):
    """Raised when not a single input file could be processed.

    Attributes:
        attempted: Number of input files that were attempted.
    """

    def __init__(self, message: str, attempted: Optional[int] = None) -> None:
        self.attempted = attempted
        super().__init__(message)

    def __str__(self) -> str:
        base = super().__str__()
        if self.attempted is not None:
            return f"{base} (attempted: {self.attempted})"
        return base


class ConfigurationError(SecurityAnalysisError):
    """Raised for configuration-related errors."""

    pass
