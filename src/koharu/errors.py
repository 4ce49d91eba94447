"""
Error types for the koharu update and backup tool.

This module defines the KoharuError base class and subclasses for domain-specific
errors. Infrastructure failures (git invocation, archive I/O, remote access) are
raised as KoharuError subclasses; recoverable update outcomes such as a dirty
working tree or a merge conflict are modelled as session states instead and never
raised.
"""

from __future__ import annotations

from typing import Any


class KoharuError(Exception):
    """
    Base exception class for koharu errors.

    Attributes:
        error_code: Internal error code string (e.g., "invalid_argument",
            "remote_unavailable", "backup_failed").
        message: Human-readable error message.
        details: Optional structured details (e.g., paths, stderr output).

    Example:
        >>> raise KoharuError(
        ...     error_code="invalid_argument",
        ...     message="Backup mode must be 'full' or 'basic'",
        ...     details={"mode": "partial"},
        ... )
    """

    def __init__(
        self,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize a KoharuError.

        Args:
            error_code: Internal error code string identifying the error category.
            message: Human-readable error message.
            details: Optional dictionary with structured error details.
        """
        super().__init__(message)
        self.error_code = error_code
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"error_code={self.error_code!r}, "
            f"message={self.message!r}, "
            f"details={self.details!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to a dictionary for serialization.

        Returns:
            Dictionary with error_code, message, and details.
        """
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class InvalidArgumentError(KoharuError):
    """Raised when an operation receives invalid input arguments."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InvalidArgumentError."""
        super().__init__(
            error_code="invalid_argument", message=message, details=details
        )


class FailedPreconditionError(KoharuError):
    """
    Raised when a precondition for the operation is not met.

    Used for missing directories, files outside the backup directory and
    similar problems the user can fix before retrying.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a FailedPreconditionError."""
        super().__init__(
            error_code="failed_precondition", message=message, details=details
        )


class InternalError(KoharuError):
    """Raised for unexpected internal errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize an InternalError."""
        super().__init__(error_code="internal", message=message, details=details)


class GitCommandError(KoharuError):
    """
    Raised when a git subprocess exits unsuccessfully or cannot be started.

    The details always carry the command line, the exit status (None when the
    process never ran) and the captured stderr.
    """

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ) -> None:
        """Initialize a GitCommandError."""
        super().__init__(
            error_code="git_failed",
            message=message,
            details={
                "command": command or [],
                "returncode": returncode,
                "stderr": stderr,
            },
        )
        self.returncode = returncode
        self.stderr = stderr


class RemoteError(KoharuError):
    """Raised when the upstream remote is unreachable or misconfigured."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a RemoteError."""
        super().__init__(
            error_code="remote_unavailable", message=message, details=details
        )


class BackupError(KoharuError):
    """Raised when copying or archiving fails while creating a backup."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize a BackupError."""
        super().__init__(error_code="backup_failed", message=message, details=details)


class RestoreError(KoharuError):
    """
    Raised when a backup archive cannot be restored.

    Attributes:
        failed_item: Project path of the item that failed, if any.
        pending_items: Project paths that were not restored.
    """

    def __init__(
        self,
        message: str,
        *,
        failed_item: str | None = None,
        pending_items: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize a RestoreError."""
        merged = dict(details or {})
        if failed_item is not None:
            merged["failed_item"] = failed_item
        if pending_items:
            merged["pending_items"] = list(pending_items)
        super().__init__(error_code="restore_failed", message=message, details=merged)
        self.failed_item = failed_item
        self.pending_items = list(pending_items or [])
