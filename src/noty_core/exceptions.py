"""Custom exceptions for the Noty core.

Provides a structured exception hierarchy with error codes and
machine-readable error information. None of these escape the public
store, replica or sweeper operations: each boundary catches them and
degrades to a no-op, an empty result or a stale cache.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002

    # Blob errors (45xx)
    BLOB_WRITE_FAILED = 4501
    BLOB_READ_FAILED = 4502
    BLOB_DELETE_FAILED = 4503

    # Codec errors (5xxx)
    CODEC_DECODE_FAILED = 5001

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    PATH_TRAVERSAL_DETECTED = 7005

    # Sync errors (8xxx)
    SYNC_CHANNEL_UNREACHABLE = 8001
    SYNC_SEND_FAILED = 8002
    SYNC_PAYLOAD_INVALID = 8003


class NotyError(Exception):
    """Base exception for all Noty core errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details,
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class StorageError(NotyError):
    """Raised for key-value persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        key: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.key = key
        self.original_error = original_error


class BlobStoreError(NotyError):
    """Raised when an image blob cannot be written, read or removed."""

    def __init__(
        self,
        message: str,
        scope_id: Optional[str] = None,
        key: Optional[str] = None,
        code: ErrorCode = ErrorCode.BLOB_WRITE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if scope_id:
            details["scope_id"] = scope_id
        if key:
            details["key"] = key
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.scope_id = scope_id
        self.key = key
        self.original_error = original_error


class CodecError(NotyError):
    """Raised when persisted or synced bytes cannot be decoded."""

    def __init__(
        self,
        message: str,
        kind: Optional[str] = None,
        code: ErrorCode = ErrorCode.CODEC_DECODE_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if kind:
            details["kind"] = kind
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.kind = kind
        self.original_error = original_error


class ChannelError(NotyError):
    """Raised by sync channels when a message cannot be delivered."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        code: ErrorCode = ErrorCode.SYNC_SEND_FAILED,
        original_error: Optional[Exception] = None,
    ):
        details: Dict[str, Any] = {}
        if operation:
            details["operation"] = operation
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.original_error = original_error


class ValidationError(NotyError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
