# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Exceptions - Custom exceptions and error kinds for the s3obj package.

Every failure coming back from S3 is converted by the client layer into an
S3OperationError carrying an ErrorKind, so callers branch on the kind rather
than on vendor error codes.
"""

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from s3obj.models import ReconciliationResult


class ErrorKind(str, Enum):
    """Classification of a failed S3 call."""

    NOT_FOUND = "not_found"  # 404 or conditional mismatch
    EMPTY_RESULT = "empty_result"  # Successful call without a payload
    ACCESS_DENIED = "access_denied"
    NO_SUCH_BUCKET = "no_such_bucket"
    NO_SUCH_KEY = "no_such_key"
    TRANSPORT = "transport"  # Connection, timeout, signing...
    OTHER = "other"


class S3ObjError(Exception):
    """Base exception for all s3obj errors."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ConfigurationError(S3ObjError):
    """Raised when configuration is invalid."""

    pass


class InvalidImportIdError(ConfigurationError):
    """Raised when an import ID cannot be split into bucket and key."""

    pass


class S3OperationError(S3ObjError):
    """Raised when an S3 operation fails."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind = ErrorKind.OTHER,
        operation: str | None = None,
        code: str | None = None,
        details: dict | None = None,
    ):
        self.kind = kind
        self.operation = operation
        self.code = code
        super().__init__(message, details)


class ObjectNotFoundError(S3OperationError):
    """Raised when an object is absent or a conditional read did not match."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, kind=ErrorKind.NOT_FOUND, operation="HeadObject", details=details)


class EmptyResultError(S3OperationError):
    """Raised when S3 answered successfully but returned nothing."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, kind=ErrorKind.EMPTY_RESULT, details=details)


class UploadError(S3ObjError):
    """Raised when an object body cannot be assembled."""

    pass


class DeleteObjectsError(S3ObjError):
    """
    Raised when a bulk version deletion did not fully succeed.

    The partial result is kept on the exception so the number of versions
    that were removed is never lost.
    """

    def __init__(
        self,
        message: str,
        result: "ReconciliationResult",
        details: dict | None = None,
    ):
        self.result = result
        super().__init__(message, details)

    @property
    def deleted_count(self) -> int:
        return self.result.deleted_count

    @property
    def last_error(self) -> BaseException | None:
        return self.result.last_error


class JournalError(S3ObjError):
    """Raised when deletion journal operations fail."""

    pass


def is_not_found(error: BaseException | None) -> bool:
    """Return True if the error means the resource is gone."""
    return isinstance(error, S3OperationError) and error.kind == ErrorKind.NOT_FOUND
