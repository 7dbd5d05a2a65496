# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Models - Value types shared by the listing, deletion and read paths.

Versions and metadata are fetched per request and never cached; only the
resource state records in s3obj.config outlive a single call.
"""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict
import re


class LegalHoldStatus(str, Enum):
    """Object lock legal hold status."""

    ON = "ON"
    OFF = "OFF"


class ObjectLockMode(str, Enum):
    """Object lock retention mode."""

    GOVERNANCE = "GOVERNANCE"  # Overridable with BypassGovernanceRetention
    COMPLIANCE = "COMPLIANCE"  # Never overridable


class StorageClass(str, Enum):
    """Object storage class."""

    STANDARD = "STANDARD"
    REDUCED_REDUNDANCY = "REDUCED_REDUNDANCY"
    STANDARD_IA = "STANDARD_IA"
    ONEZONE_IA = "ONEZONE_IA"
    INTELLIGENT_TIERING = "INTELLIGENT_TIERING"
    GLACIER = "GLACIER"
    DEEP_ARCHIVE = "DEEP_ARCHIVE"
    OUTPOSTS = "OUTPOSTS"
    GLACIER_IR = "GLACIER_IR"
    SNOW = "SNOW"
    EXPRESS_ONEZONE = "EXPRESS_ONEZONE"


class ChecksumAlgorithm(str, Enum):
    """Additional checksum algorithm for object integrity."""

    CRC32 = "CRC32"
    CRC32C = "CRC32C"
    SHA1 = "SHA1"
    SHA256 = "SHA256"


class ServerSideEncryption(str, Enum):
    """Server-side encryption algorithm."""

    AES256 = "AES256"
    AWS_KMS = "aws:kms"
    AWS_KMS_DSSE = "aws:kms:dsse"


class ObjectCannedACL(str, Enum):
    """Canned ACL applied to an object."""

    PRIVATE = "private"
    PUBLIC_READ = "public-read"
    PUBLIC_READ_WRITE = "public-read-write"
    AUTHENTICATED_READ = "authenticated-read"
    AWS_EXEC_READ = "aws-exec-read"
    BUCKET_OWNER_READ = "bucket-owner-read"
    BUCKET_OWNER_FULL_CONTROL = "bucket-owner-full-control"


# Checksum required on PutObject whenever object lock parameters are sent
DEFAULT_LOCK_CHECKSUM_ALGORITHM = ChecksumAlgorithm.CRC32


@dataclass(frozen=True)
class ObjectVersion:
    """One stored version or delete marker of a key."""

    bucket: str
    key: str
    version_id: str = ""  # Empty means current/unversioned
    is_delete_marker: bool = False

    @property
    def identity(self) -> tuple[str, str, str]:
        return (self.bucket, self.key, self.version_id)


@dataclass(frozen=True)
class RetentionState:
    """Object lock state of a single version."""

    legal_hold: LegalHoldStatus | None = None
    mode: ObjectLockMode | None = None
    retain_until: datetime | None = None

    @property
    def legal_hold_active(self) -> bool:
        return self.legal_hold == LegalHoldStatus.ON


@dataclass
class ReconciliationResult:
    """Outcome of a bulk version deletion."""

    run_id: str  # ULID
    deleted_count: int = 0
    failed_count: int = 0
    last_error: BaseException | None = None


@dataclass(frozen=True)
class VersionOutcome:
    """What happened to one version or delete marker during a bulk deletion."""

    run_id: str
    bucket: str
    key: str
    version_id: str
    is_delete_marker: bool
    deleted: bool
    error: str | None = None


@dataclass
class ObjectMetadata:
    """
    Read model built from a HeadObject response.

    Storage class is never empty: S3 omits it for STANDARD objects, so
    the default is filled in here. Checksum fields that S3 did not return
    are empty strings.
    """

    etag: str = ""
    storage_class: str = StorageClass.STANDARD.value
    server_side_encryption: str = ""
    kms_key_id: str | None = None
    bucket_key_enabled: bool = False
    checksum_crc32: str = ""
    checksum_crc32c: str = ""
    checksum_sha1: str = ""
    checksum_sha256: str = ""
    object_lock_legal_hold_status: str = ""
    object_lock_mode: str = ""
    object_lock_retain_until_date: datetime | None = None
    version_id: str = ""
    content_type: str = ""
    content_length: int = 0
    cache_control: str = ""
    content_disposition: str = ""
    content_encoding: str = ""
    content_language: str = ""
    website_redirect: str = ""
    last_modified: datetime | None = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_head_response(cls, response: Dict[str, Any]) -> "ObjectMetadata":
        """
        Build metadata from a HeadObject response dictionary.

        Args:
            response: Response returned by the S3 client

        Returns:
            Populated ObjectMetadata
        """
        return cls(
            # See https://forums.aws.amazon.com/thread.jspa?threadID=44003
            etag=(response.get("ETag") or "").strip('"'),
            storage_class=response.get("StorageClass") or StorageClass.STANDARD.value,
            server_side_encryption=response.get("ServerSideEncryption") or "",
            kms_key_id=response.get("SSEKMSKeyId"),
            bucket_key_enabled=bool(response.get("BucketKeyEnabled", False)),
            checksum_crc32=response.get("ChecksumCRC32") or "",
            checksum_crc32c=response.get("ChecksumCRC32C") or "",
            checksum_sha1=response.get("ChecksumSHA1") or "",
            checksum_sha256=response.get("ChecksumSHA256") or "",
            object_lock_legal_hold_status=response.get("ObjectLockLegalHoldStatus") or "",
            object_lock_mode=response.get("ObjectLockMode") or "",
            object_lock_retain_until_date=response.get("ObjectLockRetainUntilDate"),
            version_id=response.get("VersionId") or "",
            content_type=response.get("ContentType") or "",
            content_length=int(response.get("ContentLength") or 0),
            cache_control=response.get("CacheControl") or "",
            content_disposition=response.get("ContentDisposition") or "",
            content_encoding=response.get("ContentEncoding") or "",
            content_language=response.get("ContentLanguage") or "",
            website_redirect=response.get("WebsiteRedirectLocation") or "",
            last_modified=response.get("LastModified"),
            metadata=dict(response.get("Metadata") or {}),
        )

    @property
    def retention(self) -> RetentionState:
        return RetentionState(
            legal_hold=_enum_or_none(LegalHoldStatus, self.object_lock_legal_hold_status),
            mode=_enum_or_none(ObjectLockMode, self.object_lock_mode),
            retain_until=self.object_lock_retain_until_date,
        )


def _enum_or_none(enum_type, value: str):
    if not value:
        return None
    try:
        return enum_type(value)
    except ValueError:
        return None


# RFC 3339 date-time: full date, "T", full time with a mandatory offset
_RFC3339_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}[Tt]\d{2}:\d{2}:\d{2}(\.\d{1,9})?([Zz]|[+-]\d{2}:\d{2})\Z"
)


def expand_object_date(value: str | None) -> datetime | None:
    """
    Parse an RFC 3339 timestamp.

    Returns None for empty or unparsable values. Other ISO 8601 forms
    (space separator, basic format, missing offset) are rejected.
    """
    if not value or not _RFC3339_PATTERN.match(value):
        return None
    try:
        return datetime.fromisoformat(value.upper().replace("Z", "+00:00"))
    except ValueError:
        return None


def flatten_object_date(value: datetime | None) -> str:
    """Format a timestamp as RFC 3339, or "" when unset."""
    if value is None:
        return ""
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    if value.utcoffset():
        return value.isoformat(timespec="seconds")
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


def clean_key(key: str) -> str:
    """
    Normalize an object key the way S3 URI cleaning does.

    Leading slashes are dropped and runs of slashes collapse to one.
    """
    key = key.lstrip("/")
    return re.sub(r"/+", "/", key)
