# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Configuration - Typed desired state, observed state and settings.

ObjectConfig and ProviderSettings are frozen (immutable) after creation and
validated once, so the rest of the package only handles typed fields.
ObjectState is the mutable record the resource handler fills in on read.
"""

from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Dict, List
import re

from s3obj.errors import (
    explain_conflicting_body_sources,
    explain_invalid_choice,
    explain_invalid_retain_until_date,
    explain_uppercase_metadata_key,
)
from s3obj.models import (
    ChecksumAlgorithm,
    LegalHoldStatus,
    ObjectCannedACL,
    ObjectLockMode,
    ServerSideEncryption,
    StorageClass,
    expand_object_date,
)

_ARN_PATTERN = re.compile(r"^arn:[^:]+:[^:]+:[^:]*:[^:]*:.+$")


def _validate_choice(errors: List[str], field_name: str, value: str | None, enum_type) -> None:
    if value is None:
        return
    choices = [member.value for member in enum_type]
    if value not in choices:
        errors.append(explain_invalid_choice(field_name, value, choices))


def _validate_metadata(metadata: Dict[str, str]) -> List[str]:
    """Metadata keys must be lowercase, S3 lowercases them on write."""
    return [
        explain_uppercase_metadata_key(key)
        for key in metadata
        if key != key.lower()
    ]


@dataclass(frozen=True)
class ProviderSettings:
    """
    Settings shared by every object handled through one client.
    """

    # AWS region (default: us-east-1)
    region: str = "us-east-1"

    # Custom S3 endpoint (MinIO, Ceph, localstack...)
    endpoint_url: str | None = None

    # Tags applied to every object, overridden by per-object tags
    default_tags: Dict[str, str] = field(default_factory=dict)

    # MaxKeys for ListObjectVersions pages
    list_page_size: int = 1000

    # SQLite journal of bulk deletions, disabled when None
    journal_path: Path | None = None

    def __post_init__(self) -> None:
        """Validate settings after creation."""
        errors: List[str] = []

        if not self.region:
            errors.append("region must not be empty")

        if not 1 <= self.list_page_size <= 1000:
            errors.append(f"list_page_size must be between 1 and 1000, got {self.list_page_size}")

        for key in self.default_tags:
            if not key:
                errors.append("default_tags keys must not be empty")

        if errors:
            from s3obj.exceptions import ConfigurationError

            raise ConfigurationError(
                "Settings validation failed",
                details={"errors": errors},
            )

    def with_updates(self, **kwargs) -> "ProviderSettings":
        """
        Create new settings with updated values.

        Since the settings are frozen, this creates a new instance.
        """
        current = asdict(self)
        current.update(kwargs)
        return ProviderSettings(**current)


@dataclass(frozen=True)
class ObjectConfig:
    """
    Desired state of one S3 object.

    Attributes left as None are not sent to S3 at all.
    """

    # Required: bucket name (or access point ARN) and object key
    bucket: str
    key: str

    acl: str | None = None
    bucket_key_enabled: bool | None = None
    cache_control: str | None = None
    checksum_algorithm: str | None = None

    # Body sources, at most one may be set
    source: str | None = None
    content: str | None = None
    content_base64: str | None = None

    content_disposition: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    content_type: str | None = None
    etag: str | None = None

    # Delete every version, bypassing governance retention and legal holds
    force_destroy: bool = False

    kms_key_id: str | None = None
    metadata: Dict[str, str] = field(default_factory=dict)
    object_lock_legal_hold_status: str | None = None
    object_lock_mode: str | None = None
    object_lock_retain_until_date: str | None = None
    server_side_encryption: str | None = None
    source_hash: str | None = None
    storage_class: str | None = None
    tags: Dict[str, str] = field(default_factory=dict)
    website_redirect: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration after creation."""
        errors: List[str] = []

        if not self.bucket:
            errors.append("bucket must not be empty")

        if not self.key:
            errors.append("key must not be empty")

        sources = [
            name
            for name in ("source", "content", "content_base64")
            if getattr(self, name) is not None
        ]
        if len(sources) > 1:
            errors.append(explain_conflicting_body_sources(sources))

        # The ETag of an SSE-KMS object is not the MD5 of its body
        if self.etag and self.kms_key_id:
            errors.append("etag conflicts with kms_key_id")

        if self.kms_key_id and not _ARN_PATTERN.match(self.kms_key_id):
            errors.append(f"kms_key_id must be an ARN, got {self.kms_key_id!r}")

        _validate_choice(errors, "acl", self.acl, ObjectCannedACL)
        _validate_choice(errors, "checksum_algorithm", self.checksum_algorithm, ChecksumAlgorithm)
        _validate_choice(
            errors,
            "object_lock_legal_hold_status",
            self.object_lock_legal_hold_status,
            LegalHoldStatus,
        )
        _validate_choice(errors, "object_lock_mode", self.object_lock_mode, ObjectLockMode)
        _validate_choice(
            errors, "server_side_encryption", self.server_side_encryption, ServerSideEncryption
        )
        _validate_choice(errors, "storage_class", self.storage_class, StorageClass)

        if self.object_lock_retain_until_date and expand_object_date(
            self.object_lock_retain_until_date
        ) is None:
            errors.append(explain_invalid_retain_until_date(self.object_lock_retain_until_date))

        errors.extend(_validate_metadata(self.metadata))

        if errors:
            from s3obj.exceptions import ConfigurationError

            raise ConfigurationError(
                "Object configuration validation failed",
                details={"errors": errors},
            )

    @property
    def has_object_lock(self) -> bool:
        return bool(
            self.object_lock_legal_hold_status
            or self.object_lock_mode
            or self.object_lock_retain_until_date
        )

    def with_updates(self, **kwargs) -> "ObjectConfig":
        """
        Create a new config with updated values.

        Since the config is frozen, this creates a new instance.
        """
        current = asdict(self)
        current.update(kwargs)
        return ObjectConfig(**current)


@dataclass
class ObjectState:
    """
    Stored and observed state of one S3 object.

    Carries every ObjectConfig attribute plus the values only S3 can
    compute (version, checksums, merged tags).
    """

    id: str
    bucket: str
    key: str

    acl: str | None = None
    bucket_key_enabled: bool | None = None
    cache_control: str | None = None
    checksum_algorithm: str | None = None
    source: str | None = None
    content: str | None = None
    content_base64: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    content_type: str | None = None
    etag: str | None = None
    force_destroy: bool = False
    kms_key_id: str | None = None
    metadata: Dict[str, str] = field(default_factory=dict)
    object_lock_legal_hold_status: str | None = None
    object_lock_mode: str | None = None
    object_lock_retain_until_date: str | None = None
    server_side_encryption: str | None = None
    source_hash: str | None = None
    storage_class: str | None = None
    tags: Dict[str, str] = field(default_factory=dict)
    website_redirect: str | None = None

    # Computed
    version_id: str = ""
    checksum_crc32: str = ""
    checksum_crc32c: str = ""
    checksum_sha1: str = ""
    checksum_sha256: str = ""
    tags_all: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: ObjectConfig, id: str = "") -> "ObjectState":
        """Seed a state record from the desired configuration."""
        values = {f.name: getattr(config, f.name) for f in fields(ObjectConfig)}
        values["metadata"] = dict(config.metadata)
        values["tags"] = dict(config.tags)
        return cls(id=id, **values)
