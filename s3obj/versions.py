# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Versions - Listing and deletion of object versions.

This module removes every version and delete marker of a key (or of a whole
bucket) from buckets that may have versioning and object lock enabled:

1. Versions are deleted first, bypassing governance retention when forced.
   A forced delete denied by an active legal hold clears the hold and is
   retried exactly once.
2. Delete markers are deleted in a second pass. They carry no object lock,
   so they never take the bypass or the legal hold path.

A failure on one item never stops the scan. The last failure is kept and
reported once the pass is complete.
"""

from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, List

import structlog
from ulid import ULID

from s3obj.client import ObjectStorageClient
from s3obj.exceptions import DeleteObjectsError, ErrorKind, S3OperationError
from s3obj.finder import find_object
from s3obj.models import (
    LegalHoldStatus,
    ObjectVersion,
    ReconciliationResult,
    VersionOutcome,
)

logger = structlog.get_logger()

# Receives one VersionOutcome per attempted version or delete marker
Recorder = Callable[[VersionOutcome], Awaitable[None]]


@dataclass
class VersionPage:
    """One ListObjectVersions page."""

    versions: List[ObjectVersion] = field(default_factory=list)
    delete_markers: List[ObjectVersion] = field(default_factory=list)


class ObjectVersionListing:
    """
    Lazy, restartable listing of versions and delete markers.

    Each `async for` over the listing starts a fresh paginated scan. A
    missing bucket ends the scan quietly; any other page error is raised
    after the pages that were already produced.

    Args:
        client: Object storage client
        bucket: Bucket to list
        key: Only entries whose key equals this value ("" lists everything)
    """

    def __init__(self, client: ObjectStorageClient, bucket: str, key: str = ""):
        self.client = client
        self.bucket = bucket
        self.key = key

    def __aiter__(self) -> AsyncIterator[VersionPage]:
        return self._pages()

    async def _pages(self) -> AsyncIterator[VersionPage]:
        try:
            async for page in self.client.iter_object_version_pages(self.bucket, self.key):
                yield VersionPage(
                    versions=[
                        ObjectVersion(
                            bucket=self.bucket,
                            key=entry.get("Key", ""),
                            version_id=entry.get("VersionId") or "",
                        )
                        for entry in page.get("Versions", [])
                    ],
                    delete_markers=[
                        ObjectVersion(
                            bucket=self.bucket,
                            key=entry.get("Key", ""),
                            version_id=entry.get("VersionId") or "",
                            is_delete_marker=True,
                        )
                        for entry in page.get("DeleteMarkers", [])
                    ],
                )
        except S3OperationError as e:
            if e.kind == ErrorKind.NO_SUCH_BUCKET:
                logger.debug("object_versions_bucket_missing", bucket=self.bucket)
                return
            raise

    def _matches(self, version: ObjectVersion) -> bool:
        # The listing prefix also returns longer keys
        return not self.key or version.key == self.key

    async def versions(self) -> AsyncIterator[ObjectVersion]:
        """Iterate object versions matching the key filter."""
        async for page in self:
            for version in page.versions:
                if self._matches(version):
                    yield version

    async def delete_markers(self) -> AsyncIterator[ObjectVersion]:
        """Iterate delete markers matching the key filter."""
        async for page in self:
            for marker in page.delete_markers:
                if self._matches(marker):
                    yield marker


async def delete_object_version(
    client: ObjectStorageClient,
    bucket: str,
    key: str,
    version_id: str = "",
    force: bool = False,
) -> None:
    """
    Delete one object version.

    A missing bucket or key counts as already deleted.

    Args:
        client: Object storage client
        bucket: Bucket name
        key: Object key
        version_id: Version to delete ("" deletes the current version)
        force: Bypass governance-mode retention

    Raises:
        S3OperationError: Any failure other than NoSuchBucket/NoSuchKey
    """
    logger.info(
        "object_version_deleting",
        bucket=bucket,
        key=key,
        version_id=version_id,
        force=force,
    )

    try:
        await client.delete_object(
            bucket,
            key,
            version_id=version_id or None,
            bypass_governance_retention=force,
        )
    except S3OperationError as e:
        logger.warning(
            "object_version_delete_failed",
            bucket=bucket,
            key=key,
            version_id=version_id,
            error=str(e),
        )
        if e.kind in (ErrorKind.NO_SUCH_BUCKET, ErrorKind.NO_SUCH_KEY):
            return
        raise


async def clear_legal_hold(
    client: ObjectStorageClient,
    bucket: str,
    key: str,
    version_id: str,
) -> bool:
    """
    Turn off the legal hold of a version if it is on.

    Args:
        client: Object storage client
        bucket: Bucket name
        key: Object key
        version_id: Version whose hold is cleared

    Returns:
        True if a hold was cleared, False if none was active

    Raises:
        S3OperationError: Metadata fetch or legal hold update failed
    """
    metadata = await find_object(client, bucket, key, version_id=version_id)

    if not metadata.retention.legal_hold_active:
        return False

    await client.put_object_legal_hold(
        bucket,
        key,
        LegalHoldStatus.OFF.value,
        version_id=version_id,
    )

    logger.info("legal_hold_cleared", bucket=bucket, key=key, version_id=version_id)
    return True


async def _delete_version(
    client: ObjectStorageClient,
    version: ObjectVersion,
    force: bool,
) -> S3OperationError | None:
    """Delete a version, going through the legal hold path when forced."""
    try:
        await delete_object_version(client, version.bucket, version.key, version.version_id, force)
        return None
    except S3OperationError as e:
        if not (force and e.kind == ErrorKind.ACCESS_DENIED):
            return e
        denied = e

    try:
        cleared = await clear_legal_hold(client, version.bucket, version.key, version.version_id)
    except S3OperationError as e:
        logger.error(
            "legal_hold_clear_failed",
            bucket=version.bucket,
            key=version.key,
            version_id=version.version_id,
            error=str(e),
        )
        return e

    if not cleared:
        # Denied for a reason other than a legal hold
        error = S3OperationError(
            f"deleting S3 Bucket ({version.bucket}) Object ({version.key}) "
            f"Version ({version.version_id}): {denied}",
            kind=denied.kind,
            operation=denied.operation,
            code=denied.code,
            details=denied.details,
        )
        error.__cause__ = denied
        return error

    try:
        await delete_object_version(client, version.bucket, version.key, version.version_id, force)
    except S3OperationError as e:
        return e
    return None


async def _delete_marker(client: ObjectStorageClient, marker: ObjectVersion) -> S3OperationError | None:
    try:
        await delete_object_version(client, marker.bucket, marker.key, marker.version_id, force=False)
    except S3OperationError as e:
        return e
    return None


async def _emit(
    recorder: Recorder | None,
    result: ReconciliationResult,
    version: ObjectVersion,
    error: BaseException | None,
) -> None:
    if recorder is None:
        return
    outcome = VersionOutcome(
        run_id=result.run_id,
        bucket=version.bucket,
        key=version.key,
        version_id=version.version_id,
        is_delete_marker=version.is_delete_marker,
        deleted=error is None,
        error=str(error) if error is not None else None,
    )
    try:
        await recorder(outcome)
    except Exception as e:
        logger.warning(
            "version_outcome_record_failed",
            run_id=result.run_id,
            key=version.key,
            version_id=version.version_id,
            error=str(e),
        )


def _tally(result: ReconciliationResult, error: S3OperationError | None) -> None:
    if error is None:
        result.deleted_count += 1
    else:
        result.failed_count += 1
        result.last_error = error


async def delete_all_object_versions(
    client: ObjectStorageClient,
    bucket: str,
    key: str = "",
    force: bool = False,
    ignore_errors: bool = False,
    recorder: Recorder | None = None,
    run_id: str | None = None,
) -> ReconciliationResult:
    """
    Delete every version and delete marker of a key.

    If key is empty then all versions of all objects in the bucket are
    deleted.

    Args:
        client: Object storage client
        bucket: Bucket name
        key: Exact key to purge ("" purges the bucket)
        force: Override object lock protections (governance retention,
            legal holds)
        ignore_errors: Finish without raising when individual deletions fail
        recorder: Optional async callable notified of every attempt
        run_id: Identifier for this run (a new ULID by default)

    Returns:
        ReconciliationResult with the number of deleted entries

    Raises:
        DeleteObjectsError: A listing failed, or a deletion failed and
            ignore_errors is False. The partial result is attached.
    """
    result = ReconciliationResult(run_id=run_id or str(ULID()))
    listing = ObjectVersionListing(client, bucket, key)
    details = {"bucket": bucket, "key": key, "run_id": result.run_id}

    logger.info(
        "object_versions_deleting",
        run_id=result.run_id,
        bucket=bucket,
        key=key,
        force=force,
        ignore_errors=ignore_errors,
    )

    try:
        async for version in listing.versions():
            error = await _delete_version(client, version, force)
            _tally(result, error)
            await _emit(recorder, result, version, error)
    except S3OperationError as e:
        raise DeleteObjectsError(
            f"listing S3 Bucket ({bucket}) object versions: {e}", result, details
        ) from e

    if result.last_error is not None:
        if not ignore_errors:
            raise DeleteObjectsError(
                f"deleting at least one S3 Object version, last error: {result.last_error}",
                result,
                details,
            ) from result.last_error

        logger.warning(
            "object_version_errors_ignored",
            run_id=result.run_id,
            failed=result.failed_count,
            last_error=str(result.last_error),
        )
        result.last_error = None

    try:
        async for marker in listing.delete_markers():
            error = await _delete_marker(client, marker)
            _tally(result, error)
            await _emit(recorder, result, marker, error)
    except S3OperationError as e:
        raise DeleteObjectsError(
            f"listing S3 Bucket ({bucket}) object versions: {e}", result, details
        ) from e

    if result.last_error is not None:
        if not ignore_errors:
            raise DeleteObjectsError(
                f"deleting at least one S3 Object delete marker, last error: {result.last_error}",
                result,
                details,
            ) from result.last_error

        logger.warning(
            "delete_marker_errors_ignored",
            run_id=result.run_id,
            failed=result.failed_count,
            last_error=str(result.last_error),
        )
        result.last_error = None

    logger.info(
        "object_versions_deleted",
        run_id=result.run_id,
        bucket=bucket,
        key=key,
        deleted=result.deleted_count,
        failed=result.failed_count,
    )

    return result
