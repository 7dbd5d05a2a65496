# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Finder - Metadata lookup for a single object.

A missing object is reported as ObjectNotFoundError so callers refreshing
state can drop the resource instead of failing the whole operation.
"""

from s3obj.client import ObjectStorageClient
from s3obj.exceptions import EmptyResultError, ErrorKind, ObjectNotFoundError, S3OperationError
from s3obj.models import ObjectMetadata

# All of these come back as HTTP 404 on HEAD
_NOT_FOUND_KINDS = (ErrorKind.NOT_FOUND, ErrorKind.NO_SUCH_KEY, ErrorKind.NO_SUCH_BUCKET)


async def find_object(
    client: ObjectStorageClient,
    bucket: str,
    key: str,
    etag: str = "",
    checksum_algorithm: str = "",
    version_id: str = "",
) -> ObjectMetadata:
    """
    Fetch current metadata for one object.

    Args:
        client: Object storage client
        bucket: Bucket name
        key: Object key
        etag: Only match this ETag (stale-read guard)
        checksum_algorithm: When set, ask S3 to return checksum fields
        version_id: Specific version to inspect

    Returns:
        ObjectMetadata for the object

    Raises:
        ObjectNotFoundError: Object absent or ETag mismatch
        EmptyResultError: S3 returned an empty response
        S3OperationError: Any other failure
    """
    try:
        response = await client.head_object(
            bucket,
            key,
            version_id=version_id or None,
            if_match=etag or None,
            checksum_mode=bool(checksum_algorithm),
        )
    except S3OperationError as e:
        if e.kind in _NOT_FOUND_KINDS:
            raise ObjectNotFoundError(
                f"S3 Object ({bucket}/{key}) not found",
                details={"bucket": bucket, "key": key, "version_id": version_id},
            ) from e
        raise

    if not response:
        raise EmptyResultError(
            f"empty result reading S3 Object ({bucket}/{key})",
            details={"bucket": bucket, "key": key, "version_id": version_id},
        )

    return ObjectMetadata.from_head_response(response)
