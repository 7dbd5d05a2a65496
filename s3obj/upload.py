# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Upload - PutObject request assembly and multipart uploads.

Only attributes that were explicitly configured are sent; everything else
is left to the bucket defaults.
"""

import base64
import binascii
import io
import math
import os
from typing import Any, Dict, List

import aiofiles
import aiofiles.os
import structlog

from s3obj.client import ObjectStorageClient
from s3obj.config import ObjectConfig
from s3obj.exceptions import S3OperationError, UploadError
from s3obj.models import (
    DEFAULT_LOCK_CHECKSUM_ALGORITHM,
    ServerSideEncryption,
    clean_key,
    expand_object_date,
)
from s3obj.tags import encode_tagging, ignore_system_tags

logger = structlog.get_logger()

# S3 minimum part size; files above it are uploaded in parts
MULTIPART_PART_SIZE = 5 * 1024 * 1024
MAX_UPLOAD_PARTS = 10_000


async def open_object_body(config: ObjectConfig) -> io.BytesIO:
    """
    Build the seekable body of an object.

    Priority: source file > content > content_base64 > empty body.

    Args:
        config: Object configuration

    Returns:
        In-memory stream positioned at the start

    Raises:
        UploadError: Source file unreadable or base64 content invalid
    """
    if config.source:
        path = os.path.expanduser(config.source)
        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except OSError as e:
            raise UploadError(
                f"opening S3 object source ({path}): {e}",
                details={"source": config.source},
            ) from e
        return io.BytesIO(data)

    if config.content:
        return io.BytesIO(config.content.encode("utf-8"))

    if config.content_base64:
        # Decoded up front, the request body must be seekable
        try:
            raw = base64.b64decode(config.content_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise UploadError(f"decoding content_base64: {e}") from e
        return io.BytesIO(raw)

    return io.BytesIO(b"")


def build_put_object_request(
    config: ObjectConfig,
    body: Any,
    tags: Dict[str, str] | None = None,
) -> Dict[str, Any]:
    """
    Build PutObject parameters from a configuration.

    Args:
        config: Object configuration
        body: Readable, seekable body
        tags: Tags to apply (already merged with provider defaults)

    Returns:
        Keyword arguments for PutObject
    """
    request: Dict[str, Any] = {
        "Body": body,
        "Bucket": config.bucket,
        "Key": clean_key(config.key),
    }

    if config.acl:
        request["ACL"] = config.acl

    if config.bucket_key_enabled:
        request["BucketKeyEnabled"] = True

    if config.cache_control:
        request["CacheControl"] = config.cache_control

    if config.checksum_algorithm:
        request["ChecksumAlgorithm"] = config.checksum_algorithm

    if config.content_disposition:
        request["ContentDisposition"] = config.content_disposition

    if config.content_encoding:
        request["ContentEncoding"] = config.content_encoding

    if config.content_language:
        request["ContentLanguage"] = config.content_language

    if config.content_type:
        request["ContentType"] = config.content_type

    if config.kms_key_id:
        request["SSEKMSKeyId"] = config.kms_key_id
        request["ServerSideEncryption"] = ServerSideEncryption.AWS_KMS.value

    if config.metadata:
        request["Metadata"] = dict(config.metadata)

    if config.object_lock_legal_hold_status:
        request["ObjectLockLegalHoldStatus"] = config.object_lock_legal_hold_status

    if config.object_lock_mode:
        request["ObjectLockMode"] = config.object_lock_mode

    if config.object_lock_retain_until_date:
        request["ObjectLockRetainUntilDate"] = expand_object_date(
            config.object_lock_retain_until_date
        )

    if config.server_side_encryption:
        request["ServerSideEncryption"] = config.server_side_encryption

    if config.storage_class:
        request["StorageClass"] = config.storage_class

    if tags and ignore_system_tags(tags):
        request["Tagging"] = encode_tagging(tags)

    if config.website_redirect:
        request["WebsiteRedirectLocation"] = config.website_redirect

    # Content-MD5 or x-amz-checksum-* is required with object lock parameters
    if config.has_object_lock and "ChecksumAlgorithm" not in request:
        request["ChecksumAlgorithm"] = DEFAULT_LOCK_CHECKSUM_ALGORITHM.value

    return request


async def upload_object(
    client: ObjectStorageClient,
    config: ObjectConfig,
    tags: Dict[str, str] | None = None,
    part_size: int = MULTIPART_PART_SIZE,
) -> Dict[str, Any]:
    """
    Upload an object as described by its configuration.

    Source files larger than part_size are sent as a multipart upload and
    never held in memory as a whole.

    Args:
        client: Object storage client
        config: Object configuration
        tags: Tags to apply
        part_size: Multipart threshold and part size in bytes

    Returns:
        The PutObject or CompleteMultipartUpload response
    """
    if config.source:
        path = os.path.expanduser(config.source)
        size = await _source_size(path)
        if size > part_size:
            return await upload_object_multipart(client, config, path, size, tags, part_size)

    body = await open_object_body(config)
    request = build_put_object_request(config, body, tags)

    logger.info(
        "object_uploading",
        bucket=request["Bucket"],
        key=request["Key"],
        size=body.getbuffer().nbytes,
    )

    try:
        return await client.put_object(**request)
    finally:
        body.close()


async def upload_object_multipart(
    client: ObjectStorageClient,
    config: ObjectConfig,
    path: str,
    size: int,
    tags: Dict[str, str] | None = None,
    part_size: int = MULTIPART_PART_SIZE,
) -> Dict[str, Any]:
    """
    Upload a source file in parts.

    Parts are read and sent one at a time. Any failure, cancellation
    included, aborts the upload.

    Args:
        client: Object storage client
        config: Object configuration
        path: Expanded source file path
        size: Source file size in bytes
        tags: Tags to apply
        part_size: Requested part size in bytes

    Returns:
        The CompleteMultipartUpload response
    """
    # S3 allows at most 10,000 parts per upload
    part_size = max(part_size, math.ceil(size / MAX_UPLOAD_PARTS))

    request = build_put_object_request(config, None, tags)
    del request["Body"]
    bucket = request["Bucket"]
    key = request["Key"]
    checksum_algorithm = request.get("ChecksumAlgorithm")

    logger.info(
        "object_multipart_uploading",
        bucket=bucket,
        key=key,
        size=size,
        part_size=part_size,
    )

    created = await client.create_multipart_upload(**request)
    upload_id = created["UploadId"]

    try:
        parts = await _upload_parts(
            client, path, bucket, key, upload_id, part_size, checksum_algorithm
        )
        return await client.complete_multipart_upload(bucket, key, upload_id, parts)
    except BaseException:
        await _abort_multipart_upload(client, bucket, key, upload_id)
        raise


async def _source_size(path: str) -> int:
    try:
        stat = await aiofiles.os.stat(path)
    except OSError as e:
        raise UploadError(
            f"opening S3 object source ({path}): {e}",
            details={"source": path},
        ) from e
    return stat.st_size


async def _upload_parts(
    client: ObjectStorageClient,
    path: str,
    bucket: str,
    key: str,
    upload_id: str,
    part_size: int,
    checksum_algorithm: str | None,
) -> List[Dict[str, Any]]:
    parts: List[Dict[str, Any]] = []
    try:
        async with aiofiles.open(path, "rb") as f:
            while True:
                chunk = await f.read(part_size)
                if not chunk:
                    break
                part = await client.upload_part(
                    bucket,
                    key,
                    upload_id,
                    len(parts) + 1,
                    chunk,
                    checksum_algorithm=checksum_algorithm,
                )
                parts.append(part)
    except OSError as e:
        raise UploadError(
            f"reading S3 object source ({path}): {e}",
            details={"source": path, "parts_uploaded": len(parts)},
        ) from e
    return parts


async def _abort_multipart_upload(
    client: ObjectStorageClient,
    bucket: str,
    key: str,
    upload_id: str,
) -> None:
    try:
        await client.abort_multipart_upload(bucket, key, upload_id)
    except S3OperationError as e:
        # The original failure is the one worth raising
        logger.warning(
            "object_multipart_abort_failed",
            bucket=bucket,
            key=key,
            upload_id=upload_id,
            error=str(e),
        )
