# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Client - Thin typed wrapper around an aiobotocore S3 client.

The wrapper is the only place that knows about botocore error codes. Every
failure leaves it as an S3OperationError whose ErrorKind the deletion and
read paths branch on.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List

import structlog
from botocore.exceptions import BotoCoreError, ClientError

from s3obj.config import ProviderSettings
from s3obj.exceptions import ErrorKind, S3OperationError

logger = structlog.get_logger()

# Alias of the AWS managed key S3 uses for SSE-KMS when none is given
DEFAULT_KMS_KEY_ALIAS = "alias/aws/s3"


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map a botocore exception to an ErrorKind.

    Args:
        error: Exception raised by the S3 client

    Returns:
        The matching ErrorKind (OTHER when nothing more specific applies)
    """
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code", "")
        status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")

        if code == "NoSuchBucket":
            return ErrorKind.NO_SUCH_BUCKET
        if code == "NoSuchKey":
            return ErrorKind.NO_SUCH_KEY
        if code in ("AccessDenied", "Forbidden", "403"):
            return ErrorKind.ACCESS_DENIED
        # HEAD responses carry no body, so the code is just the status
        if status == 404 or code in ("404", "NotFound"):
            return ErrorKind.NOT_FOUND
        if status == 412 or code in ("412", "PreconditionFailed"):
            return ErrorKind.NOT_FOUND
        return ErrorKind.OTHER

    if isinstance(error, BotoCoreError):
        return ErrorKind.TRANSPORT

    return ErrorKind.OTHER


def _wrap_error(operation: str, error: Exception, details: Dict[str, Any]) -> S3OperationError:
    code = None
    if isinstance(error, ClientError):
        code = error.response.get("Error", {}).get("Code")
    return S3OperationError(
        f"{operation}: {error}",
        kind=classify_error(error),
        operation=operation,
        code=code,
        details=details,
    )


class ObjectStorageClient:
    """
    Object-storage API used by s3obj.

    Args:
        s3_client: An open aiobotocore S3 client
        kms_client: Optional open aiobotocore KMS client, used to tell the
            default S3 KMS key apart from customer keys
        list_page_size: MaxKeys for ListObjectVersions pages
    """

    def __init__(self, s3_client: Any, kms_client: Any = None, list_page_size: int = 1000):
        self._s3 = s3_client
        self._kms = kms_client
        self.list_page_size = list_page_size

    async def _call(self, operation: str, method: str, **params: Any) -> Dict[str, Any]:
        details = {k: params[k] for k in ("Bucket", "Key", "VersionId") if k in params}
        try:
            response = await getattr(self._s3, method)(**params)
        except (ClientError, BotoCoreError) as e:
            raise _wrap_error(operation, e, details) from e
        return response

    async def iter_object_version_pages(
        self,
        bucket: str,
        prefix: str = "",
    ) -> AsyncIterator[Dict[str, Any]]:
        """
        Yield raw ListObjectVersions pages.

        Page errors are raised as S3OperationError after the pages already
        yielded.
        """
        params: Dict[str, Any] = {
            "Bucket": bucket,
            "PaginationConfig": {"PageSize": self.list_page_size},
        }
        if prefix:
            params["Prefix"] = prefix

        paginator = self._s3.get_paginator("list_object_versions")
        try:
            async for page in paginator.paginate(**params):
                yield page
        except (ClientError, BotoCoreError) as e:
            raise _wrap_error("ListObjectVersions", e, {"Bucket": bucket, "Prefix": prefix}) from e

    async def head_object(
        self,
        bucket: str,
        key: str,
        *,
        version_id: str | None = None,
        if_match: str | None = None,
        checksum_mode: bool = False,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"Bucket": bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        if if_match:
            params["IfMatch"] = if_match
        if checksum_mode:
            params["ChecksumMode"] = "ENABLED"
        return await self._call("HeadObject", "head_object", **params)

    async def delete_object(
        self,
        bucket: str,
        key: str,
        *,
        version_id: str | None = None,
        bypass_governance_retention: bool = False,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"Bucket": bucket, "Key": key}
        if version_id:
            params["VersionId"] = version_id
        if bypass_governance_retention:
            params["BypassGovernanceRetention"] = True
        return await self._call("DeleteObject", "delete_object", **params)

    async def put_object_legal_hold(
        self,
        bucket: str,
        key: str,
        status: str,
        *,
        version_id: str | None = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "LegalHold": {"Status": status},
        }
        if version_id:
            params["VersionId"] = version_id
        return await self._call("PutObjectLegalHold", "put_object_legal_hold", **params)

    async def put_object_retention(
        self,
        bucket: str,
        key: str,
        *,
        mode: str | None,
        retain_until: datetime | None,
        version_id: str | None = None,
        bypass_governance_retention: bool = False,
    ) -> Dict[str, Any]:
        retention: Dict[str, Any] = {}
        if mode:
            retention["Mode"] = mode
        if retain_until is not None:
            retention["RetainUntilDate"] = retain_until

        params: Dict[str, Any] = {"Bucket": bucket, "Key": key, "Retention": retention}
        if version_id:
            params["VersionId"] = version_id
        if bypass_governance_retention:
            params["BypassGovernanceRetention"] = True
        return await self._call("PutObjectRetention", "put_object_retention", **params)

    async def put_object(self, **request: Any) -> Dict[str, Any]:
        return await self._call("PutObject", "put_object", **request)

    async def create_multipart_upload(self, **request: Any) -> Dict[str, Any]:
        return await self._call("CreateMultipartUpload", "create_multipart_upload", **request)

    async def upload_part(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        part_number: int,
        body: bytes,
        *,
        checksum_algorithm: str | None = None,
    ) -> Dict[str, Any]:
        """
        Upload one part and return its CompletedPart entry.
        """
        params: Dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "UploadId": upload_id,
            "PartNumber": part_number,
            "Body": body,
        }
        if checksum_algorithm:
            params["ChecksumAlgorithm"] = checksum_algorithm
        response = await self._call("UploadPart", "upload_part", **params)

        part: Dict[str, Any] = {"ETag": response["ETag"], "PartNumber": part_number}
        if checksum_algorithm:
            # CompleteMultipartUpload needs every part checksum
            checksum_field = f"Checksum{checksum_algorithm}"
            if response.get(checksum_field):
                part[checksum_field] = response[checksum_field]
        return part

    async def complete_multipart_upload(
        self,
        bucket: str,
        key: str,
        upload_id: str,
        parts: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        return await self._call(
            "CompleteMultipartUpload",
            "complete_multipart_upload",
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": parts},
        )

    async def abort_multipart_upload(self, bucket: str, key: str, upload_id: str) -> Dict[str, Any]:
        return await self._call(
            "AbortMultipartUpload",
            "abort_multipart_upload",
            Bucket=bucket,
            Key=key,
            UploadId=upload_id,
        )

    async def put_object_acl(self, bucket: str, key: str, acl: str) -> Dict[str, Any]:
        return await self._call("PutObjectAcl", "put_object_acl", Bucket=bucket, Key=key, ACL=acl)

    async def get_object_tagging(self, bucket: str, key: str) -> Dict[str, str]:
        response = await self._call("GetObjectTagging", "get_object_tagging", Bucket=bucket, Key=key)
        return {tag["Key"]: tag["Value"] for tag in response.get("TagSet", [])}

    async def put_object_tagging(self, bucket: str, key: str, tags: Dict[str, str]) -> Dict[str, Any]:
        tag_set = [{"Key": k, "Value": v} for k, v in tags.items()]
        return await self._call(
            "PutObjectTagging",
            "put_object_tagging",
            Bucket=bucket,
            Key=key,
            Tagging={"TagSet": tag_set},
        )

    async def delete_object_tagging(self, bucket: str, key: str) -> Dict[str, Any]:
        return await self._call("DeleteObjectTagging", "delete_object_tagging", Bucket=bucket, Key=key)

    async def head_bucket(self, bucket: str) -> Dict[str, Any]:
        return await self._call("HeadBucket", "head_bucket", Bucket=bucket)

    async def default_kms_key_arn(self) -> str | None:
        """
        ARN of the AWS managed S3 KMS key, or None without a KMS client.
        """
        if self._kms is None:
            return None
        try:
            response = await self._kms.describe_key(KeyId=DEFAULT_KMS_KEY_ALIAS)
        except (ClientError, BotoCoreError) as e:
            raise _wrap_error("DescribeKey", e, {"KeyId": DEFAULT_KMS_KEY_ALIAS}) from e
        return response.get("KeyMetadata", {}).get("Arn")


@asynccontextmanager
async def create_object_storage_client(
    settings: ProviderSettings,
    session: Any = None,
    with_kms: bool = True,
) -> AsyncIterator[ObjectStorageClient]:
    """
    Open S3 (and KMS) clients and yield an ObjectStorageClient.

    Args:
        settings: Provider settings (region, endpoint, page size)
        session: aiobotocore session, created when not given
        with_kms: Also open a KMS client for default-key detection

    Yields:
        ObjectStorageClient bound to the open clients
    """
    from aiobotocore.session import get_session

    session = session or get_session()

    async with AsyncExitStack() as stack:
        s3_client = await stack.enter_async_context(
            session.create_client(
                "s3",
                region_name=settings.region,
                endpoint_url=settings.endpoint_url,
            )
        )
        kms_client = None
        if with_kms:
            kms_client = await stack.enter_async_context(
                session.create_client("kms", region_name=settings.region)
            )

        logger.debug(
            "object_storage_client_opened",
            region=settings.region,
            endpoint_url=settings.endpoint_url,
            kms=with_kms,
        )

        yield ObjectStorageClient(
            s3_client,
            kms_client=kms_client,
            list_page_size=settings.list_page_size,
        )
