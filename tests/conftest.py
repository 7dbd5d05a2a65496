# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Test fixtures for s3obj tests.

Provides an in-memory S3 client with versioning, object lock and error
injection, plus configuration helpers.
"""

import hashlib
import itertools
import os
import tempfile
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Dict, Generator, List
from urllib.parse import parse_qsl

import pytest
import pytest_asyncio
from botocore.exceptions import ClientError

# Set test environment variables
os.environ["S3OBJ_ADMIN_API_KEY"] = "test-api-key-12345"

_STATUS_BY_CODE = {
    "NoSuchBucket": 404,
    "NoSuchKey": 404,
    "404": 404,
    "AccessDenied": 403,
    "412": 412,
    "InternalError": 500,
    "SlowDown": 503,
}


def make_client_error(code: str, operation: str, status: int | None = None) -> ClientError:
    """Build a botocore ClientError the way S3 responses produce them."""
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} (fake)"},
            "ResponseMetadata": {"HTTPStatusCode": status or _STATUS_BY_CODE.get(code, 400)},
        },
        operation,
    )


class FakePaginator:
    """Stand-in for the aiobotocore ListObjectVersions paginator."""

    def __init__(self, s3: "FakeS3Client"):
        self.s3 = s3

    def paginate(self, **params: Any):
        return self._pages(**params)

    async def _pages(self, Bucket: str, Prefix: str = "", PaginationConfig: dict | None = None):
        self.s3.calls.append(("list_object_versions", {"Bucket": Bucket, "Prefix": Prefix}))
        self.s3.list_scans += 1

        if Bucket not in self.s3.buckets:
            raise make_client_error("NoSuchBucket", "ListObjectVersions")

        page_size = (PaginationConfig or {}).get("PageSize") or 1000
        entries = [
            e for e in self.s3.buckets[Bucket]["entries"] if e["Key"].startswith(Prefix)
        ]

        for page_number, start in enumerate(range(0, max(len(entries), 1), page_size)):
            if self.s3.list_error_on_page == page_number:
                raise make_client_error(self.s3.list_error_code, "ListObjectVersions")

            chunk = entries[start:start + page_size]
            yield {
                "Versions": [
                    {"Key": e["Key"], "VersionId": e["VersionId"], "IsLatest": False}
                    for e in chunk
                    if not e["IsDeleteMarker"]
                ],
                "DeleteMarkers": [
                    {"Key": e["Key"], "VersionId": e["VersionId"], "IsLatest": False}
                    for e in chunk
                    if e["IsDeleteMarker"]
                ],
            }


class FakeS3Client:
    """
    In-memory S3 client exposing the aiobotocore methods s3obj calls.

    Buckets are versioned: every put adds a version and an unversioned
    delete adds a delete marker.
    """

    def __init__(self):
        self.buckets: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []
        self.injected: List[Dict[str, Any]] = []
        self.list_error_on_page: int | None = None
        self.list_error_code = "InternalError"
        self.list_scans = 0
        self.uploads: Dict[str, Dict[str, Any]] = {}
        self._version_ids = itertools.count(1)

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def create_bucket(self, bucket: str) -> None:
        self.buckets[bucket] = {"entries": []}

    def add_version(
        self,
        bucket: str,
        key: str,
        body: bytes = b"test content",
        legal_hold: str | None = None,
        retention_mode: str | None = None,
        **extra: Any,
    ) -> str:
        version_id = f"v{next(self._version_ids)}"
        self.buckets[bucket]["entries"].append({
            "Key": key,
            "VersionId": version_id,
            "IsDeleteMarker": False,
            "Body": body,
            "ETag": hashlib.md5(body).hexdigest(),
            "LegalHold": legal_hold,
            "RetentionMode": retention_mode,
            "Tags": {},
            "LastModified": datetime.now(UTC),
            **extra,
        })
        return version_id

    def add_delete_marker(self, bucket: str, key: str) -> str:
        version_id = f"dm{next(self._version_ids)}"
        self.buckets[bucket]["entries"].append({
            "Key": key,
            "VersionId": version_id,
            "IsDeleteMarker": True,
        })
        return version_id

    def fail(
        self,
        method: str,
        code: str,
        key: str | None = None,
        version_id: str | None = None,
        times: int = 1,
    ) -> None:
        """Make the next `times` matching calls of `method` fail with `code`."""
        self.injected.append({
            "method": method,
            "code": code,
            "key": key,
            "version_id": version_id,
            "times": times,
        })

    def entries(self, bucket: str, key: str | None = None) -> List[Dict[str, Any]]:
        return [
            e for e in self.buckets[bucket]["entries"] if key is None or e["Key"] == key
        ]

    def calls_to(self, method: str) -> List[dict]:
        return [params for name, params in self.calls if name == method]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record(self, method: str, operation: str, params: Dict[str, Any]) -> None:
        self.calls.append((method, params))
        for injection in self.injected:
            if injection["method"] != method or injection["times"] <= 0:
                continue
            if injection["key"] is not None and injection["key"] != params.get("Key"):
                continue
            if injection["version_id"] is not None and injection["version_id"] != params.get("VersionId"):
                continue
            injection["times"] -= 1
            raise make_client_error(injection["code"], operation)

    def _bucket(self, bucket: str, operation: str) -> Dict[str, Any]:
        if bucket not in self.buckets:
            raise make_client_error("NoSuchBucket", operation)
        return self.buckets[bucket]

    def _find(self, bucket: str, key: str, version_id: str | None, operation: str) -> Dict[str, Any] | None:
        entries = [e for e in self._bucket(bucket, operation)["entries"] if e["Key"] == key]
        if version_id:
            matches = [e for e in entries if e["VersionId"] == version_id]
            return matches[0] if matches else None
        return entries[-1] if entries else None

    # ------------------------------------------------------------------
    # aiobotocore surface
    # ------------------------------------------------------------------

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_object_versions"
        return FakePaginator(self)

    async def head_object(self, **params: Any) -> Dict[str, Any]:
        self._record("head_object", "HeadObject", params)
        # HEAD errors have no body, botocore reports the status as the code
        if params["Bucket"] not in self.buckets:
            raise make_client_error("404", "HeadObject")

        entry = self._find(params["Bucket"], params["Key"], params.get("VersionId"), "HeadObject")
        if entry is None or entry["IsDeleteMarker"]:
            raise make_client_error("404", "HeadObject")

        if params.get("IfMatch") and params["IfMatch"] != entry["ETag"]:
            raise make_client_error("412", "HeadObject")

        response: Dict[str, Any] = {
            "ETag": f'"{entry["ETag"]}"',
            "VersionId": entry["VersionId"],
            "ContentLength": len(entry["Body"]),
            "ContentType": entry.get("ContentType", "binary/octet-stream"),
            "LastModified": entry["LastModified"],
            "Metadata": entry.get("Metadata", {}),
        }
        if entry.get("StorageClass") and entry["StorageClass"] != "STANDARD":
            response["StorageClass"] = entry["StorageClass"]
        if entry["LegalHold"]:
            response["ObjectLockLegalHoldStatus"] = entry["LegalHold"]
        if entry["RetentionMode"]:
            response["ObjectLockMode"] = entry["RetentionMode"]
        if entry.get("RetainUntil"):
            response["ObjectLockRetainUntilDate"] = entry["RetainUntil"]
        for field_name in ("ServerSideEncryption", "SSEKMSKeyId", "CacheControl"):
            if entry.get(field_name):
                response[field_name] = entry[field_name]
        if params.get("ChecksumMode") == "ENABLED" and entry.get("ChecksumCRC32"):
            response["ChecksumCRC32"] = entry["ChecksumCRC32"]
        return response

    async def delete_object(self, **params: Any) -> Dict[str, Any]:
        self._record("delete_object", "DeleteObject", params)
        bucket = self._bucket(params["Bucket"], "DeleteObject")
        version_id = params.get("VersionId")

        if not version_id:
            marker = self.add_delete_marker(params["Bucket"], params["Key"])
            return {"DeleteMarker": True, "VersionId": marker}

        entry = self._find(params["Bucket"], params["Key"], version_id, "DeleteObject")
        if entry is None:
            raise make_client_error("NoSuchKey", "DeleteObject")

        if not entry["IsDeleteMarker"]:
            if entry["LegalHold"] == "ON":
                raise make_client_error("AccessDenied", "DeleteObject")
            if entry["RetentionMode"] == "COMPLIANCE":
                raise make_client_error("AccessDenied", "DeleteObject")
            if entry["RetentionMode"] == "GOVERNANCE" and not params.get("BypassGovernanceRetention"):
                raise make_client_error("AccessDenied", "DeleteObject")

        bucket["entries"].remove(entry)
        return {"VersionId": version_id}

    async def put_object_legal_hold(self, **params: Any) -> Dict[str, Any]:
        self._record("put_object_legal_hold", "PutObjectLegalHold", params)
        entry = self._find(params["Bucket"], params["Key"], params.get("VersionId"), "PutObjectLegalHold")
        if entry is None:
            raise make_client_error("NoSuchKey", "PutObjectLegalHold")
        entry["LegalHold"] = params["LegalHold"]["Status"]
        return {}

    async def put_object_retention(self, **params: Any) -> Dict[str, Any]:
        self._record("put_object_retention", "PutObjectRetention", params)
        entry = self._find(params["Bucket"], params["Key"], params.get("VersionId"), "PutObjectRetention")
        if entry is None:
            raise make_client_error("NoSuchKey", "PutObjectRetention")
        entry["RetentionMode"] = params["Retention"].get("Mode")
        entry["RetainUntil"] = params["Retention"].get("RetainUntilDate")
        return {}

    def _store_object(self, params: Dict[str, Any], body: bytes) -> str:
        version_id = self.add_version(
            params["Bucket"],
            params["Key"],
            body,
            legal_hold=params.get("ObjectLockLegalHoldStatus"),
            retention_mode=params.get("ObjectLockMode"),
            RetainUntil=params.get("ObjectLockRetainUntilDate"),
            ContentType=params.get("ContentType", "binary/octet-stream"),
            StorageClass=params.get("StorageClass"),
            Metadata=params.get("Metadata", {}),
            ServerSideEncryption=params.get("ServerSideEncryption"),
            SSEKMSKeyId=params.get("SSEKMSKeyId"),
            CacheControl=params.get("CacheControl"),
            ChecksumCRC32="AAAAAA==" if params.get("ChecksumAlgorithm") == "CRC32" else None,
        )
        if params.get("Tagging"):
            self.entries(params["Bucket"], params["Key"])[-1]["Tags"] = dict(parse_qsl(params["Tagging"]))
        return version_id

    async def put_object(self, **params: Any) -> Dict[str, Any]:
        self._record("put_object", "PutObject", {k: v for k, v in params.items() if k != "Body"})
        self._bucket(params["Bucket"], "PutObject")
        body = params["Body"].read()
        version_id = self._store_object(params, body)
        return {"VersionId": version_id, "ETag": f'"{hashlib.md5(body).hexdigest()}"'}

    async def create_multipart_upload(self, **params: Any) -> Dict[str, Any]:
        self._record("create_multipart_upload", "CreateMultipartUpload", params)
        self._bucket(params["Bucket"], "CreateMultipartUpload")
        upload_id = f"upload-{next(self._version_ids)}"
        self.uploads[upload_id] = {"params": params, "parts": {}}
        return {"Bucket": params["Bucket"], "Key": params["Key"], "UploadId": upload_id}

    async def upload_part(self, **params: Any) -> Dict[str, Any]:
        self._record("upload_part", "UploadPart", {k: v for k, v in params.items() if k != "Body"})
        upload = self.uploads.get(params["UploadId"])
        if upload is None:
            raise make_client_error("NoSuchUpload", "UploadPart")
        upload["parts"][params["PartNumber"]] = params["Body"]
        response = {"ETag": f'"{hashlib.md5(params["Body"]).hexdigest()}"'}
        if params.get("ChecksumAlgorithm") == "CRC32":
            response["ChecksumCRC32"] = "AAAAAA=="
        return response

    async def complete_multipart_upload(self, **params: Any) -> Dict[str, Any]:
        self._record("complete_multipart_upload", "CompleteMultipartUpload", params)
        upload = self.uploads.pop(params["UploadId"], None)
        if upload is None:
            raise make_client_error("NoSuchUpload", "CompleteMultipartUpload")
        numbers = [part["PartNumber"] for part in params["MultipartUpload"]["Parts"]]
        body = b"".join(upload["parts"][n] for n in numbers)
        version_id = self._store_object(upload["params"], body)
        return {"VersionId": version_id, "ETag": f'"{hashlib.md5(body).hexdigest()}-{len(numbers)}"'}

    async def abort_multipart_upload(self, **params: Any) -> Dict[str, Any]:
        self._record("abort_multipart_upload", "AbortMultipartUpload", params)
        self.uploads.pop(params["UploadId"], None)
        return {}

    async def put_object_acl(self, **params: Any) -> Dict[str, Any]:
        self._record("put_object_acl", "PutObjectAcl", params)
        return {}

    async def get_object_tagging(self, **params: Any) -> Dict[str, Any]:
        self._record("get_object_tagging", "GetObjectTagging", params)
        entry = self._find(params["Bucket"], params["Key"], None, "GetObjectTagging")
        if entry is None:
            raise make_client_error("NoSuchKey", "GetObjectTagging")
        return {"TagSet": [{"Key": k, "Value": v} for k, v in entry["Tags"].items()]}

    async def put_object_tagging(self, **params: Any) -> Dict[str, Any]:
        self._record("put_object_tagging", "PutObjectTagging", params)
        entry = self._find(params["Bucket"], params["Key"], None, "PutObjectTagging")
        entry["Tags"] = {t["Key"]: t["Value"] for t in params["Tagging"]["TagSet"]}
        return {}

    async def delete_object_tagging(self, **params: Any) -> Dict[str, Any]:
        self._record("delete_object_tagging", "DeleteObjectTagging", params)
        entry = self._find(params["Bucket"], params["Key"], None, "DeleteObjectTagging")
        entry["Tags"] = {}
        return {}

    async def head_bucket(self, **params: Any) -> Dict[str, Any]:
        self._record("head_bucket", "HeadBucket", params)
        if params["Bucket"] not in self.buckets:
            raise make_client_error("404", "HeadBucket")
        return {}


class FakeKMSClient:
    """Stand-in for the aiobotocore KMS client."""

    def __init__(self, default_arn: str):
        self.default_arn = default_arn

    async def describe_key(self, KeyId: str) -> Dict[str, Any]:
        assert KeyId == "alias/aws/s3"
        return {"KeyMetadata": {"Arn": self.default_arn}}


DEFAULT_KMS_ARN = "arn:aws:kms:us-east-1:123456789012:key/aws-managed-s3"


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def fake_s3() -> FakeS3Client:
    """In-memory S3 with an empty "test-bucket"."""
    s3 = FakeS3Client()
    s3.create_bucket("test-bucket")
    return s3


@pytest.fixture
def storage_client(fake_s3: FakeS3Client):
    """ObjectStorageClient bound to the fake S3 and KMS clients."""
    from s3obj.client import ObjectStorageClient

    return ObjectStorageClient(fake_s3, kms_client=FakeKMSClient(DEFAULT_KMS_ARN), list_page_size=2)


@pytest.fixture
def test_settings(temp_dir: Path):
    """Provider settings with the journal enabled."""
    from s3obj.config import ProviderSettings

    return ProviderSettings(
        region="us-east-1",
        default_tags={"managed-by": "s3obj"},
        list_page_size=2,
        journal_path=temp_dir / "journal.db",
    )


@pytest.fixture
def object_resource(storage_client, test_settings):
    """ObjectResource over the fake S3."""
    from s3obj.resource import ObjectResource

    return ObjectResource(storage_client, test_settings)


@pytest.fixture
def client_error():
    """Factory for botocore ClientErrors."""
    return make_client_error


@pytest.fixture
def default_kms_arn() -> str:
    """ARN the fake KMS client reports for alias/aws/s3."""
    return DEFAULT_KMS_ARN


@pytest_asyncio.fixture
async def moto_s3_client(monkeypatch):
    """
    Create an aiobotocore S3 client backed by moto.

    "test-bucket" is created with versioning enabled.
    """
    from aiobotocore.session import get_session
    from moto.server import ThreadedMotoServer

    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.delenv("AWS_PROFILE", raising=False)

    # aiobotocore cannot use moto's in-process mock (it awaits response
    # bodies), so run moto as a local server instead.
    server = ThreadedMotoServer(ip_address="127.0.0.1", port=0, verbose=False)
    server.start()
    try:
        host, port = server.get_host_and_port()
        session = get_session()

        async with session.create_client(
            "s3",
            region_name="us-east-1",
            endpoint_url=f"http://{host}:{port}",
        ) as client:
            await client.create_bucket(Bucket="test-bucket")
            await client.put_bucket_versioning(
                Bucket="test-bucket",
                VersioningConfiguration={"Status": "Enabled"},
            )
            yield client
    finally:
        server.stop()
