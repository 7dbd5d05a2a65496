# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj FastAPI Integration - Admin endpoints for FastAPI applications.

This module exposes an ObjectResource over HTTP:
- Lifespan management (client open/close)
- Protected object read/upload/purge endpoints
- Deletion journal browsing
- Health checks
"""

import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from datetime import datetime, UTC
from typing import Dict

import aiosqlite
import structlog
from fastapi import Depends, FastAPI, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ConfigDict, Field

from s3obj.client import create_object_storage_client
from s3obj.config import ObjectConfig, ProviderSettings
from s3obj.exceptions import (
    ConfigurationError,
    DeleteObjectsError,
    S3ObjError,
    S3OperationError,
    is_not_found,
)
from s3obj.journal import (
    get_journal_stats,
    get_outcomes_by_run,
    get_run,
    init_journal_db,
    list_runs,
)
from s3obj.resource import ObjectResource

logger = structlog.get_logger()

# Security
security = HTTPBearer(auto_error=False)


class ObjectConfigModel(BaseModel):
    """
    Request body describing the desired state of an object.

    The body must come from content or content_base64. Server file paths
    are not accepted over HTTP, and unknown fields are rejected.
    """

    model_config = ConfigDict(extra="forbid")

    bucket: str
    key: str
    acl: str | None = None
    bucket_key_enabled: bool | None = None
    cache_control: str | None = None
    checksum_algorithm: str | None = None
    content: str | None = None
    content_base64: str | None = None
    content_disposition: str | None = None
    content_encoding: str | None = None
    content_language: str | None = None
    content_type: str | None = None
    etag: str | None = None
    force_destroy: bool = False
    kms_key_id: str | None = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    object_lock_legal_hold_status: str | None = None
    object_lock_mode: str | None = None
    object_lock_retain_until_date: str | None = None
    server_side_encryption: str | None = None
    source_hash: str | None = None
    storage_class: str | None = None
    tags: Dict[str, str] = Field(default_factory=dict)
    website_redirect: str | None = None


async def verify_api_key(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> bool:
    """
    Verify API key from Authorization header.

    The API key is read from the S3OBJ_ADMIN_API_KEY environment variable.
    Requests must include: Authorization: Bearer <api_key>

    Raises:
        HTTPException: If API key is missing or invalid
    """
    api_key = os.getenv("S3OBJ_ADMIN_API_KEY")

    if not api_key:
        raise HTTPException(
            status_code=500,
            detail="S3OBJ_ADMIN_API_KEY environment variable not set",
        )

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Authorization header required",
        )

    if credentials.credentials != api_key:
        raise HTTPException(
            status_code=403,
            detail="Invalid API key",
        )

    return True


def _state_response(state) -> dict:
    return asdict(state)


def register_s3obj_routes(
    app: FastAPI,
    resource: ObjectResource,
    prefix: str = "/admin/s3obj",
) -> None:
    """
    Register s3obj admin endpoints on a FastAPI app.

    All endpoints require Bearer token authentication.

    Args:
        app: FastAPI application
        resource: Object resource handler
        prefix: URL prefix for endpoints (default: /admin/s3obj)
    """
    journal_path = resource.settings.journal_path

    @app.get(f"{prefix}/objects/{{bucket}}/{{key:path}}", dependencies=[Depends(verify_api_key)])
    async def read_object(bucket: str, key: str) -> dict:
        """
        Read the current state of an object.
        """
        try:
            state = await resource.import_state(f"{bucket}/{key}")
        except S3OperationError as e:
            if is_not_found(e):
                raise HTTPException(status_code=404, detail=f"Object {bucket}/{key} not found")
            raise HTTPException(status_code=502, detail=str(e))
        return _state_response(state)

    @app.put(f"{prefix}/objects", dependencies=[Depends(verify_api_key)])
    async def upload(body: ObjectConfigModel) -> dict:
        """
        Upload an object from its desired state.
        """
        try:
            config = ObjectConfig(**body.model_dump())
        except ConfigurationError as e:
            raise HTTPException(status_code=422, detail=e.details.get("errors", e.message))

        try:
            state = await resource.create(config)
        except S3ObjError as e:
            raise HTTPException(status_code=502, detail=str(e))
        return _state_response(state)

    @app.delete(f"{prefix}/objects/{{bucket}}/{{key:path}}", dependencies=[Depends(verify_api_key)])
    async def purge_object(
        bucket: str,
        key: str,
        force: bool = False,
        ignore_errors: bool = False,
    ) -> dict:
        """
        Delete every version and delete marker of a key.

        Args:
            bucket: Bucket name
            key: Object key
            force: Override governance retention and legal holds
            ignore_errors: Succeed even if some versions could not be deleted
        """
        try:
            result = await resource.purge(bucket, key, force=force, ignore_errors=ignore_errors)
        except DeleteObjectsError as e:
            raise HTTPException(
                status_code=409,
                detail={
                    "run_id": e.result.run_id,
                    "deleted_count": e.result.deleted_count,
                    "failed_count": e.result.failed_count,
                    "error": e.message,
                },
            )
        return {
            "run_id": result.run_id,
            "deleted_count": result.deleted_count,
            "failed_count": result.failed_count,
        }

    @app.get(f"{prefix}/runs", dependencies=[Depends(verify_api_key)])
    async def list_deletion_runs(
        limit: int = 50,
        offset: int = 0,
        bucket: str | None = None,
    ) -> list:
        """
        List journaled bulk deletion runs with pagination.
        """
        if journal_path is None or not journal_path.exists():
            return []
        async with aiosqlite.connect(journal_path) as db:
            return await list_runs(db, limit, offset, bucket)

    @app.get(f"{prefix}/runs/{{run_id}}", dependencies=[Depends(verify_api_key)])
    async def get_deletion_run(run_id: str) -> dict:
        """
        Get one run with every version outcome it recorded.
        """
        if journal_path is None or not journal_path.exists():
            raise HTTPException(status_code=404, detail="Deletion journal is disabled")
        async with aiosqlite.connect(journal_path) as db:
            run = await get_run(db, run_id)
            if run is None:
                raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
            outcomes = await get_outcomes_by_run(db, run_id)
        return {**run, "outcomes": outcomes}

    @app.get(f"{prefix}/stats", dependencies=[Depends(verify_api_key)])
    async def journal_stats() -> dict:
        """
        Get deletion journal statistics.
        """
        if journal_path is None or not journal_path.exists():
            return {"journal_enabled": journal_path is not None}
        async with aiosqlite.connect(journal_path) as db:
            stats = await get_journal_stats(db)
        return {"journal_enabled": True, **stats}

    @app.get(f"{prefix}/health", dependencies=[Depends(verify_api_key)])
    async def health_check(bucket: str | None = None) -> dict:
        """
        Health check endpoint.

        Verifies the journal and, when a bucket is given, S3 connectivity.
        """
        journal_ok = journal_path is None or journal_path.exists()

        s3_ok = None
        s3_error = None
        if bucket:
            try:
                await resource.client.head_bucket(bucket)
                s3_ok = True
            except S3OperationError as e:
                s3_ok = False
                s3_error = str(e)

        status = "healthy"
        if not journal_ok or s3_ok is False:
            status = "degraded"

        return {
            "status": status,
            "journal_accessible": journal_ok,
            "s3_reachable": s3_ok,
            "s3_error": s3_error,
            "timestamp": datetime.now(UTC).isoformat(),
        }


@asynccontextmanager
async def s3obj_lifespan(app: FastAPI, settings: ProviderSettings, prefix: str = "/admin/s3obj"):
    """
    Lifespan context manager for FastAPI.

        app = FastAPI(lifespan=lambda app: s3obj_lifespan(app, settings))

    Args:
        app: FastAPI application
        settings: Provider settings
        prefix: URL prefix for admin endpoints
    """
    logger.info("s3obj_lifespan_starting", region=settings.region)

    if settings.journal_path is not None:
        await init_journal_db(settings.journal_path)

    async with create_object_storage_client(settings) as client:
        resource = ObjectResource(client, settings)
        app.state.s3obj_resource = resource

        register_s3obj_routes(app, resource, prefix)

        logger.info("s3obj_lifespan_started")

        try:
            yield
        finally:
            logger.info("s3obj_lifespan_stopping")
            app.state.s3obj_resource = None

    logger.info("s3obj_lifespan_stopped")


def get_s3obj_resource(app: FastAPI) -> ObjectResource:
    """
    Get the ObjectResource from a FastAPI app.

    Useful for accessing the handler in custom endpoints.

    Raises:
        RuntimeError: If s3obj is not initialized
    """
    resource = getattr(app.state, "s3obj_resource", None)
    if not resource:
        raise RuntimeError("s3obj not initialized. Use s3obj_lifespan first.")
    return resource
