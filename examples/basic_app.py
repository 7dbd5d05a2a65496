# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Example FastAPI Application with s3obj Integration.

This example mounts the s3obj admin endpoints and adds an application
route that publishes a report object with object lock.

Run with:
    uvicorn examples.basic_app:app --reload

Environment variables:
    AWS_ACCESS_KEY_ID: AWS access key
    AWS_SECRET_ACCESS_KEY: AWS secret key
    AWS_REGION: AWS region
    S3_BUCKET: Bucket reports are written to
    S3OBJ_JOURNAL_PATH: SQLite file for the deletion journal
    S3OBJ_ADMIN_API_KEY: API key for admin endpoints
"""

import os
from datetime import datetime, timedelta, UTC

from fastapi import FastAPI, HTTPException, Request
from pydantic import BaseModel

from s3obj import ObjectConfig, create_settings_from_env
from s3obj.exceptions import S3ObjError
from s3obj.integrations.fastapi import get_s3obj_resource, s3obj_lifespan

settings = create_settings_from_env()
bucket = os.getenv("S3_BUCKET", "my-app-reports")

app = FastAPI(
    title="My App with s3obj",
    description="Example application publishing S3 objects",
    version="1.0.0",
    lifespan=lambda app: s3obj_lifespan(app, settings),
)


# ============================================================================
# Application Routes
# ============================================================================

class Report(BaseModel):
    name: str
    body: str
    retain_days: int = 30


@app.post("/reports")
async def publish_report(report: Report, request: Request):
    """
    Publish a report that cannot be deleted before its retention ends.
    """
    resource = get_s3obj_resource(request.app)
    retain_until = datetime.now(UTC) + timedelta(days=report.retain_days)

    config = ObjectConfig(
        bucket=bucket,
        key=f"reports/{report.name}.txt",
        content=report.body,
        content_type="text/plain",
        object_lock_mode="GOVERNANCE",
        object_lock_retain_until_date=retain_until.strftime("%Y-%m-%dT%H:%M:%SZ"),
        tags={"kind": "report"},
    )

    try:
        state = await resource.create(config)
    except S3ObjError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"key": state.key, "version_id": state.version_id, "etag": state.etag}


@app.get("/")
async def root():
    return {
        "message": "s3obj example app",
        "admin": "/admin/s3obj/health",
    }
