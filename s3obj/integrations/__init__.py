# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Framework Integrations - FastAPI admin endpoints.
"""

from s3obj.integrations.fastapi import (
    register_s3obj_routes,
    s3obj_lifespan,
    verify_api_key,
)

__all__ = [
    "register_s3obj_routes",
    "s3obj_lifespan",
    "verify_api_key",
]
