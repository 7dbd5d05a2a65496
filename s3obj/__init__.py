# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj - Declarative lifecycle management for S3 objects.

Uploads, refreshes and deletes single objects from a typed desired state,
including buckets with versioning and object lock: deletion removes every
version and delete marker, clearing legal holds when forced.
"""

__version__ = "0.1.0"

# Configuration
from s3obj.config import ObjectConfig, ObjectState, ProviderSettings
from s3obj.env import create_settings_from_env

# Client
from s3obj.client import ObjectStorageClient, create_object_storage_client

# Core operations
from s3obj.finder import find_object
from s3obj.versions import (
    ObjectVersionListing,
    clear_legal_hold,
    delete_all_object_versions,
    delete_object_version,
)

# Resource handler
from s3obj.resource import ObjectResource

__all__ = [
    # Version
    "__version__",
    # Configuration
    "ObjectConfig",
    "ObjectState",
    "ProviderSettings",
    "create_settings_from_env",
    # Client
    "ObjectStorageClient",
    "create_object_storage_client",
    # Core operations
    "find_object",
    "ObjectVersionListing",
    "clear_legal_hold",
    "delete_all_object_versions",
    "delete_object_version",
    # Resource handler
    "ObjectResource",
]
