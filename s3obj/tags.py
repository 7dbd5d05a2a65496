# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Tags - Object tag reads, writes and encoding.

Tags whose key starts with "aws:" are owned by AWS services and are never
written or compared.
"""

from typing import Dict
from urllib.parse import urlencode

import structlog

from s3obj.client import ObjectStorageClient

logger = structlog.get_logger()

SYSTEM_TAG_PREFIX = "aws:"


def ignore_system_tags(tags: Dict[str, str]) -> Dict[str, str]:
    """Drop AWS-reserved tags."""
    return {k: v for k, v in tags.items() if not k.lower().startswith(SYSTEM_TAG_PREFIX)}


def merge_tags(default_tags: Dict[str, str], tags: Dict[str, str]) -> Dict[str, str]:
    """
    Merge provider default tags with resource tags.

    Resource tags win on conflicting keys.
    """
    return {**default_tags, **tags}


def encode_tagging(tags: Dict[str, str]) -> str:
    """
    Encode tags for the PutObject Tagging header (URL query format).
    """
    return urlencode(sorted(ignore_system_tags(tags).items()))


async def list_object_tags(
    client: ObjectStorageClient,
    bucket: str,
    key: str,
) -> Dict[str, str]:
    """
    List the tags of an object, without AWS-reserved tags.
    """
    return ignore_system_tags(await client.get_object_tagging(bucket, key))


async def update_object_tags(
    client: ObjectStorageClient,
    bucket: str,
    key: str,
    old_tags: Dict[str, str],
    new_tags: Dict[str, str],
) -> None:
    """
    Replace the tag set of an object.

    S3 has no per-tag update, so the whole set is written. An empty set
    removes the tagging entirely.

    Args:
        client: Object storage client
        bucket: Bucket name
        key: Object key
        old_tags: Tags currently recorded for the object
        new_tags: Desired tags
    """
    old_tags = ignore_system_tags(old_tags)
    new_tags = ignore_system_tags(new_tags)

    if old_tags == new_tags:
        return

    if new_tags:
        await client.put_object_tagging(bucket, key, new_tags)
    else:
        await client.delete_object_tagging(bucket, key)

    logger.debug(
        "object_tags_updated",
        bucket=bucket,
        key=key,
        removed=sorted(set(old_tags) - set(new_tags)),
        tag_count=len(new_tags),
    )
