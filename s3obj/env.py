# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Environment-based settings helpers.

Credentials are left to botocore's own resolution chain; only the
settings s3obj itself owns are read here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict

from s3obj.config import ProviderSettings
from s3obj.errors import (
    explain_invalid_default_tags_env,
    explain_invalid_list_page_size_env,
)
from s3obj.exceptions import ConfigurationError


def _parse_list_page_size(value: str | None) -> int:
    if not value:
        return 1000
    try:
        size = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(explain_invalid_list_page_size_env(value)) from exc
    if not 1 <= size <= 1000:
        raise ConfigurationError(explain_invalid_list_page_size_env(value))
    return size


def _parse_default_tags(value: str | None) -> Dict[str, str]:
    if not value:
        return {}
    tags: Dict[str, str] = {}
    for pair in value.split(","):
        pair = pair.strip()
        if not pair:
            continue
        tag_key, sep, tag_value = pair.partition("=")
        if not sep or not tag_key.strip():
            raise ConfigurationError(explain_invalid_default_tags_env(value))
        tags[tag_key.strip()] = tag_value.strip()
    return tags


def create_settings_from_env() -> ProviderSettings:
    """
    Create ProviderSettings from environment variables.

    Optional environment variables:
        - AWS_REGION: AWS region (default: us-east-1)
        - S3OBJ_ENDPOINT_URL: Custom S3 endpoint
        - S3OBJ_DEFAULT_TAGS: Comma-separated key=value pairs
        - S3OBJ_LIST_PAGE_SIZE: 1..1000 (default: 1000)
        - S3OBJ_JOURNAL_PATH: SQLite file for the deletion journal
    """

    journal_env = os.getenv("S3OBJ_JOURNAL_PATH")

    return ProviderSettings(
        region=os.getenv("AWS_REGION", "us-east-1"),
        endpoint_url=os.getenv("S3OBJ_ENDPOINT_URL") or None,
        default_tags=_parse_default_tags(os.getenv("S3OBJ_DEFAULT_TAGS")),
        list_page_size=_parse_list_page_size(os.getenv("S3OBJ_LIST_PAGE_SIZE")),
        journal_path=Path(journal_env) if journal_env else None,
    )
