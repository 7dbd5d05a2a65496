# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
Human-friendly error message helpers for s3obj.

These helpers centralize wording for common configuration errors so that
all modules present consistent, actionable messages.
"""


def explain_invalid_import_id(import_id: str) -> str:
    """
    Explain that an import ID is not in bucket/key form.
    """

    return (
        f"id {import_id} should be in format <bucket>/<key> or s3://<bucket>/<key>"
    )


def explain_conflicting_body_sources(sources: list[str]) -> str:
    """
    Explain that more than one body source was configured.
    """

    return (
        f"Only one of source, content or content_base64 may be set, got: {', '.join(sources)}"
    )


def explain_uppercase_metadata_key(key: str) -> str:
    """
    Explain that user metadata keys must be lowercase.
    """

    return f"Metadata must be lowercase only. Offending key: {key!r}"


def explain_invalid_choice(field_name: str, value: str, choices: list[str]) -> str:
    """
    Explain that an enumerated attribute has an unsupported value.
    """

    return (
        f"Invalid {field_name} value: {value!r}. "
        f"Expected one of: {', '.join(repr(c) for c in choices)}."
    )


def explain_invalid_retain_until_date(value: str) -> str:
    """
    Explain that the object lock retain-until date is not RFC 3339.
    """

    return (
        f"Invalid object_lock_retain_until_date value: {value!r}. "
        "It must be an RFC 3339 timestamp, e.g. '2030-01-01T00:00:00Z'."
    )


def explain_invalid_list_page_size_env(value: str | None) -> str:
    """
    Explain that S3OBJ_LIST_PAGE_SIZE is invalid.
    """

    return (
        f"Invalid S3OBJ_LIST_PAGE_SIZE value: {value!r}. "
        "It must be an integer between 1 and 1000."
    )


def explain_invalid_default_tags_env(value: str | None) -> str:
    """
    Explain that S3OBJ_DEFAULT_TAGS is invalid.
    """

    return (
        f"Invalid S3OBJ_DEFAULT_TAGS value: {value!r}. "
        "Expected comma-separated key=value pairs, e.g. 'team=storage,env=prod'."
    )
