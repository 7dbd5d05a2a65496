# SPDX-License-Identifier: LGPL-2.1-only
# Copyright (c) 2026 Akshat Kotpalliwar (alias IntegerAlex)

"""
s3obj Resource - Create/read/update/delete of one S3 object.

ObjectResource maps a typed ObjectConfig (desired state) onto S3 calls and
refreshes an ObjectState (stored state) from what S3 reports:

- create uploads the object and reads it back
- read refreshes the state; a vanished object yields None
- update re-uploads on content changes, otherwise patches ACL, object
  lock and tags in place
- delete purges every version when a version is tracked, otherwise
  deletes the current object
"""

from dataclasses import fields, replace
from pathlib import Path
from typing import Any, Dict, Set, Tuple

import aiosqlite
import structlog
from ulid import ULID

from s3obj.client import ObjectStorageClient
from s3obj.config import ObjectConfig, ObjectState, ProviderSettings
from s3obj.errors import explain_invalid_import_id
from s3obj.exceptions import (
    DeleteObjectsError,
    InvalidImportIdError,
    S3OperationError,
    is_not_found,
)
from s3obj.finder import find_object
from s3obj.journal import (
    complete_run,
    create_journal_recorder,
    get_outcomes_by_run,
    init_journal_db,
    record_run,
)
from s3obj.models import (
    LegalHoldStatus,
    ObjectMetadata,
    ReconciliationResult,
    clean_key,
    expand_object_date,
    flatten_object_date,
)
from s3obj.tags import list_object_tags, merge_tags, update_object_tags
from s3obj.upload import upload_object
from s3obj.versions import delete_all_object_versions, delete_object_version

logger = structlog.get_logger()

# Changing any of these requires a new upload
CONTENT_ATTRIBUTES = (
    "bucket_key_enabled",
    "cache_control",
    "checksum_algorithm",
    "content_base64",
    "content_disposition",
    "content_encoding",
    "content_language",
    "content_type",
    "content",
    "etag",
    "kms_key_id",
    "metadata",
    "server_side_encryption",
    "source",
    "source_hash",
    "storage_class",
    "website_redirect",
)

# Optional attributes S3 fills in when they are not configured
COMPUTED_ATTRIBUTES = frozenset({
    "acl",
    "bucket_key_enabled",
    "content_type",
    "etag",
    "kms_key_id",
    "server_side_encryption",
    "storage_class",
})


def _normalize(value: Any) -> Any:
    if value in ("", None) or value == {}:
        return None
    return value


def has_change(old: Any, new: Any, name: str) -> bool:
    """
    Whether attribute `name` differs between stored state and config.

    Unset computed attributes never count as a change.
    """
    new_value = _normalize(getattr(new, name))
    if name in COMPUTED_ATTRIBUTES and new_value is None:
        return False
    return _normalize(getattr(old, name)) != new_value


def has_content_changes(old: Any, new: Any) -> bool:
    """Whether the object must be uploaded again."""
    return any(has_change(old, new, name) for name in CONTENT_ATTRIBUTES)


def plan_computed(old: Any, new: Any) -> Set[str]:
    """
    Attributes whose value is unknown until the change is applied.
    """
    if has_content_changes(old, new):
        return {"version_id"}

    if has_change(old, new, "source_hash"):
        return {"version_id", "etag"}

    return set()


def parse_import_id(import_id: str) -> Tuple[str, str]:
    """
    Split an import ID into bucket and key.

    Accepts "<bucket>/<key>" or "s3://<bucket>/<key>"; keys may contain
    slashes.

    Raises:
        InvalidImportIdError: The ID has no key part
    """
    trimmed = import_id.removeprefix("s3://")
    parts = trimmed.split("/")

    if len(parts) < 2:
        raise InvalidImportIdError(explain_invalid_import_id(trimmed))

    return parts[0], "/".join(parts[1:])


def _wrap(message: str, error: S3OperationError) -> S3OperationError:
    wrapped = S3OperationError(
        message,
        kind=error.kind,
        operation=error.operation,
        code=error.code,
        details=error.details,
    )
    wrapped.__cause__ = error
    return wrapped


class ObjectResource:
    """
    Lifecycle handler for S3 objects.

    Args:
        client: Object storage client
        settings: Provider settings (default tags, journal path)
    """

    def __init__(self, client: ObjectStorageClient, settings: ProviderSettings | None = None):
        self.client = client
        self.settings = settings or ProviderSettings()

    # ------------------------------------------------------------------
    # Create / Read / Update / Delete
    # ------------------------------------------------------------------

    async def create(self, config: ObjectConfig) -> ObjectState:
        """
        Upload a new object and return its refreshed state.
        """
        await self._upload(config)

        state = ObjectState.from_config(config, id=config.key)
        return await self.read(state, is_new=True)

    async def read(self, state: ObjectState, is_new: bool = False) -> ObjectState | None:
        """
        Refresh state from S3.

        Args:
            state: Stored state of the object
            is_new: True right after creation, when a missing object is an
                error rather than a sign the object was removed

        Returns:
            Refreshed state, or None when the object no longer exists
        """
        bucket = state.bucket
        key = clean_key(state.key)

        try:
            metadata = await find_object(
                self.client,
                bucket,
                key,
                checksum_algorithm=state.checksum_algorithm or "",
            )
        except S3OperationError as e:
            if not is_new and is_not_found(e):
                logger.warning(
                    "object_not_found_removing_from_state",
                    id=state.id,
                    bucket=bucket,
                    key=key,
                )
                return None
            raise _wrap(f"reading S3 Object ({state.id}): {e}", e)

        refreshed = replace(state)
        self._apply_metadata(refreshed, metadata)
        await self._apply_kms_key(refreshed, metadata)

        try:
            tags = await list_object_tags(self.client, bucket, key)
        except S3OperationError as e:
            raise _wrap(f"listing tags for S3 Bucket ({bucket}) Object ({key}): {e}", e)

        refreshed.tags_all = tags
        refreshed.tags = {
            k: v
            for k, v in tags.items()
            if k in state.tags or self.settings.default_tags.get(k) != v
        }

        return refreshed

    async def update(self, state: ObjectState, config: ObjectConfig) -> ObjectState | None:
        """
        Bring an existing object in line with a new configuration.

        Content changes re-upload the object. Otherwise ACL, legal hold,
        retention and tags are updated in place.
        """
        if has_content_changes(state, config):
            await self._upload(config)
            return await self.read(self._apply_config(state, config))

        bucket = state.bucket
        key = clean_key(state.key)

        if has_change(state, config, "acl"):
            try:
                await self.client.put_object_acl(bucket, key, config.acl)
            except S3OperationError as e:
                raise _wrap(f"putting S3 Object ({state.id}) ACL: {e}", e)

        if has_change(state, config, "object_lock_legal_hold_status"):
            status = config.object_lock_legal_hold_status or LegalHoldStatus.OFF.value
            try:
                await self.client.put_object_legal_hold(bucket, key, status)
            except S3OperationError as e:
                raise _wrap(f"putting S3 Object ({state.id}) legal hold: {e}", e)

        if has_change(state, config, "object_lock_mode") or has_change(
            state, config, "object_lock_retain_until_date"
        ):
            old_date = expand_object_date(state.object_lock_retain_until_date)
            new_date = expand_object_date(config.object_lock_retain_until_date)

            # Bypass required to lower or clear retain-until date
            bypass = False
            if has_change(state, config, "object_lock_retain_until_date"):
                bypass = new_date is None or (old_date is not None and new_date < old_date)

            try:
                await self.client.put_object_retention(
                    bucket,
                    key,
                    mode=config.object_lock_mode,
                    retain_until=new_date,
                    bypass_governance_retention=bypass,
                )
            except S3OperationError as e:
                raise _wrap(f"putting S3 Object ({state.id}) retention: {e}", e)

        old_tags = merge_tags(self.settings.default_tags, state.tags)
        new_tags = merge_tags(self.settings.default_tags, config.tags)
        if old_tags != new_tags:
            try:
                await update_object_tags(self.client, bucket, key, state.tags_all or old_tags, new_tags)
            except S3OperationError as e:
                raise _wrap(f"updating tags: {e}", e)

        return await self.read(self._apply_config(state, config))

    async def delete(self, state: ObjectState) -> ReconciliationResult | None:
        """
        Delete the object.

        With a tracked version every version and delete marker of the key is
        removed, overriding object lock when force_destroy is set. Without
        one only the current object is deleted.

        Returns:
            The bulk deletion result, or None for an unversioned delete
        """
        bucket = state.bucket
        key = clean_key(state.key)

        if state.version_id:
            try:
                return await self.purge(bucket, key, force=state.force_destroy)
            except DeleteObjectsError as e:
                raise DeleteObjectsError(
                    f"deleting S3 Bucket ({bucket}) Object ({key}): {e.message}",
                    e.result,
                    e.details,
                ) from e

        try:
            await delete_object_version(self.client, bucket, key, "", False)
        except S3OperationError as e:
            raise _wrap(f"deleting S3 Bucket ({bucket}) Object ({key}): {e}", e)
        return None

    async def import_state(self, import_id: str) -> ObjectState:
        """
        Build state for an existing object from "<bucket>/<key>".

        Raises:
            InvalidImportIdError: Malformed import ID
            S3OperationError: The object cannot be read
        """
        bucket, key = parse_import_id(import_id)
        state = ObjectState(id=key, bucket=bucket, key=key)

        logger.info("object_importing", bucket=bucket, key=key)
        return await self.read(state, is_new=True)

    # ------------------------------------------------------------------
    # Bulk deletion
    # ------------------------------------------------------------------

    async def purge(
        self,
        bucket: str,
        key: str = "",
        force: bool = False,
        ignore_errors: bool = False,
    ) -> ReconciliationResult:
        """
        Delete every version of a key, journaling the run when enabled.

        A journaled run is always completed, including when it is cancelled
        or interrupted by an unexpected error. Interrupted runs are counted
        from the outcomes recorded so far.

        Raises:
            DeleteObjectsError: The run did not fully succeed
        """
        run_id = str(ULID())
        journal_path = self.settings.journal_path
        recorder = None

        if journal_path is not None:
            await init_journal_db(journal_path)
            async with aiosqlite.connect(journal_path) as db:
                await record_run(db, run_id, bucket, key, force, ignore_errors)
            recorder = create_journal_recorder(journal_path)

        result = None
        error = None
        try:
            result = await delete_all_object_versions(
                self.client,
                bucket,
                key,
                force=force,
                ignore_errors=ignore_errors,
                recorder=recorder,
                run_id=run_id,
            )
        except DeleteObjectsError as e:
            result = e.result
            error = e.message
            raise
        except BaseException as e:
            error = f"run interrupted: {type(e).__name__}: {e}"
            logger.warning("purge_interrupted", run_id=run_id, bucket=bucket, key=key, error=error)
            raise
        finally:
            if journal_path is not None:
                await self._complete_journal_run(journal_path, run_id, result, error)

        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    async def _complete_journal_run(
        journal_path: Path,
        run_id: str,
        result: ReconciliationResult | None,
        error: str | None,
    ) -> None:
        async with aiosqlite.connect(journal_path) as db:
            if result is not None:
                deleted, failed = result.deleted_count, result.failed_count
            else:
                outcomes = await get_outcomes_by_run(db, run_id)
                deleted = sum(1 for o in outcomes if o["deleted"])
                failed = len(outcomes) - deleted
            await complete_run(db, run_id, deleted, failed, error)

    async def _upload(self, config: ObjectConfig) -> Dict[str, Any]:
        tags = merge_tags(self.settings.default_tags, config.tags)
        try:
            return await upload_object(self.client, config, tags)
        except S3OperationError as e:
            raise _wrap(
                f"uploading S3 Object ({clean_key(config.key)}) to Bucket ({config.bucket}): {e}",
                e,
            )

    @staticmethod
    def _apply_config(state: ObjectState, config: ObjectConfig) -> ObjectState:
        values = {f.name: getattr(config, f.name) for f in fields(ObjectConfig)}
        return replace(state, **values)

    @staticmethod
    def _apply_metadata(state: ObjectState, metadata: ObjectMetadata) -> None:
        state.bucket_key_enabled = metadata.bucket_key_enabled
        state.cache_control = metadata.cache_control
        state.checksum_crc32 = metadata.checksum_crc32
        state.checksum_crc32c = metadata.checksum_crc32c
        state.checksum_sha1 = metadata.checksum_sha1
        state.checksum_sha256 = metadata.checksum_sha256
        state.content_disposition = metadata.content_disposition
        state.content_encoding = metadata.content_encoding
        state.content_language = metadata.content_language
        state.content_type = metadata.content_type
        state.etag = metadata.etag
        state.metadata = dict(metadata.metadata)
        state.object_lock_legal_hold_status = metadata.object_lock_legal_hold_status
        state.object_lock_mode = metadata.object_lock_mode
        state.object_lock_retain_until_date = flatten_object_date(
            metadata.object_lock_retain_until_date
        )
        state.server_side_encryption = metadata.server_side_encryption
        state.storage_class = metadata.storage_class
        state.version_id = metadata.version_id
        state.website_redirect = metadata.website_redirect

    async def _apply_kms_key(self, state: ObjectState, metadata: ObjectMetadata) -> None:
        """Only record a KMS key that is not the account's default S3 key."""
        if not metadata.kms_key_id:
            return

        try:
            default_arn = await self.client.default_kms_key_arn()
        except S3OperationError as e:
            raise _wrap(f"Failed to describe default S3 KMS key (alias/aws/s3): {e}", e)

        if metadata.kms_key_id != default_arn:
            logger.debug("object_non_default_kms_key", kms_key_id=metadata.kms_key_id)
            state.kms_key_id = metadata.kms_key_id
