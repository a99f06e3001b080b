"""Download new like files from S3 into the raw store.

The IFTTT applet writes one object per like under ``<prefix>/<tweet_id>.json``.
A run downloads objects modified after the checkpoint, skips tweets already
staged or already in the tweet index, and deletes from the bucket objects at
or before the checkpoint that are already persisted locally.

``sync()`` never touches the checkpoint file: it returns the new checkpoint
and the caller persists it once the run has succeeded.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from pathlib import PurePosixPath
from typing import Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError, SyncError
from .models import Checkpoint
from .store import RawLikeStore

logger = logging.getLogger(__name__)

DEFAULT_PREFIX = "tweets_v2"


@dataclass(frozen=True)
class RemoteObject:
    key: str
    last_modified: datetime

    @property
    def name(self) -> str:
        return PurePosixPath(self.key).name

    @property
    def tweet_id(self) -> str:
        return PurePosixPath(self.key).stem


class ObjectStorage(Protocol):
    def list_objects(self, prefix: str) -> list[RemoteObject]: ...

    def get_object(self, key: str) -> bytes: ...

    def delete_object(self, key: str) -> None: ...


class S3ObjectStorage:
    """ObjectStorage backed by an S3 bucket."""

    def __init__(
        self,
        bucket: str,
        region: str,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        client=None,
    ):
        self.bucket = bucket
        self._client = client or boto3.client(
            "s3",
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    def list_objects(self, prefix: str) -> list[RemoteObject]:
        objects: list[RemoteObject] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for item in page.get("Contents", []):
                    objects.append(
                        RemoteObject(key=item["Key"], last_modified=item["LastModified"])
                    )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Listing s3://{self.bucket}/{prefix} failed: {e}") from e
        return objects

    def get_object(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
            return response["Body"].read()
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Download of s3://{self.bucket}/{key} failed: {e}") from e

    def delete_object(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Delete of s3://{self.bucket}/{key} failed: {e}") from e


@dataclass
class SyncResult:
    new_checkpoint: Checkpoint
    listed: int = 0
    downloaded: int = 0
    skipped: int = 0
    deleted: int = 0
    delete_failures: int = 0
    downloaded_ids: list[str] = field(default_factory=list)
    skipped_ids: list[str] = field(default_factory=list)


def partition_objects(
    objects: Iterable[RemoteObject], checkpoint: Checkpoint
) -> tuple[list[RemoteObject], list[RemoteObject]]:
    """Split objects into (new, old) around the checkpoint (new is strictly after)."""
    new: list[RemoteObject] = []
    old: list[RemoteObject] = []
    for obj in objects:
        (new if obj.last_modified > checkpoint.timestamp else old).append(obj)
    return new, old


def _download(storage: ObjectStorage, obj: RemoteObject, retries: int) -> bytes:
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        try:
            return storage.get_object(obj.key)
        except StorageError as e:
            if attempt == attempts:
                raise SyncError(
                    f"Giving up on {obj.key} after {attempts} attempts: {e}"
                ) from e
            logger.warning("Attempt %d for %s failed: %s. Retrying.", attempt, obj.key, e)
    raise AssertionError("unreachable")


def sync(
    storage: ObjectStorage,
    raw_store: RawLikeStore,
    checkpoint: Checkpoint,
    known_ids: set[str],
    *,
    tz: tzinfo = timezone.utc,
    prefix: str = DEFAULT_PREFIX,
    now: datetime | None = None,
    reconcile: bool = True,
    retries: int = 1,
) -> SyncResult:
    """Pull new like objects into the raw store.

    Args:
        storage: Remote object storage.
        raw_store: Local raw store; downloads land in its inbox.
        checkpoint: Objects modified strictly after this are new.
        known_ids: Tweet IDs already in the canonical tweet index.
        tz: Timezone the new checkpoint is expressed in.
        prefix: Remote key prefix to list.
        now: Time the run started (defaults to the current time).
        reconcile: Delete already-persisted objects at or before the checkpoint.
        retries: Extra attempts per download before the run is aborted.

    Raises:
        SyncError: a listing or download failed. Nothing should be persisted
            as the new checkpoint.
    """
    started = (now or datetime.now(timezone.utc)).astimezone(tz)
    logger.info("Looking for objects under %r modified after %s", prefix, checkpoint.isoformat())

    try:
        objects = storage.list_objects(prefix)
    except StorageError as e:
        raise SyncError(str(e)) from e

    new_objects, old_objects = partition_objects(objects, checkpoint)
    result = SyncResult(new_checkpoint=Checkpoint(started), listed=len(objects))
    logger.info("Found %d objects, %d new", len(objects), len(new_objects))

    staged_ids = raw_store.known_ids()
    for obj in new_objects:
        tweet_id = obj.tweet_id
        if tweet_id in known_ids or tweet_id in staged_ids:
            logger.info("Skipped %s (already liked)", obj.name)
            result.skipped += 1
            result.skipped_ids.append(tweet_id)
            continue

        target = raw_store.inbox_path(obj.name)
        if target.exists():
            logger.info("Skipped %s (file already exists)", obj.name)
            result.skipped += 1
            result.skipped_ids.append(tweet_id)
            continue

        content = _download(storage, obj, retries)
        raw_store.write_raw(obj.name, content)
        staged_ids.add(tweet_id)
        result.downloaded += 1
        result.downloaded_ids.append(tweet_id)
        logger.info("Downloaded %s (modified %s)", obj.name, obj.last_modified.isoformat())

    if reconcile:
        persisted = known_ids | staged_ids
        for obj in old_objects:
            if obj.tweet_id not in persisted:
                continue
            try:
                storage.delete_object(obj.key)
            except StorageError as e:
                # The object is re-listed as "old" next run and retried then
                logger.error("Failed to delete %s: %s", obj.key, e)
                result.delete_failures += 1
                continue
            logger.info("Deleted from bucket: %s", obj.name)
            result.deleted += 1

    logger.info(
        "Sync summary: %d downloaded, %d skipped, %d deleted",
        result.downloaded,
        result.skipped,
        result.deleted,
    )
    return result
