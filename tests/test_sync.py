"""Tests for the S3 sync stage."""

import io
from datetime import datetime, timedelta, timezone

import boto3
import pytest
from botocore.stub import Stubber

from likes_archive.errors import StorageError, SyncError
from likes_archive.models import Checkpoint
from likes_archive.sync import RemoteObject, S3ObjectStorage, partition_objects, sync

T = datetime(2025, 2, 1, 0, 0, tzinfo=timezone.utc)


class FakeStorage:
    def __init__(self, objects, failures=None, delete_failures=()):
        self.objects = {obj.key: obj for obj in objects}
        self.failures = failures or {}
        self.delete_failures = set(delete_failures)
        self.downloads: list[str] = []
        self.deleted: list[str] = []

    def list_objects(self, prefix):
        return [obj for key, obj in self.objects.items() if key.startswith(prefix)]

    def get_object(self, key):
        self.downloads.append(key)
        if self.failures.get(key, 0) > 0:
            self.failures[key] -= 1
            raise StorageError(f"boom {key}")
        return b'{"tweet_url": "https://x.com/a/status/%s"}' % key.encode()

    def delete_object(self, key):
        if key in self.delete_failures:
            raise StorageError(f"cannot delete {key}")
        self.deleted.append(key)
        self.objects.pop(key)


def obj(tweet_id, modified):
    return RemoteObject(key=f"tweets_v2/{tweet_id}.json", last_modified=modified)


class TestPartitionObjects:
    def test_checkpoint_is_exclusive(self):
        at = obj("1", T)
        new, old = partition_objects([at], Checkpoint(T))
        assert new == []
        assert old == [at]


class TestSync:
    def test_downloads_only_objects_after_checkpoint(self, raw_store, tz):
        storage = FakeStorage(
            [obj("1", T - timedelta(seconds=1)), obj("2", T + timedelta(seconds=1))]
        )
        now = T + timedelta(minutes=5)

        result = sync(storage, raw_store, Checkpoint(T), set(), tz=tz, now=now)

        assert storage.downloads == ["tweets_v2/2.json"]
        assert result.downloaded == 1
        assert result.downloaded_ids == ["2"]
        assert raw_store.inbox_path("2.json").exists()
        assert not raw_store.inbox_path("1.json").exists()
        assert result.new_checkpoint.timestamp >= now
        assert result.new_checkpoint.timestamp.utcoffset() == timedelta(hours=9)

    def test_skips_known_tweets(self, raw_store, tz):
        storage = FakeStorage([obj("5", T + timedelta(hours=1))])

        result = sync(storage, raw_store, Checkpoint(T), {"5"}, tz=tz, reconcile=False)

        assert storage.downloads == []
        assert result.skipped == 1
        assert result.skipped_ids == ["5"]

    def test_skips_already_staged(self, raw_store, tz):
        raw_store.write_raw("5.json", b"{}")
        storage = FakeStorage([obj("5", T + timedelta(hours=1))])

        result = sync(storage, raw_store, Checkpoint(T), set(), tz=tz)

        assert storage.downloads == []
        assert result.skipped == 1

    def test_retries_then_succeeds(self, raw_store, tz):
        storage = FakeStorage(
            [obj("9", T + timedelta(hours=1))], failures={"tweets_v2/9.json": 1}
        )

        result = sync(storage, raw_store, Checkpoint(T), set(), tz=tz, retries=1)

        assert result.downloaded == 1
        assert storage.downloads == ["tweets_v2/9.json", "tweets_v2/9.json"]

    def test_exhausted_retries_raise(self, raw_store, tz):
        storage = FakeStorage(
            [obj("9", T + timedelta(hours=1))], failures={"tweets_v2/9.json": 5}
        )

        with pytest.raises(SyncError, match="after 2 attempts"):
            sync(storage, raw_store, Checkpoint(T), set(), tz=tz, retries=1)
        assert not raw_store.inbox_path("9.json").exists()

    def test_listing_failure_raises(self, raw_store, tz):
        class Broken(FakeStorage):
            def list_objects(self, prefix):
                raise StorageError("no bucket")

        with pytest.raises(SyncError, match="no bucket"):
            sync(Broken([]), raw_store, Checkpoint(T), set(), tz=tz)

    def test_reconcile_deletes_persisted_old_objects(self, raw_store, tz):
        storage = FakeStorage(
            [
                obj("1", T - timedelta(hours=1)),  # in tweet index
                obj("2", T - timedelta(hours=2)),  # unknown locally
                obj("3", T + timedelta(hours=1)),  # new
            ]
        )

        result = sync(storage, raw_store, Checkpoint(T), {"1"}, tz=tz)

        assert storage.deleted == ["tweets_v2/1.json"]
        assert result.deleted == 1
        assert "tweets_v2/2.json" in storage.objects
        assert "tweets_v2/3.json" in storage.objects

    def test_delete_failure_is_counted_not_raised(self, raw_store, tz):
        storage = FakeStorage(
            [obj("1", T - timedelta(hours=1))], delete_failures={"tweets_v2/1.json"}
        )

        result = sync(storage, raw_store, Checkpoint(T), {"1"}, tz=tz)

        assert result.deleted == 0
        assert result.delete_failures == 1

    def test_no_reconcile_keeps_bucket(self, raw_store, tz):
        storage = FakeStorage([obj("1", T - timedelta(hours=1))])

        sync(storage, raw_store, Checkpoint(T), {"1"}, tz=tz, reconcile=False)

        assert storage.deleted == []


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="ap-northeast-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
    )


class TestS3ObjectStorage:
    def test_list_objects(self, s3_client):
        storage = S3ObjectStorage("likes-bucket", "ap-northeast-1", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_response(
                "list_objects_v2",
                {
                    "Contents": [
                        {"Key": "tweets_v2/1.json", "LastModified": T},
                        {"Key": "tweets_v2/2.json", "LastModified": T},
                    ],
                    "IsTruncated": False,
                },
                {"Bucket": "likes-bucket", "Prefix": "tweets_v2"},
            )
            objects = storage.list_objects("tweets_v2")

        assert [o.tweet_id for o in objects] == ["1", "2"]
        assert objects[0].name == "1.json"

    def test_get_object(self, s3_client):
        storage = S3ObjectStorage("likes-bucket", "ap-northeast-1", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_response(
                "get_object",
                {"Body": io.BytesIO(b'{"liked_at": "x"}')},
                {"Bucket": "likes-bucket", "Key": "tweets_v2/1.json"},
            )
            assert storage.get_object("tweets_v2/1.json") == b'{"liked_at": "x"}'

    def test_client_error_becomes_storage_error(self, s3_client):
        storage = S3ObjectStorage("likes-bucket", "ap-northeast-1", client=s3_client)
        with Stubber(s3_client) as stubber:
            stubber.add_client_error("delete_object", service_error_code="AccessDenied")
            with pytest.raises(StorageError, match="Delete of"):
                storage.delete_object("tweets_v2/1.json")
