"""Tests for the duplicate repair passes."""

import json

from conftest import make_like, read_body, write_day

from likes_archive.dedupe import dedupe_raw, dedupe_store
from likes_archive.models import PartitionKey

JAN_20 = PartitionKey(2025, 1, 20)
FEB_01 = PartitionKey(2025, 2, 1)
FEB_02 = PartitionKey(2025, 2, 2)


class TestDedupeStore:
    def test_keeps_earliest_like(self, store, tz):
        write_day(store, JAN_20, [make_like("1", "2025-01-20T10:00:00+09:00")])
        write_day(
            store,
            FEB_01,
            [
                make_like("2", "2025-02-01T11:00:00+09:00"),
                make_like("1", "2025-02-01T10:00:00+09:00"),
            ],
        )

        report = dedupe_store(store, tz)

        assert report.duplicate_ids == ["1"]
        assert report.duplicates_found == 1
        assert report.files_updated == ["2025/02/01.json"]
        assert [like["tweet_id"] for like in read_body(store.path_for(JAN_20))] == ["1"]
        assert [like["tweet_id"] for like in read_body(store.path_for(FEB_01))] == ["2"]

    def test_duplicate_within_one_day(self, store, tz):
        write_day(
            store,
            FEB_01,
            [
                make_like("1", "2025-02-01T12:00:00+09:00", private=True),
                make_like("1", "2025-02-01T10:00:00+09:00"),
            ],
        )

        dedupe_store(store, tz)

        body = read_body(store.path_for(FEB_01))
        assert len(body) == 1
        assert body[0]["liked_at"] == "2025-02-01T10:00:00+09:00"

    def test_untouched_files_not_rewritten(self, store, tz):
        write_day(store, JAN_20, [make_like("1", "2025-01-20T10:00:00+09:00")])
        write_day(store, FEB_01, [make_like("1", "2025-02-01T10:00:00+09:00")])
        clean = write_day(store, FEB_02, [make_like("3", "2025-02-02T10:00:00+09:00")])
        mtime = clean.stat().st_mtime_ns
        clean_jan = store.path_for(JAN_20).read_bytes()

        report = dedupe_store(store, tz)

        assert report.files_updated == ["2025/02/01.json"]
        assert clean.stat().st_mtime_ns == mtime
        assert store.path_for(JAN_20).read_bytes() == clean_jan

    def test_dry_run_writes_nothing(self, store, tz):
        write_day(store, JAN_20, [make_like("1", "2025-01-20T10:00:00+09:00")])
        path = write_day(store, FEB_01, [make_like("1", "2025-02-01T10:00:00+09:00")])
        before = path.read_bytes()

        report = dedupe_store(store, tz, dry_run=True)

        assert report.duplicates_found == 1
        assert path.read_bytes() == before

    def test_idempotent(self, store, tz):
        write_day(store, JAN_20, [make_like("1", "2025-01-20T10:00:00+09:00")])
        write_day(store, FEB_01, [make_like("1", "2025-02-01T10:00:00+09:00")])
        dedupe_store(store, tz)

        report = dedupe_store(store, tz)

        assert report.duplicates_found == 0
        assert report.files_updated == []


class TestDedupeRaw:
    def test_removes_later_copies(self, raw_store):
        month = raw_store.root / "202502"
        month.mkdir(parents=True)
        for name, tweet_id in (("a.json", "1"), ("b.json", "1"), ("c.json", "2")):
            (month / name).write_text(
                json.dumps({"tweet_url": f"https://x.com/u/status/{tweet_id}"})
            )

        report = dedupe_raw(raw_store)

        assert report.files_scanned == 3
        assert report.unique == 2
        assert report.removed == [str(month / "b.json")]
        assert sorted(p.name for p in month.iterdir()) == ["a.json", "c.json"]

    def test_dry_run(self, raw_store):
        raw_store.write_raw("1.json", b'{"tweet_id": "1"}')
        raw_store.write_raw("1-copy.json", b'{"tweet_id": "1"}')

        report = dedupe_raw(raw_store, dry_run=True)

        assert len(report.removed) == 1
        assert len(list(raw_store.inbox.iterdir())) == 2
