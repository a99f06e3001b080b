"""Tests for importing and enriching a Twitter data export."""

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from likes_archive.archive import (
    ArchiveStore,
    enrich_archive,
    load_archive_file,
    process_archive_likes,
)
from likes_archive.errors import StoreError
from likes_archive.models import Fetched, NotFound, Private

NOW = datetime(2025, 2, 1, tzinfo=timezone.utc)


def export_item(tweet_id, text="liked"):
    return {
        "like": {
            "tweetId": tweet_id,
            "fullText": text,
            "expandedUrl": f"https://twitter.com/i/web/status/{tweet_id}",
        }
    }


class FakeSource:
    def __init__(self, outcomes):
        self.outcomes = outcomes
        self.calls = []

    def fetch_tweet(self, tweet_id):
        self.calls.append(tweet_id)
        return self.outcomes[tweet_id]


class TestLoadArchiveFile:
    def test_strips_export_prefix(self, tmp_path):
        path = tmp_path / "like.js"
        path.write_text(
            "window.YTD.like.part0 = " + json.dumps([export_item("1"), export_item("2")]) + ";\n"
        )

        items = load_archive_file(path)

        assert [item["like"]["tweetId"] for item in items] == ["1", "2"]

    def test_plain_json(self, tmp_path):
        path = tmp_path / "like-twitter-2024.js"
        path.write_text(json.dumps([export_item("1")]))
        assert len(load_archive_file(path)) == 1

    def test_invalid(self, tmp_path):
        path = tmp_path / "like.js"
        path.write_text("window.YTD.like.part0 = {broken")
        with pytest.raises(StoreError, match="not a like export"):
            load_archive_file(path)


class TestProcessArchiveLikes:
    def test_skips_known_and_duplicates(self):
        items = [export_item("10"), export_item("20"), export_item("10"), {"like": {}}]

        result = process_archive_likes(items, known_ids={"20"}, now=NOW)

        assert [a.tweetId for a in result.likes] == ["10"]
        assert result.skipped_existing == 1
        assert result.skipped_duplicate == 1
        assert result.skipped_invalid == 1
        like = result.likes[0]
        assert like.id == "archive-10"
        assert like.isArchive
        assert like.processedAt == NOW.isoformat()

    def test_sorted_newest_first(self):
        items = [export_item("9"), export_item("1885000000000000000"), export_item("100")]

        result = process_archive_likes(items, set(), now=NOW)

        assert [a.tweetId for a in result.likes] == ["1885000000000000000", "100", "9"]


class TestArchiveStore:
    def test_save_import(self, tmp_path):
        archive = ArchiveStore(tmp_path / "archive")
        likes = process_archive_likes([export_item("1")], set(), now=NOW).likes

        archive.save_import(likes)

        assert json.loads(archive.ids_file.read_text()) == ["1"]
        saved = json.loads(archive.likes_file.read_text())
        assert saved[0]["tweetId"] == "1"
        assert "private" not in saved[0]

    def test_load_without_import(self, tmp_path):
        with pytest.raises(StoreError, match="archive import"):
            ArchiveStore(tmp_path / "archive").load_for_enrichment()


class TestEnrichArchive:
    @patch("likes_archive.enrich.time.sleep")
    def test_enriches_and_writes_pages(self, mock_sleep, tmp_path):
        archive = ArchiveStore(tmp_path / "archive")
        archive.save_import(
            process_archive_likes(
                [export_item("3"), export_item("2"), export_item("1")], set(), now=NOW
            ).likes
        )
        source = FakeSource({"3": Fetched({"id_str": "3"}), "2": Private(), "1": NotFound()})

        result = enrich_archive(archive, source, delay=0)

        assert (result.fetched, result.private, result.notfound) == (1, 1, 1)
        enriched = json.loads(archive.enriched_file.read_text())
        assert enriched[0]["react_tweet_data"] == {"id_str": "3"}
        assert "fetchedAt" in enriched[0]
        assert enriched[1]["private"] is True
        assert enriched[2]["notfound"] is True
        page = json.loads((archive.pages_dir / "page-1.json").read_text())
        assert page["totalLikes"] == 3

    @patch("likes_archive.enrich.time.sleep")
    def test_resumes_from_enriched_file(self, mock_sleep, tmp_path):
        archive = ArchiveStore(tmp_path / "archive")
        archive.save_import(
            process_archive_likes([export_item("2"), export_item("1")], set(), now=NOW).likes
        )
        enrich_archive(archive, FakeSource({"2": Private(), "1": Private()}), delay=0, limit=1)

        source = FakeSource({"1": NotFound()})
        result = enrich_archive(archive, source, delay=0)

        assert source.calls == ["1"]
        assert result.skipped == 1
