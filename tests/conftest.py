"""Shared test fixtures."""

import json
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

from likes_archive.models import DayDocument, Like, PartitionKey
from likes_archive.store import LikeStore, RawLikeStore


def make_like(tweet_id: str, liked_at: str, **fields) -> Like:
    """A canonical like with sensible defaults."""
    return Like(
        text=fields.pop("text", f"tweet {tweet_id}"),
        username=fields.pop("username", "someone"),
        tweet_url=f"https://x.com/someone/status/{tweet_id}",
        first_link="",
        created_at="",
        liked_at=liked_at,
        tweet_id=tweet_id,
        **fields,
    )


def raw_record(tweet_id: str, liked_at: str, **fields) -> dict:
    """A raw like as the IFTTT applet writes it."""
    record = {
        "text": f"tweet {tweet_id}",
        "username": "someone",
        "tweet_url": f"https://twitter.com/someone/status/{tweet_id}",
        "first_link": "",
        "created_at": "January 30, 2025 at 09:00AM",
        "liked_at": liked_at,
        "embed_code": "<blockquote>...</blockquote>",
    }
    record.update(fields)
    return record


def write_day(store: LikeStore, key: PartitionKey, likes: list[Like]) -> Path:
    return store.save(DayDocument(key=key, body=likes))


def read_body(path: Path) -> list[dict]:
    return json.loads(path.read_text(encoding="utf-8"))["body"]


@pytest.fixture
def tz() -> ZoneInfo:
    return ZoneInfo("Asia/Tokyo")


@pytest.fixture
def content_dir(tmp_path) -> Path:
    return tmp_path / "content"


@pytest.fixture
def store(content_dir) -> LikeStore:
    return LikeStore(content_dir / "likes")


@pytest.fixture
def raw_store(tmp_path) -> RawLikeStore:
    return RawLikeStore(tmp_path / "raw")
