"""Import likes from a Twitter data export.

Export files (``like.js``, or renamed ``like-twitter-*.js``) look like:
    window.YTD.like.part0 = [{"like": {"tweetId": "...", "fullText": "...",
                                       "expandedUrl": "..."}}, ...]

Imported likes carry no like time, so they live outside the day-partitioned
store in ``archive/`` and are browsed through fixed-size pages.
"""

import json
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .enrich import EnrichResult, TweetSource, enrich_records, needs_enrichment
from .errors import StoreError
from .indexes import ARCHIVE_PAGE_SIZE, build_archive_pages, write_archive_pages
from .models import ArchiveLike
from .store import read_json, write_json

logger = logging.getLogger(__name__)

EXPORT_PREFIX_RE = re.compile(r"^\s*window\.YTD\.like\.part\d+\s*=\s*")
EXPORT_SUFFIX_RE = re.compile(r";?\s*$")


def load_archive_file(path: Path) -> list[dict]:
    """Parse one export file into its list of ``{"like": {...}}`` items."""
    content = path.read_text(encoding="utf-8")
    payload = EXPORT_SUFFIX_RE.sub("", EXPORT_PREFIX_RE.sub("", content, count=1))
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise StoreError(f"{path} is not a like export file: {e}") from e
    if not isinstance(data, list):
        raise StoreError(f"{path}: expected a list of likes")
    return data


@dataclass
class ArchiveImport:
    likes: list[ArchiveLike] = field(default_factory=list)
    skipped_existing: int = 0
    skipped_duplicate: int = 0
    skipped_invalid: int = 0


def process_archive_likes(
    items: Iterable[dict], known_ids: set[str], now: datetime | None = None
) -> ArchiveImport:
    """Turn export items into archive likes.

    Tweets already in the canonical store (``known_ids``) and repeats within
    the export are dropped. Output is sorted by tweet ID, newest first.
    """
    processed_at = (now or datetime.now(timezone.utc)).isoformat()
    result = ArchiveImport()
    seen: set[str] = set()

    for item in items:
        like = item.get("like") if isinstance(item, dict) else None
        tweet_id = str(like.get("tweetId", "")) if isinstance(like, dict) else ""
        if not tweet_id:
            result.skipped_invalid += 1
            logger.warning("Skipping export entry without tweetId: %r", item)
            continue
        if tweet_id in known_ids:
            result.skipped_existing += 1
            logger.debug("Skipping %s: already in the canonical store", tweet_id)
            continue
        if tweet_id in seen:
            result.skipped_duplicate += 1
            logger.debug("Skipping duplicate %s within archive", tweet_id)
            continue
        seen.add(tweet_id)
        result.likes.append(
            ArchiveLike(
                id=f"archive-{tweet_id}",
                tweetId=tweet_id,
                fullText=like.get("fullText"),
                expandedUrl=like.get("expandedUrl", ""),
                processedAt=processed_at,
            )
        )

    # Snowflake IDs grow with time
    result.likes.sort(key=lambda a: (len(a.tweetId), a.tweetId), reverse=True)
    return result


class ArchiveStore:
    """Files under ``<content>/archive``."""

    def __init__(self, root: Path):
        self.root = root
        self.likes_file = root / "archive-likes.json"
        self.enriched_file = root / "archive-likes-enriched.json"
        self.ids_file = root / "archive-tweet-ids.json"
        self.pages_dir = root / "pages"

    def save_import(self, likes: list[ArchiveLike]) -> None:
        write_json(self.likes_file, [a.to_dict() for a in likes])
        write_json(self.ids_file, [a.tweetId for a in likes])

    def load_for_enrichment(self) -> list[ArchiveLike]:
        """Resume from the enriched file when present, else start from the import."""
        if self.enriched_file.exists():
            data = read_json(self.enriched_file)
            logger.info("Found existing enriched data with %d tweets", len(data))
        elif self.likes_file.exists():
            data = read_json(self.likes_file)
            logger.info("No existing enriched data found, starting fresh")
        else:
            raise StoreError(
                f"No archive import found at {self.likes_file}. "
                "Run `likes-archive archive import` first."
            )
        return [ArchiveLike.from_dict(item) for item in data]

    def save_enriched(self, likes: list[ArchiveLike]) -> None:
        write_json(self.enriched_file, [a.to_dict() for a in likes])

    def write_pages(self, likes: list[ArchiveLike], page_size: int = ARCHIVE_PAGE_SIZE) -> int:
        pages = build_archive_pages([a.to_dict() for a in likes], page_size)
        return write_archive_pages(pages, self.pages_dir)


def enrich_archive(
    archive: ArchiveStore,
    source: TweetSource,
    *,
    delay: float = 1.0,
    save_every: int = 10,
    retries: int = 1,
    interrupt=None,
    limit: int | None = None,
) -> EnrichResult:
    likes = archive.load_for_enrichment()
    result = EnrichResult()
    pending = []
    for like in likes:
        if needs_enrichment(like):
            pending.append((like, None))
        else:
            result.skipped += 1
    if limit is not None:
        pending = pending[:limit]
    logger.info(
        "Need to fetch data for %d tweets (already fetched: %d)",
        len(pending),
        result.skipped,
    )

    def flush(_groups: set) -> None:
        archive.save_enriched(likes)

    result = enrich_records(
        pending,
        source,
        flush,
        delay=delay,
        save_every=save_every,
        retries=retries,
        interrupt=interrupt,
        result=result,
    )
    archive.save_enriched(likes)
    total_pages = archive.write_pages(likes)
    logger.info("Created %d page files for %d archive likes", total_pages, len(likes))
    return result
