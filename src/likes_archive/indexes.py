"""Read-only builders for artifacts derived from the canonical store.

None of these functions write to the canonical store. Each artifact can be
thrown away and rebuilt at any time.
"""

import logging
import math
import os
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, tzinfo
from pathlib import Path

from .models import (
    ActivityPoint,
    ArchivePage,
    PartitionKey,
    SearchIndexEntry,
    TweetIndexEntry,
    UrlCard,
    UrlIndexEntry,
    UrlRef,
    parse_timestamp,
)
from .state import SearchSyncState
from .store import LikeStore, write_json

logger = logging.getLogger(__name__)

# Sunday first, as the site's activity graph labels them
DAY_NAMES = ("日", "月", "火", "水", "木", "金", "土")

# Link-card image fields, most preferred first
CARD_IMAGE_FIELDS = (
    "thumbnail_image_original",
    "photo_image_full_size_original",
    "summary_photo_image_original",
)

ARCHIVE_PAGE_SIZE = 20


# ── Tweet index ────────────────────────────────────────────────


@dataclass
class TweetIndexBuild:
    index: dict[str, TweetIndexEntry] = field(default_factory=dict)
    # tweet_id -> every file path it appears in, when more than one
    duplicates: dict[str, list[str]] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {tweet_id: entry.to_dict() for tweet_id, entry in self.index.items()}


def build_tweet_index(
    store: LikeStore, tz: tzinfo, relative_to: Path | None = None
) -> TweetIndexBuild:
    """Map every tweet ID to the day document holding it.

    A tweet ID found in more than one place is reported in ``duplicates``;
    the entry keeps the occurrence with the earliest ``liked_at``.
    """
    base = relative_to if relative_to is not None else store.root.parent
    build = TweetIndexBuild()

    for doc in store.iter_documents():
        file_path = Path(os.path.relpath(store.path_for(doc.key), base)).as_posix()
        year, month, day = doc.key.parts
        for like in doc.body:
            if not like.tweet_id:
                continue
            entry = TweetIndexEntry(
                id=like.tweet_id,
                filePath=file_path,
                year=year,
                month=month,
                day=day,
                likedAt=like.liked_at,
            )
            existing = build.index.get(like.tweet_id)
            if existing is None:
                build.index[like.tweet_id] = entry
                continue

            paths = build.duplicates.setdefault(like.tweet_id, [existing.filePath])
            paths.append(file_path)
            if like.liked_at_datetime(tz) < parse_timestamp(existing.likedAt, tz):
                build.index[like.tweet_id] = entry

    for tweet_id, paths in build.duplicates.items():
        logger.warning("Tweet %s appears in %d places: %s", tweet_id, len(paths), ", ".join(paths))
    logger.info("Tweet index built with %d entries", len(build.index))
    return build


# ── Search index ───────────────────────────────────────────────


def build_search_index(
    store: LikeStore,
    tweet_index: dict[str, TweetIndexEntry],
    keys: list[PartitionKey] | None = None,
    require_indexed: bool = False,
) -> list[SearchIndexEntry]:
    """Flattened, newest-first search entries for displayable likes.

    Private and not-found likes are left out. Duplicate IDs collapse to the
    last occurrence. With ``require_indexed``, likes missing from the tweet
    index are dropped instead of getting an empty date.
    """
    entries: dict[str, SearchIndexEntry] = {}
    for key in keys if keys is not None else store.iter_keys():
        doc = store.try_load(key)
        if doc is None:
            continue
        for like in doc.body:
            if not like.tweet_id or like.private or like.notfound:
                continue
            info = tweet_index.get(like.tweet_id)
            if info is None and require_indexed:
                continue
            entries.pop(like.tweet_id, None)
            entries[like.tweet_id] = SearchIndexEntry(
                id=like.tweet_id,
                text=like.text or "",
                username=like.username or "",
                date=f"{info.year}/{info.month}/{info.day}" if info else "",
                path=f"/tweet/{like.tweet_id}",
            )

    result = sorted(entries.values(), key=lambda e: e.date, reverse=True)
    logger.info("Search index built with %d tweets", len(result))
    return result


def hidden_tweet_ids(store: LikeStore, keys: list[PartitionKey]) -> list[str]:
    """IDs in the given partitions that the search index leaves out."""
    hidden: list[str] = []
    for key in keys:
        doc = store.try_load(key)
        if doc is None:
            continue
        hidden.extend(
            like.tweet_id
            for like in doc.body
            if like.tweet_id and (like.private or like.notfound)
        )
    return sorted(set(hidden))


def changed_partitions(store: LikeStore, state: SearchSyncState) -> list[PartitionKey]:
    """Partitions modified since the last search index push.

    Content digests are compared when the previous push recorded them; file
    mtimes (reset by fresh checkouts) are only the fallback.
    """
    keys = store.iter_keys()
    if state.timestamp is None:
        return keys
    if state.digests:
        return [
            key for key in keys if state.digests.get(key.relative_path) != store.digest(key)
        ]
    since = state.timestamp.timestamp()
    return [key for key in keys if store.mtime(key) > since]


def partition_digests(store: LikeStore) -> dict[str, str]:
    return {key.relative_path: store.digest(key) for key in store.iter_keys()}


# ── URL index ──────────────────────────────────────────────────


def _card_image(binding_values: dict) -> str | None:
    for name in CARD_IMAGE_FIELDS:
        url = (binding_values.get(name) or {}).get("image_value", {}).get("url")
        if url:
            return url
    return None


def extract_card(tweet_data: dict) -> UrlCard | None:
    card = tweet_data.get("card")
    if not card:
        return None
    values = card.get("binding_values") or {}
    return UrlCard(
        url=card.get("url") or "",
        title=(values.get("title") or {}).get("string_value"),
        description=(values.get("description") or {}).get("string_value"),
        image=_card_image(values),
    )


def build_url_index(store: LikeStore) -> list[UrlIndexEntry]:
    """Likes whose fetched tweet contains links, newest day first."""
    entries: list[UrlIndexEntry] = []
    for doc in store.iter_documents():
        year, month, day = doc.key.parts
        for like in doc.body:
            data = like.react_tweet_data or {}
            urls = (data.get("entities") or {}).get("urls") or []
            if not urls:
                continue
            entries.append(
                UrlIndexEntry(
                    tweet_id=like.tweet_id or "",
                    username=like.username or "",
                    tweet_url=like.tweet_url or "",
                    liked_at=like.liked_at or "",
                    year=year,
                    month=month,
                    day=day,
                    urls=[
                        UrlRef(
                            url=u.get("url") or "",
                            expanded_url=u.get("expanded_url") or "",
                            display_url=u.get("display_url") or "",
                        )
                        for u in urls
                    ],
                    card=extract_card(data),
                )
            )

    entries.sort(key=lambda e: f"{e.year}{e.month}{e.day}", reverse=True)
    logger.info("Extracted %d tweets with URLs", len(entries))
    return entries


# ── Archive pages ──────────────────────────────────────────────


def build_archive_pages(likes: list[dict], page_size: int = ARCHIVE_PAGE_SIZE) -> list[ArchivePage]:
    """Split likes into fixed-size pages; page n holds items [(n-1)*size, n*size)."""
    if page_size < 1:
        raise ValueError("page_size must be at least 1")
    total = len(likes)
    total_pages = math.ceil(total / page_size)
    return [
        ArchivePage(
            page=n,
            totalPages=total_pages,
            totalLikes=total,
            likes=likes[(n - 1) * page_size : n * page_size],
        )
        for n in range(1, total_pages + 1)
    ]


def write_archive_pages(pages: list[ArchivePage], pages_dir: Path) -> int:
    """Write page-N.json files and remove pages beyond the new total."""
    pages_dir.mkdir(parents=True, exist_ok=True)
    for page in pages:
        write_json(pages_dir / f"page-{page.page}.json", page.to_dict())

    for stale in pages_dir.glob("page-*.json"):
        number = stale.stem.removeprefix("page-")
        if number.isdigit() and int(number) > len(pages):
            stale.unlink()
    return len(pages)


# ── Activity summary ───────────────────────────────────────────


def day_name(value: date) -> str:
    # date.weekday() is Monday=0
    return DAY_NAMES[(value.weekday() + 1) % 7]


def build_activity_summary(
    store: LikeStore, window_end: date, window_size: int = 7
) -> list[ActivityPoint]:
    """Like counts for the ``window_size`` days ending at ``window_end``, oldest first."""
    points: list[ActivityPoint] = []
    for offset in range(window_size - 1, -1, -1):
        day = window_end - timedelta(days=offset)
        doc = store.try_load(PartitionKey.from_date(day))
        points.append(
            ActivityPoint(
                date=day.isoformat(),
                count=len(doc.body) if doc is not None else 0,
                dayName=day_name(day),
            )
        )
    return points


def activity_document(points: list[ActivityPoint], now: datetime) -> dict:
    return {
        "activities": [p.to_dict() for p in points],
        "lastUpdated": now.isoformat(timespec="seconds"),
    }
