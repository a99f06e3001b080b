"""Merge raw like records into the day-partitioned canonical store.

A like is filed under the calendar day of its ``liked_at`` converted to the
site timezone. Merging is idempotent: a tweet already present in the store
is never written twice. When the same tweet shows up on two different days,
the occurrence with the earliest ``liked_at`` is the one kept.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, tzinfo

from .models import Like, PartitionKey, parse_timestamp
from .store import LikeStore

logger = logging.getLogger(__name__)

STATUS_ID_RE = re.compile(r"/status(?:es)?/(\d+)")
TWEET_ID_RE = re.compile(r"[0-9]+")

# Fields IFTTT sends that the site never reads
DROPPED_FIELDS = ("embed_code",)


def tweet_id_from_url(url: str | None) -> str | None:
    """Extract the numeric status ID from a tweet URL."""
    if not url:
        return None
    match = STATUS_ID_RE.search(url)
    return match.group(1) if match else None


def partition_for(liked_at: datetime, tz: tzinfo) -> PartitionKey:
    """Day partition for a like time, taken in the site timezone."""
    return PartitionKey.from_date(liked_at.astimezone(tz).date())


@dataclass
class CanonicalizeResult:
    inserted: int = 0
    skipped: int = 0
    moved: int = 0
    rejected: int = 0
    touched: list[PartitionKey] = field(default_factory=list)

    def touch(self, key: PartitionKey) -> None:
        if key not in self.touched:
            self.touched.append(key)


class Canonicalizer:
    """Stateful merge over one canonical store.

    Builds a tweet ID -> partition map up front so cross-day duplicates are
    caught without rescanning the store for every record.
    """

    def __init__(self, store: LikeStore, tz: tzinfo):
        self.store = store
        self.tz = tz
        self._locations: dict[str, PartitionKey] = {}
        for doc in store.iter_documents():
            for like in doc.body:
                if like.tweet_id:
                    self._locations.setdefault(like.tweet_id, doc.key)

    def prepare(self, record: dict) -> tuple[Like, datetime] | None:
        """Normalize a raw record, or None (logged) if it cannot be filed."""
        data = {k: v for k, v in record.items() if k not in DROPPED_FIELDS}
        like = Like.from_dict(data)
        if like.tweet_id:
            like.tweet_id = str(like.tweet_id)
            if not TWEET_ID_RE.fullmatch(like.tweet_id):
                logger.warning("Rejected like: non-numeric tweet_id %r", like.tweet_id)
                return None
        else:
            like.tweet_id = tweet_id_from_url(like.tweet_url)
        if not like.tweet_id:
            logger.warning(
                "Rejected like: no tweet ID in tweet_url %r", like.tweet_url
            )
            return None
        # New records start unenriched
        like.private = False
        like.notfound = False
        like.react_tweet_data = None
        try:
            liked_at = parse_timestamp(like.liked_at, self.tz)
        except (AttributeError, TypeError, ValueError):
            logger.warning(
                "Rejected like %s: unparseable liked_at %r",
                like.tweet_id,
                like.liked_at,
            )
            return None
        return like, liked_at

    def merge(self, record: dict, result: CanonicalizeResult) -> None:
        prepared = self.prepare(record)
        if prepared is None:
            result.rejected += 1
            return
        like, liked_at = prepared
        key = partition_for(liked_at, self.tz)
        tweet_id = like.tweet_id

        existing_key = self._locations.get(tweet_id)
        if existing_key == key:
            logger.debug("Duplicate %s in %s, skipped", tweet_id, key)
            result.skipped += 1
            return

        if existing_key is not None:
            old_doc = self.store.load_or_empty(existing_key)
            stored = next(
                (item for item in old_doc.body if item.tweet_id == tweet_id), None
            )
            if stored is not None and stored.liked_at_datetime(self.tz) <= liked_at:
                logger.debug(
                    "Duplicate %s already filed earlier under %s, skipped",
                    tweet_id,
                    existing_key,
                )
                result.skipped += 1
                return
            old_doc.remove(tweet_id)
            self.store.save(old_doc)
            result.touch(existing_key)
            result.moved += 1
            logger.info(
                "Moved %s from %s to earlier like on %s", tweet_id, existing_key, key
            )

        doc = self.store.load_or_empty(key)
        doc.body.append(like)
        doc.sort(self.tz)
        self.store.save(doc)
        self._locations[tweet_id] = key
        result.touch(key)
        result.inserted += 1
        logger.info("Filed %s under %s", tweet_id, key)


def canonicalize(
    records: Iterable[dict],
    store: LikeStore,
    tz: tzinfo,
    interrupt=None,
) -> CanonicalizeResult:
    """Merge raw records into the canonical store. Safe to re-run."""
    canonicalizer = Canonicalizer(store, tz)
    result = CanonicalizeResult()
    for record in records:
        if interrupt is not None and interrupt.requested:
            logger.warning("Interrupted. Stopping after the last completed write.")
            break
        canonicalizer.merge(record, result)

    logger.info(
        "Canonicalized: %d inserted, %d skipped, %d moved, %d rejected",
        result.inserted,
        result.skipped,
        result.moved,
        result.rejected,
    )
    return result
