"""Repair passes that remove duplicate likes.

Canonical store: a tweet ID must live in exactly one day document. For each
duplicated ID the occurrence with the earliest ``liked_at`` is kept and the
rest are removed. Files without duplicates are never rewritten.

Raw store: the first file (in path order) for each tweet ID is kept.

Both passes are idempotent. Rebuild the tweet index after a canonical
dedupe that updated files.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import tzinfo

from .canonicalize import tweet_id_from_url
from .models import DayDocument, PartitionKey
from .store import LikeStore, RawLikeStore

logger = logging.getLogger(__name__)


@dataclass
class DedupeReport:
    files_scanned: int = 0
    likes_scanned: int = 0
    duplicates_found: int = 0  # occurrences removed
    duplicate_ids: list[str] = field(default_factory=list)
    files_updated: list[str] = field(default_factory=list)


def dedupe_store(store: LikeStore, tz: tzinfo, dry_run: bool = False) -> DedupeReport:
    report = DedupeReport()
    documents: dict[PartitionKey, DayDocument] = {}
    # tweet_id -> [(liked_at, key, position)] in scan order
    occurrences: dict[str, list] = defaultdict(list)

    for doc in store.iter_documents():
        report.files_scanned += 1
        documents[doc.key] = doc
        for position, like in enumerate(doc.body):
            report.likes_scanned += 1
            if not like.tweet_id:
                logger.warning("Like without tweet_id in %s", doc.key)
                continue
            occurrences[like.tweet_id].append(
                (like.liked_at_datetime(tz), doc.key, position)
            )

    # key -> positions to drop
    losers: dict[PartitionKey, set[int]] = defaultdict(set)
    for tweet_id, found in occurrences.items():
        if len(found) < 2:
            continue
        # Oldest like wins; ties go to the earlier partition
        found.sort(key=lambda occ: (occ[0], occ[1], occ[2]))
        keep = found[0]
        report.duplicate_ids.append(tweet_id)
        report.duplicates_found += len(found) - 1
        logger.warning(
            "Duplicate %s in %d places; keeping %s (%s)",
            tweet_id,
            len(found),
            keep[1],
            keep[0].isoformat(),
        )
        for _, key, position in found[1:]:
            losers[key].add(position)

    for key in sorted(losers):
        doc = documents[key]
        drop = losers[key]
        before = len(doc.body)
        doc.body = [like for i, like in enumerate(doc.body) if i not in drop]
        report.files_updated.append(key.relative_path)
        logger.info("Updated %s: %d -> %d likes", key, before, len(doc.body))
        if not dry_run:
            store.save(doc)

    report.duplicate_ids.sort()
    logger.info(
        "Scanned %d files / %d likes; removed %d duplicates of %d tweets in %d files",
        report.files_scanned,
        report.likes_scanned,
        report.duplicates_found,
        len(report.duplicate_ids),
        len(report.files_updated),
    )
    return report


@dataclass
class RawDedupeReport:
    files_scanned: int = 0
    removed: list[str] = field(default_factory=list)
    unique: int = 0


def dedupe_raw(raw_store: RawLikeStore, dry_run: bool = False) -> RawDedupeReport:
    report = RawDedupeReport()
    seen: set[str] = set()

    for path, record in raw_store.iter_records():
        report.files_scanned += 1
        tweet_id = record.get("tweet_id") or tweet_id_from_url(record.get("tweet_url"))
        if not tweet_id:
            logger.warning(
                "Could not extract tweet ID from %r in %s", record.get("tweet_url"), path
            )
            continue
        if tweet_id in seen:
            logger.info("Removing duplicate tweet %s: %s", tweet_id, path)
            report.removed.append(str(path))
            if not dry_run:
                raw_store.remove(path)
            continue
        seen.add(tweet_id)

    report.unique = len(seen)
    return report
