"""Attach fetched tweet data to canonical likes.

Every like ends up in exactly one state: fetched (``react_tweet_data``),
``private`` (tombstoned) or ``notfound``. Likes that already have a state are
skipped, so an interrupted run resumes where it stopped.

Requests are serialized with a fixed delay between them. Progress is written
back every ``save_every`` enrichments.
"""

import logging
import time
from collections.abc import Callable, Hashable, Sequence
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from .errors import TweetFetchError
from .models import EnrichmentOutcome, EnrichmentState, Fetched, NotFound, Private
from .store import LikeStore

logger = logging.getLogger(__name__)


class TweetSource(Protocol):
    def fetch_tweet(self, tweet_id: str) -> EnrichmentOutcome: ...


@dataclass
class EnrichResult:
    fetched: int = 0
    private: int = 0
    notfound: int = 0
    skipped: int = 0
    failed: int = 0
    interrupted: bool = False

    @property
    def processed(self) -> int:
        return self.fetched + self.private + self.notfound


def needs_enrichment(item: EnrichmentState) -> bool:
    return bool(item.tweet_id) and item.outcome is None


def fetch_with_retry(
    source: TweetSource, tweet_id: str, retries: int, delay: float
) -> EnrichmentOutcome | None:
    """Fetch one tweet, retrying transient errors. None means every attempt failed."""
    attempts = retries + 1
    for attempt in range(1, attempts + 1):
        try:
            return source.fetch_tweet(tweet_id)
        except TweetFetchError as e:
            logger.warning(
                "Attempt %d/%d for tweet %s failed: %s", attempt, attempts, tweet_id, e
            )
            if attempt < attempts and delay > 0:
                time.sleep(delay)
    return None


def enrich_records(
    pending: Sequence[tuple[EnrichmentState, Hashable]],
    source: TweetSource,
    flush: Callable[[set], None],
    *,
    delay: float = 1.0,
    save_every: int = 10,
    retries: int = 1,
    interrupt=None,
    result: EnrichResult | None = None,
) -> EnrichResult:
    """Enrich ``pending`` (record, group) pairs in order.

    ``flush`` receives the set of groups with unsaved changes and must persist
    them. It is called every ``save_every`` records, on interrupt, and at the end.
    """
    result = result or EnrichResult()
    dirty: set = set()
    total = len(pending)

    for i, (item, group) in enumerate(pending):
        if interrupt is not None and interrupt.requested:
            result.interrupted = True
            logger.warning("Interrupted after %d/%d tweets.", i, total)
            break

        if i > 0 and delay > 0:
            logger.debug("Sleeping %.1fs before next request...", delay)
            time.sleep(delay)

        tweet_id = item.tweet_id
        logger.info("[%d/%d] Fetching tweet %s...", i + 1, total, tweet_id)
        outcome = fetch_with_retry(source, tweet_id, retries, delay)

        match outcome:
            case Fetched():
                item.stamp_fetched(datetime.now(timezone.utc).isoformat())
                result.fetched += 1
                logger.info("Fetched tweet %s", tweet_id)
            case Private():
                result.private += 1
                logger.info("Tweet %s is private", tweet_id)
            case NotFound():
                result.notfound += 1
                logger.info("Tweet %s not found", tweet_id)
            case None:
                # Conservative default so one bad record cannot block the rest
                outcome = NotFound()
                result.notfound += 1
                result.failed += 1
                logger.error("Giving up on tweet %s; marking as not found", tweet_id)

        item.apply(outcome)
        dirty.add(group)

        if (i + 1) % save_every == 0:
            flush(dirty)
            logger.info("Saved progress: %d/%d tweets processed", i + 1, total)
            dirty = set()

    if dirty:
        flush(dirty)
    return result


def enrich(
    store: LikeStore,
    source: TweetSource,
    *,
    delay: float = 1.0,
    save_every: int = 10,
    retries: int = 1,
    interrupt=None,
    limit: int | None = None,
) -> EnrichResult:
    """Enrich every canonical like that has no outcome yet.

    Order is deterministic: partitions oldest first, then body order.
    """
    documents = {}
    pending: list[tuple[EnrichmentState, Hashable]] = []
    result = EnrichResult()

    for doc in store.iter_documents():
        for like in doc.body:
            if not needs_enrichment(like):
                result.skipped += 1
                continue
            documents[doc.key] = doc
            pending.append((like, doc.key))

    if limit is not None:
        pending = pending[:limit]

    logger.info(
        "%d likes need enrichment, %d already done or without ID",
        len(pending),
        result.skipped,
    )

    def flush(keys: set) -> None:
        for key in sorted(keys):
            store.save(documents[key])

    return enrich_records(
        pending,
        source,
        flush,
        delay=delay,
        save_every=save_every,
        retries=retries,
        interrupt=interrupt,
        result=result,
    )
