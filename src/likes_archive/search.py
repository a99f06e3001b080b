"""Push the search index to Algolia.

Talks to the Algolia REST API (v1) directly:
    PUT  /1/indexes/{index}/settings
    POST /1/indexes/{index}/clear
    POST /1/indexes/{index}/batch
Records are sent in batches of BATCH_SIZE.

A full push replaces the index. An incremental push only re-reads day
documents changed since the last push, applies partial upserts, and
deletes likes in those documents that are now private or not found.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from .errors import IntegrityError, SearchIndexError
from .indexes import (
    TweetIndexBuild,
    build_search_index,
    changed_partitions,
    hidden_tweet_ids,
    partition_digests,
)
from .state import SearchSyncState, SearchSyncStateStore
from .store import LikeStore

logger = logging.getLogger(__name__)

BATCH_SIZE = 1000

INDEX_SETTINGS = {
    "searchableAttributes": ["text", "username"],
    "attributesToRetrieve": ["text", "username", "date", "path"],
    "attributesToHighlight": ["text", "username"],
    # Most liked tweets are Japanese
    "queryLanguages": ["ja"],
    "indexLanguages": ["ja"],
    "typoTolerance": True,
    "ranking": [
        "typo",
        "geo",
        "words",
        "filters",
        "proximity",
        "attribute",
        "exact",
        "custom",
    ],
    "customRanking": ["desc(date)"],
    "hitsPerPage": 20,
    "maxValuesPerFacet": 100,
    "removeStopWords": False,
    "ignorePlurals": False,
}


class SearchClient:
    """Minimal Algolia write client."""

    def __init__(
        self,
        app_id: str,
        api_key: str,
        index_name: str = "tweets",
        timeout: float = 30.0,
        base_url: str | None = None,
    ):
        self.index_name = index_name
        self._base_url = base_url or f"https://{app_id}.algolia.net"
        self._client = httpx.Client(
            base_url=self._base_url,
            headers={
                "X-Algolia-Application-Id": app_id,
                "X-Algolia-API-Key": api_key,
                "content-type": "application/json",
            },
            timeout=timeout,
        )

    def _request(self, method: str, path: str, payload: dict | None = None) -> dict:
        url = f"/1/indexes/{self.index_name}{path}"
        try:
            response = self._client.request(method, url, json=payload)
        except httpx.HTTPError as e:
            raise SearchIndexError(f"{method} {url} failed: {e}") from e

        if response.status_code in (401, 403):
            raise SearchIndexError(
                "Search index authentication failed. Check the admin API key."
            )
        if response.status_code >= 400:
            raise SearchIndexError(
                f"{method} {url} returned {response.status_code}: {response.text}"
            )
        return response.json() if response.content else {}

    def set_settings(self, settings: dict) -> dict:
        return self._request("PUT", "/settings", settings)

    def clear_objects(self) -> dict:
        return self._request("POST", "/clear")

    def _batch(self, action: str, objects: list[dict]) -> int:
        sent = 0
        for start in range(0, len(objects), BATCH_SIZE):
            chunk = objects[start : start + BATCH_SIZE]
            self._request(
                "POST",
                "/batch",
                {"requests": [{"action": action, "body": obj} for obj in chunk]},
            )
            sent += len(chunk)
            logger.info("Sent %d/%d records", sent, len(objects))
        return sent

    def save_objects(self, objects: list[dict]) -> int:
        return self._batch("updateObject", objects)

    def partial_update_objects(
        self, objects: list[dict], create_if_not_exists: bool = True
    ) -> int:
        action = (
            "partialUpdateObject" if create_if_not_exists else "partialUpdateObjectNoCreate"
        )
        return self._batch(action, objects)

    def delete_objects(self, object_ids: list[str]) -> int:
        return self._batch("deleteObject", [{"objectID": i} for i in object_ids])

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


@dataclass
class PushResult:
    records: int
    partitions: int
    deleted: int = 0
    skipped: bool = False


def ensure_consistent(build: TweetIndexBuild) -> None:
    """Refuse to publish from a store that has duplicate tweet IDs."""
    if build.duplicates:
        ids = sorted(build.duplicates)
        raise IntegrityError(
            f"{len(ids)} tweet IDs appear in more than one day document "
            f"({', '.join(ids[:5])}{'...' if len(ids) > 5 else ''}). "
            "Run `likes-archive dedupe` before publishing the search index.",
            duplicate_ids=ids,
        )


def push_full_index(
    client: SearchClient,
    store: LikeStore,
    build: TweetIndexBuild,
    state_store: SearchSyncStateStore | None = None,
) -> PushResult:
    ensure_consistent(build)
    entries = build_search_index(store, build.index, require_indexed=True)
    records = [e.to_search_record() for e in entries]

    logger.info("Configuring index settings...")
    client.set_settings(INDEX_SETTINGS)
    logger.info("Clearing existing index...")
    client.clear_objects()
    logger.info("Uploading %d records...", len(records))
    client.save_objects(records)

    if state_store is not None:
        state_store.save(
            SearchSyncState(
                timestamp=datetime.now(timezone.utc),
                record_count=len(records),
                digests=partition_digests(store),
            )
        )
    return PushResult(records=len(records), partitions=len(store.iter_keys()))


def push_incremental_index(
    client: SearchClient,
    store: LikeStore,
    build: TweetIndexBuild,
    state_store: SearchSyncStateStore,
) -> PushResult:
    ensure_consistent(build)
    state = state_store.load()
    keys = changed_partitions(store, state)
    if not keys:
        logger.info("No day documents changed since last sync. Skipping index update.")
        return PushResult(records=0, partitions=0, skipped=True)

    logger.info("Processing %d changed day documents...", len(keys))
    entries = build_search_index(store, build.index, keys=keys, require_indexed=True)
    records = [e.to_search_record() for e in entries]
    if records:
        client.partial_update_objects(records, create_if_not_exists=True)
    else:
        logger.info("No new records to add to index.")

    # Likes enriched as private or not found since an earlier push
    hidden = hidden_tweet_ids(store, keys)
    if hidden:
        logger.info("Removing %d hidden tweets from index...", len(hidden))
        client.delete_objects(hidden)

    state_store.save(
        SearchSyncState(
            timestamp=datetime.now(timezone.utc),
            record_count=len(records),
            digests=partition_digests(store),
        )
    )
    return PushResult(records=len(records), partitions=len(keys), deleted=len(hidden))
