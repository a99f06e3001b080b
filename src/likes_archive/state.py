"""Persisted cross-run state.

Sync checkpoint (last-sync.txt) is a single ISO-8601 line:
    2025-01-15T14:30:00+09:00

Search index sync state (.metadata/algolia-last-sync.json):
    {
        "timestamp": "2025-01-15T05:30:00+00:00",
        "recordCount": 142,
        "digests": {"2025/01/15.json": "<sha256>", ...}
    }
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from pathlib import Path

from .models import Checkpoint
from .store import atomic_write_bytes, write_json

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK = timedelta(hours=24)


def default_checkpoint(tz: tzinfo, now: datetime | None = None) -> Checkpoint:
    """Checkpoint used when none was persisted: 24 hours before now."""
    current = now or datetime.now(timezone.utc)
    return Checkpoint(current.astimezone(tz) - DEFAULT_LOOKBACK)


class CheckpointStore:
    def __init__(self, path: Path):
        self.path = path

    def load(self, tz: tzinfo, now: datetime | None = None) -> Checkpoint:
        """Read the checkpoint, falling back to the default on any problem."""
        if not self.path.exists():
            logger.info("No sync checkpoint at %s. Using default.", self.path)
            return default_checkpoint(tz, now)

        text = self.path.read_text(encoding="utf-8").strip()
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning(
                "Invalid date %r found in %s. Using default.", text, self.path
            )
            return default_checkpoint(tz, now)

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=tz)
        logger.info("Loaded sync checkpoint %s", parsed.isoformat())
        return Checkpoint(parsed)

    def save(self, checkpoint: Checkpoint) -> None:
        atomic_write_bytes(self.path, checkpoint.isoformat().encode("utf-8"))
        logger.info("Saved sync checkpoint %s", checkpoint.isoformat())


@dataclass
class SearchSyncState:
    timestamp: datetime | None = None
    record_count: int = 0
    digests: dict[str, str] = field(default_factory=dict)


class SearchSyncStateStore:
    def __init__(self, path: Path):
        self.path = path

    def load(self) -> SearchSyncState:
        if not self.path.exists():
            logger.info("No search sync state found. Starting fresh.")
            return SearchSyncState()
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            timestamp = datetime.fromisoformat(data["timestamp"])
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable search sync state %s: %s", self.path, e)
            return SearchSyncState()
        return SearchSyncState(
            timestamp=timestamp,
            record_count=int(data.get("recordCount", 0)),
            digests=dict(data.get("digests", {})),
        )

    def save(self, state: SearchSyncState) -> None:
        data = {
            "timestamp": (state.timestamp or datetime.now(timezone.utc)).isoformat(),
            "recordCount": state.record_count,
            "digests": dict(sorted(state.digests.items())),
        }
        write_json(self.path, data)

