"""File-system stores for raw and canonical likes.

Canonical layout (the source of truth for every derived artifact):
    <root>/<yyyy>/<mm>/<dd>.json  ->  {"body": [Like, ...]}

Raw layout: one like per file, either IFTTT month folders
(<root>/<yyyymm>/*.json) or the sync inbox (<root>/tweets_v2/<tweet_id>.json).

Every write goes through a temp file in the target directory followed by
os.replace, so an interrupted run never leaves a half-written document.
"""

import hashlib
import json
import logging
import os
import re
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from .errors import StoreError
from .models import DayDocument, Like, PartitionKey

logger = logging.getLogger(__name__)

YEAR_RE = re.compile(r"^\d{4}$")
MONTH_RE = re.compile(r"^\d{2}$")
DAY_FILE_RE = re.compile(r"^\d{2}\.json$")

RAW_INBOX = "tweets_v2"


def atomic_write_bytes(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(
        dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
    )
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def write_json(path: Path, data: Any, indent: int | None = 2) -> None:
    """Atomically write JSON (UTF-8, non-ASCII kept as-is)."""
    separators = None if indent is not None else (",", ":")
    text = json.dumps(data, ensure_ascii=False, indent=indent, separators=separators)
    atomic_write_bytes(path, text.encode("utf-8"))


def read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise StoreError(f"Invalid JSON in {path}: {e}") from e


class LikeStore:
    """Day-partitioned canonical store."""

    def __init__(self, root: Path):
        self.root = root

    def path_for(self, key: PartitionKey) -> Path:
        return self.root.joinpath(*key.parts[:2], f"{key.parts[2]}.json")

    def iter_keys(self) -> list[PartitionKey]:
        """All partitions present on disk, oldest first."""
        if not self.root.is_dir():
            return []
        keys: list[PartitionKey] = []
        for year_dir in sorted(self.root.iterdir()):
            if not year_dir.is_dir() or not YEAR_RE.match(year_dir.name):
                continue
            for month_dir in sorted(year_dir.iterdir()):
                if not month_dir.is_dir() or not MONTH_RE.match(month_dir.name):
                    continue
                for day_file in sorted(month_dir.iterdir()):
                    if day_file.is_file() and DAY_FILE_RE.match(day_file.name):
                        keys.append(
                            PartitionKey(
                                int(year_dir.name),
                                int(month_dir.name),
                                int(day_file.stem),
                            )
                        )
        return keys

    def try_load(self, key: PartitionKey) -> DayDocument | None:
        """Load a day document, or None if the partition has no file yet."""
        path = self.path_for(key)
        if not path.is_file():
            return None
        data = read_json(path)
        body = data.get("body") if isinstance(data, dict) else None
        if not isinstance(body, list):
            raise StoreError(f"{path}: expected an object with a 'body' list")
        return DayDocument(key=key, body=[Like.from_dict(item) for item in body])

    def load_or_empty(self, key: PartitionKey) -> DayDocument:
        doc = self.try_load(key)
        return doc if doc is not None else DayDocument(key=key)

    def iter_documents(self) -> Iterator[DayDocument]:
        for key in self.iter_keys():
            doc = self.try_load(key)
            if doc is not None:
                yield doc

    def save(self, doc: DayDocument) -> Path:
        path = self.path_for(doc.key)
        write_json(path, doc.to_dict(), indent=None)
        return path

    def mtime(self, key: PartitionKey) -> float:
        return self.path_for(key).stat().st_mtime

    def digest(self, key: PartitionKey) -> str:
        return hashlib.sha256(self.path_for(key).read_bytes()).hexdigest()


class RawLikeStore:
    """One-like-per-file store fed by the remote sync."""

    def __init__(self, root: Path):
        self.root = root
        self.inbox = root / RAW_INBOX

    def inbox_path(self, name: str) -> Path:
        return self.inbox / name

    def known_ids(self) -> set[str]:
        """Tweet IDs already staged in the sync inbox (file name = ID)."""
        if not self.inbox.is_dir():
            return set()
        return {p.stem for p in self.inbox.glob("*.json")}

    def iter_paths(self) -> list[Path]:
        if not self.root.is_dir():
            return []
        return sorted(p for p in self.root.rglob("*.json") if p.is_file())

    def iter_records(self) -> Iterator[tuple[Path, dict]]:
        """Yield (path, record) pairs; unreadable files are logged and skipped."""
        for path in self.iter_paths():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable raw file %s: %s", path, e)
                continue
            if not isinstance(data, dict):
                logger.warning("Skipping raw file %s: not a JSON object", path)
                continue
            yield path, data

    def write_raw(self, name: str, content: bytes) -> Path:
        path = self.inbox_path(name)
        atomic_write_bytes(path, content)
        return path

    def remove(self, path: Path) -> None:
        path.unlink()
