"""Data models for liked tweets and the artifacts derived from them."""

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Any

# IFTTT's "LikedAt" ingredient: "January 31, 2025 at 11:30PM"
IFTTT_DATE_FORMAT = "%B %d, %Y at %I:%M%p"

LIKE_FIELDS = (
    "text",
    "username",
    "tweet_url",
    "first_link",
    "created_at",
    "liked_at",
    "source",
    "tweet_id",
    "private",
    "notfound",
    "react_tweet_data",
)


def parse_timestamp(value: str, tz: tzinfo) -> datetime:
    """Parse an ISO-8601 or IFTTT timestamp into an aware datetime.

    Naive values are taken to be in ``tz``.
    """
    text = value.strip()
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        parsed = datetime.strptime(text, IFTTT_DATE_FORMAT)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


# ── Enrichment outcome ─────────────────────────────────────────


@dataclass(frozen=True)
class Fetched:
    data: dict


@dataclass(frozen=True)
class Private:
    pass


@dataclass(frozen=True)
class NotFound:
    pass


EnrichmentOutcome = Fetched | Private | NotFound


# ── Like records ───────────────────────────────────────────────


class EnrichmentState:
    """Outcome bookkeeping shared by likes and archive likes.

    Subclasses carry `react_tweet_data`, `private` and `notfound` fields.
    """

    react_tweet_data: dict | None
    private: bool
    notfound: bool

    @property
    def outcome(self) -> EnrichmentOutcome | None:
        """The enrichment result recorded on this record, if any."""
        if self.react_tweet_data is not None:
            return Fetched(self.react_tweet_data)
        if self.private:
            return Private()
        if self.notfound:
            return NotFound()
        return None

    def apply(self, outcome: EnrichmentOutcome) -> None:
        """Record an enrichment result so exactly one state holds."""
        match outcome:
            case Fetched(data=data):
                self.react_tweet_data = data
                self.private = False
                self.notfound = False
            case Private():
                self.react_tweet_data = None
                self.private = True
                self.notfound = False
            case NotFound():
                self.react_tweet_data = None
                self.private = False
                self.notfound = True


@dataclass
class Like(EnrichmentState):
    text: str = ""
    username: str = ""
    tweet_url: str = ""
    first_link: str = ""
    created_at: str = ""
    liked_at: str = ""
    source: str = "ifttt"
    tweet_id: str | None = None
    private: bool = False
    notfound: bool = False
    react_tweet_data: dict | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict) -> "Like":
        known = {k: data[k] for k in LIKE_FIELDS if k in data}
        extra = {k: v for k, v in data.items() if k not in LIKE_FIELDS}
        like = cls(**known, extra=extra)
        like.private = bool(like.private)
        like.notfound = bool(like.notfound)
        return like

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "text": self.text,
            "username": self.username,
            "tweet_url": self.tweet_url,
            "first_link": self.first_link,
            "created_at": self.created_at,
            "liked_at": self.liked_at,
            "source": self.source,
        }
        if self.tweet_id is not None:
            data["tweet_id"] = self.tweet_id
        data["private"] = self.private
        data["notfound"] = self.notfound
        if self.react_tweet_data is not None:
            data["react_tweet_data"] = self.react_tweet_data
        data.update(self.extra)
        return data

    def stamp_fetched(self, when: str) -> None:
        self.extra["fetchedAt"] = when

    def liked_at_datetime(self, tz: tzinfo) -> datetime:
        return parse_timestamp(self.liked_at, tz)


@dataclass
class ArchiveLike(EnrichmentState):
    """A like imported from a Twitter data export (no like time available)."""

    id: str
    tweetId: str
    expandedUrl: str = ""
    fullText: str | None = None
    isArchive: bool = True
    processedAt: str = ""
    react_tweet_data: dict | None = None
    private: bool = False
    notfound: bool = False
    fetchedAt: str | None = None

    @property
    def tweet_id(self) -> str:
        return self.tweetId

    @classmethod
    def from_dict(cls, data: dict) -> "ArchiveLike":
        return cls(
            id=data.get("id") or f"archive-{data['tweetId']}",
            tweetId=data["tweetId"],
            expandedUrl=data.get("expandedUrl", ""),
            fullText=data.get("fullText"),
            isArchive=bool(data.get("isArchive", True)),
            processedAt=data.get("processedAt", ""),
            react_tweet_data=data.get("react_tweet_data"),
            private=bool(data.get("private", False)),
            notfound=bool(data.get("notfound", False)),
            fetchedAt=data.get("fetchedAt"),
        )

    def stamp_fetched(self, when: str) -> None:
        self.fetchedAt = when

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "id": self.id,
            "tweetId": self.tweetId,
        }
        if self.fullText is not None:
            data["fullText"] = self.fullText
        data["expandedUrl"] = self.expandedUrl
        data["isArchive"] = self.isArchive
        data["processedAt"] = self.processedAt
        if self.react_tweet_data is not None:
            data["react_tweet_data"] = self.react_tweet_data
        if self.private:
            data["private"] = True
        if self.notfound:
            data["notfound"] = True
        if self.fetchedAt is not None:
            data["fetchedAt"] = self.fetchedAt
        return data


@dataclass(frozen=True, order=True)
class PartitionKey:
    """Calendar day a day document covers, in the target timezone."""

    year: int
    month: int
    day: int

    @classmethod
    def from_date(cls, value: date) -> "PartitionKey":
        return cls(value.year, value.month, value.day)

    @property
    def parts(self) -> tuple[str, str, str]:
        return f"{self.year:04d}", f"{self.month:02d}", f"{self.day:02d}"

    @property
    def relative_path(self) -> str:
        year, month, day = self.parts
        return f"{year}/{month}/{day}.json"

    @property
    def slash_date(self) -> str:
        return "/".join(self.parts)

    def __str__(self) -> str:
        return self.slash_date


@dataclass
class DayDocument:
    key: PartitionKey
    body: list[Like] = field(default_factory=list)

    def remove(self, tweet_id: str) -> int:
        before = len(self.body)
        self.body = [like for like in self.body if like.tweet_id != tweet_id]
        return before - len(self.body)

    def sort(self, tz: tzinfo) -> None:
        """Order likes newest first by ``liked_at``."""
        self.body.sort(key=lambda like: like.liked_at_datetime(tz), reverse=True)

    def to_dict(self) -> dict:
        return {"body": [like.to_dict() for like in self.body]}


# ── Sync ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class Checkpoint:
    """Watermark of the last successful remote sync."""

    timestamp: datetime

    def isoformat(self) -> str:
        return self.timestamp.isoformat(timespec="seconds")


# ── Derived artifacts ──────────────────────────────────────────


@dataclass
class TweetIndexEntry:
    id: str
    filePath: str
    year: str
    month: str
    day: str
    likedAt: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "filePath": self.filePath,
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "likedAt": self.likedAt,
        }


@dataclass
class SearchIndexEntry:
    id: str
    text: str
    username: str
    date: str  # yyyy/mm/dd, or "" when the tweet index has no entry
    path: str

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "username": self.username,
            "date": self.date,
            "path": self.path,
        }

    def to_search_record(self) -> dict:
        """Record shape pushed to the external search index."""
        year, month, day = (self.date.split("/") + ["", "", ""])[:3]
        return {
            "objectID": self.id,
            "text": self.text,
            "username": self.username,
            "date": self.date,
            "year": year,
            "month": month,
            "day": day,
            "path": self.path,
        }


@dataclass
class UrlRef:
    url: str
    expanded_url: str
    display_url: str


@dataclass
class UrlCard:
    url: str
    title: str | None = None
    description: str | None = None
    image: str | None = None


@dataclass
class UrlIndexEntry:
    tweet_id: str
    username: str
    tweet_url: str
    liked_at: str
    year: str
    month: str
    day: str
    urls: list[UrlRef] = field(default_factory=list)
    card: UrlCard | None = None

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "tweet_id": self.tweet_id,
            "username": self.username,
            "tweet_url": self.tweet_url,
            "liked_at": self.liked_at,
            "year": self.year,
            "month": self.month,
            "day": self.day,
            "urls": [
                {
                    "url": u.url,
                    "expanded_url": u.expanded_url,
                    "display_url": u.display_url,
                }
                for u in self.urls
            ],
        }
        if self.card is not None:
            card = {"url": self.card.url}
            for name in ("title", "description", "image"):
                value = getattr(self.card, name)
                if value is not None:
                    card[name] = value
            data["card"] = card
        return data


@dataclass
class ArchivePage:
    page: int
    totalPages: int
    totalLikes: int
    likes: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "page": self.page,
            "totalPages": self.totalPages,
            "totalLikes": self.totalLikes,
            "likes": self.likes,
        }


@dataclass
class ActivityPoint:
    date: str  # yyyy-mm-dd
    count: int
    dayName: str

    def to_dict(self) -> dict:
        return {"date": self.date, "count": self.count, "dayName": self.dayName}
