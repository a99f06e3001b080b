"""Configuration loading and saving.

Config file location: ~/.config/likes-archive/config.toml

Schema:
    [paths]
    content_dir = "src/content"              # likes/, tweet-index.json, archive/
    raw_dir = "src/assets/data/x/likes"      # raw IFTTT like files
    public_dir = "public"                    # search-index.json, activity-data.json
    state_dir = "src/scripts"                # last-sync.txt

    [site]
    timezone = "Asia/Tokyo"

    [aws]
    region = "ap-northeast-1"
    bucket = "..."
    prefix = "tweets_v2"
    access_key_id = "..."
    secret_access_key = "..."

    [search]
    app_id = "..."
    admin_api_key = "..."
    index_name = "tweets"

    [fetch]
    delay = 1.0
    save_every = 10
    timeout = 30.0
    retries = 1

Credentials can also come from the environment, which takes precedence:
    AWS_REGION, AWS_BUCKET_NAME, AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY,
    ALGOLIA_APP_ID, ALGOLIA_ADMIN_API_KEY
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import tomli_w

from .errors import ConfigError

CONFIG_DIR = Path.home() / ".config" / "likes-archive"
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULT_TIMEZONE = "Asia/Tokyo"


@dataclass
class AwsConfig:
    region: str = ""
    bucket: str = ""
    prefix: str = "tweets_v2"
    access_key_id: str = ""
    secret_access_key: str = ""


@dataclass
class SearchConfig:
    app_id: str = ""
    admin_api_key: str = ""
    index_name: str = "tweets"


@dataclass
class FetchConfig:
    delay: float = 1.0
    save_every: int = 10
    timeout: float = 30.0
    retries: int = 1


@dataclass
class AppConfig:
    content_dir: Path = Path("src/content")
    raw_dir: Path = Path("src/assets/data/x/likes")
    public_dir: Path = Path("public")
    state_dir: Path = Path("src/scripts")
    timezone: str = DEFAULT_TIMEZONE
    aws: AwsConfig = field(default_factory=AwsConfig)
    search: SearchConfig = field(default_factory=SearchConfig)
    fetch: FetchConfig = field(default_factory=FetchConfig)

    @property
    def likes_dir(self) -> Path:
        return self.content_dir / "likes"

    @property
    def tweet_index_file(self) -> Path:
        return self.content_dir / "tweet-index.json"

    @property
    def url_index_file(self) -> Path:
        return self.content_dir / "url-index.json"

    @property
    def archive_dir(self) -> Path:
        return self.content_dir / "archive"

    @property
    def search_index_file(self) -> Path:
        return self.public_dir / "search-index.json"

    @property
    def activity_file(self) -> Path:
        return self.public_dir / "activity-data.json"

    @property
    def checkpoint_file(self) -> Path:
        return self.state_dir / "last-sync.txt"

    @property
    def search_sync_file(self) -> Path:
        return self.content_dir / ".metadata" / "algolia-last-sync.json"

    @property
    def tz(self) -> ZoneInfo:
        return resolve_timezone(self.timezone)

    def require_aws(self) -> AwsConfig:
        """Return AWS settings, or fail before any file is touched."""
        missing = [
            name
            for name, value in (
                ("region", self.aws.region),
                ("bucket", self.aws.bucket),
                ("access_key_id", self.aws.access_key_id),
                ("secret_access_key", self.aws.secret_access_key),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                "Missing AWS settings: "
                + ", ".join(missing)
                + ". Set them under [aws] in the config file or via "
                "AWS_REGION / AWS_BUCKET_NAME / AWS_ACCESS_KEY_ID / "
                "AWS_SECRET_ACCESS_KEY."
            )
        return self.aws

    def require_search(self) -> SearchConfig:
        if not self.search.app_id or not self.search.admin_api_key:
            raise ConfigError(
                "Missing search index credentials. Set search.app_id and "
                "search.admin_api_key, or ALGOLIA_APP_ID and "
                "ALGOLIA_ADMIN_API_KEY."
            )
        return self.search


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name!r}") from e


def load_config(config_path: Path = CONFIG_FILE) -> AppConfig:
    """Load config from TOML file, falling back to defaults and environment."""
    data: dict = {}
    if config_path.exists():
        with open(config_path, "rb") as f:
            data = tomllib.load(f)

    paths_data = data.get("paths", {})
    site_data = data.get("site", {})
    aws_data = data.get("aws", {})
    search_data = data.get("search", {})
    fetch_data = data.get("fetch", {})
    defaults = AppConfig()

    try:
        fetch = FetchConfig(
            delay=float(fetch_data.get("delay", 1.0)),
            save_every=int(fetch_data.get("save_every", 10)),
            timeout=float(fetch_data.get("timeout", 30.0)),
            retries=int(fetch_data.get("retries", 1)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid [fetch] settings in {config_path}: {e}") from e
    if fetch.save_every < 1:
        raise ConfigError("fetch.save_every must be at least 1")

    config = AppConfig(
        content_dir=Path(paths_data.get("content_dir", defaults.content_dir)),
        raw_dir=Path(paths_data.get("raw_dir", defaults.raw_dir)),
        public_dir=Path(paths_data.get("public_dir", defaults.public_dir)),
        state_dir=Path(paths_data.get("state_dir", defaults.state_dir)),
        timezone=site_data.get("timezone", DEFAULT_TIMEZONE),
        aws=AwsConfig(
            region=os.environ.get("AWS_REGION", aws_data.get("region", "")),
            bucket=os.environ.get("AWS_BUCKET_NAME", aws_data.get("bucket", "")),
            prefix=aws_data.get("prefix", "tweets_v2"),
            access_key_id=os.environ.get(
                "AWS_ACCESS_KEY_ID", aws_data.get("access_key_id", "")
            ),
            secret_access_key=os.environ.get(
                "AWS_SECRET_ACCESS_KEY", aws_data.get("secret_access_key", "")
            ),
        ),
        search=SearchConfig(
            app_id=os.environ.get("ALGOLIA_APP_ID", search_data.get("app_id", "")),
            admin_api_key=os.environ.get(
                "ALGOLIA_ADMIN_API_KEY", search_data.get("admin_api_key", "")
            ),
            index_name=search_data.get("index_name", "tweets"),
        ),
        fetch=fetch,
    )

    # Fail early on a bad timezone name
    resolve_timezone(config.timezone)
    return config


def save_config(config: AppConfig, config_path: Path = CONFIG_FILE) -> None:
    """Write config to TOML file with restricted permissions."""
    config_path.parent.mkdir(parents=True, exist_ok=True)

    data = {
        "paths": {
            "content_dir": str(config.content_dir),
            "raw_dir": str(config.raw_dir),
            "public_dir": str(config.public_dir),
            "state_dir": str(config.state_dir),
        },
        "site": {
            "timezone": config.timezone,
        },
        "aws": {
            "region": config.aws.region,
            "bucket": config.aws.bucket,
            "prefix": config.aws.prefix,
            "access_key_id": config.aws.access_key_id,
            "secret_access_key": config.aws.secret_access_key,
        },
        "fetch": {
            "delay": config.fetch.delay,
            "save_every": config.fetch.save_every,
            "timeout": config.fetch.timeout,
            "retries": config.fetch.retries,
        },
    }

    if config.search.app_id:
        data["search"] = {
            "app_id": config.search.app_id,
            "admin_api_key": config.search.admin_api_key,
            "index_name": config.search.index_name,
        }

    with open(config_path, "wb") as f:
        tomli_w.dump(data, f)

    # Restrict permissions: file contains AWS and search admin secrets
    os.chmod(config_path, 0o600)


def config_exists(config_path: Path = CONFIG_FILE) -> bool:
    """Check if config file exists."""
    return config_path.exists()
