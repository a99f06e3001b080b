"""CLI interface for likes-archive.

Commands:
    setup               - Configure storage, search and site settings
    sync                - Download new like files from S3
    canonicalize        - File raw likes into the day-partitioned store
    enrich              - Fetch tweet data for likes that have none
    build-index         - Rebuild tweet-index.json
    build-search-index  - Rebuild search-index.json, optionally push it
    extract-urls        - Rebuild url-index.json
    build-activity      - Rebuild activity-data.json
    archive import/fetch - Import and enrich a Twitter data export
    dedupe              - Remove duplicate likes
    run                 - Run the daily pipeline end to end
    status              - Show store and checkpoint status
"""

import sys
from datetime import date, datetime, timezone
from pathlib import Path

import click

from .config import (
    CONFIG_FILE,
    AppConfig,
    AwsConfig,
    SearchConfig,
    config_exists,
    load_config,
    resolve_timezone,
    save_config,
)
from .errors import ConfigError, IntegrityError, LikesArchiveError
from .logging_config import setup_logging

EXIT_ERROR = 1
EXIT_INTEGRITY = 2


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--config", type=click.Path(), default=None, help="Config file path")
@click.pass_context
def main(ctx, verbose, config):
    """Liked-tweets archive: sync, canonicalize, enrich and index likes."""
    setup_logging(debug=verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else CONFIG_FILE


def _load(ctx) -> AppConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as e:
        _fail(e)


def _fail(error, code: int = EXIT_ERROR):
    click.echo(f"Error: {error}", err=True)
    sys.exit(code)


def _known_ids(config: AppConfig) -> set[str]:
    from .store import read_json

    if not config.tweet_index_file.exists():
        click.echo("tweet-index.json not found, treating as empty")
        return set()
    return set(read_json(config.tweet_index_file))


@main.command()
@click.pass_context
def setup(ctx):
    """Configure storage credentials and site settings."""
    config_path = ctx.obj["config_path"]
    existing = load_config(config_path) if config_exists(config_path) else AppConfig()

    click.echo("Liked-tweets archive: Setup")
    click.echo("=" * 40)
    click.echo()
    click.echo("S3 bucket the IFTTT applet writes like files to.")
    bucket = click.prompt("bucket", default=existing.aws.bucket or None)
    region = click.prompt("region", default=existing.aws.region or "ap-northeast-1")
    access_key_id = click.prompt("access_key_id", hide_input=True)
    secret_access_key = click.prompt("secret_access_key", hide_input=True)

    click.echo()
    click.echo("(Optional) Algolia credentials. Press Enter to skip.")
    app_id = click.prompt("app_id", default="", show_default=False)
    admin_api_key = ""
    if app_id:
        admin_api_key = click.prompt("admin_api_key", hide_input=True)

    timezone_name = click.prompt("timezone", default=existing.timezone)
    try:
        resolve_timezone(timezone_name)
    except ConfigError as e:
        _fail(e)

    config = AppConfig(
        content_dir=existing.content_dir,
        raw_dir=existing.raw_dir,
        public_dir=existing.public_dir,
        state_dir=existing.state_dir,
        timezone=timezone_name,
        aws=AwsConfig(
            region=region,
            bucket=bucket,
            prefix=existing.aws.prefix,
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
        ),
        search=SearchConfig(
            app_id=app_id,
            admin_api_key=admin_api_key,
            index_name=existing.search.index_name,
        ),
        fetch=existing.fetch,
    )
    save_config(config, config_path)
    click.echo(f"\nConfig saved to {config_path}")
    click.echo("Run 'likes-archive run' to sync and build everything.")


def _do_sync(config: AppConfig, reconcile: bool) -> None:
    from .state import CheckpointStore
    from .store import RawLikeStore
    from .sync import S3ObjectStorage, sync

    aws = config.require_aws()
    tz = config.tz
    checkpoint_store = CheckpointStore(config.checkpoint_file)
    checkpoint = checkpoint_store.load(tz)
    known_ids = _known_ids(config)
    raw_store = RawLikeStore(config.raw_dir)
    click.echo(
        f"Last sync: {checkpoint.isoformat()} "
        f"({len(known_ids)} tweets in index, {len(raw_store.known_ids())} staged)"
    )

    storage = S3ObjectStorage(
        bucket=aws.bucket,
        region=aws.region,
        access_key_id=aws.access_key_id,
        secret_access_key=aws.secret_access_key,
    )
    result = sync(
        storage,
        raw_store,
        checkpoint,
        known_ids,
        tz=tz,
        prefix=aws.prefix,
        reconcile=reconcile,
        retries=config.fetch.retries,
    )
    # Written last: only a run that got this far advances the checkpoint
    checkpoint_store.save(result.new_checkpoint)

    click.echo(f"Listed: {result.listed}")
    click.echo(f"Downloaded: {result.downloaded}")
    click.echo(f"Skipped (already liked): {result.skipped}")
    if reconcile:
        click.echo(f"Deleted from S3: {result.deleted}")
        if result.delete_failures:
            click.echo(f"Failed deletes (retried next run): {result.delete_failures}")


@main.command(name="sync")
@click.option(
    "--no-reconcile",
    is_flag=True,
    help="Keep already-synced objects in the bucket",
)
@click.pass_context
def sync_command(ctx, no_reconcile):
    """Download like files added to S3 since the last sync."""
    config = _load(ctx)
    try:
        _do_sync(config, reconcile=not no_reconcile)
    except LikesArchiveError as e:
        _fail(e)


def _do_canonicalize(config: AppConfig) -> None:
    from .canonicalize import canonicalize
    from .interrupt import GracefulInterrupt
    from .store import LikeStore, RawLikeStore

    raw_store = RawLikeStore(config.raw_dir)
    store = LikeStore(config.likes_dir)
    with GracefulInterrupt() as interrupt:
        records = (record for _, record in raw_store.iter_records())
        result = canonicalize(records, store, config.tz, interrupt=interrupt)
    click.echo(
        f"Inserted {result.inserted}, skipped {result.skipped} duplicates, "
        f"moved {result.moved}, rejected {result.rejected}."
    )


@main.command(name="canonicalize")
@click.pass_context
def canonicalize_command(ctx):
    """File raw likes into likes/<yyyy>/<mm>/<dd>.json."""
    config = _load(ctx)
    try:
        _do_canonicalize(config)
    except LikesArchiveError as e:
        _fail(e)


def _do_enrich(config: AppConfig, limit: int | None, delay: float | None) -> None:
    from .client import TweetClient
    from .enrich import enrich
    from .interrupt import GracefulInterrupt
    from .store import LikeStore

    store = LikeStore(config.likes_dir)
    effective_delay = delay if delay is not None else config.fetch.delay
    with TweetClient(timeout=config.fetch.timeout) as client, GracefulInterrupt() as interrupt:
        result = enrich(
            store,
            client,
            delay=effective_delay,
            save_every=config.fetch.save_every,
            retries=config.fetch.retries,
            interrupt=interrupt,
            limit=limit,
        )
    click.echo(
        f"Fetched {result.fetched}, private {result.private}, "
        f"not found {result.notfound} ({result.failed} after errors), "
        f"skipped {result.skipped}."
    )
    if result.interrupted:
        click.echo("Interrupted. Run the command again to continue.")


@main.command(name="enrich")
@click.option("-n", "--limit", type=int, default=None, help="Fetch at most N tweets")
@click.option(
    "--delay", type=float, default=None, help="Delay in seconds between requests"
)
@click.pass_context
def enrich_command(ctx, limit, delay):
    """Fetch tweet data for likes that have not been enriched."""
    config = _load(ctx)
    try:
        _do_enrich(config, limit, delay)
    except LikesArchiveError as e:
        _fail(e)


def _build_tweet_index(config: AppConfig):
    from .indexes import build_tweet_index
    from .store import LikeStore, write_json

    store = LikeStore(config.likes_dir)
    build = build_tweet_index(store, config.tz, relative_to=config.tweet_index_file.parent)
    write_json(config.tweet_index_file, build.to_dict())
    click.echo(f"Tweet index built with {len(build.index)} entries: {config.tweet_index_file}")
    return build


def _report_duplicates(build) -> None:
    click.echo(
        f"Warning: {len(build.duplicates)} tweet IDs appear in more than one "
        "day document:",
        err=True,
    )
    for tweet_id, paths in sorted(build.duplicates.items()):
        click.echo(f"  {tweet_id}: {', '.join(paths)}", err=True)
    click.echo("Run 'likes-archive dedupe' to repair.", err=True)


@main.command(name="build-index")
@click.pass_context
def build_index_command(ctx):
    """Rebuild tweet-index.json from the canonical store."""
    config = _load(ctx)
    try:
        build = _build_tweet_index(config)
    except LikesArchiveError as e:
        _fail(e)
    if build.duplicates:
        _report_duplicates(build)
        sys.exit(EXIT_INTEGRITY)


def _do_search_index(config: AppConfig, push: bool, incremental: bool) -> None:
    from .indexes import build_search_index, build_tweet_index
    from .store import LikeStore, write_json

    store = LikeStore(config.likes_dir)
    build = build_tweet_index(store, config.tz, relative_to=config.tweet_index_file.parent)
    entries = build_search_index(store, build.index)
    write_json(config.search_index_file, [e.to_dict() for e in entries])
    click.echo(f"Search index built with {len(entries)} tweets: {config.search_index_file}")

    if not push:
        return

    from .search import SearchClient, push_full_index, push_incremental_index
    from .state import SearchSyncStateStore

    search = config.require_search()
    state_store = SearchSyncStateStore(config.search_sync_file)
    with SearchClient(
        search.app_id,
        search.admin_api_key,
        index_name=search.index_name,
        timeout=config.fetch.timeout,
    ) as client:
        if incremental:
            result = push_incremental_index(client, store, build, state_store)
        else:
            result = push_full_index(client, store, build, state_store)
    if result.skipped:
        click.echo("No changes since last push.")
    else:
        click.echo(
            f"Pushed {result.records} records from {result.partitions} day documents."
        )
        if result.deleted:
            click.echo(f"Removed {result.deleted} private or deleted tweets.")


@main.command(name="build-search-index")
@click.option("--push", is_flag=True, help="Also publish to the Algolia index")
@click.option(
    "--incremental",
    is_flag=True,
    help="With --push, only upsert likes from changed day documents",
)
@click.pass_context
def build_search_index_command(ctx, push, incremental):
    """Rebuild search-index.json and optionally publish it."""
    config = _load(ctx)
    try:
        _do_search_index(config, push, incremental)
    except IntegrityError as e:
        _fail(e, EXIT_INTEGRITY)
    except LikesArchiveError as e:
        _fail(e)


def _do_extract_urls(config: AppConfig) -> None:
    from .indexes import build_url_index
    from .store import LikeStore, write_json

    entries = build_url_index(LikeStore(config.likes_dir))
    write_json(config.url_index_file, [e.to_dict() for e in entries])
    click.echo(f"Extracted {len(entries)} tweets with URLs: {config.url_index_file}")


@main.command(name="extract-urls")
@click.pass_context
def extract_urls_command(ctx):
    """Rebuild url-index.json (likes whose tweets contain links)."""
    config = _load(ctx)
    try:
        _do_extract_urls(config)
    except LikesArchiveError as e:
        _fail(e)


def _do_activity(config: AppConfig, window_end: date | None) -> None:
    from .indexes import activity_document, build_activity_summary
    from .store import LikeStore, write_json

    tz = config.tz
    now = datetime.now(timezone.utc).astimezone(tz)
    points = build_activity_summary(LikeStore(config.likes_dir), window_end or now.date())
    write_json(config.activity_file, activity_document(points, now))
    click.echo(f"Activity data built: {config.activity_file}")
    for point in points:
        click.echo(f"  {point.date} ({point.dayName}): {point.count} tweets")


@main.command(name="build-activity")
@click.option(
    "--date",
    "end_date",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    default=None,
    help="Last day of the 7-day window (default: today)",
)
@click.pass_context
def build_activity_command(ctx, end_date):
    """Rebuild activity-data.json for the trailing 7 days."""
    config = _load(ctx)
    try:
        _do_activity(config, end_date.date() if end_date else None)
    except LikesArchiveError as e:
        _fail(e)


@main.group()
def archive():
    """Import likes from a Twitter data export."""


@archive.command(name="import")
@click.argument("files", nargs=-1, required=True, type=click.Path(exists=True))
@click.pass_context
def archive_import(ctx, files):
    """Read like.js export FILES into archive/archive-likes.json."""
    from .archive import ArchiveStore, load_archive_file, process_archive_likes

    config = _load(ctx)
    try:
        known_ids = _known_ids(config)
        items: list[dict] = []
        for name in files:
            loaded = load_archive_file(Path(name))
            click.echo(f"Loaded {len(loaded)} likes from {name}")
            items.extend(loaded)
        result = process_archive_likes(items, known_ids)
        ArchiveStore(config.archive_dir).save_import(result.likes)
    except LikesArchiveError as e:
        _fail(e)

    click.echo(f"Unique archive likes: {len(result.likes)}")
    click.echo(f"Skipped (already in project): {result.skipped_existing}")
    click.echo(f"Skipped (duplicate in archive): {result.skipped_duplicate}")


@archive.command(name="fetch")
@click.option("-n", "--limit", type=int, default=None, help="Fetch at most N tweets")
@click.pass_context
def archive_fetch(ctx, limit):
    """Enrich imported archive likes and rebuild archive pages."""
    from .archive import ArchiveStore, enrich_archive
    from .client import TweetClient
    from .interrupt import GracefulInterrupt

    config = _load(ctx)
    try:
        with TweetClient(timeout=config.fetch.timeout) as client, GracefulInterrupt() as interrupt:
            result = enrich_archive(
                ArchiveStore(config.archive_dir),
                client,
                delay=config.fetch.delay,
                save_every=config.fetch.save_every,
                retries=config.fetch.retries,
                interrupt=interrupt,
                limit=limit,
            )
    except LikesArchiveError as e:
        _fail(e)
    click.echo(
        f"Fetched {result.fetched}, private {result.private}, "
        f"not found {result.notfound}, previously done {result.skipped}."
    )
    if result.interrupted:
        click.echo("Interrupted. Run the command again to continue.")


@main.command()
@click.option("--raw", is_flag=True, help="Dedupe the raw store instead")
@click.option("--dry-run", is_flag=True, help="Report duplicates without writing")
@click.pass_context
def dedupe(ctx, raw, dry_run):
    """Remove duplicate likes, keeping the earliest-liked copy."""
    from .dedupe import dedupe_raw, dedupe_store
    from .store import LikeStore, RawLikeStore

    config = _load(ctx)
    try:
        if raw:
            raw_report = dedupe_raw(RawLikeStore(config.raw_dir), dry_run=dry_run)
            click.echo(f"Raw files scanned: {raw_report.files_scanned}")
            click.echo(f"Duplicate files removed: {len(raw_report.removed)}")
            for path in raw_report.removed:
                click.echo(f"  {path}")
            click.echo(f"Unique tweets remaining: {raw_report.unique}")
            return

        report = dedupe_store(LikeStore(config.likes_dir), config.tz, dry_run=dry_run)
        click.echo(f"Files scanned: {report.files_scanned}")
        click.echo(f"Likes scanned: {report.likes_scanned}")
        click.echo(f"Duplicated tweets: {len(report.duplicate_ids)}")
        for tweet_id in report.duplicate_ids:
            click.echo(f"  {tweet_id}")
        click.echo(f"Duplicates removed: {report.duplicates_found}")
        click.echo(f"Files updated: {len(report.files_updated)}")
        for path in report.files_updated:
            click.echo(f"  {path}")

        if report.files_updated and not dry_run:
            click.echo("Rebuilding tweet index...")
            _build_tweet_index(config)
    except LikesArchiveError as e:
        _fail(e)


@main.command()
@click.option("--skip-sync", is_flag=True, help="Do not contact S3")
@click.option("--skip-enrich", is_flag=True, help="Do not fetch tweet data")
@click.option("--push", is_flag=True, help="Publish the search index incrementally")
@click.pass_context
def run(ctx, skip_sync, skip_enrich, push):
    """Run sync, canonicalize, enrich and every index build in order.

    A failing sync or enrichment is reported but does not stop the later
    stages. Duplicate tweet IDs stop the search index publish.
    """
    config = _load(ctx)
    failures: list[str] = []

    def stage(name, func, *args):
        click.echo(f"\n== {name} ==")
        try:
            func(*args)
        except LikesArchiveError as e:
            click.echo(f"Error in {name}: {e}", err=True)
            failures.append(name)
            return False
        return True

    if not skip_sync:
        stage("sync", _do_sync, config, True)
    if not stage("canonicalize", _do_canonicalize, config):
        _fail("canonicalize failed; not building indices from a partial store")
    if not skip_enrich:
        stage("enrich", _do_enrich, config, None, None)

    click.echo("\n== build-index ==")
    try:
        build = _build_tweet_index(config)
    except LikesArchiveError as e:
        _fail(e)
    consistent = not build.duplicates
    if not consistent:
        _report_duplicates(build)

    stage("extract-urls", _do_extract_urls, config)
    stage("build-activity", _do_activity, config, None)
    if consistent:
        stage("build-search-index", _do_search_index, config, push, True)
    else:
        click.echo("Skipping search index: store has duplicate tweet IDs.", err=True)

    if not consistent:
        sys.exit(EXIT_INTEGRITY)
    if failures:
        _fail(f"stages failed: {', '.join(failures)}")


@main.command()
@click.pass_context
def status(ctx):
    """Show current archive status."""
    from .models import Fetched, NotFound, Private
    from .state import CheckpointStore
    from .store import LikeStore, RawLikeStore

    config_path = ctx.obj["config_path"]
    has_config = config_exists(config_path)

    click.echo("Liked-tweets archive: Status")
    click.echo("=" * 40)
    click.echo(f"Config: {'Found' if has_config else 'Not configured'} ({config_path})")

    config = _load(ctx)
    if config.checkpoint_file.exists():
        checkpoint = CheckpointStore(config.checkpoint_file).load(config.tz)
        click.echo(f"Last sync: {checkpoint.isoformat()}")
    else:
        click.echo("Last sync: never")

    click.echo(f"Raw likes staged: {len(RawLikeStore(config.raw_dir).known_ids())}")

    counts = {"days": 0, "likes": 0, "fetched": 0, "private": 0, "notfound": 0, "pending": 0}
    try:
        for doc in LikeStore(config.likes_dir).iter_documents():
            counts["days"] += 1
            for like in doc.body:
                counts["likes"] += 1
                match like.outcome:
                    case Fetched():
                        counts["fetched"] += 1
                    case Private():
                        counts["private"] += 1
                    case NotFound():
                        counts["notfound"] += 1
                    case None:
                        counts["pending"] += 1
    except LikesArchiveError as e:
        _fail(e)

    click.echo(f"Day documents: {counts['days']}")
    click.echo(f"Likes: {counts['likes']}")
    click.echo(
        f"Enriched: {counts['fetched']} fetched, {counts['private']} private, "
        f"{counts['notfound']} not found, {counts['pending']} pending"
    )
    if config.tweet_index_file.exists():
        click.echo(f"Tweet index entries: {len(_known_ids(config))}")
    else:
        click.echo("Tweet index: Not yet built")
