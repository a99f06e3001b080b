"""Configure logging for the application."""

import logging
import sys

NOISY_LOGGERS = ("httpx", "httpcore", "boto3", "botocore", "s3transfer", "urllib3")


def setup_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else logging.INFO
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger("likes_archive")
    root.setLevel(level)
    if not root.handlers:
        root.addHandler(handler)

    # Suppress noisy HTTP and AWS SDK logs unless in debug mode
    library_level = logging.DEBUG if debug else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
