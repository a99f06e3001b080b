"""Client for the public tweet syndication endpoint.

This is the endpoint embedded-tweet widgets read from; it needs no auth, only
a token derived from the tweet ID. Responses map onto enrichment outcomes:

    200 + tweet payload          -> Fetched(data)
    200 + TweetTombstone         -> Private
    404                          -> NotFound
    429, 5xx, transport errors   -> TweetFetchError (retryable)

Override the endpoint with the TWEET_SYNDICATION_URL environment variable.
"""

import logging
import math
import os
import re

import httpx

from .errors import TweetFetchError
from .models import EnrichmentOutcome, Fetched, NotFound, Private

logger = logging.getLogger(__name__)

SYNDICATION_URL = os.environ.get(
    "TWEET_SYNDICATION_URL",
    "https://cdn.syndication.twimg.com/tweet-result",
)

# Feature flags the embed widget sends; the payload shape depends on them
SYNDICATION_FEATURES = ";".join(
    [
        "tfw_timeline_list:",
        "tfw_follower_count_sunset:true",
        "tfw_tweet_edit_backend:on",
        "tfw_refsrc_session:on",
        "tfw_fosnr_soft_interventions_enabled:on",
        "tfw_show_birdwatch_pivots_enabled:on",
        "tfw_show_business_verified_badge:on",
        "tfw_duplicate_scribes_to_settings:on",
        "tfw_use_profile_image_shape_enabled:on",
        "tfw_show_blue_verified_badge:on",
        "tfw_legacy_timeline_sunset:true",
        "tfw_show_gov_verified_badge:on",
        "tfw_show_business_affiliate_badge:on",
        "tfw_tweet_edit_frontend:on",
    ]
)

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"
TOKEN_FRACTION_DIGITS = 12


def _to_base36(value: float) -> str:
    integer = int(value)
    fraction = value - integer
    digits = ""
    while True:
        integer, rem = divmod(integer, 36)
        digits = BASE36_DIGITS[rem] + digits
        if integer == 0:
            break
    if fraction:
        digits += "."
        for _ in range(TOKEN_FRACTION_DIGITS):
            fraction *= 36
            digit = int(fraction)
            digits += BASE36_DIGITS[digit]
            fraction -= digit
            if not fraction:
                break
    return digits


def syndication_token(tweet_id: str) -> str:
    """Token the syndication endpoint expects: (id / 1e15 * pi) in base 36."""
    value = (int(tweet_id) / 1e15) * math.pi
    return re.sub(r"(0+|\.)", "", _to_base36(value))


class TweetClient:
    """Fetch tweet render data by ID."""

    def __init__(self, timeout: float = 30.0, base_url: str | None = None):
        self._url = base_url or SYNDICATION_URL
        self._client = httpx.Client(
            headers={
                "Accept": "application/json",
                "User-Agent": (
                    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
                    "AppleWebKit/537.36 (KHTML, like Gecko) "
                    "Chrome/131.0.0.0 Safari/537.36"
                ),
            },
            timeout=timeout,
            follow_redirects=True,
        )

    def fetch_tweet(self, tweet_id: str) -> EnrichmentOutcome:
        try:
            token = syndication_token(tweet_id)
        except ValueError:
            # Non-numeric IDs never resolve
            logger.warning("Tweet ID %r is not numeric", tweet_id)
            return NotFound()
        params = {
            "id": tweet_id,
            "lang": "en",
            "features": SYNDICATION_FEATURES,
            "token": token,
        }

        try:
            response = self._client.get(self._url, params=params)
        except httpx.HTTPError as e:
            raise TweetFetchError(f"Request for tweet {tweet_id} failed: {e}") from e

        if response.status_code == 404:
            return NotFound()

        if response.status_code == 429:
            raise TweetFetchError(f"Rate limited while fetching tweet {tweet_id}.")

        if response.status_code != 200:
            raise TweetFetchError(
                f"Unexpected status {response.status_code} for tweet {tweet_id}."
            )

        try:
            data = response.json()
        except ValueError as e:
            raise TweetFetchError(f"Non-JSON response for tweet {tweet_id}") from e

        if not data:
            return NotFound()
        if not isinstance(data, dict):
            raise TweetFetchError(
                f"Unexpected payload type {type(data).__name__} for tweet {tweet_id}"
            )
        if data.get("__typename") == "TweetTombstone":
            return Private()
        return Fetched(data)

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
