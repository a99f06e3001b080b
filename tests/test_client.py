"""Tests for the tweet syndication client."""

import httpx
import pytest
import respx

from likes_archive.client import SYNDICATION_URL, TweetClient, syndication_token
from likes_archive.errors import TweetFetchError
from likes_archive.models import Fetched, NotFound, Private

TWEET = {
    "__typename": "Tweet",
    "id_str": "1885345678901234567",
    "text": "hello",
    "user": {"screen_name": "someone"},
}


class TestSyndicationToken:
    def test_no_zeros_or_dots(self):
        token = syndication_token("1885345678901234567")
        assert token
        assert "0" not in token
        assert "." not in token

    def test_deterministic(self):
        assert syndication_token("20") == syndication_token("20")
        assert syndication_token("20") != syndication_token("21")


class TestTweetClient:
    @respx.mock
    def test_fetched(self):
        route = respx.get(SYNDICATION_URL).mock(
            return_value=httpx.Response(200, json=TWEET)
        )

        with TweetClient() as client:
            outcome = client.fetch_tweet("1885345678901234567")

        assert outcome == Fetched(TWEET)
        params = route.calls.last.request.url.params
        assert params["id"] == "1885345678901234567"
        assert params["token"] == syndication_token("1885345678901234567")

    @respx.mock
    def test_tombstone_is_private(self):
        respx.get(SYNDICATION_URL).mock(
            return_value=httpx.Response(200, json={"__typename": "TweetTombstone"})
        )
        with TweetClient() as client:
            assert client.fetch_tweet("1") == Private()

    @respx.mock
    def test_404_is_not_found(self):
        respx.get(SYNDICATION_URL).mock(return_value=httpx.Response(404))
        with TweetClient() as client:
            assert client.fetch_tweet("1") == NotFound()

    @respx.mock
    def test_empty_payload_is_not_found(self):
        respx.get(SYNDICATION_URL).mock(return_value=httpx.Response(200, json={}))
        with TweetClient() as client:
            assert client.fetch_tweet("1") == NotFound()

    @respx.mock
    def test_rate_limit_raises(self):
        respx.get(SYNDICATION_URL).mock(return_value=httpx.Response(429))
        with TweetClient() as client:
            with pytest.raises(TweetFetchError, match="Rate limited"):
                client.fetch_tweet("1")

    @respx.mock
    def test_server_error_raises(self):
        respx.get(SYNDICATION_URL).mock(return_value=httpx.Response(500))
        with TweetClient() as client:
            with pytest.raises(TweetFetchError, match="500"):
                client.fetch_tweet("1")

    @respx.mock
    def test_transport_error_raises(self):
        respx.get(SYNDICATION_URL).mock(side_effect=httpx.ConnectError("down"))
        with TweetClient() as client:
            with pytest.raises(TweetFetchError, match="failed"):
                client.fetch_tweet("1")

    @respx.mock
    def test_non_json_raises(self):
        respx.get(SYNDICATION_URL).mock(
            return_value=httpx.Response(200, text="<html>")
        )
        with TweetClient() as client:
            with pytest.raises(TweetFetchError, match="Non-JSON"):
                client.fetch_tweet("1")

    @respx.mock
    def test_custom_base_url(self):
        route = respx.get("http://localhost:9999/tweet").mock(
            return_value=httpx.Response(200, json=TWEET)
        )
        with TweetClient(base_url="http://localhost:9999/tweet") as client:
            client.fetch_tweet("1")
        assert route.called

    @respx.mock
    def test_non_object_payload_raises(self):
        respx.get(SYNDICATION_URL).mock(
            return_value=httpx.Response(200, json=["unexpected"])
        )
        with TweetClient() as client:
            with pytest.raises(TweetFetchError, match="payload type list"):
                client.fetch_tweet("1")

    @respx.mock
    def test_non_numeric_id_is_not_found_without_request(self):
        route = respx.get(SYNDICATION_URL).mock(
            return_value=httpx.Response(200, json=TWEET)
        )
        with TweetClient() as client:
            assert client.fetch_tweet("abc") == NotFound()
        assert not route.called
