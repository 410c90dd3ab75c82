"""Unit tests for the HTTP client wrapper and the OMDb key rotation."""

import httpx
import pytest

from filmscore.errors import ConfigurationError, UpstreamError
from filmscore.omdb import fetch_omdb_by_id

from .conftest import OMDB_PAYLOAD


async def test_get_text_returns_body(web, http):
    web.html("https://example.com/page", "<p>ok</p>")
    assert await http.get_text("https://example.com/page") == "<p>ok</p>"


async def test_non_2xx_raises_upstream_error(web, http):
    web.status("https://example.com/missing", 503)
    with pytest.raises(UpstreamError) as excinfo:
        await http.get_text("https://example.com/missing")
    assert excinfo.value.status_code == 503
    assert excinfo.value.url == "https://example.com/missing"


async def test_timeout_raises_upstream_error(web, http):
    def slow(request):
        raise httpx.ReadTimeout("timed out", request=request)

    web.add("https://example.com/slow", slow)
    with pytest.raises(UpstreamError, match="timed out"):
        await http.get_text("https://example.com/slow", timeout=4.0)


async def test_transport_error_raises_upstream_error(web, http):
    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    web.add("https://example.com/down", refused)
    with pytest.raises(UpstreamError, match="ConnectError"):
        await http.get_text("https://example.com/down")


async def test_malformed_json_raises_upstream_error(web, http):
    web.html("https://example.com/api", "<html>not json</html>")
    with pytest.raises(UpstreamError, match="Malformed JSON"):
        await http.get_json("https://example.com/api")


async def test_omdb_requires_a_key(http):
    with pytest.raises(ConfigurationError):
        await fetch_omdb_by_id(http, "tt0111161", [])


async def test_omdb_rotates_past_a_rejected_key(web, http):
    def omdb(request):
        if request.url.params["apikey"] == "spent":
            return httpx.Response(200, json={"Response": "False", "Error": "Request limit reached!"})
        return httpx.Response(200, json=OMDB_PAYLOAD)

    web.add("https://www.omdbapi.com/", omdb)
    data = await fetch_omdb_by_id(http, "tt0111161", ["spent", "fresh"])
    assert data["imdbRating"] == "9.3"
    assert web.hits("https://www.omdbapi.com/") == 2


async def test_omdb_rotates_past_transport_errors(web, http):
    def omdb(request):
        if request.url.params["apikey"] == "broken":
            return httpx.Response(401)
        return httpx.Response(200, json=OMDB_PAYLOAD)

    web.add("https://www.omdbapi.com/", omdb)
    data = await fetch_omdb_by_id(http, "tt0111161", ["broken", "good"])
    assert data["Title"] == "The Shawshank Redemption"


async def test_omdb_exhausted_keys_raise(web, http):
    web.json("https://www.omdbapi.com/", {"Response": "False", "Error": "Invalid API key!"})
    with pytest.raises(UpstreamError, match="exhausted"):
        await fetch_omdb_by_id(http, "tt0111161", ["a", "b", "c"])
    assert web.hits("https://www.omdbapi.com/") == 3


async def test_omdb_unknown_title_stops_rotation(web, http):
    web.json("https://www.omdbapi.com/", {"Response": "False", "Error": "Movie not found!"})
    data = await fetch_omdb_by_id(http, "tt9999999", ["a", "b", "c"])
    assert data["Response"] == "False"
    assert web.hits("https://www.omdbapi.com/") == 1
