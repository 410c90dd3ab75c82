import logging
from typing import Any

from .errors import ConfigurationError, UpstreamError
from .http import HttpClient

OMDB_URL = "https://www.omdbapi.com/"
# Error texts that describe the title, not the key.
TITLE_MISSING_ERRORS = ("not found", "incorrect imdb id")

logger = logging.getLogger(__name__)


async def fetch_omdb_by_id(http: HttpClient, imdb_id: str, api_keys: list[str]) -> dict[str, Any]:
    """Look a title up on OMDb, rotating through ``api_keys`` until one answers.

    OMDb reports quota and key problems as ``{"Response": "False"}`` with a
    200 status, so those count as a failed key just like transport errors.
    A title OMDb does not know is the same answer under every key, so that
    reply is returned as is and carries no ratings.
    """
    if not api_keys:
        raise ConfigurationError("Missing OMDb key")

    last_error: str | None = None
    for api_key in api_keys:
        try:
            data = await http.get_json(OMDB_URL, params={"i": imdb_id, "r": "json", "apikey": api_key})
        except UpstreamError as exc:
            last_error = str(exc)
            continue
        if not isinstance(data, dict):
            last_error = "Malformed OMDb response"
            continue
        if str(data.get("Response", "")).lower() == "true" and (data.get("imdbRating") or data.get("Title")):
            return data
        last_error = str(data.get("Error") or "Empty OMDb response")
        if any(marker in last_error.lower() for marker in TITLE_MISSING_ERRORS):
            logger.debug("omdb_title_missing", extra={"imdb_id": imdb_id, "error": last_error})
            return data

    logger.warning(
        "omdb_keys_exhausted",
        extra={"imdb_id": imdb_id, "keys": len(api_keys), "error": last_error},
    )
    raise UpstreamError("All OMDb keys exhausted")
