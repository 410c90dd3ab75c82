from typing import Any

from .errors import ConfigurationError, UpstreamError
from .http import HttpClient
from .schemas import MovieInfo

BASE_URL = "https://api.themoviedb.org/3"
IMAGE_BASE_URL = "https://image.tmdb.org/t/p/w500"
WRITER_JOBS = ("Screenplay", "Writer", "Story")
MAX_WRITERS = 3
MAX_CAST = 5


class TmdbClient:
    def __init__(self, http: HttpClient, api_key: str | None) -> None:
        self.http = http
        self.api_key = api_key

    async def _get(self, path: str, params: dict | None = None) -> dict:
        if not self.api_key:
            raise ConfigurationError("TMDB_API_KEY environment variable not set.")
        params = dict(params or {})
        params["api_key"] = self.api_key
        data = await self.http.get_json(f"{BASE_URL}{path}", params=params)
        if not isinstance(data, dict):
            raise UpstreamError("Malformed TMDB response", url=f"{BASE_URL}{path}")
        return data

    async def get_movie_details(self, tmdb_id: int) -> dict:
        return await self._get(f"/movie/{tmdb_id}", {"append_to_response": "credits,release_dates"})

    async def resolve_movie(self, tmdb_id: int) -> MovieInfo:
        details = await self.get_movie_details(tmdb_id)
        if not details.get("imdb_id"):
            raise UpstreamError(f"TMDB movie {tmdb_id} has no IMDb id")
        return movie_info_from_tmdb(details)


def _content_rating(details: dict) -> str | None:
    countries = (details.get("release_dates") or {}).get("results") or []
    by_country = {entry.get("iso_3166_1"): entry for entry in countries if isinstance(entry, dict)}
    release = by_country.get("US") or by_country.get("GB")
    if not release:
        return None
    for item in release.get("release_dates") or []:
        if item.get("certification"):
            return item["certification"]
    return None


def _first_crew(crew: list[dict], *jobs: str) -> str | None:
    for member in crew:
        if member.get("job") in jobs:
            return member.get("name")
    return None


def movie_info_from_tmdb(details: dict[str, Any]) -> MovieInfo:
    credits = details.get("credits") or {}
    crew = credits.get("crew") or []

    directors = [member["name"] for member in crew if member.get("job") == "Director" and member.get("name")]
    writers: list[str] = []
    for member in crew:
        name = member.get("name")
        if member.get("job") in WRITER_JOBS and name and name not in writers:
            writers.append(name)
    cast = sorted(credits.get("cast") or [], key=lambda person: person.get("order", 10_000))

    release_date = details.get("release_date") or None
    poster_path = details.get("poster_path")
    return MovieInfo(
        imdb_id=details.get("imdb_id") or "",
        tmdb_id=details.get("id"),
        title=details.get("title") or "",
        year=release_date[:4] if release_date else None,
        release_date=release_date,
        poster=f"{IMAGE_BASE_URL}{poster_path}" if poster_path else None,
        overview=details.get("overview") or None,
        runtime=details.get("runtime") or None,
        rating=_content_rating(details),
        genres=[genre["name"] for genre in details.get("genres") or [] if genre.get("name")] or None,
        director=directors[0] if directors else None,
        directors=directors or None,
        writers=writers[:MAX_WRITERS] or None,
        cinematographer=_first_crew(crew, "Director of Photography", "Cinematography"),
        composer=_first_crew(crew, "Original Music Composer", "Music"),
        editor=_first_crew(crew, "Editor"),
        cast=[person["name"] for person in cast[:MAX_CAST] if person.get("name")] or None,
    )
