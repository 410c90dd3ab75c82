from .cache import LRUCache
from .errors import UpstreamError
from .http import HttpClient
from .schemas import WikidataIds

ENDPOINT = "https://query.wikidata.org/sparql"
USER_AGENT = "filmscore/1.0 (rating aggregator)"
CACHE_TTL_SECONDS = 24 * 60 * 60
CACHE_MAX_SIZE = 500

# Wikidata property -> WikidataIds field
PROPERTIES = {
    "P1258": "rotten_tomatoes",
    "P1712": "metacritic",
    "P6127": "letterboxd",
    "P4529": "douban",
    "P1265": "allocine_film",
    "P1267": "allocine_series",
}


def build_query(imdb_id: str) -> str:
    optionals = "\n".join(f"  OPTIONAL {{ ?item wdt:{prop} ?{field} }}" for prop, field in PROPERTIES.items())
    variables = " ".join(f"?{field}" for field in PROPERTIES.values())
    return f'SELECT {variables} WHERE {{\n  ?item wdt:P345 "{imdb_id}" .\n{optionals}\n}} LIMIT 1'


def parse_sparql_response(data: dict) -> WikidataIds:
    try:
        bindings = data["results"]["bindings"]
    except (KeyError, TypeError) as exc:
        raise UpstreamError("Malformed Wikidata response") from exc
    if not isinstance(bindings, list):
        raise UpstreamError("Malformed Wikidata response")
    hit = bindings[0] if bindings and isinstance(bindings[0], dict) else {}
    values = {}
    for field in PROPERTIES.values():
        cell = hit.get(field)
        if isinstance(cell, dict) and cell.get("value"):
            values[field] = cell["value"]
    return WikidataIds(**values)


class WikidataClient:
    """Platform ids for an IMDb title, cached for a day."""

    def __init__(self, http: HttpClient, cache: LRUCache[WikidataIds] | None = None) -> None:
        self.http = http
        self.cache = cache if cache is not None else LRUCache(CACHE_TTL_SECONDS, CACHE_MAX_SIZE)

    async def fetch_ids(self, imdb_id: str) -> WikidataIds:
        cached = self.cache.get(imdb_id)
        if cached is not None:
            return cached
        data = await self.http.get_json(
            ENDPOINT,
            params={"format": "json", "query": build_query(imdb_id)},
            headers={"User-Agent": USER_AGENT, "Accept": "application/sparql-results+json"},
        )
        ids = parse_sparql_response(data)
        self.cache.set(imdb_id, ids)
        return ids
