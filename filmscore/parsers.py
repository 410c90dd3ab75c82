"""Pure text -> rating extractors for each rating site.

Pages are matched against embedded structured data (JSON-LD, hydration
blobs, labelled attributes) rather than parsed as full HTML documents.
Every function is total: anything unexpected yields ``None`` values.
"""

import re
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ParsedRating:
    value: float | None = None
    count: int | None = None


@dataclass(frozen=True)
class ParsedRTCritics:
    tomatometer: int | None = None
    critics_avg_all: float | None = None
    critics_avg_top: float | None = None
    all_critics_count: int | None = None
    top_critics_count: int | None = None
    badge: str | None = None


@dataclass(frozen=True)
class ParsedRTAudience:
    audience_avg: float | None = None
    audience_count: int | None = None


@dataclass(frozen=True)
class ParsedAllocine:
    press: ParsedRating
    user: ParsedRating


@dataclass(frozen=True)
class ParsedCriticReviews:
    value: int | None = None
    count: int | None = None
    metacritic_url: str | None = None


@dataclass(frozen=True)
class OmdbRatings:
    imdb: float | None = None
    imdb_votes: int | None = None
    metacritic: int | None = None
    rotten_tomatoes: int | None = None


# Top-critic averages more than this far above the all-critics average are
# placeholders on RT's side, not real data.
RT_TOP_CRITICS_MAX_GAP = 35.0

# Plain digits, or digits grouped in threes by commas or spaces ("2,900,000", "2 410").
INT_PATTERN = re.compile(r"^(?:\d+|\d{1,3}(?:[,\s]\d{3})+)$")


def _parse_float(value: Any) -> float | None:
    if value is None:
        return None
    text = str(value).strip().replace(",", ".")
    if not text or text.upper() == "N/A":
        return None
    try:
        parsed = float(text)
    except ValueError:
        return None
    if parsed != parsed or parsed in (float("inf"), float("-inf")):
        return None
    return parsed


def _parse_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if not INT_PATTERN.match(text):
        return None
    return int(re.sub(r"[,\s]", "", text))


def _search(pattern: str, text: str, flags: int = 0) -> str | None:
    match = re.search(pattern, text, flags)
    if not match:
        return None
    return match.group(1)


def parse_imdb_html(html: str) -> ParsedRating:
    block = _search(r'("aggregateRating"\s*:\s*\{[^{}]+\})', html)
    if not block:
        return ParsedRating()
    value = _parse_float(_search(r'"ratingValue"\s*:\s*"?(\d+(?:\.\d+)?)', block))
    count = _parse_int(_search(r'"ratingCount"\s*:\s*"?(\d+)', block))
    if value is not None and not 0.0 <= value <= 10.0:
        value = None
    return ParsedRating(value=value, count=count)


def parse_letterboxd_html(html: str) -> ParsedRating:
    value = _parse_float(_search(r'"ratingValue"\s*:\s*"?(\d+(?:\.\d+)?)', html))
    count = _parse_int(_search(r'"ratingCount"\s*:\s*"?(\d+)', html))
    return ParsedRating(value=value, count=count)


def parse_letterboxd_api(payload: Any) -> ParsedRating:
    if not isinstance(payload, dict):
        return ParsedRating()
    value = _parse_float(payload.get("rating"))
    count = None
    counts = payload.get("counts")
    statistics = payload.get("statistics")
    if not isinstance(counts, dict) and isinstance(statistics, dict):
        counts = statistics.get("counts")
    if isinstance(counts, dict):
        count = _parse_int(counts.get("ratings"))
    if value is not None and value > 5.0:
        value = value / 2.0
    return ParsedRating(value=value, count=count)


def parse_metacritic_html(html: str) -> ParsedRating:
    # Carousel cards for other films also carry title="Metascore N out of 100",
    # so anchor on the product score container first.
    value: int | None = None
    anchor = html.find("c-productScoreInfo_scoreNumber")
    if anchor != -1:
        first_title = _search(r'title="Metascore ([^"]+)"', html[anchor:])
        if first_title:
            value = _parse_int(_search(r"^(\d+) out of 100$", first_title))

    if value is None and anchor == -1:
        value = _parse_int(_search(r'"ratingValue"\s*:\s*"?(\d+)', html))

    count = _parse_int(_search(r"Based on (\d+) Critic", html))
    if count is None:
        count = _parse_int(_search(r'"(?:reviewCount|ratingCount)"\s*:\s*"?(\d+)', html))

    if value is not None and not 0 <= value <= 100:
        value = None
    return ParsedRating(value=value, count=count)


def parse_metacritic_badge(html: str) -> str | None:
    if re.search(r">\s*Must[- ]?See\s*<", html, flags=re.IGNORECASE):
        return "must_see"
    return None


def parse_imdb_critic_reviews_html(html: str) -> ParsedCriticReviews:
    value: int | None = None
    count: int | None = None

    match = re.search(r'"metascore"\s*:\s*\{\s*"reviewCount"\s*:\s*(\d+)\s*,\s*"score"\s*:\s*(\d+)', html)
    if match:
        count = int(match.group(1))
        value = int(match.group(2))

    if value is None:
        value = _parse_int(
            _search(r'data-testid="critic-reviews-title"[^>]*>[\s\S]*?<div[^>]*>(\d{1,3})</div>', html)
        )
    if count is None:
        count = _parse_int(_search(r"(\d+)\s+reviews?\s*·\s*Provided by", html))

    url = _search(r'href="(https?://www\.metacritic\.com/movie/[^"?]+)', html)
    if value is not None and not 0 <= value <= 100:
        value = None
    return ParsedCriticReviews(value=value, count=count, metacritic_url=url)


def parse_rt_api_response(payload: Any) -> int | None:
    if not isinstance(payload, dict):
        return None
    value = payload.get("meterScore")
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)) and 0 <= value <= 100:
        return int(value)
    return None


def parse_rt_critics_html(html: str) -> ParsedRTCritics:
    tomatometer = _parse_int(_search(r'"criticsAll"[^}]*"score"\s*:\s*"(\d+)"', html))
    avg_all = _parse_float(_search(r'"criticsAll"[^}]*"averageRating"\s*:\s*"([\d.]+)"', html))
    avg_top = _parse_float(_search(r'"criticsTop"[^}]*"averageRating"\s*:\s*"([\d.]+)"', html))
    all_count = _parse_int(_search(r'"criticsAll"[^}]*"(?:ratingCount|numReviews)"\s*:\s*"?(\d+)', html))
    top_count = _parse_int(_search(r'"criticsTop"[^}]*"(?:ratingCount|numReviews)"\s*:\s*"?(\d+)', html))

    certified = _search(r'"criticsScore"\s*:\s*\{[^}]*"certified"\s*:\s*(true|false)', html) == "true"
    sentiment = (_search(r'"criticsScore"\s*:\s*\{[^}]*"sentiment"\s*:\s*"([^"]+)"', html) or "").upper()
    badge = None
    if sentiment == "POSITIVE":
        badge = "certified_fresh" if certified else "fresh"
    elif sentiment == "NEGATIVE":
        badge = "rotten"

    critics_avg_all = avg_all * 10 if avg_all is not None else None
    critics_avg_top = avg_top * 10 if avg_top is not None else None
    if (
        critics_avg_all is not None
        and critics_avg_top is not None
        and critics_avg_top - critics_avg_all > RT_TOP_CRITICS_MAX_GAP
    ):
        critics_avg_top = None

    if tomatometer is not None and tomatometer > 100:
        tomatometer = None
    return ParsedRTCritics(
        tomatometer=tomatometer,
        critics_avg_all=critics_avg_all,
        critics_avg_top=critics_avg_top,
        all_critics_count=all_count,
        top_critics_count=top_count,
        badge=badge,
    )


def parse_rt_audience_html(html: str) -> ParsedRTAudience:
    verified = _parse_float(_search(r'"audienceVerified"[^}]*"averageRating"\s*:\s*"([\d.]+)"', html))
    if verified is not None:
        count = _parse_int(_search(r'"audienceVerified"[^}]*"(?:reviewCount|numReviews)"\s*:\s*"?(\d+)', html))
        return ParsedRTAudience(audience_avg=verified, audience_count=count)
    everyone = _parse_float(_search(r'"audienceAll"[^}]*"averageRating"\s*:\s*"([\d.]+)"', html))
    count = _parse_int(_search(r'"audienceAll"[^}]*"(?:reviewCount|numReviews)"\s*:\s*"?(\d+)', html))
    return ParsedRTAudience(audience_avg=everyone, audience_count=count)


def _allocine_count(text: str | None, kind: str) -> int | None:
    if not text:
        return None
    if kind == "press":
        return _parse_int(_search(r"(\d+)\s*critiques?", text))
    return _parse_int(_search(r"([\d\s]+)\s*notes?", text))


def parse_allocine_html(html: str) -> ParsedAllocine:
    notes = re.findall(r'class="stareval-note"[^>]*>([^<]+)<', html)
    reviews = re.findall(r'class="stareval-review[^"]*"[^>]*>([^<]+)', html)
    has_press = bool(re.search(r">\s*Presse\s*<", html))

    def note(index: int) -> float | None:
        return _parse_float(notes[index]) if index < len(notes) else None

    def review(index: int) -> str | None:
        return reviews[index] if index < len(reviews) else None

    if has_press and len(notes) >= 2:
        return ParsedAllocine(
            press=ParsedRating(value=note(0), count=_allocine_count(review(0), "press")),
            user=ParsedRating(value=note(1), count=_allocine_count(review(1), "user")),
        )
    return ParsedAllocine(
        press=ParsedRating(),
        user=ParsedRating(value=note(0), count=_allocine_count(review(0), "user")),
    )


def parse_douban_subject_search_html(html: str) -> str | None:
    return _search(r"subject/(\d+)", html)


def parse_douban_global_search_html(html: str) -> str | None:
    return _search(r"subject%2F(\d+)", html) or _search(r"movie\.douban\.com/subject/(\d+)", html)


def parse_google_douban_search_html(html: str) -> str | None:
    return _search(r"movie\.douban\.com/subject/(\d+)", html)


def parse_douban_suggest(payload: Any, raw_imdb_id: str) -> str | None:
    """First suggestion id, but only when the response mentions the IMDb id."""
    if not isinstance(payload, list) or not payload:
        return None
    if raw_imdb_id not in str(payload):
        return None
    first = payload[0]
    if isinstance(first, dict) and first.get("id"):
        return str(first["id"])
    return None


def parse_douban_suggest_by_title(payload: Any, title: str) -> str | None:
    if not isinstance(payload, list):
        return None
    wanted = title.strip().lower()
    for item in payload:
        if not isinstance(item, dict):
            continue
        sub_title = str(item.get("sub_title") or "").strip().lower()
        if sub_title and sub_title == wanted and item.get("id"):
            return str(item["id"])
    return None


def parse_douban_abstract(payload: Any) -> ParsedRating:
    if not isinstance(payload, dict):
        return ParsedRating()
    subject = payload.get("subject")
    if not isinstance(subject, dict):
        return ParsedRating()
    return ParsedRating(value=_parse_float(subject.get("rate")), count=_parse_int(subject.get("votes")))


def parse_omdb_ratings(data: Any) -> OmdbRatings:
    if not isinstance(data, dict):
        return OmdbRatings()
    rotten: int | None = None
    for rating in data.get("Ratings") or []:
        if not isinstance(rating, dict) or rating.get("Source") != "Rotten Tomatoes":
            continue
        text = str(rating.get("Value") or "").strip()
        if text.endswith("%"):
            rotten = _parse_int(text[:-1])
    metascore = _parse_int(data.get("Metascore"))
    if metascore is not None and metascore > 100:
        metascore = None
    return OmdbRatings(
        imdb=_parse_float(data.get("imdbRating")),
        imdb_votes=_parse_int(data.get("imdbVotes")),
        metacritic=metascore,
        rotten_tomatoes=rotten,
    )
