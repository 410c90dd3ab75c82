from .schemas import SourceScore

# Upper bound of each source's native scale; everything rescales linearly to 0-100.
SOURCE_SCALE_MAX: dict[str, float] = {
    "imdb": 10.0,
    "douban": 10.0,
    "letterboxd": 5.0,
    "metacritic": 100.0,
    "rotten_tomatoes": 100.0,
    "rotten_tomatoes_all": 100.0,
    "rotten_tomatoes_top": 100.0,
    "rotten_tomatoes_audience": 5.0,
    "allocine_press": 5.0,
    "allocine_user": 5.0,
}


def _clamp(value: float) -> float:
    return min(100.0, max(0.0, value))


def scale_label(source: str) -> str | None:
    top = SOURCE_SCALE_MAX.get(source)
    if top is None:
        return None
    return f"0-{int(top)}"


def normalize(source: str, value: float | None) -> float | None:
    if value is None:
        return None
    top = SOURCE_SCALE_MAX.get(source)
    if top is None:
        return None
    try:
        scaled = float(value) / top * 100.0
    except (TypeError, ValueError):
        return None
    if scaled != scaled:  # NaN
        return None
    return _clamp(scaled)


def normalize_score(score: SourceScore) -> SourceScore:
    value = score.raw.value if score.raw and score.error is None else None
    return score.model_copy(update={"normalized": normalize(score.source, value)})
