class FilmScoreError(Exception):
    """Base exception for all filmscore errors."""


class ConfigurationError(FilmScoreError):
    """A required credential or setting is missing."""


class FetchError(FilmScoreError):
    """A rating source could not be read."""


class UpstreamError(FetchError):
    """Timeout, non-2xx status or malformed upstream response."""

    def __init__(self, message: str, *, status_code: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RequestCancelled(FilmScoreError):
    """The caller abandoned the request while sources were still in flight."""
