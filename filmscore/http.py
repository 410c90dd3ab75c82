import json
from typing import Any

import httpx

from .errors import UpstreamError

DEFAULT_TIMEOUT_SECONDS = 10.0
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/126.0.0.0 Safari/537.36"
)
ACCEPT_HTML = {"Accept": "text/html", "Accept-Language": "en-US,en;q=0.9"}
ACCEPT_JSON = {"Accept": "application/json"}


class HttpClient:
    """Thin wrapper over one shared ``httpx.AsyncClient``.

    Every call carries its own timeout; httpx enforces it by cancelling the
    socket operation. Non-2xx responses, timeouts, transport errors and
    undecodable JSON all surface as ``UpstreamError`` so fetch strategies
    only need to handle one exception type. ``asyncio.CancelledError`` is
    never caught here: an abandoned request must unwind immediately.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._timeout = timeout
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": BROWSER_USER_AGENT},
        )

    @property
    def timeout(self) -> float:
        return self._timeout

    async def get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        follow_redirects: bool = True,
    ) -> httpx.Response:
        try:
            resp = await self._client.get(
                url,
                params=params,
                headers=headers,
                timeout=timeout if timeout is not None else self._timeout,
                follow_redirects=follow_redirects,
            )
        except httpx.TimeoutException as exc:
            raise UpstreamError("Request timed out", url=url) from exc
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Request failed: {exc.__class__.__name__}", url=url) from exc
        if resp.status_code < 200 or resp.status_code >= 300:
            raise UpstreamError(
                f"Request failed: {resp.status_code} {resp.reason_phrase}".strip(),
                status_code=resp.status_code,
                url=url,
            )
        return resp

    async def get_text(self, url: str, **kwargs: Any) -> str:
        resp = await self.get(url, **kwargs)
        return resp.text

    async def get_json(self, url: str, **kwargs: Any) -> Any:
        resp = await self.get(url, **kwargs)
        try:
            return resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise UpstreamError("Malformed JSON response", status_code=resp.status_code, url=url) from exc

    async def aclose(self) -> None:
        await self._client.aclose()
