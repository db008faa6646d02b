import logging
from typing import Any

import httpx

from foodcrawl.config import settings

logger = logging.getLogger("foodcrawl.http")

HTML_HEADERS = {
    "Accept": "text/html,application/xhtml+xml",
    "Accept-Language": "de-DE,de;q=0.9",
}


class SourceFetchError(Exception):
    """A source-level fetch failed; the orchestrator treats it as zero yield.

    ``retryable`` tells parsers whether the same request may succeed later,
    in which case the page cursor must not move past it.
    """

    retryable = True

    def __init__(self, url: str, message: str):
        super().__init__(f"{url}: {message}")
        self.url = url


class SourceNetworkError(SourceFetchError):
    """Connection problem or timeout, no HTTP response was received."""


class SourceStatusError(SourceFetchError):
    def __init__(self, url: str, status_code: int):
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code
        # 4xx other than 429 will not change on a retry
        self.retryable = status_code >= 500 or status_code == 429


def create_client(
    user_agent: str | None = None,
    timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create the shared AsyncClient. Caller closes it (await client.aclose())."""
    return httpx.AsyncClient(
        timeout=timeout or settings.request_timeout,
        follow_redirects=True,
        headers={"User-Agent": user_agent or settings.user_agent},
        transport=transport,
    )


async def _get(
    client: httpx.AsyncClient,
    url: str,
    params: dict[str, Any] | None,
    headers: dict[str, str] | None,
    timeout: float | None,
) -> httpx.Response:
    kwargs: dict[str, Any] = {"params": params, "headers": headers}
    if timeout is not None:
        kwargs["timeout"] = timeout
    try:
        resp = await client.get(url, **kwargs)
    except httpx.TimeoutException as e:
        raise SourceNetworkError(url, f"timeout: {e}") from e
    except httpx.TransportError as e:
        raise SourceNetworkError(url, f"network error: {e}") from e
    if resp.status_code >= 400:
        raise SourceStatusError(url, resp.status_code)
    return resp


async def get_json(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> Any:
    resp = await _get(client, url, params, None, timeout)
    try:
        return resp.json()
    except ValueError as e:
        raise SourceFetchError(url, f"invalid JSON body: {e}") from e


async def get_text(
    client: httpx.AsyncClient,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> str:
    resp = await _get(client, url, params, HTML_HEADERS, timeout)
    return resp.text
