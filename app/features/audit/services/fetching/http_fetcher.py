from typing import Optional, Protocol

import httpx

from app.features.audit.schemas.fetch import FetchResponse
from app.platform.config import settings
from app.platform.exceptions import TransientFetchFailure

# Bodies above this size are refused instead of being parsed
MAX_BODY_BYTES = 5_000_000
PAYLOAD_TOO_LARGE = 413


class HtmlFetcher(Protocol):
    """
    Fetch collaborator used by discovery and the fetch orchestrator.

    Returns the response for any HTTP status; raises TransientFetchFailure
    for network-level problems (timeout, reset, DNS).
    """

    async def fetch(self, url: str, timeout: float) -> FetchResponse:
        ...


class HttpxFetcher:
    """HtmlFetcher backed by a shared httpx.AsyncClient."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        user_agent: str = settings.AUDIT_USER_AGENT,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            follow_redirects=True,
            headers={"User-Agent": user_agent},
        )

    async def fetch(self, url: str, timeout: float) -> FetchResponse:
        try:
            response = await self.client.get(url, timeout=timeout, follow_redirects=True)
        except httpx.TimeoutException as e:
            raise TransientFetchFailure(f"timeout after {timeout}s") from e
        except (httpx.RequestError, httpx.InvalidURL) as e:
            # Transport errors, redirect loops, undecodable bodies, malformed URLs
            raise TransientFetchFailure(f"{type(e).__name__}: {e}") from e

        if len(response.content) > MAX_BODY_BYTES:
            return FetchResponse(status=PAYLOAD_TOO_LARGE, final_url=str(response.url))

        return FetchResponse(
            status=response.status_code,
            body=response.text,
            final_url=str(response.url),
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self) -> "HttpxFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
