"""DuckDuckGo HTML search connector."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from urllib.parse import parse_qs, urlsplit

import httpx
from bs4 import BeautifulSoup, Tag
from langsmith import traceable

from gateway_api.constants import (
    DEFAULT_SEARCH_RESULTS,
    SEARCH_ENDPOINT,
    SEARCH_TIMEOUT_SECONDS,
    SEARCH_USER_AGENT,
)
from gateway_api.errors import BadRequestError, SearchError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchHit:
    title: str
    url: str
    snippet: str


def default_client_factory() -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=SEARCH_TIMEOUT_SECONDS)


class WebSearchConnector:
    """Scrape DuckDuckGo HTML results without requiring API keys."""

    def __init__(
        self,
        endpoint: str = SEARCH_ENDPOINT,
        client_factory: Callable[[], httpx.AsyncClient] = default_client_factory,
        user_agent: str = SEARCH_USER_AGENT,
    ) -> None:
        self._endpoint = endpoint
        self._client_factory = client_factory
        self._user_agent = user_agent

    @traceable(run_type="tool", name="web_search")
    async def search(self, query: str, max_results: int = DEFAULT_SEARCH_RESULTS) -> list[SearchHit]:
        if not query.strip():
            raise BadRequestError("Search query is required")
        if max_results < 1:
            raise BadRequestError("maxResults must be at least 1")

        try:
            async with self._client_factory() as client:
                response = await client.post(
                    self._endpoint,
                    data={"q": query},
                    headers={"User-Agent": self._user_agent},
                )
        except httpx.HTTPError as exc:
            raise SearchError(f"Search request failed: {exc}") from exc

        if not response.is_success:
            raise SearchError(f"Search request failed: {response.status_code}")

        hits = parse_results(response.text, max_results)
        logger.info(
            "Search completed",
            extra={"result_count": len(hits), "query_len": len(query)},
        )
        return hits


def parse_results(html: str, max_results: int) -> list[SearchHit]:
    """Extract result blocks in page order, skipping ads and blocks without title or URL."""
    soup = BeautifulSoup(html, "html.parser")
    if soup.find(True) is None:
        raise SearchError("Search response could not be parsed as HTML")

    hits: list[SearchHit] = []
    for block in soup.select(".result"):
        if "result--ad" in (block.get("class") or []):
            continue
        hit = _parse_block(block)
        if hit is None:
            continue
        hits.append(hit)
        if len(hits) >= max_results:
            break
    return hits


def _parse_block(block: Tag) -> SearchHit | None:
    anchor = block.select_one(".result__title a") or block.select_one("a.result__a")
    if anchor is None:
        return None
    title = anchor.get_text(" ", strip=True)
    url = resolve_result_url(anchor.get("href"))
    if not title or not url:
        return None

    snippet_node = block.select_one(".result__snippet")
    snippet = snippet_node.get_text(" ", strip=True) if snippet_node is not None else ""
    return SearchHit(title=title, url=url, snippet=snippet)


def resolve_result_url(href: str | list[str] | None) -> str | None:
    """Turn a result link into an absolute http(s) URL, unwrapping DuckDuckGo redirects."""
    if not href or not isinstance(href, str):
        return None
    if href.startswith("//"):
        href = f"https:{href}"

    parts = urlsplit(href)
    if parts.netloc.endswith("duckduckgo.com") and parts.path.startswith("/l/"):
        target = parse_qs(parts.query).get("uddg", [None])[0]
        if not target:
            return None
        href = target
        parts = urlsplit(href)

    if parts.scheme not in {"http", "https"} or not parts.netloc:
        return None
    return href
