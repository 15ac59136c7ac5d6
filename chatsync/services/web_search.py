# chatsync/services/web_search.py
"""
Ranked web search.

Providers are tried in priority order; a provider is skipped when its API key
is not configured and the next one is tried when it fails. DuckDuckGo needs
no key and always closes the chain, answering with a single "limited results"
entry when it has nothing better.
"""

import logging
import time
from typing import List, Optional
from urllib.parse import quote_plus

import httpx
from bs4 import BeautifulSoup
from pydantic import BaseModel, Field

from chatsync.core.config import settings
from chatsync.core.errors import ValidationError, UpstreamError

logger = logging.getLogger(__name__)


class SearchResult(BaseModel):
    title: str = ""
    url: str = ""
    snippet: str = ""
    displayUrl: str = ""


class WebSearchResponse(BaseModel):
    query: str
    results: List[SearchResult] = Field(default_factory=list)
    timestamp: int


def clean_snippet(text: Optional[str]) -> str:
    """Strip the <strong>/<b> highlighting search APIs put in snippets."""
    if not text:
        return ""
    if "<" not in text:
        return text.strip()
    return BeautifulSoup(text, "html.parser").get_text().strip()


class SearchProvider:
    """Base class: subclasses set `name`/`key_setting` and implement `fetch`."""

    name = "base"
    key_setting: Optional[str] = None

    @property
    def requires_key(self) -> bool:
        return self.key_setting is not None

    @property
    def api_key(self) -> str:
        return getattr(settings, self.key_setting, "") if self.key_setting else ""

    def is_configured(self) -> bool:
        return not self.requires_key or bool(self.api_key)

    async def search(self, client: httpx.AsyncClient, query: str) -> List[SearchResult]:
        response = await self.fetch(client, query)
        if response.is_error:
            raise UpstreamError(f"{self.name} search error: {response.reason_phrase}")
        return self.parse(response.json(), query)

    async def fetch(self, client: httpx.AsyncClient, query: str) -> httpx.Response:
        raise NotImplementedError

    def parse(self, data: dict, query: str) -> List[SearchResult]:
        raise NotImplementedError


class BingProvider(SearchProvider):
    name = "bing"
    key_setting = "BING_SEARCH_KEY"

    async def fetch(self, client, query):
        return await client.get(
            "https://api.bing.microsoft.com/v7.0/search",
            params={"q": query, "count": settings.SEARCH_RESULT_COUNT, "textFormat": "Raw"},
            headers={"Ocp-Apim-Subscription-Key": self.api_key},
            timeout=settings.SEARCH_TIMEOUT,
        )

    def parse(self, data, query):
        return [
            SearchResult(
                title=item.get("name", ""),
                url=item.get("url", ""),
                snippet=clean_snippet(item.get("snippet")),
                displayUrl=item.get("displayUrl") or item.get("url", ""),
            )
            for item in (data.get("webPages") or {}).get("value", [])
        ]


class BraveProvider(SearchProvider):
    name = "brave"
    key_setting = "BRAVE_SEARCH_KEY"

    async def fetch(self, client, query):
        return await client.get(
            "https://api.search.brave.com/res/v1/web/search",
            params={"q": query, "count": settings.SEARCH_RESULT_COUNT},
            headers={"X-Subscription-Token": self.api_key, "Accept": "application/json"},
            timeout=settings.SEARCH_TIMEOUT,
        )

    def parse(self, data, query):
        return [
            SearchResult(
                title=clean_snippet(item.get("title")),
                url=item.get("url", ""),
                snippet=clean_snippet(item.get("description")),
                displayUrl=item.get("url", ""),
            )
            for item in (data.get("web") or {}).get("results", [])
        ]


class SerpApiProvider(SearchProvider):
    name = "serpapi"
    key_setting = "SERPAPI_KEY"

    async def fetch(self, client, query):
        return await client.get(
            "https://serpapi.com/search.json",
            params={
                "engine": "google",
                "q": query,
                "api_key": self.api_key,
                "num": settings.SEARCH_RESULT_COUNT,
            },
            timeout=settings.SEARCH_TIMEOUT,
        )

    def parse(self, data, query):
        return [
            SearchResult(
                title=item.get("title", ""),
                url=item.get("link", ""),
                snippet=clean_snippet(item.get("snippet")),
                displayUrl=item.get("displayed_link") or item.get("link", ""),
            )
            for item in data.get("organic_results", [])
        ]


class DuckDuckGoProvider(SearchProvider):
    """Instant Answer API. Few web results, but needs no key."""

    name = "duckduckgo"
    max_related_topics = 5

    async def fetch(self, client, query):
        return await client.get(
            "https://api.duckduckgo.com/",
            params={"q": query, "format": "json", "no_html": 1, "skip_disambig": 1},
            timeout=settings.SEARCH_TIMEOUT,
        )

    async def search(self, client, query):
        # Last link of the chain: degrade to a pointer instead of failing
        try:
            return await super().search(client, query)
        except (httpx.RequestError, UpstreamError, ValueError) as e:
            logger.warning(f"DuckDuckGo unavailable, returning limited result: {e}")
            return [limited_result(query)]

    def parse(self, data, query):
        results = []
        if data.get("Abstract"):
            results.append(SearchResult(
                title=data.get("Heading") or "DuckDuckGo Result",
                url=data.get("AbstractURL", ""),
                snippet=data["Abstract"],
                displayUrl=data.get("AbstractSource", ""),
            ))

        for topic in (data.get("RelatedTopics") or [])[:self.max_related_topics]:
            if topic.get("Text") and topic.get("FirstURL"):
                results.append(SearchResult(
                    title=topic["Text"].split(" - ")[0] or "Related Topic",
                    url=topic["FirstURL"],
                    snippet=topic["Text"],
                    displayUrl=topic["FirstURL"],
                ))

        if not results:
            results.append(limited_result(query))
        return results


def limited_result(query: str) -> SearchResult:
    return SearchResult(
        title="Limited Search Results",
        url=f"https://duckduckgo.com/?q={quote_plus(query)}",
        snippet=f'Search results for "{query}" - Please configure a search API for better results',
        displayUrl="duckduckgo.com",
    )


# Priority order; the last entry must not require a key
PROVIDERS: List[SearchProvider] = [
    BingProvider(),
    BraveProvider(),
    SerpApiProvider(),
    DuckDuckGoProvider(),
]


async def search_web(
    query: Optional[str],
    client: httpx.AsyncClient,
    providers: Optional[List[SearchProvider]] = None,
) -> WebSearchResponse:
    """Run `query` through the first configured provider that answers."""
    query = (query or "").strip()
    if not query:
        raise ValidationError("Search query is required")

    last_error = None
    for provider in providers or PROVIDERS:
        if not provider.is_configured():
            continue
        try:
            results = await provider.search(client, query)
            logger.info(f"🔍 {provider.name} returned {len(results)} result(s) for {query[:50]!r}")
            return WebSearchResponse(query=query, results=results, timestamp=int(time.time() * 1000))
        except httpx.TimeoutException as e:
            last_error = f"{provider.name} search timeout"
            logger.error(f"Web search timeout on {provider.name}: {e}")
        except (httpx.RequestError, UpstreamError, ValueError) as e:
            last_error = str(e)
            logger.error(f"Web search failed on {provider.name}: {e}")

    raise UpstreamError(last_error or "No search provider available")


def format_search_results(results: List[SearchResult]) -> str:
    """Render results as the text block handed to the model."""
    if not results:
        return "No search results found."

    lines = ["Web Search Results:", ""]
    for index, result in enumerate(results, start=1):
        lines.append(f"{index}. **{result.title}**")
        lines.append(f"   {result.snippet}")
        lines.append(f"   Source: {result.displayUrl}")
        lines.append(f"   Link: {result.url}")
        lines.append("")
    return "\n".join(lines)
