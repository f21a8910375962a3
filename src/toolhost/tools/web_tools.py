"""
Web tools: WebFetch and WebSearch.

Both use httpx.AsyncClient. A transport can be injected so tests can
serve canned responses through httpx.MockTransport.
"""

import logging
from typing import Any

import httpx

from toolhost.config import truncate
from toolhost.paths import strip_html
from toolhost.tools import Tool, schema, str_arg
from toolhost.types import ToolContext, ToolResult

logger = logging.getLogger(__name__)

USER_AGENT = "ToolHost/1.0"
FETCH_BODY_LIMIT = 15_000
MAX_SEARCH_RESULTS = 6
DUCKDUCKGO_URL = "https://api.duckduckgo.com/"


def flatten_topics(topics: list[Any]) -> list[tuple[str, str]]:
    """Flatten DuckDuckGo RelatedTopics (which nest under "Topics") to (title, url)."""
    results: list[tuple[str, str]] = []
    for topic in topics:
        if not isinstance(topic, dict):
            continue
        if topic.get("Text") and topic.get("FirstURL"):
            results.append((topic["Text"], topic["FirstURL"]))
        if isinstance(topic.get("Topics"), list):
            results.extend(flatten_topics(topic["Topics"]))
    return results


class WebTools:
    """WebFetch/WebSearch handlers bound to one HTTP configuration."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None, timeout: float = 30.0):
        self.transport = transport
        self.timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=self.timeout,
            follow_redirects=True,
            headers={"User-Agent": USER_AGENT},
        )

    async def handle_web_fetch(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        url = str_arg(args, "url").strip()
        if not url:
            return ToolResult.fail("url is required.")
        prompt = str_arg(args, "prompt")
        if url.startswith("http:"):
            url = "https:" + url[len("http:"):]

        try:
            async with self._client() as client:
                response = await client.get(url)
        except httpx.RequestError as e:
            logger.warning(f"WebFetch request error for {url}: {e}")
            return ToolResult.fail(f"Error fetching URL: {e}")

        if not response.is_success:
            return ToolResult.fail(
                f"Failed to fetch ({response.status_code} {response.reason_phrase})"
            )
        content_type = response.headers.get("content-type", "")
        body = strip_html(response.text) if "text/html" in content_type else response.text
        return ToolResult.ok(
            f"Content from {url}\nPrompt: {prompt}\n\n{truncate(body, FETCH_BODY_LIMIT)}"
        )

    async def handle_web_search(self, args: dict[str, Any], context: ToolContext) -> ToolResult:
        query = str_arg(args, "query").strip()
        if not query:
            return ToolResult.fail("query is required.")

        params = {"q": query, "format": "json", "no_html": "1", "skip_disambig": "1"}
        try:
            async with self._client() as client:
                response = await client.get(DUCKDUCKGO_URL, params=params)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            return ToolResult.fail(f"Search failed ({e.response.status_code})")
        except (httpx.RequestError, ValueError) as e:
            return ToolResult.fail(f"Search failed: {e}")

        items: list[tuple[str, str]] = []
        if data.get("AbstractText") and data.get("AbstractURL"):
            items.append((data["AbstractText"], data["AbstractURL"]))
        for result in data.get("Results") or []:
            if isinstance(result, dict) and result.get("Text") and result.get("FirstURL"):
                items.append((result["Text"], result["FirstURL"]))
        items.extend(flatten_topics(data.get("RelatedTopics") or []))

        # Later duplicates replace earlier titles but keep the first position
        unique: dict[str, str] = {}
        for title, url in items:
            unique[url] = title
        ranked = list(unique.items())[:MAX_SEARCH_RESULTS]
        if not ranked:
            return ToolResult.ok(f'No web results found for "{query}".')

        formatted = "\n".join(
            f"{index}. {title}\n   {url}" for index, (url, title) in enumerate(ranked, 1)
        )
        return ToolResult.ok(f'Web search results for "{query}":\n\n{formatted}')

    def tools(self) -> list[Tool]:
        return [
            Tool(
                name="WebFetch",
                description="Fetch a URL and return its text content.",
                handler=self.handle_web_fetch,
                parameters=schema(
                    {"url": {"type": "string"}, "prompt": {"type": "string"}}, ["url"]
                ),
            ),
            Tool(
                name="WebSearch",
                description="Search the web.",
                handler=self.handle_web_search,
                parameters=schema({"query": {"type": "string"}}, ["query"]),
            ),
        ]
