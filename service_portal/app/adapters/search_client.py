"""
Site-restricted web search used to ground chat answers.
"""

from dataclasses import dataclass
from typing import List, Optional

import httpx

from shared.logging import get_logger

CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"


@dataclass(frozen=True)
class SearchSnippet:
    title: str
    link: str
    excerpt: str


class ContextRetriever:
    """Fetches a handful of snippets from one site for a question.

    Context is optional: an unconfigured engine, a failed request or an
    empty result all yield ``[]``.
    """

    def __init__(
        self,
        api_key: str,
        engine_id: str,
        *,
        site: str = "ifheindia.org",
        max_results: int = 5,
        base_url: str = CUSTOM_SEARCH_URL,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.api_key = api_key
        self.engine_id = engine_id
        self.site = site
        self.max_results = max_results
        self.base_url = base_url
        self.logger = get_logger("portal.search")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    async def close(self):
        await self._client.aclose()

    async def retrieve(self, query: str) -> List[SearchSnippet]:
        if not self.configured:
            return []

        params = {
            "key": self.api_key,
            "cx": self.engine_id,
            "q": f"{query} site:{self.site}",
            "num": str(self.max_results),
        }
        try:
            response = await self._client.get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.warning("Context search failed", error=str(e))
            return []

        items = payload.get("items") if isinstance(payload, dict) else None
        if not isinstance(items, list):
            return []

        snippets = []
        for item in items[: self.max_results]:
            if not isinstance(item, dict):
                continue
            snippets.append(
                SearchSnippet(
                    title=str(item.get("title", "")),
                    link=str(item.get("link", "")),
                    excerpt=str(item.get("snippet", "")),
                )
            )
        return snippets
