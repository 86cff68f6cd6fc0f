import logging
from typing import Optional

from tavily import TavilyClient

from timelineforge.config import settings
from timelineforge.environments.web.state import SearchResponse, SearchResult
from timelineforge.errors import UpstreamServiceError

logger = logging.getLogger(__name__)


class WebSearch:
    """Tavily-backed web search. One blocking round trip per call, no retries."""

    def __init__(self, api_key: Optional[str] = None, search_depth: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.tavily_api_key
        self.search_depth = search_depth or settings.tavily_search_depth
        self._client: Optional[TavilyClient] = None

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_client(self) -> TavilyClient:
        if not self.api_key:
            raise UpstreamServiceError("TAVILY_API_KEY is not set; search service not configured")
        if self._client is None:
            self._client = TavilyClient(api_key=self.api_key)
        return self._client

    def search(
        self,
        query: str,
        max_results: int = 5,
        include_raw_content: bool = False
    ) -> SearchResponse:
        client = self._get_client()
        try:
            data = client.search(
                query,
                search_depth=self.search_depth,
                max_results=max_results,
                include_answer=True,
                include_raw_content=include_raw_content,
            )
        except Exception as e:
            raise UpstreamServiceError(f"Tavily search failed for {query!r}: {e}") from e

        results = [
            SearchResult(
                url=item.get("url", ""),
                title=item.get("title") or "",
                content=item.get("content"),
                raw_content=item.get("raw_content"),
                score=item.get("score"),
            )
            for item in (data or {}).get("results", [])
            if item.get("url")
        ]
        logger.info("Tavily returned %d results for: %s", len(results), query)
        return SearchResponse(query=query, answer=(data or {}).get("answer"), results=results)
