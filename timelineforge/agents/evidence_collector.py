"""
Evidence Collector

Standalone search: runs one web search for a query in the context of an
event (and optionally a narrative) and scores every result. Nothing is
persisted; the caller decides what to keep.
"""
import logging
from typing import Dict, Optional

from timelineforge.config import settings
from timelineforge.confidence.credibility_scorer import CredibilityScorer
from timelineforge.environments.web.search import WebSearch
from timelineforge.errors import UpstreamServiceError

logger = logging.getLogger(__name__)

RAW_CONTENT_CHARS = 5000


class EvidenceCollector:

    def __init__(
        self,
        search_client: Optional[WebSearch] = None,
        credibility_scorer: Optional[CredibilityScorer] = None
    ):
        self.search = search_client or WebSearch()
        self.credibility = credibility_scorer or CredibilityScorer()

    def collect(
        self,
        query: str,
        event_title: str,
        branch_name: Optional[str] = None,
        max_results: int = 5
    ) -> Dict:
        if not settings.gemini_api_key or not self.search.configured:
            raise UpstreamServiceError("Services not configured")

        response = self.search.search(
            f"{event_title} {query}",
            max_results=max_results,
            include_raw_content=True,
        )

        results = []
        for result in response.results:
            assessment = self.credibility.score_for_narrative(
                url=result.url,
                title=result.title,
                content=result.content,
                event_title=event_title,
                branch_name=branch_name,
            )
            item = {
                "title": result.title,
                "content": assessment.summary or (result.content or "")[:500],
                "source_url": result.url,
                "source_credibility": assessment.score,
                "supports_narrative": assessment.supports_narrative,
            }
            if result.raw_content and not assessment.fallback:
                item["raw_content"] = result.raw_content[:RAW_CONTENT_CHARS]
            results.append(item)

        logger.info("Collected %d scored results for: %s", len(results), query)
        return {
            "results": results,
            "answer": response.answer,
            "query": query,
        }
