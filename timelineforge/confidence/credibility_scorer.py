"""
Credibility Scorer

Asks the LLM to rate one search result (0-100) and summarize it. Any
failure, whether the call itself or an unparseable reply, degrades to a
neutral score instead of failing the caller.
"""
import logging
from typing import Callable, List, Optional

from pydantic import BaseModel, Field

from timelineforge.confidence.confidence_scorer import clamp_score
from timelineforge.errors import UpstreamServiceError
from timelineforge.utils.json_extract import extract_json_object
from timelineforge.utils.llm_client import llm_complete

logger = logging.getLogger(__name__)

NEUTRAL_CREDIBILITY = 50.0


class CredibilityAssessment(BaseModel):
    score: float = NEUTRAL_CREDIBILITY
    summary: str = ""
    key_claims: List[str] = Field(default_factory=list)
    supports_narrative: Optional[bool] = None
    fallback: bool = False


def build_source_prompt(url: str, title: str, content: str) -> str:
    return f"""Rate the credibility of this source (0-100) and summarize key claims.
Source: {url}
Title: {title}
Content: {content[:1500]}

JSON response: {{"score": number, "summary": "string", "key_claims": ["claim1"]}}"""


def build_narrative_prompt(
    url: str,
    title: str,
    content: str,
    event_title: str,
    branch_name: Optional[str] = None
) -> str:
    narrative_line = (
        f'Consider how it relates to this narrative: "{branch_name}"' if branch_name else ""
    )
    return f"""Analyze this search result for an investigation into "{event_title}".
{narrative_line}

Source: {url}
Title: {title}
Content: {content[:2000]}

Provide a JSON response with:
{{
  "credibility_score": number (0-100 based on source reliability, citation quality, author expertise),
  "supports_narrative": boolean | null (true if supports, false if contradicts, null if neutral/unclear),
  "summary": "brief summary of the key claims or evidence"
}}"""


class CredibilityScorer:

    def __init__(self, llm: Callable[..., str] = llm_complete):
        self.llm = llm

    def score_source(self, url: str, title: str, content: Optional[str]) -> CredibilityAssessment:
        """Credibility + summary + key claims, as used by the investigation pipeline."""
        content = content or ""
        prompt = build_source_prompt(url, title, content)
        return self._assess(prompt, url, content, summary_fallback_chars=300, temperature=0.3)

    def score_for_narrative(
        self,
        url: str,
        title: str,
        content: Optional[str],
        event_title: str,
        branch_name: Optional[str] = None
    ) -> CredibilityAssessment:
        """Credibility + narrative stance, as used by the standalone evidence collector."""
        content = content or ""
        prompt = build_narrative_prompt(url, title, content, event_title, branch_name)
        return self._assess(prompt, url, content, summary_fallback_chars=500, temperature=0.2)

    def _assess(
        self,
        prompt: str,
        url: str,
        content: str,
        summary_fallback_chars: int,
        temperature: float
    ) -> CredibilityAssessment:
        fallback = CredibilityAssessment(
            score=NEUTRAL_CREDIBILITY,
            summary=content[:summary_fallback_chars],
            fallback=True,
        )

        try:
            response = self.llm(prompt, temperature=temperature, max_output_tokens=1024)
        except UpstreamServiceError as e:
            logger.warning("Credibility call failed for %s: %s", url, e)
            return fallback

        parsed = extract_json_object(response)
        if parsed is None:
            logger.info("Unparseable credibility reply for %s, using neutral score", url)
            return fallback

        raw_score = parsed.get("score", parsed.get("credibility_score"))
        key_claims = parsed.get("key_claims")
        if not isinstance(key_claims, list):
            key_claims = []
        supports = parsed.get("supports_narrative")

        return CredibilityAssessment(
            score=clamp_score(raw_score, default=NEUTRAL_CREDIBILITY),
            summary=str(parsed.get("summary") or content[:summary_fallback_chars]),
            key_claims=[str(c) for c in key_claims if isinstance(c, str)],
            supports_narrative=supports if isinstance(supports, bool) else None,
            fallback=False,
        )
