"""
Hypothesis Tester

Searches for evidence on one hypothesis, asks the LLM for a verdict, and
folds the verdict's confidence impact into the owning branch.
"""
import logging
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from timelineforge.config import settings
from timelineforge.confidence.confidence_scorer import ConfidenceScorer, clamp_impact
from timelineforge.environments.web.search import WebSearch
from timelineforge.errors import AuthorizationError, NotFoundError, UpstreamServiceError
from timelineforge.storage.models.enums import HypothesisStatus
from timelineforge.storage.repositories.branch_repo import BranchRepository
from timelineforge.storage.repositories.event_repo import EventRepository
from timelineforge.storage.repositories.hypothesis_repo import HypothesisRepository
from timelineforge.storage.repositories.investigation_log_repo import InvestigationLogRepository
from timelineforge.utils.json_extract import extract_json_object
from timelineforge.utils.llm_client import llm_complete

logger = logging.getLogger(__name__)

VERDICT_STATUS = {
    "confirmed": HypothesisStatus.CONFIRMED,
    "refuted": HypothesisStatus.REFUTED,
    "inconclusive": HypothesisStatus.PENDING,
}


def build_evaluation_prompt(claim: str, prediction: Optional[str], search_response) -> str:
    evidence_block = "\n\n".join(
        f"Source: {r.url}\n{r.content or ''}" for r in search_response.results
    )
    return f"""Evaluate this hypothesis based on the evidence found:

Hypothesis: {claim}
Testable Prediction: {prediction or "N/A"}

Evidence Found:
{evidence_block}

Summary: {search_response.answer or "N/A"}

Determine:
1. Is the hypothesis CONFIRMED, REFUTED, or INCONCLUSIVE?
2. Confidence impact (-30 to +30) on the narrative
3. Reasoning

JSON response:
{{
  "verdict": "confirmed" | "refuted" | "inconclusive",
  "confidence_impact": number,
  "reasoning": "string"
}}"""


def parse_evaluation(response: Optional[str]) -> Dict:
    parsed = extract_json_object(response) or {}

    verdict = str(parsed.get("verdict") or "").strip().lower()
    if verdict not in VERDICT_STATUS:
        verdict = "inconclusive"

    reasoning = parsed.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = "Unable to evaluate"

    return {
        "verdict": verdict,
        "confidence_impact": clamp_impact(parsed.get("confidence_impact")),
        "reasoning": reasoning,
    }


class HypothesisTester:

    def __init__(
        self,
        db: Session,
        search_client: Optional[WebSearch] = None,
        llm: Callable[..., str] = llm_complete,
        confidence_scorer: Optional[ConfidenceScorer] = None
    ):
        self.db = db
        self.search = search_client or WebSearch()
        self.llm = llm
        self.confidence = confidence_scorer or ConfidenceScorer()

    def test(self, hypothesis_id, user_id: str) -> Dict:
        hypothesis = HypothesisRepository.get(self.db, hypothesis_id)
        branch = BranchRepository.get(self.db, hypothesis.branch_id) if hypothesis else None
        event = EventRepository.get(self.db, branch.event_id) if branch else None
        if event is None:
            raise NotFoundError(
                f"Hypothesis {hypothesis_id} not found",
                public_message="Hypothesis not found or access denied",
            )
        if str(event.user_id) != str(user_id):
            raise AuthorizationError(f"User {user_id} does not own hypothesis {hypothesis_id}")

        if not settings.gemini_api_key or not self.search.configured:
            raise UpstreamServiceError("Services not configured")

        claim = hypothesis.claim
        prediction = hypothesis.testable_prediction
        branch_id = branch.id
        event_id = event.id
        phase = event.current_phase
        event_title = event.title

        HypothesisRepository.update_status(self.db, hypothesis_id, HypothesisStatus.TESTING)

        search_response = self.search.search(
            f"{event_title} {prediction or claim}",
            max_results=settings.SEARCH_MAX_RESULTS,
        )
        response = self.llm(
            build_evaluation_prompt(claim, prediction, search_response),
            temperature=0.2,
            max_output_tokens=2048,
        )
        evaluation = parse_evaluation(response)
        status = VERDICT_STATUS[evaluation["verdict"]]
        impact = evaluation["confidence_impact"]

        HypothesisRepository.record_result(
            self.db,
            hypothesis_id,
            status=status,
            confidence_impact=impact,
            reasoning=evaluation["reasoning"],
        )

        if impact != 0:
            branch = BranchRepository.get(self.db, branch_id)
            new_score = self.confidence.apply_impact(branch.confidence_score, impact)
            BranchRepository.update_confidence(self.db, branch_id, new_score)

        InvestigationLogRepository.log(
            db=self.db,
            event_id=event_id,
            phase=phase,
            action=f"Tested hypothesis: {claim[:50]}... -> {evaluation['verdict']}",
            details={
                "hypothesis_id": str(hypothesis_id),
                "verdict": evaluation["verdict"],
                "confidence_impact": impact,
            },
        )
        logger.info("Hypothesis %s -> %s (%+.1f)", hypothesis_id, evaluation["verdict"], impact)

        return {
            "success": True,
            "hypothesisId": str(hypothesis_id),
            "verdict": evaluation["verdict"],
            "confidence_impact": impact,
            "reasoning": evaluation["reasoning"],
            "evidence": [
                {"title": r.title, "url": r.url, "content": r.content}
                for r in search_response.results
            ],
        }
