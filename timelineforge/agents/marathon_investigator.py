"""
Marathon Investigator

Drives one event through five sequential phases:

1. ANALYSIS      - LLM proposes narratives and search queries
2. COLLECTION    - web search + per-result credibility scoring
3. BRANCHING     - one branch per new competing narrative
4. HYPOTHESES    - LLM proposes testable hypotheses from the evidence
5. FINALIZATION  - event marked complete, branch scores recomputed

Every step is committed as soon as it happens, so a failure mid-run leaves
the event at the last phase it reached. Nothing is rolled back and
concurrent runs on the same event are not excluded; URL and branch-name
deduplication is the only protection against repeated work.
"""
import logging
from enum import IntEnum
from typing import Callable, Dict, List, Optional, Set

from sqlalchemy.orm import Session

from timelineforge.config import settings
from timelineforge.confidence.confidence_scorer import ConfidenceScorer
from timelineforge.confidence.credibility_scorer import CredibilityScorer
from timelineforge.environments.web.search import WebSearch
from timelineforge.errors import (
    AuthorizationError,
    NotFoundError,
    UpstreamServiceError,
)
from timelineforge.storage.models.enums import EvidenceType, InvestigationStatus
from timelineforge.storage.repositories.branch_repo import BranchRepository
from timelineforge.storage.repositories.event_repo import EventRepository
from timelineforge.storage.repositories.evidence_repo import EvidenceRepository
from timelineforge.storage.repositories.hypothesis_repo import HypothesisRepository
from timelineforge.storage.repositories.investigation_log_repo import InvestigationLogRepository
from timelineforge.utils.json_extract import extract_json_object
from timelineforge.utils.llm_client import llm_complete

logger = logging.getLogger(__name__)

NARRATIVE_COLORS = ["#8b5cf6", "#06b6d4", "#22c55e", "#eab308", "#ef4444"]


class InvestigationPhase(IntEnum):
    ANALYSIS = 1
    COLLECTION = 2
    BRANCHING = 3
    HYPOTHESES = 4
    FINALIZATION = 5


def build_analysis_prompt(title: str, description: Optional[str]) -> str:
    return f"""Analyze this contested event and identify:
1. The main claims being made
2. Key parties involved
3. Potential competing narratives
4. What evidence would be needed to verify/refute claims

Event: {title}
Description: {description or ""}

Respond with JSON:
{{
  "main_claims": ["claim1", "claim2"],
  "parties": ["party1", "party2"],
  "narratives": [{{"name": "narrative name", "description": "brief description"}}],
  "evidence_needed": ["type of evidence 1", "type of evidence 2"],
  "search_queries": ["search query 1", "search query 2", "search query 3"]
}}"""


def build_hypotheses_prompt(title: str, evidence_lines: List[str]) -> str:
    evidence_block = "\n".join(evidence_lines)
    return f"""Based on this evidence collected about "{title}", generate 3 to 5 testable hypotheses.

Evidence summaries:
{evidence_block}

For each hypothesis, provide:
1. A clear claim
2. A testable prediction
3. What evidence would confirm or refute it

JSON response:
{{
  "hypotheses": [
    {{"claim": "string", "testable_prediction": "string", "evidence_needed": "string"}}
  ]
}}"""


def _string_list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def parse_analysis(response: Optional[str], title: str) -> Dict:
    """
    Normalize the phase-1 reply. An unparseable reply yields a single search
    query equal to the event title and no narratives.
    """
    parsed = extract_json_object(response)
    if parsed is None:
        return {
            "search_queries": [title],
            "narratives": [],
            "main_claims": [],
            "parties": [],
            "evidence_needed": [],
            "fallback": True,
        }

    narratives = []
    for item in parsed.get("narratives") or []:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        if not isinstance(name, str) or not name.strip():
            continue
        description = item.get("description")
        narratives.append({
            "name": name.strip(),
            "description": description if isinstance(description, str) else None,
        })

    return {
        "search_queries": _string_list(parsed.get("search_queries")) or [title],
        "narratives": narratives,
        "main_claims": _string_list(parsed.get("main_claims")),
        "parties": _string_list(parsed.get("parties")),
        "evidence_needed": _string_list(parsed.get("evidence_needed")),
        "fallback": False,
    }


def parse_hypotheses(response: Optional[str]) -> List[Dict]:
    parsed = extract_json_object(response)
    if parsed is None:
        return []

    hypotheses = []
    for item in parsed.get("hypotheses") or []:
        if not isinstance(item, dict):
            continue
        claim = item.get("claim")
        if not isinstance(claim, str) or not claim.strip():
            continue
        prediction = item.get("testable_prediction")
        needed = item.get("evidence_needed")
        hypotheses.append({
            "claim": claim.strip(),
            "testable_prediction": prediction if isinstance(prediction, str) else None,
            "evidence_needed": needed if isinstance(needed, str) else None,
        })
    return hypotheses


def fallback_hypothesis(title: str, narrative_count: int) -> Dict:
    if narrative_count > 1:
        claim = (
            f'The evidence about "{title}" supports one of {narrative_count} '
            "competing narratives over the others."
        )
        prediction = (
            "Additional independent sources will corroborate a single narrative "
            "and contradict the rest."
        )
    elif narrative_count == 1:
        claim = f'The evidence about "{title}" supports the single proposed narrative.'
        prediction = "Additional independent sources will corroborate the proposed narrative."
    else:
        claim = f'The collected evidence about "{title}" describes a consistent account of events.'
        prediction = "Additional independent sources will agree with the collected evidence."
    return {
        "claim": claim,
        "testable_prediction": prediction,
        "evidence_needed": "Independent primary sources covering the same event.",
    }


class InvestigationContext:
    """
    Tracks one run: the event snapshot, deduplication sets and phase outputs.
    """

    def __init__(self, event_id: str, title: str, description: Optional[str]):
        self.event_id = event_id
        self.title = title
        self.description = description

        self.current_phase: InvestigationPhase = InvestigationPhase.ANALYSIS
        self.done: bool = False

        self.main_branch_id: Optional[str] = None
        self.existing_urls: Set[str] = set()
        self.existing_branch_names: Set[str] = set()
        self.evidence_position_base: int = 0

        self.analysis: Dict = {}
        self.new_evidence_ids: List[str] = []
        self.new_branch_ids: List[str] = []
        self.hypotheses_created: int = 0


class MarathonInvestigator:

    def __init__(
        self,
        db: Session,
        search_client: Optional[WebSearch] = None,
        llm: Callable[..., str] = llm_complete,
        credibility_scorer: Optional[CredibilityScorer] = None,
        confidence_scorer: Optional[ConfidenceScorer] = None
    ):
        self.db = db
        self.search = search_client or WebSearch()
        self.llm = llm
        self.credibility = credibility_scorer or CredibilityScorer(llm=llm)
        self.confidence = confidence_scorer or ConfidenceScorer()

        self.event_repo = EventRepository
        self.branch_repo = BranchRepository
        self.evidence_repo = EvidenceRepository
        self.hypothesis_repo = HypothesisRepository
        self.log_repo = InvestigationLogRepository

        self.context: Optional[InvestigationContext] = None

    def run(self, event_id, user_id: Optional[str] = None) -> Dict:
        """
        Run all five phases for `event_id`.

        `user_id` is the caller on whose behalf the run happens; None means a
        system run (the monitor scheduler) and skips the ownership check.
        """
        self._prepare(str(event_id), user_id)

        handlers = {
            InvestigationPhase.ANALYSIS: self._handle_analysis,
            InvestigationPhase.COLLECTION: self._handle_collection,
            InvestigationPhase.BRANCHING: self._handle_branching,
            InvestigationPhase.HYPOTHESES: self._handle_hypotheses,
            InvestigationPhase.FINALIZATION: self._handle_finalization,
        }

        while not self.context.done:
            handlers[self.context.current_phase]()

        logger.info("Investigation complete for event %s", self.context.event_id)
        return {
            "success": True,
            "eventId": self.context.event_id,
            "evidenceCount": len(self.context.new_evidence_ids),
            "hypothesesCount": self.context.hypotheses_created,
        }

    def _prepare(self, event_id: str, user_id: Optional[str]) -> None:
        event = self.event_repo.get(self.db, event_id)
        if event is None:
            raise NotFoundError(
                f"Event {event_id} does not exist",
                public_message="Event not found or access denied",
            )
        if user_id is not None and str(event.user_id) != str(user_id):
            raise AuthorizationError(f"User {user_id} does not own event {event_id}")

        if not settings.gemini_api_key or not self.search.configured:
            raise UpstreamServiceError("Services not configured")

        logger.info("Starting investigation for event %s", event_id)
        self.context = InvestigationContext(
            event_id=event_id,
            title=event.title,
            description=event.description,
        )

        branches = self.branch_repo.list_by_event(self.db, event_id)
        main_branch = self.branch_repo.find_main(branches)
        if main_branch is None:
            logger.warning("Event %s has no branch; creating the main branch", event_id)
            main_branch = self.branch_repo.create_main(self.db, event_id)
            branches = [main_branch]

        self.context.main_branch_id = main_branch.id
        self.context.existing_branch_names = {b.name.lower() for b in branches}
        self.context.existing_urls = self.evidence_repo.source_urls_by_event(self.db, event_id)
        self.context.evidence_position_base = self.evidence_repo.count_by_event(self.db, event_id)

    def _log(self, phase: InvestigationPhase, action: str, details: Optional[dict] = None) -> None:
        logger.info("[phase %d] %s", int(phase), action)
        self.log_repo.log(
            db=self.db,
            event_id=self.context.event_id,
            phase=int(phase),
            action=action,
            details=details,
        )

    def _advance(self, phase: InvestigationPhase, status: Optional[InvestigationStatus] = None) -> None:
        self.context.current_phase = phase
        self.event_repo.update_progress(
            db=self.db,
            event_id=self.context.event_id,
            phase=int(phase),
            status=status,
        )

    def _call_llm(self, prompt: str, purpose: str) -> str:
        try:
            return self.llm(prompt, temperature=0.3, max_output_tokens=4096)
        except UpstreamServiceError as e:
            logger.warning("LLM call for %s failed: %s", purpose, e)
            return ""

    # PHASE 1
    def _handle_analysis(self) -> None:
        ctx = self.context
        self._advance(InvestigationPhase.ANALYSIS, InvestigationStatus.ANALYZING)
        self._log(InvestigationPhase.ANALYSIS, "Starting initial analysis of event")

        response = self._call_llm(
            build_analysis_prompt(ctx.title, ctx.description),
            purpose="event analysis",
        )
        ctx.analysis = parse_analysis(response, ctx.title)
        if ctx.analysis["fallback"]:
            logger.info("Analysis reply unusable; searching for the event title only")

        self._log(InvestigationPhase.ANALYSIS, "Initial analysis complete", ctx.analysis)
        ctx.current_phase = InvestigationPhase.COLLECTION

    # PHASE 2
    def _handle_collection(self) -> None:
        ctx = self.context
        self._advance(InvestigationPhase.COLLECTION, InvestigationStatus.COLLECTING)
        self._log(InvestigationPhase.COLLECTION, "Starting evidence collection")

        for query in ctx.analysis["search_queries"][:settings.MAX_SEARCH_QUERIES]:
            self._log(InvestigationPhase.COLLECTION, f"Searching: {query}")
            response = self.search.search(
                f"{ctx.title} {query}",
                max_results=settings.SEARCH_MAX_RESULTS,
            )

            for result in response.results[:settings.RESULTS_PER_QUERY]:
                if result.url in ctx.existing_urls:
                    logger.info("Skipping existing evidence: %s", result.url)
                    continue

                assessment = self.credibility.score_source(
                    url=result.url,
                    title=result.title,
                    content=result.content,
                )
                position = ctx.evidence_position_base + len(ctx.new_evidence_ids)
                evidence = self.evidence_repo.create(
                    db=self.db,
                    event_id=ctx.event_id,
                    branch_id=ctx.main_branch_id,
                    title=result.title or result.url,
                    content=assessment.summary or (result.content or "")[:500],
                    evidence_type=EvidenceType.LINK,
                    source_url=result.url,
                    source_credibility=assessment.score,
                    position_x=position * 2,
                    position_y=0,
                )
                ctx.existing_urls.add(result.url)
                ctx.new_evidence_ids.append(evidence.id)
                self._log(
                    InvestigationPhase.COLLECTION,
                    f"Added evidence: {(result.title or result.url)[:50]}...",
                    {"source_url": result.url, "credibility": assessment.score},
                )

        ctx.current_phase = InvestigationPhase.BRANCHING

    # PHASE 3
    def _handle_branching(self) -> None:
        ctx = self.context
        self._advance(InvestigationPhase.BRANCHING)
        self._log(InvestigationPhase.BRANCHING, "Identifying competing narratives")

        narratives = ctx.analysis["narratives"][:settings.MAX_NEW_NARRATIVES]
        for i, narrative in enumerate(narratives):
            name = narrative["name"]
            if name.lower() in ctx.existing_branch_names:
                continue

            branch = self.branch_repo.create(
                db=self.db,
                event_id=ctx.event_id,
                name=name,
                description=narrative.get("description"),
                color=NARRATIVE_COLORS[(i + 1) % len(NARRATIVE_COLORS)],
                position_z=(i + 1) * 4,
                is_main=False,
            )
            ctx.existing_branch_names.add(name.lower())
            ctx.new_branch_ids.append(branch.id)
            self._log(InvestigationPhase.BRANCHING, f"Created narrative branch: {name}")

        ctx.current_phase = InvestigationPhase.HYPOTHESES

    # PHASE 4
    def _handle_hypotheses(self) -> None:
        ctx = self.context
        self._advance(InvestigationPhase.HYPOTHESES)

        evidence_rows = self.evidence_repo.list_by_event(self.db, ctx.event_id)
        if not evidence_rows:
            self._log(InvestigationPhase.HYPOTHESES, "No evidence available; skipping hypothesis generation")
            ctx.current_phase = InvestigationPhase.FINALIZATION
            return

        self._log(InvestigationPhase.HYPOTHESES, "Generating hypotheses")
        evidence_lines = [
            f"- {row.title}: {(row.content or '')[:100]}"
            for row in evidence_rows
        ]
        response = self._call_llm(
            build_hypotheses_prompt(ctx.title, evidence_lines),
            purpose="hypothesis generation",
        )
        candidates = parse_hypotheses(response)[:settings.MAX_HYPOTHESES]
        if not candidates:
            logger.info("No parseable hypotheses; synthesizing a fallback")
            candidates = [fallback_hypothesis(ctx.title, len(ctx.analysis["narratives"]))]

        for candidate in candidates:
            self.hypothesis_repo.create(
                db=self.db,
                branch_id=ctx.main_branch_id,
                claim=candidate["claim"],
                testable_prediction=candidate["testable_prediction"],
                reasoning=candidate["evidence_needed"],
            )
            ctx.hypotheses_created += 1
            self._log(
                InvestigationPhase.HYPOTHESES,
                f"Generated hypothesis: {candidate['claim'][:50]}...",
            )

        ctx.current_phase = InvestigationPhase.FINALIZATION

    # PHASE 5
    def _handle_finalization(self) -> None:
        ctx = self.context
        self._advance(InvestigationPhase.FINALIZATION, InvestigationStatus.COMPLETE)
        self._log(InvestigationPhase.FINALIZATION, "Investigation complete")

        for branch in self.branch_repo.list_by_event(self.db, ctx.event_id):
            scores = self.evidence_repo.credibility_scores_by_branch(self.db, branch.id)
            score = self.confidence.recompute(branch.confidence_score, scores)
            if score != branch.confidence_score:
                self.branch_repo.update_confidence(self.db, branch.id, score)

        ctx.done = True
