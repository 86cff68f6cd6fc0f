"""
Vision Analyzer

Multimodal analysis of one image, given either as a URL (fetched only if it
points at the public internet) or as base64. When an evidence id is given,
the analysis and its detection boxes are stored on that evidence row.
"""
import base64
import binascii
import logging
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from timelineforge.config import settings
from timelineforge.confidence.confidence_scorer import clamp_score
from timelineforge.environments.web.fetch import ImageFetcher
from timelineforge.environments.web.url_guard import is_valid_external_url
from timelineforge.errors import (
    AuthorizationError,
    NotFoundError,
    UpstreamServiceError,
    ValidationError,
)
from timelineforge.storage.repositories.branch_repo import BRANCH_COLORS
from timelineforge.storage.repositories.event_repo import EventRepository
from timelineforge.storage.repositories.evidence_repo import EvidenceRepository
from timelineforge.utils.json_extract import extract_json_object
from timelineforge.utils.llm_client import llm_complete_with_image

logger = logging.getLogger(__name__)

ANALYSIS_TYPES = ("detection", "description", "credibility", "region")

DETECTION_PROMPT = """Analyze this image for a forensic investigation. Detect and describe all significant objects, people, text, and notable elements.

Return a JSON response with:
{
  "description": "overall scene description",
  "objects_detected": [
    {"label": "object name", "confidence": 0.0-1.0, "bounding_box": [y_min, x_min, y_max, x_max], "description": "details"}
  ],
  "text_detected": ["any visible text"],
  "timestamp_indicators": ["clues about when this was taken"],
  "location_indicators": ["clues about where this was taken"],
  "manipulation_signs": ["any signs of editing or manipulation"]
}

Bounding box coordinates are normalized to 0-1000."""

CREDIBILITY_PROMPT = """Analyze this image's credibility and authenticity for an investigation.

Return a JSON response with:
{
  "credibility_score": 0-100,
  "authenticity_indicators": ["signs it's authentic"],
  "manipulation_signs": ["signs of editing or manipulation"],
  "context_clues": ["contextual information"],
  "metadata_analysis": "what can be inferred about origin",
  "recommendations": ["further verification steps"]
}"""

GENERAL_PROMPT = """Provide a comprehensive analysis of this image for an investigation.

Return a JSON response with:
{
  "description": "detailed description",
  "key_elements": ["important elements"],
  "people_count": number,
  "setting": "indoor/outdoor/etc",
  "time_of_day": "estimated time",
  "notable_details": ["specific details of interest"],
  "potential_significance": "why this might be important"
}"""


def build_vision_prompt(analysis_type: str, claim: Optional[str] = None) -> str:
    if analysis_type == "detection":
        prompt = DETECTION_PROMPT
    elif analysis_type == "credibility":
        prompt = CREDIBILITY_PROMPT
    else:
        prompt = GENERAL_PROMPT
    if claim:
        prompt += f'\n\nEvaluate the image against this claim: "{claim}"'
    return prompt


def neutral_analysis(text: str) -> Dict:
    return {
        "description": text,
        "credibility_score": settings.DEFAULT_CREDIBILITY,
        "warnings": ["Analysis parsing failed"],
    }


def detection_boxes(analysis: Dict) -> List[Dict]:
    boxes = []
    for i, obj in enumerate(analysis.get("objects_detected") or []):
        if not isinstance(obj, dict) or not obj.get("bounding_box"):
            continue
        boxes.append({
            "label": obj.get("label") or "object",
            "box": obj["bounding_box"],
            "color": BRANCH_COLORS[i % len(BRANCH_COLORS)],
            "type": "detection",
        })
    return boxes


def decode_base64_image(data: str) -> Tuple[bytes, str]:
    """Accepts bare base64 or a data URI. Returns (bytes, mime_type)."""
    mime_type = "image/jpeg"
    if data.startswith("data:"):
        header, _, data = data.partition(",")
        declared = header[len("data:"):].split(";")[0].strip()
        if declared:
            mime_type = declared
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError(f"Undecodable image payload: {e}") from e
    if not image_bytes:
        raise ValidationError("Empty image payload")
    if len(image_bytes) > settings.MAX_IMAGE_BYTES:
        raise ValidationError("Decoded image too large", public_message="Image too large")
    return image_bytes, mime_type


class VisionAnalyzer:

    def __init__(
        self,
        db: Optional[Session] = None,
        llm_image: Callable[..., str] = llm_complete_with_image,
        fetcher: Optional[ImageFetcher] = None
    ):
        self.db = db
        self.llm_image = llm_image
        self.fetcher = fetcher or ImageFetcher()

    def analyze(
        self,
        analysis_type: str = "description",
        image_url: Optional[str] = None,
        image_base64: Optional[str] = None,
        prompt: Optional[str] = None,
        claim: Optional[str] = None,
        evidence_id=None,
        user_id: Optional[str] = None
    ) -> Dict:
        if not image_base64:
            if not image_url:
                raise ValidationError("Either imageUrl or imageBase64 is required")
            if not is_valid_external_url(image_url):
                raise ValidationError(
                    f"Blocked outbound URL: {image_url}",
                    public_message="Invalid or disallowed URL",
                )

        if not settings.gemini_api_key:
            raise UpstreamServiceError("GEMINI_API_KEY is not set; analysis service not configured")

        if evidence_id is not None:
            self._check_evidence_owner(evidence_id, user_id)

        if image_base64:
            image_bytes, mime_type = decode_base64_image(image_base64)
        else:
            image_bytes, mime_type = self.fetcher.fetch(image_url)

        text = self.llm_image(
            build_vision_prompt(analysis_type, claim),
            image_bytes,
            mime_type=mime_type,
            extra_prompt=prompt,
        )
        if not text:
            raise UpstreamServiceError("No response from Gemini")

        analysis = extract_json_object(text)
        if analysis is None:
            logger.info("Unparseable vision reply; returning neutral analysis")
            analysis = neutral_analysis(text)
        elif "credibility_score" in analysis:
            analysis["credibility_score"] = clamp_score(
                analysis["credibility_score"], default=settings.DEFAULT_CREDIBILITY
            )

        if evidence_id is not None:
            EvidenceRepository.store_analysis(
                self.db,
                evidence_id,
                analysis=analysis,
                bounding_boxes=detection_boxes(analysis),
            )

        return {
            "success": True,
            "analysis": analysis,
            "analysisType": analysis_type,
        }

    def _check_evidence_owner(self, evidence_id, user_id: Optional[str]) -> None:
        evidence = EvidenceRepository.get(self.db, evidence_id)
        event = EventRepository.get(self.db, evidence.event_id) if evidence else None
        if event is None:
            raise NotFoundError(
                f"Evidence {evidence_id} not found",
                public_message="Evidence not found or access denied",
            )
        if str(event.user_id) != str(user_id):
            raise AuthorizationError(f"User {user_id} does not own evidence {evidence_id}")
