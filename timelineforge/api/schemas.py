from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Dict, List, Literal, Optional
from urllib.parse import urlparse
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator

from timelineforge.config import settings
from timelineforge.storage.models.enums import (
    EvidenceType,
    HypothesisStatus,
    InvestigationStatus,
    MergeStatus,
)


def _check_http_url(value: str) -> str:
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ValueError("must be an http(s) URL")
    return value


HttpUrlString = Annotated[str, Field(max_length=2000), AfterValidator(_check_http_url)]


# --- Function requests ---

class InvestigationRequest(BaseModel):
    eventId: UUID
    isContinuous: bool = False


class EvidenceSearchRequest(BaseModel):
    query: str = Field(..., min_length=1, max_length=500)
    eventTitle: str = Field(..., min_length=1, max_length=200)
    branchName: Optional[str] = Field(default=None, max_length=200)
    maxResults: int = Field(default=5, ge=1, le=20)


class VisionRequest(BaseModel):
    imageUrl: Optional[HttpUrlString] = None
    imageBase64: Optional[str] = Field(default=None, max_length=settings.MAX_IMAGE_BYTES * 4 // 3 + 128)
    prompt: Optional[str] = Field(default=None, max_length=1000)
    analysisType: Literal["detection", "description", "credibility", "region"] = "description"
    claim: Optional[str] = Field(default=None, max_length=500)
    evidenceId: Optional[UUID] = None

    @model_validator(mode="after")
    def _require_image(self) -> "VisionRequest":
        if not self.imageUrl and not self.imageBase64:
            raise ValueError("Either imageUrl or imageBase64 is required")
        return self


class HypothesisTestRequest(BaseModel):
    hypothesisId: UUID


# --- CRUD requests ---

class EventCreateRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=5000)


class BranchCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(default=None, max_length=2000)
    color: Optional[str] = Field(default=None, pattern=r"^#[0-9a-fA-F]{6}$")


class EvidenceCreateRequest(BaseModel):
    branch_id: UUID
    title: str = Field(..., min_length=1, max_length=500)
    content: Optional[str] = Field(default=None, max_length=20000)
    evidence_type: EvidenceType = EvidenceType.TEXT
    source_url: Optional[HttpUrlString] = None
    source_credibility: Optional[float] = 50.0
    image_url: Optional[HttpUrlString] = None
    parent_evidence_id: Optional[UUID] = None
    supports_narrative: Optional[bool] = None
    position_x: float = 0.0
    position_y: float = 0.0


class MergeRequest(BaseModel):
    source_branch_id: UUID
    target_branch_id: UUID
    delete_source: bool = False


# --- Responses ---

class EventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    title: str
    description: Optional[str] = None
    status: InvestigationStatus
    current_phase: int
    total_phases: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BranchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    name: str
    description: Optional[str] = None
    color: str
    confidence_score: float
    position_z: float
    is_main: bool
    created_at: Optional[datetime] = None


class EvidenceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    branch_id: UUID
    parent_evidence_id: Optional[UUID] = None
    title: str
    content: Optional[str] = None
    evidence_type: EvidenceType
    source_url: Optional[str] = None
    source_credibility: Optional[float] = None
    image_url: Optional[str] = None
    gemini_analysis: Optional[Dict[str, Any]] = None
    bounding_boxes: Optional[List[Dict[str, Any]]] = None
    supports_narrative: Optional[bool] = None
    position_x: float
    position_y: float
    created_at: Optional[datetime] = None


class HypothesisOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    branch_id: UUID
    claim: str
    testable_prediction: Optional[str] = None
    status: HypothesisStatus
    confidence_impact: float
    reasoning: Optional[str] = None
    created_at: Optional[datetime] = None


class InvestigationLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    phase: int
    action: str
    details: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


class MergeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    event_id: UUID
    source_branch_id: UUID
    target_branch_id: UUID
    status: MergeStatus
    resolution: Optional[str] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class EventDetailResponse(BaseModel):
    event: EventOut
    branches: List[BranchOut]
    evidence: List[EvidenceOut]
    hypotheses: List[HypothesisOut]
    logs: List[InvestigationLogOut]
    merges: List[MergeOut]
