# Re-export all models for easy import and metadata discovery

from timelineforge.storage.models.enums import (
    EvidenceType,
    HypothesisStatus,
    InvestigationStatus,
    MergeStatus,
)
from timelineforge.storage.models.event import Event
from timelineforge.storage.models.branch import Branch
from timelineforge.storage.models.evidence import Evidence
from timelineforge.storage.models.hypothesis import Hypothesis
from timelineforge.storage.models.investigation_log import InvestigationLog
from timelineforge.storage.models.merge import Merge

__all__ = [
    "Event",
    "Branch",
    "Evidence",
    "Hypothesis",
    "InvestigationLog",
    "Merge",
    "InvestigationStatus",
    "EvidenceType",
    "HypothesisStatus",
    "MergeStatus",
]
