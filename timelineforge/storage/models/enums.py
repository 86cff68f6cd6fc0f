from enum import Enum

from sqlalchemy import Enum as SAEnum


class InvestigationStatus(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


class EvidenceType(str, Enum):
    IMAGE = "image"
    TEXT = "text"
    LINK = "link"
    DOCUMENT = "document"


class HypothesisStatus(str, Enum):
    PENDING = "pending"
    TESTING = "testing"
    CONFIRMED = "confirmed"
    REFUTED = "refuted"


class MergeStatus(str, Enum):
    PENDING = "pending"
    MERGED = "merged"
    CONFLICT = "conflict"


def enum_column_type(enum_cls, name: str) -> SAEnum:
    # Persist the lowercase values, not the member names.
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )
