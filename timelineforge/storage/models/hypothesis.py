import uuid
from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Text
from sqlalchemy.sql import func

from timelineforge.storage.base import Base, UUID_COL_TYPE
from timelineforge.storage.models.enums import HypothesisStatus, enum_column_type


class Hypothesis(Base):
    __tablename__ = "hypotheses"

    id = Column(
        UUID_COL_TYPE,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    branch_id = Column(
        UUID_COL_TYPE,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    claim = Column(
        Text,
        nullable=False
    )

    testable_prediction = Column(
        Text,
        nullable=True
    )

    status = Column(
        enum_column_type(HypothesisStatus, "hypothesis_status"),
        nullable=False,
        default=HypothesisStatus.PENDING
    )

    supporting_evidence_ids = Column(
        JSON,
        nullable=True
    )

    refuting_evidence_ids = Column(
        JSON,
        nullable=True
    )

    confidence_impact = Column(
        Float,        # -100..100
        nullable=False,
        default=0.0
    )

    reasoning = Column(
        Text,
        nullable=True
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False
    )
