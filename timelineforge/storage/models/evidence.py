import uuid
from sqlalchemy import JSON, Boolean, Column, DateTime, Float, ForeignKey, Text
from sqlalchemy.sql import func

from timelineforge.storage.base import Base, UUID_COL_TYPE
from timelineforge.storage.models.enums import EvidenceType, enum_column_type


class Evidence(Base):
    __tablename__ = "evidence"

    id = Column(
        UUID_COL_TYPE,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    event_id = Column(
        UUID_COL_TYPE,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    branch_id = Column(
        UUID_COL_TYPE,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    parent_evidence_id = Column(
        UUID_COL_TYPE,
        ForeignKey("evidence.id", ondelete="SET NULL"),
        nullable=True
    )

    title = Column(
        Text,
        nullable=False
    )

    content = Column(
        Text,
        nullable=True
    )

    evidence_type = Column(
        enum_column_type(EvidenceType, "evidence_type"),
        nullable=False,
        default=EvidenceType.TEXT
    )

    source_url = Column(
        Text,
        nullable=True
    )

    source_credibility = Column(
        Float,        # 0..100, NULL when unscored
        nullable=True
    )

    image_url = Column(
        Text,
        nullable=True
    )

    gemini_analysis = Column(
        JSON,
        nullable=True
    )

    bounding_boxes = Column(
        JSON,
        nullable=True
    )

    supports_narrative = Column(
        Boolean,
        nullable=True
    )

    position_x = Column(
        Float,
        nullable=False,
        default=0.0
    )

    position_y = Column(
        Float,
        nullable=False,
        default=0.0
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
