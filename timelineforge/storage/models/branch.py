import uuid
from sqlalchemy import Boolean, Column, DateTime, Float, ForeignKey, String, Text
from sqlalchemy.sql import func

from timelineforge.storage.base import Base, UUID_COL_TYPE


class Branch(Base):
    __tablename__ = "branches"

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

    name = Column(
        Text,
        nullable=False
    )

    description = Column(
        Text,
        nullable=True
    )

    confidence_score = Column(
        Float,        # 0..100
        nullable=False,
        default=50.0
    )

    color = Column(
        String(16),
        nullable=False
    )

    position_z = Column(
        Float,
        nullable=False,
        default=0.0
    )

    is_main = Column(
        Boolean,
        nullable=False,
        default=False
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

