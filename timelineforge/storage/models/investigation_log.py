import uuid
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Text
from sqlalchemy.sql import func

from timelineforge.storage.base import Base, UUID_COL_TYPE


class InvestigationLog(Base):
    __tablename__ = "investigation_logs"

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

    phase = Column(
        Integer,
        nullable=False
    )

    action = Column(
        Text,
        nullable=False
    )

    details = Column(
        JSON,
        nullable=True
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
