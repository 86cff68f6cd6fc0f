import uuid
from sqlalchemy import Column, DateTime, Integer, Text
from sqlalchemy.sql import func

from timelineforge.storage.base import Base, UUID_COL_TYPE
from timelineforge.storage.models.enums import InvestigationStatus, enum_column_type


class Event(Base):
    __tablename__ = "events"

    id = Column(
        UUID_COL_TYPE,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    user_id = Column(
        UUID_COL_TYPE,
        nullable=False,
        index=True
    )

    title = Column(
        Text,
        nullable=False
    )

    description = Column(
        Text,
        nullable=True
    )

    status = Column(
        enum_column_type(InvestigationStatus, "investigation_status"),
        nullable=False,
        default=InvestigationStatus.IDLE
    )

    current_phase = Column(
        Integer,
        nullable=False,
        default=0
    )

    total_phases = Column(
        Integer,
        nullable=False,
        default=5
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

