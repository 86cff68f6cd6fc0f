import uuid
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Text
from sqlalchemy.sql import func

from timelineforge.storage.base import Base, UUID_COL_TYPE
from timelineforge.storage.models.enums import MergeStatus, enum_column_type


class Merge(Base):
    __tablename__ = "merges"

    id = Column(
        UUID_COL_TYPE,
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )

    event_id = Column(
        UUID_COL_TYPE,
        ForeignKey("events.id", ondelete="CASCADE"),
        nullable=False
    )

    # No FK: the source branch may be deleted as part of the merge.
    source_branch_id = Column(
        UUID_COL_TYPE,
        nullable=False
    )

    target_branch_id = Column(
        UUID_COL_TYPE,
        ForeignKey("branches.id", ondelete="CASCADE"),
        nullable=False
    )

    status = Column(
        enum_column_type(MergeStatus, "merge_status"),
        nullable=False,
        default=MergeStatus.PENDING
    )

    conflicts = Column(
        JSON,
        nullable=True
    )

    resolution = Column(
        Text,
        nullable=True
    )

    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )

    resolved_at = Column(
        DateTime(timezone=True),
        nullable=True
    )
