import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy.orm import Session

from timelineforge.storage.models.enums import MergeStatus
from timelineforge.storage.models.merge import Merge


class MergeRepository:

    @staticmethod
    def record(
        db: Session,
        event_id,
        source_branch_id,
        target_branch_id,
        status: MergeStatus = MergeStatus.MERGED,
        resolution: Optional[str] = None
    ) -> Merge:
        merge = Merge(
            id=str(uuid.uuid4()),
            event_id=str(event_id),
            source_branch_id=str(source_branch_id),
            target_branch_id=str(target_branch_id),
            status=status,
            conflicts=None,
            resolution=resolution,
            resolved_at=datetime.now(timezone.utc) if status == MergeStatus.MERGED else None
        )
        db.add(merge)
        db.commit()
        db.refresh(merge)
        return merge

    @staticmethod
    def list_by_event(db: Session, event_id) -> List[Merge]:
        event_id = str(event_id)
        return (
            db.query(Merge)
            .filter(Merge.event_id == event_id)
            .order_by(Merge.created_at.asc())
            .all()
        )
