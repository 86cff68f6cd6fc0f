import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from timelineforge.storage.models.investigation_log import InvestigationLog


class InvestigationLogRepository:

    @staticmethod
    def log(
        db: Session,
        event_id,
        phase: int,
        action: str,
        details: Optional[dict] = None
    ) -> None:
        entry = InvestigationLog(
            id=str(uuid.uuid4()),
            event_id=str(event_id),
            phase=phase,
            action=action,
            details=details
        )
        db.add(entry)
        db.commit()

    @staticmethod
    def list_by_event(db: Session, event_id, limit: int = 50) -> List[InvestigationLog]:
        event_id = str(event_id)
        return (
            db.query(InvestigationLog)
            .filter(InvestigationLog.event_id == event_id)
            .order_by(InvestigationLog.created_at.desc())
            .limit(limit)
            .all()
        )
