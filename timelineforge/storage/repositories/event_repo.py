import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from timelineforge.storage.models.branch import Branch
from timelineforge.storage.models.enums import InvestigationStatus
from timelineforge.storage.models.event import Event
from timelineforge.storage.models.evidence import Evidence
from timelineforge.storage.models.hypothesis import Hypothesis
from timelineforge.storage.models.investigation_log import InvestigationLog
from timelineforge.storage.models.merge import Merge


class EventRepository:

    @staticmethod
    def create(
        db: Session,
        user_id,
        title: str,
        description: Optional[str] = None,
        total_phases: int = 5
    ) -> Event:
        event = Event(
            id=str(uuid.uuid4()),
            user_id=str(user_id),
            title=title,
            description=description,
            status=InvestigationStatus.IDLE,
            current_phase=0,
            total_phases=total_phases
        )
        db.add(event)
        db.commit()
        db.refresh(event)
        return event

    @staticmethod
    def get(db: Session, event_id) -> Optional[Event]:
        event_id = str(event_id)
        return db.query(Event).filter(Event.id == event_id).first()

    @staticmethod
    def list_by_user(db: Session, user_id) -> List[Event]:
        user_id = str(user_id)
        return (
            db.query(Event)
            .filter(Event.user_id == user_id)
            .order_by(Event.created_at.desc())
            .all()
        )

    @staticmethod
    def list_by_status(db: Session, statuses: List[InvestigationStatus]) -> List[Event]:
        return (
            db.query(Event)
            .filter(Event.status.in_(statuses))
            .order_by(Event.created_at.asc())
            .all()
        )

    @staticmethod
    def update_progress(
        db: Session,
        event_id,
        phase: int,
        status: Optional[InvestigationStatus] = None
    ) -> None:
        event = EventRepository.get(db, event_id)
        if event is None:
            return
        event.current_phase = phase
        if status is not None:
            event.status = status
        db.commit()

    @staticmethod
    def update_status(db: Session, event_id, status: InvestigationStatus) -> None:
        event = EventRepository.get(db, event_id)
        if event is None:
            return
        event.status = status
        db.commit()

    @staticmethod
    def reset(db: Session, event_id) -> None:
        event = EventRepository.get(db, event_id)
        if event is None:
            return
        event.status = InvestigationStatus.IDLE
        event.current_phase = 0
        db.commit()

    @staticmethod
    def delete(db: Session, event_id) -> None:
        # Explicit child deletes; SQLite does not enforce ON DELETE CASCADE by default.
        event_id = str(event_id)
        branch_ids = [
            row.id for row in db.query(Branch.id).filter(Branch.event_id == event_id).all()
        ]
        if branch_ids:
            db.query(Hypothesis).filter(
                Hypothesis.branch_id.in_(branch_ids)
            ).delete(synchronize_session=False)
        db.query(InvestigationLog).filter(
            InvestigationLog.event_id == event_id
        ).delete(synchronize_session=False)
        db.query(Merge).filter(Merge.event_id == event_id).delete(synchronize_session=False)
        for evidence in db.query(Evidence).filter(Evidence.event_id == event_id).all():
            db.delete(evidence)
        for branch in db.query(Branch).filter(Branch.event_id == event_id).all():
            db.delete(branch)
        event = db.query(Event).filter(Event.id == event_id).first()
        if event is not None:
            db.delete(event)
        db.commit()
