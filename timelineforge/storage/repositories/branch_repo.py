import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from timelineforge.storage.models.branch import Branch
from timelineforge.storage.models.evidence import Evidence
from timelineforge.storage.models.hypothesis import Hypothesis

# Palette shared with the web client.
BRANCH_COLORS = [
    "#8b5cf6",
    "#06b6d4",
    "#22c55e",
    "#eab308",
    "#ef4444",
    "#f97316",
    "#ec4899",
    "#6366f1",
]

MAIN_BRANCH_NAME = "Main Narrative"
MAIN_BRANCH_DESCRIPTION = "The primary narrative branch"


class BranchRepository:

    @staticmethod
    def create(
        db: Session,
        event_id,
        name: str,
        color: str,
        description: Optional[str] = None,
        position_z: float = 0.0,
        is_main: bool = False,
        confidence_score: float = 50.0
    ) -> Branch:
        branch = Branch(
            id=str(uuid.uuid4()),
            event_id=str(event_id),
            name=name,
            description=description,
            color=color,
            position_z=position_z,
            is_main=is_main,
            confidence_score=confidence_score
        )
        db.add(branch)
        db.commit()
        db.refresh(branch)
        return branch

    @staticmethod
    def create_main(db: Session, event_id) -> Branch:
        return BranchRepository.create(
            db=db,
            event_id=event_id,
            name=MAIN_BRANCH_NAME,
            description=MAIN_BRANCH_DESCRIPTION,
            color=BRANCH_COLORS[0],
            position_z=0.0,
            is_main=True
        )

    @staticmethod
    def get(db: Session, branch_id) -> Optional[Branch]:
        branch_id = str(branch_id)
        return db.query(Branch).filter(Branch.id == branch_id).first()

    @staticmethod
    def list_by_event(db: Session, event_id) -> List[Branch]:
        event_id = str(event_id)
        return (
            db.query(Branch)
            .filter(Branch.event_id == event_id)
            .order_by(Branch.created_at.asc())
            .all()
        )

    @staticmethod
    def find_main(branches: List[Branch]) -> Optional[Branch]:
        for branch in branches:
            if branch.is_main:
                return branch
        return branches[0] if branches else None

    @staticmethod
    def update_confidence(db: Session, branch_id, confidence_score: float) -> None:
        branch = BranchRepository.get(db, branch_id)
        if branch is None:
            return
        branch.confidence_score = confidence_score
        db.commit()

    @staticmethod
    def delete(db: Session, branch_id) -> None:
        branch_id = str(branch_id)
        db.query(Hypothesis).filter(
            Hypothesis.branch_id == branch_id
        ).delete(synchronize_session=False)
        for evidence in db.query(Evidence).filter(Evidence.branch_id == branch_id).all():
            db.delete(evidence)
        branch = db.query(Branch).filter(Branch.id == branch_id).first()
        if branch is not None:
            db.delete(branch)
        db.commit()
