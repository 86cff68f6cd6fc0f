import uuid
from typing import List, Optional

from sqlalchemy.orm import Session

from timelineforge.storage.models.enums import HypothesisStatus
from timelineforge.storage.models.hypothesis import Hypothesis


class HypothesisRepository:

    @staticmethod
    def create(
        db: Session,
        branch_id,
        claim: str,
        testable_prediction: Optional[str] = None,
        reasoning: Optional[str] = None,
        status: HypothesisStatus = HypothesisStatus.PENDING
    ) -> Hypothesis:
        hypothesis = Hypothesis(
            id=str(uuid.uuid4()),
            branch_id=str(branch_id),
            claim=claim,
            testable_prediction=testable_prediction,
            reasoning=reasoning,
            status=status,
            confidence_impact=0.0
        )
        db.add(hypothesis)
        db.commit()
        db.refresh(hypothesis)
        return hypothesis

    @staticmethod
    def get(db: Session, hypothesis_id) -> Optional[Hypothesis]:
        hypothesis_id = str(hypothesis_id)
        return db.query(Hypothesis).filter(Hypothesis.id == hypothesis_id).first()

    @staticmethod
    def list_by_branches(db: Session, branch_ids: List[str]) -> List[Hypothesis]:
        if not branch_ids:
            return []
        return (
            db.query(Hypothesis)
            .filter(Hypothesis.branch_id.in_([str(b) for b in branch_ids]))
            .order_by(Hypothesis.created_at.asc())
            .all()
        )

    @staticmethod
    def update_status(db: Session, hypothesis_id, status: HypothesisStatus) -> None:
        db.query(Hypothesis).filter(Hypothesis.id == str(hypothesis_id)).update(
            {"status": status}
        )
        db.commit()

    @staticmethod
    def record_result(
        db: Session,
        hypothesis_id,
        status: HypothesisStatus,
        confidence_impact: float,
        reasoning: Optional[str]
    ) -> None:
        db.query(Hypothesis).filter(Hypothesis.id == str(hypothesis_id)).update({
            "status": status,
            "confidence_impact": confidence_impact,
            "reasoning": reasoning,
        })
        db.commit()
