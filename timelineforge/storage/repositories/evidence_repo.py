import uuid
from typing import List, Optional, Set

from sqlalchemy.orm import Session

from timelineforge.confidence.confidence_scorer import clamp_score
from timelineforge.storage.models.enums import EvidenceType
from timelineforge.storage.models.evidence import Evidence


class EvidenceRepository:

    @staticmethod
    def create(
        db: Session,
        event_id,
        branch_id,
        title: str,
        content: Optional[str] = None,
        evidence_type: EvidenceType = EvidenceType.TEXT,
        source_url: Optional[str] = None,
        source_credibility: Optional[float] = 50.0,
        image_url: Optional[str] = None,
        parent_evidence_id=None,
        supports_narrative: Optional[bool] = None,
        position_x: float = 0.0,
        position_y: float = 0.0
    ) -> Evidence:
        evidence = Evidence(
            id=str(uuid.uuid4()),
            event_id=str(event_id),
            branch_id=str(branch_id),
            parent_evidence_id=str(parent_evidence_id) if parent_evidence_id else None,
            title=title,
            content=content,
            evidence_type=evidence_type,
            source_url=source_url,
            source_credibility=(
                clamp_score(source_credibility) if source_credibility is not None else None
            ),
            image_url=image_url,
            supports_narrative=supports_narrative,
            position_x=position_x,
            position_y=position_y
        )
        db.add(evidence)
        db.commit()
        db.refresh(evidence)
        return evidence

    @staticmethod
    def get(db: Session, evidence_id) -> Optional[Evidence]:
        evidence_id = str(evidence_id)
        return db.query(Evidence).filter(Evidence.id == evidence_id).first()

    @staticmethod
    def list_by_event(db: Session, event_id) -> List[Evidence]:
        event_id = str(event_id)
        return (
            db.query(Evidence)
            .filter(Evidence.event_id == event_id)
            .order_by(Evidence.created_at.asc())
            .all()
        )

    @staticmethod
    def list_by_branch(db: Session, branch_id) -> List[Evidence]:
        branch_id = str(branch_id)
        return (
            db.query(Evidence)
            .filter(Evidence.branch_id == branch_id)
            .order_by(Evidence.created_at.asc())
            .all()
        )

    @staticmethod
    def count_by_event(db: Session, event_id) -> int:
        return db.query(Evidence).filter(Evidence.event_id == str(event_id)).count()

    @staticmethod
    def source_urls_by_event(db: Session, event_id) -> Set[str]:
        rows = (
            db.query(Evidence.source_url)
            .filter(Evidence.event_id == str(event_id))
            .filter(Evidence.source_url.isnot(None))
            .all()
        )
        return {row.source_url for row in rows}

    @staticmethod
    def credibility_scores_by_branch(db: Session, branch_id) -> List[Optional[float]]:
        rows = (
            db.query(Evidence.source_credibility)
            .filter(Evidence.branch_id == str(branch_id))
            .all()
        )
        return [row.source_credibility for row in rows]

    @staticmethod
    def copy_to_branch(db: Session, source_branch_id, target_branch_id) -> int:
        source_rows = EvidenceRepository.list_by_branch(db, source_branch_id)
        copies = [
            Evidence(
                id=str(uuid.uuid4()),
                event_id=row.event_id,
                branch_id=str(target_branch_id),
                parent_evidence_id=row.parent_evidence_id,
                title=row.title,
                content=row.content,
                evidence_type=row.evidence_type,
                source_url=row.source_url,
                source_credibility=row.source_credibility,
                image_url=row.image_url,
                gemini_analysis=row.gemini_analysis,
                bounding_boxes=row.bounding_boxes,
                supports_narrative=row.supports_narrative,
                position_x=row.position_x,
                position_y=row.position_y
            )
            for row in source_rows
        ]
        db.add_all(copies)
        db.commit()
        return len(copies)

    @staticmethod
    def store_analysis(db: Session, evidence_id, analysis: dict, bounding_boxes: list) -> None:
        evidence = EvidenceRepository.get(db, evidence_id)
        if evidence is None:
            return
        evidence.gemini_analysis = analysis
        evidence.bounding_boxes = bounding_boxes
        db.commit()
