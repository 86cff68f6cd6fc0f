import logging
from typing import Dict

from sqlalchemy.orm import Session

from timelineforge.errors import NotFoundError, ValidationError
from timelineforge.storage.repositories.branch_repo import BranchRepository
from timelineforge.storage.repositories.evidence_repo import EvidenceRepository
from timelineforge.storage.repositories.merge_repo import MergeRepository

logger = logging.getLogger(__name__)


class BranchMerger:
    """
    Copies every evidence item of a source branch into a target branch of the
    same event and records the merge. Contradictions are not detected.
    """

    def __init__(self, db: Session):
        self.db = db

    def merge(self, event_id, source_branch_id, target_branch_id, delete_source: bool = False) -> Dict:
        event_id = str(event_id)
        source = BranchRepository.get(self.db, source_branch_id)
        target = BranchRepository.get(self.db, target_branch_id)
        if source is None or target is None or source.event_id != event_id or target.event_id != event_id:
            raise NotFoundError(
                f"Branch pair {source_branch_id} -> {target_branch_id} not in event {event_id}",
                public_message="Branch not found",
            )
        if source.id == target.id:
            raise ValidationError("Cannot merge a branch into itself")
        if delete_source and source.is_main:
            raise ValidationError(
                "Refusing to delete the main branch",
                public_message="The main branch cannot be deleted",
            )

        source_id, source_name, target_id = source.id, source.name, target.id
        copied = EvidenceRepository.copy_to_branch(self.db, source_id, target_id)
        merge = MergeRepository.record(
            self.db,
            event_id=event_id,
            source_branch_id=source_id,
            target_branch_id=target_id,
            resolution=f"Copied {copied} evidence item(s) from {source_name}",
        )

        if delete_source:
            BranchRepository.delete(self.db, source_id)

        logger.info("Merged branch %s into %s (%d evidence)", source_id, target_id, copied)
        return {
            "success": True,
            "mergeId": merge.id,
            "merged": copied,
            "sourceDeleted": delete_source,
        }
