import logging
from typing import Callable, Dict

from sqlalchemy.orm import Session

from timelineforge.agents.marathon_investigator import MarathonInvestigator
from timelineforge.errors import GENERIC_ERROR_MESSAGE, TimelineForgeError
from timelineforge.storage.models.enums import InvestigationStatus
from timelineforge.storage.repositories.event_repo import EventRepository

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [InvestigationStatus.COLLECTING, InvestigationStatus.ANALYZING]


class MonitorScheduler:
    """
    Re-runs the investigation for every event left mid-run.
    Events are processed one after another; one failure does not stop the sweep.
    """

    def __init__(
        self,
        db: Session,
        investigator_factory: Callable[[Session], MarathonInvestigator] = MarathonInvestigator
    ):
        self.db = db
        self.investigator_factory = investigator_factory

    def run(self) -> Dict:
        targets = [
            (event.id, event.title)
            for event in EventRepository.list_by_status(self.db, ACTIVE_STATUSES)
        ]
        logger.info("Monitor sweep found %d active events", len(targets))

        details = []
        for event_id, title in targets:
            try:
                self.investigator_factory(self.db).run(event_id)
                details.append({"id": event_id, "title": title, "success": True, "error": None})
            except Exception as e:
                self.db.rollback()
                logger.exception("Monitor run failed for event %s", event_id)
                error = e.public_message if isinstance(e, TimelineForgeError) else GENERIC_ERROR_MESSAGE
                details.append({"id": event_id, "title": title, "success": False, "error": error})

        return {
            "success": True,
            "processed": len(details),
            "details": details,
        }
