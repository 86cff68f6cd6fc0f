"""Monitor sweep, branch merge and the row change feed."""
import pytest

from timelineforge.agents.branch_merger import BranchMerger
from timelineforge.agents.marathon_investigator import MarathonInvestigator
from timelineforge.agents.monitor_scheduler import MonitorScheduler
from timelineforge.errors import UpstreamServiceError, ValidationError
from timelineforge.storage.change_feed import ChangeFeed, change_feed
from timelineforge.storage.models.enums import InvestigationStatus, MergeStatus
from timelineforge.storage.repositories.branch_repo import BranchRepository
from timelineforge.storage.repositories.event_repo import EventRepository
from timelineforge.storage.repositories.evidence_repo import EvidenceRepository
from timelineforge.storage.repositories.merge_repo import MergeRepository


# --- monitor scheduler ---

def test_sweep_reruns_only_active_events(db, make_event, fake_search, fake_llm):
    idle = make_event(title="Idle")
    collecting = make_event(title="Collecting")
    analyzing = make_event(title="Analyzing")
    EventRepository.update_status(db, collecting.id, InvestigationStatus.COLLECTING)
    EventRepository.update_status(db, analyzing.id, InvestigationStatus.ANALYZING)

    scheduler = MonitorScheduler(
        db,
        investigator_factory=lambda session: MarathonInvestigator(session, search_client=fake_search, llm=fake_llm),
    )
    result = scheduler.run()

    assert result["success"] is True
    assert result["processed"] == 2
    assert {d["title"] for d in result["details"]} == {"Collecting", "Analyzing"}
    assert all(d["success"] for d in result["details"])
    assert EventRepository.get(db, idle.id).status == InvestigationStatus.IDLE
    assert EventRepository.get(db, collecting.id).status == InvestigationStatus.COMPLETE


def test_sweep_records_failures_and_continues(db, make_event, fake_search, fake_llm):
    first = make_event(title="First")
    second = make_event(title="Second")
    for event in (first, second):
        EventRepository.update_status(db, event.id, InvestigationStatus.COLLECTING)

    class FlakyInvestigator:
        calls = []

        def __init__(self, session):
            self.session = session

        def run(self, event_id):
            FlakyInvestigator.calls.append(event_id)
            if event_id == first.id:
                raise UpstreamServiceError("search down")
            return {"success": True}

    result = MonitorScheduler(db, investigator_factory=FlakyInvestigator).run()

    assert sorted(FlakyInvestigator.calls) == sorted([first.id, second.id])
    by_title = {d["title"]: d for d in result["details"]}
    assert by_title["First"]["success"] is False
    assert by_title["First"]["error"] == "An error occurred processing your request"
    assert by_title["Second"]["success"] is True
    assert by_title["Second"]["error"] is None


# --- branch merge ---

def _two_branches(db, make_event):
    event = make_event()
    main = BranchRepository.find_main(BranchRepository.list_by_event(db, event.id))
    side = BranchRepository.create(db, event.id, name="Side", color="#06b6d4")
    EvidenceRepository.create(db, event.id, side.id, title="S1", source_url="https://s.example/1", source_credibility=30)
    EvidenceRepository.create(db, event.id, side.id, title="S2", source_credibility=90)
    return event, main, side


def test_merge_copies_evidence_and_records_merge(db, make_event):
    event, main, side = _two_branches(db, make_event)

    result = BranchMerger(db).merge(event.id, side.id, main.id)

    assert result["merged"] == 2
    assert sorted(e.title for e in EvidenceRepository.list_by_branch(db, main.id)) == ["S1", "S2"]
    assert len(EvidenceRepository.list_by_branch(db, side.id)) == 2
    merges = MergeRepository.list_by_event(db, event.id)
    assert len(merges) == 1
    assert merges[0].status == MergeStatus.MERGED
    assert merges[0].resolved_at is not None


def test_merge_can_delete_source(db, make_event):
    event, main, side = _two_branches(db, make_event)

    BranchMerger(db).merge(event.id, side.id, main.id, delete_source=True)

    assert BranchRepository.get(db, side.id) is None
    assert len(EvidenceRepository.list_by_event(db, event.id)) == 2


def test_merge_refuses_self_and_main_deletion(db, make_event):
    event, main, side = _two_branches(db, make_event)

    with pytest.raises(ValidationError):
        BranchMerger(db).merge(event.id, side.id, side.id)
    with pytest.raises(ValidationError):
        BranchMerger(db).merge(event.id, main.id, side.id, delete_source=True)
    assert MergeRepository.list_by_event(db, event.id) == []


# --- change feed ---

def test_feed_fans_out_per_event():
    feed = ChangeFeed()
    a = feed.subscribe("event-a")
    b = feed.subscribe("event-b")

    feed.publish({"table": "branches", "type": "INSERT", "id": "x", "event_id": "event-a"})

    assert a.get_nowait()["id"] == "x"
    assert b.empty()
    feed.unsubscribe("event-a", a)
    assert feed.subscriber_count("event-a") == 0


def _drain(q):
    items = []
    while not q.empty():
        items.append(q.get_nowait())
    return items


def test_committed_writes_are_published(db, make_event):
    event = make_event()
    subscription = change_feed.subscribe(event.id)
    try:
        main = BranchRepository.find_main(BranchRepository.list_by_event(db, event.id))
        EvidenceRepository.create(db, event.id, main.id, title="Note")
        EventRepository.update_status(db, event.id, InvestigationStatus.ANALYZING)
        BranchRepository.delete(db, main.id)

        changes = [(c["table"], c["type"]) for c in _drain(subscription)]
    finally:
        change_feed.unsubscribe(event.id, subscription)

    assert ("evidence", "INSERT") in changes
    assert ("events", "UPDATE") in changes
    assert ("evidence", "DELETE") in changes
    assert ("branches", "DELETE") in changes
    assert all(c[0] != "hypotheses" for c in changes)


def test_rolled_back_writes_are_dropped(db, make_event):
    event = make_event()
    subscription = change_feed.subscribe(event.id)
    try:
        stored = EventRepository.get(db, event.id)
        stored.title = "Renamed"
        db.flush()
        db.rollback()
        assert _drain(subscription) == []
    finally:
        change_feed.unsubscribe(event.id, subscription)


def test_feed_is_keyed_by_owning_event(db, make_event):
    first = make_event(title="First")
    second = make_event(title="Second")
    subscription = change_feed.subscribe(first.id)
    try:
        EventRepository.update_status(db, second.id, InvestigationStatus.COLLECTING)
        assert _drain(subscription) == []
    finally:
        change_feed.unsubscribe(first.id, subscription)
