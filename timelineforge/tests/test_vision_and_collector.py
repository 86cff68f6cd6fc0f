"""Vision analyzer and standalone evidence collector."""
import base64
import json

import pytest

from conftest import OTHER_USER_ID, OWNER_ID, make_results
from timelineforge.agents.evidence_collector import EvidenceCollector
from timelineforge.agents.vision_analyzer import VisionAnalyzer, build_vision_prompt, decode_base64_image
from timelineforge.confidence.credibility_scorer import CredibilityScorer
from timelineforge.errors import AuthorizationError, UpstreamServiceError, ValidationError
from timelineforge.storage.models.enums import EvidenceType
from timelineforge.storage.repositories.branch_repo import BranchRepository
from timelineforge.storage.repositories.evidence_repo import EvidenceRepository

PNG_B64 = base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image").decode()


def _analyzer(db, fake_vision_llm, fake_fetcher) -> VisionAnalyzer:
    return VisionAnalyzer(db=db, llm_image=fake_vision_llm, fetcher=fake_fetcher)


def test_prompt_depends_on_analysis_type():
    assert "objects_detected" in build_vision_prompt("detection")
    assert "authenticity_indicators" in build_vision_prompt("credibility")
    assert "key_elements" in build_vision_prompt("region")
    assert 'claim: "Taken in 2019"' in build_vision_prompt("description", claim="Taken in 2019")


@pytest.mark.parametrize("url", [
    "http://169.254.169.254/",
    "http://2852039166/latest/meta-data/",
    "http://0251.0376.0251.0376/",
    "http://0xA9FEA9FE/",
    "http://127.1/",
])
def test_metadata_url_rejected_before_fetch(db, fake_vision_llm, fake_fetcher, url):
    with pytest.raises(ValidationError) as exc_info:
        _analyzer(db, fake_vision_llm, fake_fetcher).analyze(image_url=url)

    assert exc_info.value.public_message == "Invalid or disallowed URL"
    assert fake_fetcher.urls == []
    assert fake_vision_llm.calls == []


def test_url_image_is_fetched_and_analyzed(db, fake_vision_llm, fake_fetcher):
    fake_vision_llm.reply = '{"description": "A collapsed bridge", "key_elements": ["river"]}'

    result = _analyzer(db, fake_vision_llm, fake_fetcher).analyze(
        analysis_type="description",
        image_url="https://example.com/bridge.png",
        prompt="Look at the pillars",
    )

    assert fake_fetcher.urls == ["https://example.com/bridge.png"]
    assert fake_vision_llm.calls[0]["mime_type"] == "image/png"
    assert fake_vision_llm.calls[0]["extra_prompt"] == "Look at the pillars"
    assert result["analysis"]["description"] == "A collapsed bridge"
    assert result["analysisType"] == "description"


def test_base64_data_uri_is_decoded(db, fake_vision_llm, fake_fetcher):
    fake_vision_llm.reply = '{"credibility_score": 180}'

    result = _analyzer(db, fake_vision_llm, fake_fetcher).analyze(
        analysis_type="credibility",
        image_base64=f"data:image/png;base64,{PNG_B64}",
    )

    assert fake_fetcher.urls == []
    assert fake_vision_llm.calls[0]["image_bytes"].startswith(b"\x89PNG")
    assert fake_vision_llm.calls[0]["mime_type"] == "image/png"
    assert result["analysis"]["credibility_score"] == 100.0


def test_bad_base64_is_a_validation_error():
    with pytest.raises(ValidationError):
        decode_base64_image("***not base64***")


def test_unparseable_reply_becomes_neutral_analysis(db, fake_vision_llm, fake_fetcher):
    fake_vision_llm.reply = "I see a bridge."

    result = _analyzer(db, fake_vision_llm, fake_fetcher).analyze(image_base64=PNG_B64)

    assert result["analysis"] == {
        "description": "I see a bridge.",
        "credibility_score": 50,
        "warnings": ["Analysis parsing failed"],
    }


def test_empty_reply_is_upstream_error(db, fake_vision_llm, fake_fetcher):
    fake_vision_llm.reply = ""
    with pytest.raises(UpstreamServiceError):
        _analyzer(db, fake_vision_llm, fake_fetcher).analyze(image_base64=PNG_B64)


def test_detection_is_stored_on_owned_evidence(db, make_event, fake_vision_llm, fake_fetcher):
    event = make_event()
    main = BranchRepository.find_main(BranchRepository.list_by_event(db, event.id))
    evidence = EvidenceRepository.create(
        db, event.id, main.id, title="Photo", evidence_type=EvidenceType.IMAGE,
        image_url="https://example.com/p.png",
    )
    fake_vision_llm.reply = json.dumps({
        "description": "scene",
        "objects_detected": [
            {"label": "truck", "confidence": 0.9, "bounding_box": [10, 20, 300, 400]},
            {"label": "sign", "confidence": 0.5},
        ],
    })

    _analyzer(db, fake_vision_llm, fake_fetcher).analyze(
        analysis_type="detection",
        image_base64=PNG_B64,
        evidence_id=evidence.id,
        user_id=OWNER_ID,
    )

    stored = EvidenceRepository.get(db, evidence.id)
    assert stored.gemini_analysis["description"] == "scene"
    assert stored.bounding_boxes == [
        {"label": "truck", "box": [10, 20, 300, 400], "color": "#8b5cf6", "type": "detection"}
    ]


def test_foreign_evidence_is_rejected_before_analysis(db, make_event, fake_vision_llm, fake_fetcher):
    event = make_event(user_id=OTHER_USER_ID)
    main = BranchRepository.find_main(BranchRepository.list_by_event(db, event.id))
    evidence = EvidenceRepository.create(db, event.id, main.id, title="Photo")

    with pytest.raises(AuthorizationError):
        _analyzer(db, fake_vision_llm, fake_fetcher).analyze(
            image_base64=PNG_B64, evidence_id=evidence.id, user_id=OWNER_ID
        )
    assert fake_vision_llm.calls == []


# --- evidence collector ---

def test_collector_scores_every_result(fake_search, fake_llm):
    fake_search.results = make_results("https://a.example/1", "https://b.example/2")
    fake_search.results[0].raw_content = "r" * 6000
    fake_search.answer = "Summary answer"
    fake_llm.replies["https://a.example/1"] = (
        '{"credibility_score": 88, "supports_narrative": true, "summary": "Supports it"}'
    )
    fake_llm.replies["https://b.example/2"] = "not json"

    collector = EvidenceCollector(search_client=fake_search, credibility_scorer=CredibilityScorer(llm=fake_llm))
    result = collector.collect("cause", event_title="Bridge", branch_name="Cover-up", max_results=5)

    assert fake_search.queries == ["Bridge cause"]
    assert result["query"] == "cause"
    assert result["answer"] == "Summary answer"
    first, second = result["results"]
    assert first["source_credibility"] == 88.0
    assert first["supports_narrative"] is True
    assert len(first["raw_content"]) == 5000
    assert second["source_credibility"] == 50.0
    assert second["supports_narrative"] is None
    assert "raw_content" not in second
    assert 'narrative: "Cover-up"' in fake_llm.prompts[0]
