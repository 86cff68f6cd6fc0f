"""Gemini client wrapper, JSON extraction and bearer-token verification."""
from unittest.mock import MagicMock, patch

import pytest
import requests

from timelineforge.auth import TokenVerifier, parse_bearer
from timelineforge.config import settings
from timelineforge.errors import AuthenticationError, UpstreamServiceError
from timelineforge.utils import llm_client
from timelineforge.utils.json_extract import extract_json_object


# --- JSON extraction ---

def test_extract_prefers_fenced_block():
    text = 'Noise {"ignored": 1}\n```json\n{"score": 7}\n```'
    assert extract_json_object(text) == {"score": 7}


def test_extract_outermost_object_in_prose():
    assert extract_json_object('Sure! {"a": {"b": 2}} Hope this helps.') == {"a": {"b": 2}}


@pytest.mark.parametrize("text", [None, "", "no braces", "{not json}", "```json\n[1, 2]\n```"])
def test_extract_returns_none_for_unusable_text(text):
    assert extract_json_object(text) is None


# --- Gemini wrapper ---

@pytest.fixture()
def gemini_client(monkeypatch):
    client = MagicMock()
    monkeypatch.setattr(llm_client, "_client", client)
    return client


def test_llm_complete_returns_stripped_text(gemini_client):
    gemini_client.models.generate_content.return_value = MagicMock(text="  hello \n")

    assert llm_client.llm_complete("prompt", temperature=0.3) == "hello"
    kwargs = gemini_client.models.generate_content.call_args.kwargs
    assert kwargs["model"] == settings.gemini_model
    assert kwargs["config"].temperature == 0.3


def test_llm_complete_empty_reply_is_empty_string(gemini_client):
    gemini_client.models.generate_content.return_value = MagicMock(text=None)
    assert llm_client.llm_complete("prompt") == ""


def test_llm_complete_wraps_sdk_errors(gemini_client):
    gemini_client.models.generate_content.side_effect = RuntimeError("503 overloaded")
    with pytest.raises(UpstreamServiceError):
        llm_client.llm_complete("prompt")


def test_llm_complete_without_key_is_unconfigured(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", "")
    with pytest.raises(UpstreamServiceError):
        llm_client.llm_complete("prompt")


def test_image_call_sends_inline_part(gemini_client):
    gemini_client.models.generate_content.return_value = MagicMock(text='{"description": "x"}')

    llm_client.llm_complete_with_image("analyze", b"\x89PNG", mime_type="image/png", extra_prompt="focus on signs")

    contents = gemini_client.models.generate_content.call_args.kwargs["contents"]
    assert contents[0] == "analyze"
    assert contents[-1] == "focus on signs"
    assert len(contents) == 3


# --- bearer tokens ---

def test_parse_bearer():
    assert parse_bearer("Bearer abc.def") == "abc.def"
    for header in (None, "", "Basic abc", "Bearer   "):
        with pytest.raises(AuthenticationError):
            parse_bearer(header)


def _auth_response(status: int, payload: dict = None):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload or {}
    return response


def test_verifier_returns_user():
    verifier = TokenVerifier(supabase_url="https://auth.example.test/", anon_key="anon")
    with patch("timelineforge.auth.requests.get", return_value=_auth_response(200, {"id": "u-1", "email": "a@b.c"})) as mock_get:
        user = verifier.verify("tok")

    assert user.id == "u-1"
    assert user.email == "a@b.c"
    assert mock_get.call_args.args[0] == "https://auth.example.test/auth/v1/user"
    assert mock_get.call_args.kwargs["headers"]["Authorization"] == "Bearer tok"


def test_verifier_rejects_bad_token():
    verifier = TokenVerifier(supabase_url="https://auth.example.test", anon_key="anon")
    with patch("timelineforge.auth.requests.get", return_value=_auth_response(401)):
        with pytest.raises(AuthenticationError) as exc_info:
            verifier.verify("tok")
    assert exc_info.value.public_message == "Invalid authentication token"


def test_verifier_provider_outage_is_upstream_error():
    verifier = TokenVerifier(supabase_url="https://auth.example.test", anon_key="anon")
    with patch("timelineforge.auth.requests.get", side_effect=requests.Timeout("slow")):
        with pytest.raises(UpstreamServiceError):
            verifier.verify("tok")
    with patch("timelineforge.auth.requests.get", return_value=_auth_response(500)):
        with pytest.raises(UpstreamServiceError):
            verifier.verify("tok")
