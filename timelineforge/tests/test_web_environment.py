"""Web environment - search, fetch and outbound URL checks

Network clients are patched; nothing leaves the process.
"""
import socket
from unittest.mock import MagicMock, patch

import pytest
import requests

from timelineforge.environments.web.fetch import ImageFetcher
from timelineforge.environments.web.search import WebSearch
from timelineforge.environments.web.url_guard import is_valid_external_url, resolves_to_public_address
from timelineforge.errors import UpstreamServiceError, ValidationError


@pytest.mark.parametrize("url", [
    "https://example.com/image.png",
    "http://news.example.org/a?b=c",
    "https://8.8.8.8/pic.jpg",
])
def test_public_urls_pass(url):
    assert is_valid_external_url(url) is True


@pytest.mark.parametrize("url", [
    "http://169.254.169.254/latest/meta-data/",
    "http://metadata.google.internal/computeMetadata/v1/",
    "http://localhost:8000/",
    "http://127.0.0.1/",
    "http://10.0.0.5/x.png",
    "http://192.168.1.1/router.png",
    "http://172.16.4.4/",
    "http://[::1]/",
    "http://[::ffff:127.0.0.1]/",
    "http://0.0.0.0/",
    "http://2852039166/latest/meta-data/",
    "http://0251.0376.0251.0376/",
    "http://0xA9FEA9FE/",
    "http://127.1/",
    "http://printer.local/scan.png",
    "http://db.internal/",
    "ftp://example.com/file.png",
    "file:///etc/passwd",
    "not a url",
])
def test_private_and_odd_urls_are_blocked(url):
    assert is_valid_external_url(url) is False


def test_fetch_refuses_blocked_url_without_request():
    with patch("timelineforge.environments.web.fetch.requests.get") as mock_get:
        with pytest.raises(ValidationError) as exc_info:
            ImageFetcher().fetch("http://169.254.169.254/latest/meta-data/")
    mock_get.assert_not_called()
    assert exc_info.value.public_message == "Invalid or disallowed URL"


def _addrinfo(*addresses):
    return [(None, None, None, "", (address, 0)) for address in addresses]


@pytest.fixture()
def public_dns():
    with patch(
        "timelineforge.environments.web.url_guard.socket.getaddrinfo",
        return_value=_addrinfo("93.184.216.34"),
    ) as mock_resolve:
        yield mock_resolve


def test_resolution_rejects_any_private_address():
    with patch(
        "timelineforge.environments.web.url_guard.socket.getaddrinfo",
        return_value=_addrinfo("93.184.216.34", "169.254.169.254"),
    ):
        assert resolves_to_public_address("https://rebind.example/") is False


def test_resolution_failure_is_rejected():
    with patch(
        "timelineforge.environments.web.url_guard.socket.getaddrinfo",
        side_effect=socket.gaierror("no such host"),
    ):
        assert resolves_to_public_address("https://nowhere.example/") is False


def test_fetch_refuses_name_resolving_to_metadata_address():
    with patch(
        "timelineforge.environments.web.url_guard.socket.getaddrinfo",
        return_value=_addrinfo("169.254.169.254"),
    ), patch("timelineforge.environments.web.fetch.requests.get") as mock_get:
        with pytest.raises(ValidationError) as exc_info:
            ImageFetcher().fetch("http://metadata.attacker.example/latest/meta-data/")
    mock_get.assert_not_called()
    assert exc_info.value.public_message == "Invalid or disallowed URL"


def _response(body: bytes, content_type: str = "image/png", status: int = 200, redirect: bool = False):
    response = MagicMock()
    response.status_code = status
    response.is_redirect = redirect
    response.headers = {"content-type": content_type}
    response.raw.read.return_value = body
    response.raise_for_status.return_value = None
    response.__enter__.return_value = response
    return response


def test_fetch_returns_body_and_mime(public_dns):
    with patch("timelineforge.environments.web.fetch.requests.get", return_value=_response(b"img", "image/webp; q=1")) as mock_get:
        body, mime = ImageFetcher().fetch("https://example.com/a.webp")
    assert body == b"img"
    assert mime == "image/webp"
    assert mock_get.call_args.kwargs["allow_redirects"] is False


def test_fetch_refuses_redirects(public_dns):
    response = _response(b"", redirect=True, status=302)
    with patch("timelineforge.environments.web.fetch.requests.get", return_value=response):
        with pytest.raises(ValidationError):
            ImageFetcher().fetch("https://example.com/moved.png")
    response.__exit__.assert_called_once()


def test_fetch_enforces_size_limit(public_dns):
    response = _response(b"x" * 11)
    with patch("timelineforge.environments.web.fetch.requests.get", return_value=response):
        with pytest.raises(ValidationError) as exc_info:
            ImageFetcher(max_bytes=10).fetch("https://example.com/big.png")
    assert exc_info.value.public_message == "Image too large"
    response.__exit__.assert_called_once()


def test_fetch_wraps_network_errors(public_dns):
    with patch("timelineforge.environments.web.fetch.requests.get", side_effect=requests.ConnectionError("down")):
        with pytest.raises(UpstreamServiceError):
            ImageFetcher().fetch("https://example.com/a.png")


def test_search_maps_tavily_results():
    fake_client = MagicMock()
    fake_client.search.return_value = {
        "answer": "Short answer",
        "results": [
            {"url": "https://a.example/1", "title": "One", "content": "c1", "score": 0.9},
            {"url": "", "title": "dropped"},
            {"url": "https://b.example/2", "title": None, "content": "c2", "raw_content": "raw"},
        ],
    }
    with patch("timelineforge.environments.web.search.TavilyClient", return_value=fake_client):
        response = WebSearch(api_key="k", search_depth="advanced").search("bridge", max_results=5, include_raw_content=True)

    assert response.answer == "Short answer"
    assert [r.url for r in response.results] == ["https://a.example/1", "https://b.example/2"]
    assert response.results[1].title == ""
    assert response.results[1].raw_content == "raw"
    kwargs = fake_client.search.call_args.kwargs
    assert kwargs["search_depth"] == "advanced"
    assert kwargs["max_results"] == 5
    assert kwargs["include_answer"] is True


def test_search_without_key_is_unconfigured():
    search = WebSearch(api_key="")
    assert search.configured is False
    with pytest.raises(UpstreamServiceError):
        search.search("anything")


def test_search_wraps_client_errors():
    fake_client = MagicMock()
    fake_client.search.side_effect = RuntimeError("429 Too Many Requests")
    with patch("timelineforge.environments.web.search.TavilyClient", return_value=fake_client):
        with pytest.raises(UpstreamServiceError):
            WebSearch(api_key="k").search("bridge")
