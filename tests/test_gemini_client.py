from __future__ import annotations

import pytest
import requests

from ad_legalcheck import gemini
from ad_legalcheck.errors import ConfigurationError, GeminiError
from ad_legalcheck.gemini import GOOGLE_SEARCH_TOOL, GeminiClient, split_data_url
from ad_legalcheck.models import WebSource


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _capture(monkeypatch, response):
    seen = {}

    def fake_post(url, json=None, timeout=None):
        seen.update(url=url, json=json, timeout=timeout)
        if isinstance(response, Exception):
            raise response
        return response

    monkeypatch.setattr(gemini.requests, "post", fake_post)
    return seen


def test_split_data_url() -> None:
    assert split_data_url("data:image/webp;base64,QUJD") == ("image/webp", "QUJD")
    assert split_data_url("data:image/gif;base64,QUJD") is None
    assert split_data_url("") is None


def test_generate_success_with_grounding(monkeypatch) -> None:
    payload = {
        "candidates": [{
            "content": {"parts": [{"text": "前半"}, {"text": "後半"}]},
            "groundingMetadata": {
                "groundingChunks": [
                    {"web": {"uri": "https://a.example", "title": "A"}},
                    {"retrievedContext": {"uri": "gs://x"}},
                    {"web": {"uri": "https://b.example"}},
                ]
            },
        }]
    }
    seen = _capture(monkeypatch, FakeResponse(payload=payload))
    client = GeminiClient(api_key=" key=ABC ", model="m1", timeout=7, endpoint_base="https://api.example/models/")

    result = client.generate("PROMPT", attachments=[("image/png", "AAAA")], tools=[GOOGLE_SEARCH_TOOL],
                             prompt_first=False)

    assert result.text == "前半後半"
    assert result.citations == (
        WebSource(uri="https://a.example", title="A"),
        WebSource(uri="https://b.example", title=""),
    )
    assert seen["url"] == "https://api.example/models/m1:generateContent?key=ABC"
    assert seen["timeout"] == 7
    parts = seen["json"]["contents"][0]["parts"]
    assert parts[0] == {"inline_data": {"mime_type": "image/png", "data": "AAAA"}}
    assert parts[1] == {"text": "PROMPT"}
    assert seen["json"]["tools"] == [{"google_search": {}}]


def test_generate_without_tools_puts_prompt_first(monkeypatch) -> None:
    seen = _capture(monkeypatch, FakeResponse(payload={"candidates": [{"content": {"parts": [{"text": "ok"}]}}]}))
    result = GeminiClient(api_key="K").generate("P", attachments=[("image/png", "AAAA")])
    assert result.text == "ok"
    assert result.citations == ()
    assert "tools" not in seen["json"]
    assert seen["json"]["contents"][0]["parts"][0] == {"text": "P"}


def test_generate_http_error(monkeypatch) -> None:
    _capture(monkeypatch, FakeResponse(status_code=429, text="quota exceeded"))
    with pytest.raises(GeminiError) as ei:
        GeminiClient(api_key="K").generate("P")
    assert ei.value.message == "HTTP 429"
    assert ei.value.details == "quota exceeded"


def test_generate_transport_error(monkeypatch) -> None:
    _capture(monkeypatch, requests.ConnectionError("boom"))
    with pytest.raises(GeminiError):
        GeminiClient(api_key="K").generate("P")


def test_generate_no_candidates(monkeypatch) -> None:
    _capture(monkeypatch, FakeResponse(payload={"candidates": []}))
    with pytest.raises(GeminiError):
        GeminiClient(api_key="K").generate("P")


def test_generate_requires_api_key(monkeypatch) -> None:
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    monkeypatch.setenv("API_KEY", "undefined")
    seen = _capture(monkeypatch, FakeResponse(payload={}))
    with pytest.raises(ConfigurationError):
        GeminiClient().generate("P")
    assert seen == {}
