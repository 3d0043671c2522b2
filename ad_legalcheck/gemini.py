# -*- coding: utf-8 -*-
import re
import logging

import requests

from . import config
from .errors import ConfigurationError, GeminiError
from .models import GenerateResult, WebSource

log = logging.getLogger(__name__)

DATA_URL_RE = re.compile(r"^data:(image/(?:png|jpeg|webp));base64,")

GOOGLE_SEARCH_TOOL = {"google_search": {}}

MISSING_KEY_MESSAGE = "\n".join([
    "GEMINI_API_KEYが設定されていません。",
    "",
    "環境変数 GEMINI_API_KEY にAPIキーを設定してから再度実行してください。",
    "例: export GEMINI_API_KEY=your_api_key_here",
])


def split_data_url(data_url: str):
    """'data:image/png;base64,....' -> ('image/png', '....'), 対応外なら None"""
    m = DATA_URL_RE.match(data_url or "")
    if not m:
        return None
    return m.group(1), data_url[m.end():]


def extract_citations(candidate: dict) -> tuple:
    chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
    sources = []
    for chunk in chunks:
        web = chunk.get("web")
        if not web or not web.get("uri"):
            continue
        sources.append(WebSource(uri=web["uri"], title=web.get("title") or ""))
    return tuple(sources)


class GeminiClient:
    """generateContent over REST. One call per generate(), no retry."""

    def __init__(self, api_key: str = None, model: str = None, timeout: int = None,
                 endpoint_base: str = None):
        self.api_key = config.normalize_api_key(api_key) if api_key else config.get_api_key()
        self.model = model or config.GEMINI_CHECK_MODEL
        self.timeout = timeout or config.GEMINI_TIMEOUT_SECONDS
        self.endpoint_base = (endpoint_base or config.GEMINI_ENDPOINT_BASE).rstrip("/")

    def _url(self, model: str) -> str:
        return f"{self.endpoint_base}/{model}:generateContent?key={self.api_key}"

    def generate(self, prompt: str, attachments=(), tools=None, model: str = None,
                 prompt_first: bool = True) -> GenerateResult:
        """
        attachments: (mime_type, base64_data) のシーケンス。
        prompt_first=False なら画像を先に並べてからテキストを置く。
        """
        if not self.api_key:
            raise ConfigurationError(MISSING_KEY_MESSAGE)

        image_parts = [{"inline_data": {"mime_type": mime, "data": data}} for mime, data in attachments]
        text_part = {"text": prompt}
        parts = [text_part] + image_parts if prompt_first else image_parts + [text_part]

        payload = {"contents": [{"role": "user", "parts": parts}]}
        if tools:
            payload["tools"] = list(tools)

        model = model or self.model
        log.info("generateContent model=%s images=%d tools=%s", model, len(image_parts), bool(tools))
        try:
            resp = requests.post(self._url(model), json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            log.error("Gemini transport error: %s", e)
            raise GeminiError(f"通信エラー: {e}") from e

        if resp.status_code != 200:
            raise GeminiError(f"HTTP {resp.status_code}", details=resp.text[:500])

        try:
            data = resp.json()
        except ValueError as e:
            raise GeminiError("応答がJSONではありません", details=resp.text[:500]) from e

        if "error" in data:
            raise GeminiError(f"Gemini API error: {data['error']}")

        candidates = data.get("candidates") or []
        if not candidates:
            raise GeminiError("Gemini API 応答に candidates がありません")

        candidate = candidates[0]
        parts = (candidate.get("content") or {}).get("parts") or []
        text = "".join(p.get("text", "") for p in parts if not p.get("thought"))

        return GenerateResult(text=text, citations=extract_citations(candidate))
