# -*- coding: utf-8 -*-
import logging

from . import config
from .errors import AdCheckError, StageError
from .gemini import GOOGLE_SEARCH_TOOL, split_data_url
from .models import CheckRequest, GenerateResult
from .prompts import KnowledgeBase, build_stage1_prompt, build_stage2_prompt

log = logging.getLogger(__name__)


def _strict_attachments(request: CheckRequest) -> list:
    attachments = []
    for label, images in (("広告テキスト画像", request.ad_text_images),
                          ("広告クリエイティブ画像", request.ad_creative_images)):
        for i, data_url in enumerate(images, start=1):
            part = split_data_url(data_url)
            if part is None:
                raise StageError(1, f"{label} {i} の無効なBase64文字列です: MIMEタイプが見つからないかサポートされていません。")
            attachments.append(part)
    return attachments


def _lenient_attachments(request: CheckRequest) -> list:
    parts = (split_data_url(u) for u in request.ad_text_images + request.ad_creative_images)
    return [p for p in parts if p is not None]


def run_stage1(client, system_prompt: str, request: CheckRequest) -> GenerateResult:
    """Ad text normalisation + OCR. Raw model text, no parsing."""
    attachments = _strict_attachments(request)
    prompt = build_stage1_prompt(system_prompt, request)

    log.info("stage1 start csv=%s direct=%s images=%d",
             request.is_csv_input, request.has_direct_text, len(attachments))
    try:
        result = client.generate(prompt, attachments=attachments, model=config.GEMINI_OCR_MODEL)
    except AdCheckError as e:
        log.error("stage1 failed: %s", e.message)
        raise StageError(1, e.message, e.details) from e
    log.info("stage1 done chars=%d", len(result.text))
    return result


def run_stage2(client, kb: KnowledgeBase, request: CheckRequest, final_ad_text: str,
               recheck_prompt: str = None) -> GenerateResult:
    """Fact finding + final report, with Google Search grounding enabled."""
    prompt = build_stage2_prompt(
        kb, final_ad_text, request.reference_urls, request.client_shared_info, recheck_prompt
    )
    attachments = _lenient_attachments(request)

    log.info("stage2 start recheck=%s images=%d urls=%d",
             bool(recheck_prompt), len(attachments), len(request.reference_urls))
    try:
        result = client.generate(
            prompt,
            attachments=attachments,
            tools=[GOOGLE_SEARCH_TOOL],
            model=config.GEMINI_CHECK_MODEL,
            prompt_first=False,
        )
    except AdCheckError as e:
        log.error("stage2 failed: %s", e.message)
        raise StageError(2, e.message, e.details) from e
    log.info("stage2 done chars=%d citations=%d", len(result.text), len(result.citations))
    return result
