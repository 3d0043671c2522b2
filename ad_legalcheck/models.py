# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import List, Optional, Tuple


class Phase(IntEnum):
    INPUT = 0                   # 入力画面
    PROCESSING_STEP1_STEP2 = 1  # 広告テキスト抽出 + OCR 処理中
    OCR_VERIFICATION = 2        # OCR結果のユーザー確認・修正中
    REVIEW_STEP1_STEP2 = 3      # ステップ1・2の結果レビュー
    PROCESSING_STEP3_STEP4 = 4  # 事実情報取得 + レポート生成 処理中
    COMPLETE = 5
    ERROR = 6


@dataclass(frozen=True)
class CheckRequest:
    ad_text_direct: str = ""
    ad_text_csv: Optional[str] = None
    ad_text_images: Tuple[str, ...] = ()       # data URL
    ad_creative_images: Tuple[str, ...] = ()   # data URL
    reference_urls: Tuple[str, ...] = ()
    client_shared_info: str = ""

    @property
    def is_csv_input(self) -> bool:
        return bool(self.ad_text_csv)

    @property
    def has_direct_text(self) -> bool:
        return bool(self.ad_text_direct.strip())

    @property
    def has_images(self) -> bool:
        return bool(self.ad_text_images or self.ad_creative_images)

    @property
    def is_empty(self) -> bool:
        return not (
            self.has_direct_text
            or self.is_csv_input
            or self.has_images
            or self.reference_urls
            or self.client_shared_info.strip()
        )


@dataclass(frozen=True)
class VerificationQuestion:
    id: str
    question: str


@dataclass(frozen=True)
class Stage1Result:
    csv_text: str
    detected_urls: Optional[str]
    detected_client_info: Optional[str]
    raw_ocr_text: str
    corrected_ocr_text: str
    needs_verification: bool = False
    verification_questions: Tuple[VerificationQuestion, ...] = ()


@dataclass(frozen=True)
class WebSource:
    uri: str
    title: str = ""


@dataclass(frozen=True)
class GenerateResult:
    text: str
    citations: Tuple[WebSource, ...] = ()


@dataclass(frozen=True)
class Stage2Result:
    fact_base: str
    final_report: str
    grounding_citations: Tuple[WebSource, ...] = ()


@dataclass(frozen=True)
class WorkflowState:
    phase: Phase = Phase.INPUT
    request: Optional[CheckRequest] = None
    stage1: Optional[Stage1Result] = None
    final_ad_text: Optional[str] = None
    stage2: Optional[Stage2Result] = None
    error_message: Optional[str] = None
    recheck_prompt: str = ""
    is_loading: bool = False

    def to_dict(self) -> dict:
        """JSON view for the browser surface (images are not echoed back)."""
        s1 = self.stage1
        s2 = self.stage2
        return {
            "phase": self.phase.name,
            "step": int(self.phase),
            "is_loading": self.is_loading,
            "error": self.error_message,
            "recheck_prompt": self.recheck_prompt,
            "step1_csv_text": s1.csv_text if s1 else None,
            "step1_detected_urls": s1.detected_urls if s1 else None,
            "step1_client_info": s1.detected_client_info if s1 else None,
            "step2_raw_ocr_text": s1.raw_ocr_text if s1 else None,
            "step2_corrected_ocr_text": s1.corrected_ocr_text if s1 else None,
            "step2_needs_verification": s1.needs_verification if s1 else False,
            "step2_verification_items": [
                {"id": q.id, "question": q.question} for q in (s1.verification_questions if s1 else ())
            ],
            "final_ad_text": self.final_ad_text,
            "step3_fact_base": s2.fact_base if s2 else None,
            "step3_sources": [
                {"uri": w.uri, "title": w.title} for w in (s2.grounding_citations if s2 else ())
            ],
            "step4_final_report": s2.final_report if s2 else None,
        }


@dataclass
class NGItem:
    category: str
    item_name: str
    status: str
    issue: str
    suggestion: str


@dataclass
class NGExtraction:
    items: List[NGItem] = field(default_factory=list)

    @property
    def has_ng(self) -> bool:
        return bool(self.items)
