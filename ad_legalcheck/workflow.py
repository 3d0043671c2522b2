# -*- coding: utf-8 -*-
"""
Workflow state machine for one ad check session.

    INPUT -> PROCESSING_STEP1_STEP2 -> [OCR_VERIFICATION ->] REVIEW_STEP1_STEP2
          -> PROCESSING_STEP3_STEP4 -> COMPLETE (-> PROCESSING_STEP3_STEP4 on re-check)

ERROR is reachable from every phase through PipelineFailed. COMPLETE and ERROR
go back to INPUT through Reset.

`transition` is the pure reducer. `Workflow` owns the current state, performs
the two model calls and feeds their outcome back into the reducer.
"""
import dataclasses
import logging
import threading
from dataclasses import dataclass
from typing import Optional

from .errors import AdCheckError, InputValidationError, InvalidTransition, WorkflowBusy
from .extraction import consolidate_ad_text, parse_stage1, parse_stage2
from .models import CheckRequest, Phase, Stage1Result, Stage2Result, WorkflowState
from .stages import run_stage1, run_stage2

log = logging.getLogger(__name__)

NO_INPUT_MESSAGE = "チェックを行うための情報を少なくとも1つ入力してください（広告テキスト、画像、URL、またはクライアント共有情報）。"
NO_USER_INPUT_MESSAGE = "ユーザー入力が見つかりません。"
NO_AD_TEXT_MESSAGE = "広告テキストが直接入力、CSV、または画像OCRのいずれの方法でも提供されていないか、有効なテキストの解析に失敗しました。処理を続行できません。"
NO_RECHECK_TEXT_MESSAGE = "再チェックのための既存の広告テキストが見つかりません。"
EMPTY_FEEDBACK_MESSAGE = "再チェックのための指示・フィードバックを入力してください。"


# ------------------------------------------------------------
# Events
# ------------------------------------------------------------
@dataclass(frozen=True)
class Reset:
    pass


@dataclass(frozen=True)
class Stage1Started:
    request: CheckRequest


@dataclass(frozen=True)
class Stage1Succeeded:
    result: Stage1Result


@dataclass(frozen=True)
class OcrEdited:
    text: str


@dataclass(frozen=True)
class OcrConfirmed:
    pass


@dataclass(frozen=True)
class Stage2Started:
    final_ad_text: str
    recheck_prompt: Optional[str] = None


@dataclass(frozen=True)
class Stage2Succeeded:
    result: Stage2Result


@dataclass(frozen=True)
class RecheckPromptEdited:
    text: str


@dataclass(frozen=True)
class PipelineFailed:
    message: str


def _require(state: WorkflowState, event, *phases):
    if state.phase not in phases:
        raise InvalidTransition(
            f"{type(event).__name__} は {state.phase.name} フェーズでは実行できません。"
        )


def transition(state: WorkflowState, event) -> WorkflowState:
    replace = dataclasses.replace

    if isinstance(event, Reset):
        return WorkflowState()

    if isinstance(event, PipelineFailed):
        return replace(state, phase=Phase.ERROR, error_message=event.message, is_loading=False)

    if isinstance(event, Stage1Started):
        _require(state, event, Phase.INPUT)
        return WorkflowState(phase=Phase.PROCESSING_STEP1_STEP2, request=event.request, is_loading=True)

    if isinstance(event, Stage1Succeeded):
        _require(state, event, Phase.PROCESSING_STEP1_STEP2)
        phase = Phase.OCR_VERIFICATION if event.result.needs_verification else Phase.REVIEW_STEP1_STEP2
        return replace(state, phase=phase, stage1=event.result, is_loading=False)

    if isinstance(event, OcrEdited):
        _require(state, event, Phase.OCR_VERIFICATION, Phase.REVIEW_STEP1_STEP2)
        return replace(state, stage1=replace(state.stage1, corrected_ocr_text=event.text))

    if isinstance(event, OcrConfirmed):
        _require(state, event, Phase.OCR_VERIFICATION)
        return replace(
            state,
            phase=Phase.REVIEW_STEP1_STEP2,
            stage1=replace(state.stage1, needs_verification=False),
            error_message=None,
        )

    if isinstance(event, Stage2Started):
        if event.recheck_prompt is None:
            _require(state, event, Phase.REVIEW_STEP1_STEP2)
            final_ad_text = event.final_ad_text
        else:
            _require(state, event, Phase.COMPLETE)
            # re-checks always reuse the frozen text
            final_ad_text = state.final_ad_text
        if not final_ad_text:
            raise InvalidTransition(NO_AD_TEXT_MESSAGE)
        return replace(
            state,
            phase=Phase.PROCESSING_STEP3_STEP4,
            final_ad_text=final_ad_text,
            stage2=None,
            error_message=None,
            is_loading=True,
        )

    if isinstance(event, Stage2Succeeded):
        _require(state, event, Phase.PROCESSING_STEP3_STEP4)
        return replace(state, phase=Phase.COMPLETE, stage2=event.result, is_loading=False)

    if isinstance(event, RecheckPromptEdited):
        _require(state, event, Phase.COMPLETE)
        return replace(state, recheck_prompt=event.text)

    raise InvalidTransition(f"未知のイベント: {event!r}")


# ------------------------------------------------------------
# Controller
# ------------------------------------------------------------
class Workflow:
    def __init__(self, client, knowledge_base, state: WorkflowState = None):
        self.client = client
        self.kb = knowledge_base
        self.state = state or WorkflowState()
        self._lock = threading.RLock()

    def dispatch(self, event) -> WorkflowState:
        with self._lock:
            before = self.state.phase
            self.state = transition(self.state, event)
            if self.state.phase != before:
                log.info("phase %s -> %s (%s)", before.name, self.state.phase.name, type(event).__name__)
            return self.state

    def _fail(self, message: str) -> WorkflowState:
        log.warning("pipeline error: %s", message)
        return self.dispatch(PipelineFailed(message))

    def _ensure_idle(self):
        if self.state.is_loading:
            raise WorkflowBusy("処理中です。完了までお待ちください。")

    # -- step 1 / 2 -----------------------------------------------------
    def start_check(self, request: CheckRequest) -> WorkflowState:
        if request.is_empty:
            raise InputValidationError(NO_INPUT_MESSAGE)

        with self._lock:
            self._ensure_idle()
            self.dispatch(Reset())
            self.dispatch(Stage1Started(request))

        try:
            raw = run_stage1(self.client, self.kb.system_prompt, request)
        except AdCheckError as e:
            return self._fail(f"広告テキスト/OCR処理中にエラーが発生しました: {e.message}")
        except Exception as e:
            self._fail(f"広告テキスト/OCR処理中にエラーが発生しました: {e}")
            raise

        result = parse_stage1(raw.text, request.is_csv_input, request.has_direct_text)
        return self.dispatch(Stage1Succeeded(result))

    def edit_ocr_text(self, text: str) -> WorkflowState:
        return self.dispatch(OcrEdited(text or ""))

    def confirm_ocr(self) -> WorkflowState:
        return self.dispatch(OcrConfirmed())

    # -- step 3 / 4 -----------------------------------------------------
    def proceed_to_final_processing(self) -> WorkflowState:
        with self._lock:
            self._ensure_idle()
            state = self.state
            if state.phase != Phase.REVIEW_STEP1_STEP2:
                raise InvalidTransition(f"{state.phase.name} フェーズからは最終処理に進めません。")
            if state.request is None or state.stage1 is None:
                return self._fail(NO_USER_INPUT_MESSAGE)

            ad_text = consolidate_ad_text(state.stage1.csv_text, state.stage1.corrected_ocr_text)
            if not ad_text:
                return self._fail(NO_AD_TEXT_MESSAGE)
            self.dispatch(Stage2Started(final_ad_text=ad_text))

        return self._run_stage2(None)

    def set_recheck_prompt(self, text: str) -> WorkflowState:
        return self.dispatch(RecheckPromptEdited(text or ""))

    def recheck_current_report(self, feedback: str = None) -> WorkflowState:
        """
        Pre: phase COMPLETE, non-blank feedback, frozen ad text present.
        Post: stage-2 results replaced by a fresh run over the same ad text.
        """
        with self._lock:
            self._ensure_idle()
            if feedback is None:
                feedback = self.state.recheck_prompt
            if not (feedback or "").strip():
                raise InputValidationError(EMPTY_FEEDBACK_MESSAGE)
            if self.state.phase != Phase.COMPLETE:
                raise InvalidTransition(f"{self.state.phase.name} フェーズでは再チェックできません。")
            if not self.state.final_ad_text:
                return self._fail(NO_RECHECK_TEXT_MESSAGE)

            self.dispatch(RecheckPromptEdited(feedback))
            self.dispatch(Stage2Started(final_ad_text=self.state.final_ad_text, recheck_prompt=feedback))

        return self._run_stage2(feedback)

    def start_new_check(self) -> WorkflowState:
        with self._lock:
            self._ensure_idle()
            return self.dispatch(Reset())

    def _run_stage2(self, recheck_prompt) -> WorkflowState:
        state = self.state
        try:
            raw = run_stage2(self.client, self.kb, state.request, state.final_ad_text, recheck_prompt)
        except AdCheckError as e:
            return self._fail(f"事実情報取得/レポート生成中にエラーが発生しました: {e.message}")
        except Exception as e:
            self._fail(f"事実情報取得/レポート生成中にエラーが発生しました: {e}")
            raise

        result = parse_stage2(raw.text, raw.citations, recheck_prompt)
        return self.dispatch(Stage2Succeeded(result))
