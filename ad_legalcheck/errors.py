# -*- coding: utf-8 -*-
"""Error types raised by the ad check pipeline.

Parse problems never raise: the extraction module degrades to sentinel strings
instead. Everything below is either rejected input, a failed network stage or an
operation that is not allowed in the current workflow phase.
"""


class AdCheckError(Exception):
    code = "AD_CHECK_ERROR"
    http_status = 500

    def __init__(self, message: str, details: str = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class InputValidationError(AdCheckError):
    code = "INPUT_INVALID"
    http_status = 400


class ConfigurationError(AdCheckError):
    code = "CONFIG_MISSING"
    http_status = 500


class GeminiError(AdCheckError):
    code = "GEMINI_FAILED"
    http_status = 502


class StageError(AdCheckError):
    """Failure of one model stage, wrapped with the stage number."""

    http_status = 502

    def __init__(self, stage: int, message: str, details: str = None):
        super().__init__(f"Gemini API リクエスト失敗 (ステージ{stage}): {message}", details)
        self.stage = stage

    @property
    def code(self):
        return f"STAGE{self.stage}_FAILED"


class StatePreconditionError(AdCheckError):
    code = "STATE_PRECONDITION"
    http_status = 409


class InvalidTransition(StatePreconditionError):
    code = "INVALID_TRANSITION"


class WorkflowBusy(AdCheckError):
    code = "WORKFLOW_BUSY"
    http_status = 409
