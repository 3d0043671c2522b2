# -*- coding: utf-8 -*-
import os
import sys
import logging

# ------------------------------------------------------------
# 基本設定
# ------------------------------------------------------------
OUTPUT_DIR = os.environ.get("OUTPUT_DIR") or os.path.join(os.getcwd(), "outputs")
KNOWLEDGE_DIR = os.environ.get("KNOWLEDGE_DIR") or os.path.join(os.path.dirname(__file__), "knowledge")

GEMINI_ENDPOINT_BASE = os.environ.get(
    "GEMINI_ENDPOINT_BASE", "https://generativelanguage.googleapis.com/v1beta/models"
)
# OCRや単純なテキスト解析には高速なFlashモデル
GEMINI_OCR_MODEL = os.environ.get("GEMINI_OCR_MODEL", "gemini-3-flash-preview")
# 事実確認・リーガルチェック用
GEMINI_CHECK_MODEL = os.environ.get("GEMINI_CHECK_MODEL", "gemini-3-flash-preview")
GEMINI_TIMEOUT_SECONDS = int(os.environ.get("GEMINI_TIMEOUT_SECONDS", 300))

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
PORT = int(os.environ.get("PORT", 8080))

MAX_AD_TEXT_IMAGES = 8
MAX_AD_CREATIVE_IMAGES = 8
MAX_REFERENCE_URLS = 20  # URL contextツールの制限

# 放置されたセッションを破棄するまでの秒数
SESSION_TTL_SECONDS = int(os.environ.get("SESSION_TTL_SECONDS", 6 * 60 * 60))

ALLOWED_IMAGE_EXT = {".png", ".jpg", ".jpeg", ".webp"}
ALLOWED_CSV_EXT = {".csv"}


def normalize_api_key(k: str) -> str:
    k = (k or "").strip().replace("\n", "").replace("\r", "")
    k = k.replace(" ", "")
    k = k.replace("key=", "")
    k = k.replace('"', "").replace("'", "")
    return k


def get_api_key() -> str:
    """GEMINI_API_KEY (なければ API_KEY)。'undefined' / 'null' は未設定扱い。"""
    k = normalize_api_key(os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY") or "")
    if k in ("undefined", "null"):
        return ""
    return k


def configure_logging(level: str = LOG_LEVEL) -> None:
    """Configure root logging once; repeated calls replace the handler."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level.upper())
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    ))
    root.addHandler(handler)
