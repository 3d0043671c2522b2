# -*- coding: utf-8 -*-
"""Input collection: form fields and uploads -> CheckRequest."""
import os
import re
import base64
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from . import config
from .errors import InputValidationError
from .models import CheckRequest

PIL_FORMAT_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
}


# ------------------------------------------------------------
# Utility
# ------------------------------------------------------------
def normalize_text(text: str) -> str:
    if not text:
        return ""
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def get_ext(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return (ext or "").lower().strip()


def _pil_to_base64(img: Image.Image) -> str:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("utf-8")


# ------------------------------------------------------------
# Images
# ------------------------------------------------------------
def image_bytes_to_data_url(raw: bytes, filename: str = "") -> str:
    """PNG/JPEG/WEBP はそのまま、それ以外は PNG に変換して data URL にする。"""
    try:
        img = Image.open(BytesIO(raw))
        fmt = img.format
    except (UnidentifiedImageError, OSError) as e:
        raise InputValidationError(f"画像として読み込めませんでした: {filename or '(無名)'}") from e

    mime = PIL_FORMAT_MIME.get(fmt)
    if mime:
        return f"data:{mime};base64,{base64.b64encode(raw).decode('utf-8')}"

    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA")
    return f"data:image/png;base64,{_pil_to_base64(img)}"


def collect_images(files, label: str, limit: int) -> tuple:
    files = [f for f in (files or []) if f and getattr(f, "filename", "")]
    if len(files) > limit:
        raise InputValidationError(f"{label}は最大{limit}枚までです。")

    data_urls = []
    for f in files:
        ext = get_ext(f.filename)
        if ext and ext not in config.ALLOWED_IMAGE_EXT:
            raise InputValidationError(f"{label}に対応していない形式です: {ext} (対応: PNG/JPG/WEBP)")
        data_urls.append(image_bytes_to_data_url(f.read(), f.filename))
    return tuple(data_urls)


# ------------------------------------------------------------
# CSV / URL
# ------------------------------------------------------------
def read_csv_upload(f) -> str:
    if not f or not getattr(f, "filename", ""):
        return None
    if get_ext(f.filename) not in config.ALLOWED_CSV_EXT:
        raise InputValidationError("CSVファイル (.csv) を選択してください。")
    raw = f.read()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise InputValidationError("CSVファイルはUTF-8で保存してください。") from e


def parse_reference_urls(value) -> tuple:
    """改行・カンマ区切りの文字列 (またはリスト) を検証済みの URL タプルにする。"""
    if isinstance(value, str):
        candidates = re.split(r"[\n,]", value)
    else:
        candidates = list(value or [])

    urls = []
    for u in candidates:
        u = (u or "").strip()
        if not u:
            continue
        if not (u.startswith("http://") or u.startswith("https://")):
            raise InputValidationError(f"URLは http:// または https:// で始まる必要があります: {u}")
        if u in urls:
            continue
        urls.append(u)

    if len(urls) > config.MAX_REFERENCE_URLS:
        raise InputValidationError(f"参照URLは最大{config.MAX_REFERENCE_URLS}個まで入力できます。")
    return tuple(urls)


# ------------------------------------------------------------
# Form -> CheckRequest
# ------------------------------------------------------------
def build_check_request(form, files) -> CheckRequest:
    source = (form.get("ad_text_source") or "direct").strip().lower()

    ad_text_direct = ""
    ad_text_csv = None
    if source == "csv":
        ad_text_csv = read_csv_upload(files.get("ad_text_csv"))
    else:
        ad_text_direct = normalize_text(form.get("ad_text_direct") or "")

    url_values = form.getlist("reference_urls")
    request = CheckRequest(
        ad_text_direct=ad_text_direct,
        ad_text_csv=ad_text_csv or None,
        ad_text_images=collect_images(
            files.getlist("ad_text_images"), "広告テキスト画像", config.MAX_AD_TEXT_IMAGES
        ),
        ad_creative_images=collect_images(
            files.getlist("ad_creative_images"), "広告クリエイティブ画像", config.MAX_AD_CREATIVE_IMAGES
        ),
        reference_urls=parse_reference_urls(url_values[0] if len(url_values) == 1 else url_values),
        client_shared_info=normalize_text(form.get("client_shared_info") or ""),
    )
    return request
