# -*- coding: utf-8 -*-
"""
Text extraction over the model's semi-structured answers.

Both stages answer in prose with fenced marker lines. The marker grammar below
has to stay byte-identical to what prompts.py asks the model to emit. A missing
marker never raises; the field degrades to a fixed placeholder so later steps
can still run.
"""
import re

from .models import NGExtraction, NGItem, Stage1Result, Stage2Result, VerificationQuestion

# ------------------------------------------------------------
# Sentinels
# ------------------------------------------------------------
CSV_PARSE_FAILED = "システムからのCSVテキスト部分の解析に失敗しました。"
OCR_PARSE_FAILED = "システムからのOCRテキスト部分の解析に失敗しました。"
OCR_NO_IMAGE = "OCR対象の画像はありませんでした。"
URLS_NOT_DETECTED = "URLは検出されませんでした、または解析に失敗しました。"
CLIENT_INFO_NOT_DETECTED = "クライアント共有情報は検出されませんでした、または解析に失敗しました。"
STEP3_PARSE_FAILED = "システムからのステップ3結果の解析に失敗しました。"
STEP4_PARSE_FAILED = "システムからのステップ4最終レポートの解析に失敗しました。"

VERIFICATION_QUESTION_MARK = "何と記載されていますか？"
COMPLETION_BANNER = "🎉 Zeals 会話型広告 Wチェック完了"
NG_MARK = "NG❌"
OK_MARK = "OK✅"

# ------------------------------------------------------------
# Marker grammar
# ------------------------------------------------------------
CSV_BLOCK_RE = re.compile(r"===== CSV_TEXT_START =====\s*(.*?)\s*===== CSV_TEXT_END =====", re.S)
OCR_BLOCK_RE = re.compile(r"===== OCR_TEXT_START =====\s*(.*?)\s*===== OCR_TEXT_END =====", re.S)
DETECTED_URLS_RE = re.compile(r"🔗 検出されたURL:\s*(.*?)(?=\n\n📝|\n✅ STEP1 完了)", re.S)
DETECTED_CLIENT_INFO_RE = re.compile(r"📝 検出されたクライアント共有情報:\s*(.*?)(?=\n✅ STEP1 完了)", re.S)
OCR_UNCERTAIN_RE = re.compile(
    r"⚠️ OCR確認が必要な場合:\s*(.*?)(?=\n\n正確な文字をお教えいただければ|\n✅ STEP2 完了|\n--- 内部統合処理)",
    re.S,
)
FACT_BASE_RE = re.compile(r"===== CLIENT_SHARED_INFO_SUMMARY =====\s*(.*?)\s*===== FACT_BASE_END =====", re.S)
FINAL_REPORT_RE = re.compile(r"## 1\. 認識した広告内容\s*(.*?)(?=" + re.escape(COMPLETION_BANNER) + r"|\Z)", re.S)
NG_SECTION_RE = re.compile(r"## 2\.\s*【最重要】修正が必要な項目\s*(.*?)(?=## 3\.|🎉|\Z)", re.S)

RECHECK_BANNER_TEMPLATE = (
    "## ユーザーフィードバックに基づく再チェック\n\n"
    "以下のフィードバックを考慮して再評価を行いました：\n"
    "```\n{feedback}\n```\n\n"
    "--- 再チェック結果 ---\n\n"
)


# ------------------------------------------------------------
# Stage 1
# ------------------------------------------------------------
def parse_stage1(raw_text: str, is_csv_input: bool, has_direct_text: bool) -> Stage1Result:
    raw_text = raw_text or ""

    m = CSV_BLOCK_RE.search(raw_text)
    csv_text = m.group(1).strip() if m else CSV_PARSE_FAILED

    detected_urls = None
    detected_client_info = None
    if has_direct_text and not is_csv_input:
        m = DETECTED_URLS_RE.search(raw_text)
        detected_urls = m.group(1).strip() if m else URLS_NOT_DETECTED
        m = DETECTED_CLIENT_INFO_RE.search(raw_text)
        detected_client_info = m.group(1).strip() if m else CLIENT_INFO_NOT_DETECTED

    # "no image" is a valid answer when nothing was attached, kept as-is
    m = OCR_BLOCK_RE.search(raw_text)
    raw_ocr = m.group(1).strip() if m else OCR_PARSE_FAILED

    questions = ()
    m = OCR_UNCERTAIN_RE.search(raw_text)
    if (
        m
        and VERIFICATION_QUESTION_MARK in m.group(1)
        and raw_ocr not in (OCR_PARSE_FAILED, OCR_NO_IMAGE)
    ):
        lines = [line for line in m.group(1).strip().split("\n") if VERIFICATION_QUESTION_MARK in line]
        questions = tuple(VerificationQuestion(id=str(i), question=q) for i, q in enumerate(lines))

    return Stage1Result(
        csv_text=csv_text,
        detected_urls=detected_urls,
        detected_client_info=detected_client_info,
        raw_ocr_text=raw_ocr,
        corrected_ocr_text=raw_ocr,
        needs_verification=bool(questions),
        verification_questions=questions,
    )


# ------------------------------------------------------------
# Consolidation
# ------------------------------------------------------------
def has_actual_text(value, *markers) -> bool:
    return bool(value and value.strip() and value not in markers)


def consolidate_ad_text(csv_text, ocr_text) -> str:
    """CSV lines then OCR lines, trimmed, blank-free, first occurrence wins."""
    lines = []
    if has_actual_text(csv_text, CSV_PARSE_FAILED):
        lines.extend(csv_text.split("\n"))
    if has_actual_text(ocr_text, OCR_PARSE_FAILED, OCR_NO_IMAGE):
        lines.extend(ocr_text.split("\n"))

    seen = set()
    unique = []
    for line in lines:
        line = line.strip()
        if line and line not in seen:
            seen.add(line)
            unique.append(line)
    return "\n".join(unique)


# ------------------------------------------------------------
# Stage 2
# ------------------------------------------------------------
def recheck_banner(feedback: str) -> str:
    return RECHECK_BANNER_TEMPLATE.format(feedback=feedback.strip())


def parse_stage2(raw_text: str, citations=(), recheck_prompt: str = None) -> Stage2Result:
    raw_text = raw_text or ""

    m = FACT_BASE_RE.search(raw_text)
    fact_base = m.group(0).strip() if m else STEP3_PARSE_FAILED

    m = FINAL_REPORT_RE.search(raw_text)
    report = m.group(0).strip() if m else STEP4_PARSE_FAILED

    if recheck_prompt and recheck_prompt.strip():
        report = recheck_banner(recheck_prompt) + report

    return Stage2Result(
        fact_base=fact_base,
        final_report=report,
        grounding_citations=tuple(citations or ()),
    )


# ------------------------------------------------------------
# NG rows in the final report
# ------------------------------------------------------------
def _split_row(line: str) -> list:
    return [c.strip() for c in line.split("|") if c.strip() != ""]


def extract_ng_items(report_markdown: str) -> NGExtraction:
    """
    「## 2. 【最重要】修正が必要な項目」 の表から NG❌ 行を抜き出す。
    カテゴリは直前の「### 」見出し。判定列の前が項目名、後ろ2列が指摘事項・修正提案。
    """
    result = NGExtraction()
    m = NG_SECTION_RE.search(report_markdown or "")
    if not m:
        return result

    category = ""
    for line in m.group(1).split("\n"):
        if line.startswith("### "):
            category = line[4:].strip()
            continue
        if "|" not in line or NG_MARK not in line:
            continue

        cells = _split_row(line)
        if len(cells) < 4:
            continue
        if any(h in cells[0] for h in ("項目名", "チェック項目", "No.")):
            continue

        idx = next((i for i, c in enumerate(cells) if NG_MARK in c or OK_MARK in c), -1)
        if idx == -1 or NG_MARK not in cells[idx]:
            continue

        def cell(i):
            return cells[i] if 0 <= i < len(cells) else ""

        result.items.append(NGItem(
            category=category or "その他",
            item_name=cell(idx - 1) if idx > 0 else cell(0),
            status=cells[idx],
            issue=cell(idx + 1),
            suggestion=cell(idx + 2),
        ))
    return result
