from __future__ import annotations

from ad_legalcheck.extraction import (
    CLIENT_INFO_NOT_DETECTED,
    CSV_PARSE_FAILED,
    OCR_NO_IMAGE,
    OCR_PARSE_FAILED,
    STEP3_PARSE_FAILED,
    STEP4_PARSE_FAILED,
    URLS_NOT_DETECTED,
    consolidate_ad_text,
    extract_ng_items,
    has_actual_text,
    parse_stage1,
    parse_stage2,
)
from ad_legalcheck.models import WebSource

from conftest import STAGE1_DIRECT_NO_IMAGE, STAGE1_NEEDS_VERIFICATION, STAGE2_REPORT


# ------------------------------------------------------------
# Stage 1
# ------------------------------------------------------------
def test_stage1_direct_text_no_image() -> None:
    r = parse_stage1(STAGE1_DIRECT_NO_IMAGE, is_csv_input=False, has_direct_text=True)
    assert r.csv_text == "商品Aは効果抜群！"
    assert r.detected_urls == "https://example.com/a"
    assert r.detected_client_info == "初回限定価格は1,980円"
    assert r.raw_ocr_text == OCR_NO_IMAGE
    assert r.corrected_ocr_text == OCR_NO_IMAGE
    assert r.needs_verification is False
    assert r.verification_questions == ()


def test_stage1_interior_is_trimmed() -> None:
    raw = "===== CSV_TEXT_START =====   \n\n  行1\n行2 \n\t===== CSV_TEXT_END =====\n" \
          "===== OCR_TEXT_START =====\n\n  OCR本文  \n\n===== OCR_TEXT_END ====="
    r = parse_stage1(raw, is_csv_input=True, has_direct_text=False)
    assert r.csv_text == "行1\n行2"
    assert r.raw_ocr_text == "OCR本文"


def test_stage1_csv_input_has_no_detected_sections() -> None:
    r = parse_stage1(STAGE1_DIRECT_NO_IMAGE, is_csv_input=True, has_direct_text=True)
    assert r.detected_urls is None
    assert r.detected_client_info is None


def test_stage1_missing_markers_degrade_to_sentinels() -> None:
    r = parse_stage1("モデルが形式を守りませんでした。", is_csv_input=False, has_direct_text=True)
    assert r.csv_text == CSV_PARSE_FAILED
    assert r.raw_ocr_text == OCR_PARSE_FAILED
    assert r.detected_urls == URLS_NOT_DETECTED
    assert r.detected_client_info == CLIENT_INFO_NOT_DETECTED
    assert r.needs_verification is False


def test_stage1_verification_questions() -> None:
    r = parse_stage1(STAGE1_NEEDS_VERIFICATION, is_csv_input=True, has_direct_text=False)
    assert r.needs_verification is True
    assert [q.id for q in r.verification_questions] == ["0", "1"]
    assert r.verification_questions[0].question == "- 画像1の「5?%」の部分は何と記載されていますか？"
    assert r.verification_questions[1].question == "- 画像2の右下の小さな文字は何と記載されていますか？"


def test_stage1_verification_ignored_when_ocr_failed() -> None:
    raw = STAGE1_NEEDS_VERIFICATION.replace("===== OCR_TEXT_END =====", "")
    r = parse_stage1(raw, is_csv_input=True, has_direct_text=False)
    assert r.raw_ocr_text == OCR_PARSE_FAILED
    assert r.needs_verification is False


def test_stage1_verification_ignored_for_no_image_sentinel() -> None:
    raw = (
        "===== OCR_TEXT_START =====\nOCR対象の画像はありませんでした。\n===== OCR_TEXT_END =====\n"
        "⚠️ OCR確認が必要な場合:\n- 画像1は何と記載されていますか？\n✅ STEP2 完了"
    )
    r = parse_stage1(raw, is_csv_input=False, has_direct_text=False)
    assert r.raw_ocr_text == OCR_NO_IMAGE
    assert r.needs_verification is False


def test_stage1_is_idempotent() -> None:
    a = parse_stage1(STAGE1_NEEDS_VERIFICATION, True, False)
    b = parse_stage1(STAGE1_NEEDS_VERIFICATION, True, False)
    assert a == b


# ------------------------------------------------------------
# Consolidation
# ------------------------------------------------------------
def test_consolidate_order_and_dedupe() -> None:
    assert consolidate_ad_text("A\nB", "B\nC") == "A\nB\nC"


def test_consolidate_trims_and_drops_blanks() -> None:
    assert consolidate_ad_text("  A \n\n B", "\n A\nC  ") == "A\nB\nC"


def test_consolidate_skips_markers() -> None:
    assert consolidate_ad_text(CSV_PARSE_FAILED, "OCRのみ") == "OCRのみ"
    assert consolidate_ad_text("CSVのみ", OCR_NO_IMAGE) == "CSVのみ"
    assert consolidate_ad_text("CSVのみ", OCR_PARSE_FAILED) == "CSVのみ"
    assert consolidate_ad_text(CSV_PARSE_FAILED, OCR_NO_IMAGE) == ""
    assert consolidate_ad_text(None, "   ") == ""


def test_has_actual_text() -> None:
    assert has_actual_text("x")
    assert not has_actual_text(None)
    assert not has_actual_text("  \n")
    assert not has_actual_text(OCR_NO_IMAGE, OCR_PARSE_FAILED, OCR_NO_IMAGE)


# ------------------------------------------------------------
# Stage 2
# ------------------------------------------------------------
def test_stage2_sections() -> None:
    cites = (WebSource(uri="https://example.com/a", title="example"),)
    r = parse_stage2(STAGE2_REPORT, cites)
    assert r.fact_base.startswith("===== CLIENT_SHARED_INFO_SUMMARY =====")
    assert r.fact_base.endswith("===== FACT_BASE_END =====")
    assert "公式サイト: https://example.com/a" in r.fact_base
    assert r.final_report.startswith("## 1. 認識した広告内容")
    assert r.final_report.endswith("- 価格表示")
    assert "🎉" not in r.final_report
    assert r.grounding_citations == cites


def test_stage2_report_runs_to_end_without_banner() -> None:
    raw = STAGE2_REPORT.replace("🎉 Zeals 会話型広告 Wチェック完了\n", "")
    r = parse_stage2(raw)
    assert r.final_report.endswith("- 価格表示")


def test_stage2_missing_fact_base_end() -> None:
    raw = STAGE2_REPORT.replace("===== FACT_BASE_END =====", "")
    r = parse_stage2(raw)
    assert r.fact_base == STEP3_PARSE_FAILED
    assert r.final_report.startswith("## 1. 認識した広告内容")


def test_stage2_missing_report_heading() -> None:
    r = parse_stage2("レポートなし")
    assert r.final_report == STEP4_PARSE_FAILED
    assert r.fact_base == STEP3_PARSE_FAILED


def test_stage2_recheck_banner() -> None:
    r = parse_stage2(STAGE2_REPORT, recheck_prompt="  価格表示は問題ありません  ")
    assert r.final_report.startswith("## ユーザーフィードバックに基づく再チェック\n\n")
    assert "```\n価格表示は問題ありません\n```" in r.final_report
    assert "--- 再チェック結果 ---\n\n## 1. 認識した広告内容" in r.final_report


def test_stage2_blank_recheck_has_no_banner() -> None:
    r = parse_stage2(STAGE2_REPORT, recheck_prompt="   ")
    assert r.final_report.startswith("## 1. 認識した広告内容")


# ------------------------------------------------------------
# NG rows
# ------------------------------------------------------------
def test_extract_ng_items() -> None:
    ex = extract_ng_items(parse_stage2(STAGE2_REPORT).final_report)
    assert ex.has_ng
    assert len(ex.items) == 1
    item = ex.items[0]
    assert item.category == "2-1. 薬機法"
    assert item.item_name == "効能表現"
    assert item.status == "NG❌"
    assert item.issue == "「効果抜群」"
    assert item.suggestion == "「うるおいを与える」"


def test_extract_ng_items_six_columns_without_heading() -> None:
    report = (
        "## 2. 【最重要】修正が必要な項目\n"
        "| カテゴリ | チェック項目 | 判定 | 指摘事項 | 修正提案 | 参照 |\n"
        "| 景表法 | 最上級表現 | NG❌ | 「No.1」 | 根拠を併記 | KB③ |\n"
        "## 3. 問題のない項目\n"
        "| 景表法 | 別項目 | NG❌ | x | y | z |\n"
    )
    ex = extract_ng_items(report)
    assert len(ex.items) == 1
    assert ex.items[0].category == "その他"
    assert ex.items[0].item_name == "最上級表現"
    assert ex.items[0].issue == "「No.1」"
    assert ex.items[0].suggestion == "根拠を併記"


def test_extract_ng_items_no_section() -> None:
    assert not extract_ng_items("## 1. 認識した広告内容\nなし").has_ng
