# -*- coding: utf-8 -*-
"""Word report export and the archive of checks that produced NG rows."""
import os
import re
import json
import uuid
import base64
import logging
from dataclasses import asdict
from datetime import datetime
from io import BytesIO

from docx import Document
from docx.enum.text import WD_BREAK
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.shared import Inches, Pt, RGBColor
from PIL import Image, UnidentifiedImageError

from . import config
from .extraction import extract_ng_items
from .gemini import split_data_url

log = logging.getLogger(__name__)

EXPORT_IMAGE_MAX_PX = 800
NG_COLOR = RGBColor(0xFF, 0x00, 0x00)
HEADER_FILL = "4F46E5"
LABEL_FILL = "EEEEEE"

DISCLAIMER = (
    "※本レポートはAIによる一次スクリーニング結果です。AIは厳しめに判定を行う傾向があります。"
    "最終的な掲載可否は、以下の法務担当者による判断を優先してください。"
)

SIGN_OFF_ROWS = [
    ("AI判定へのコメント\n(AIが厳しすぎる、誤判定である等のフィードバック)", "\n\n\n"),
    ("修正指示事項\n(具体的に修正すべき文言等)", "\n\n\n"),
    ("最終法務判定", "□ 承認 (修正なし)   □ 条件付き承認 (要修正)   □ 否認 (掲載不可)"),
    ("確認者 / 確認日", "氏名: ____________________   日付: ______年___月___日"),
]


# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _shade(cell, fill: str):
    tc_pr = cell._tc.get_or_add_tcPr()
    shd = OxmlElement("w:shd")
    shd.set(qn("w:val"), "clear")
    shd.set(qn("w:color"), "auto")
    shd.set(qn("w:fill"), fill)
    tc_pr.append(shd)


def _cell_text(cell, text: str, bold=False, color=None):
    p = cell.paragraphs[0]
    run = p.add_run(text)
    run.bold = bold
    if color is not None:
        run.font.color.rgb = color
    return run


def _add_inline_markdown(paragraph, text: str):
    # **bold** だけ解釈する
    for i, chunk in enumerate(re.split(r"\*\*(.+?)\*\*", text)):
        if chunk:
            paragraph.add_run(chunk).bold = (i % 2 == 1)


def resize_for_export(data_url: str, max_px: int = EXPORT_IMAGE_MAX_PX):
    """data URL -> PNG bytes (長辺 max_px 以下)。読めなければ None。"""
    part = split_data_url(data_url)
    if part is None:
        return None
    try:
        img = Image.open(BytesIO(base64.b64decode(part[1])))
        img.thumbnail((max_px, max_px))
        if img.mode not in ("RGB", "RGBA"):
            img = img.convert("RGBA")
        buf = BytesIO()
        img.save(buf, format="PNG")
        return buf.getvalue()
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log.warning("export: image skipped (%s)", e)
        return None


def is_ng_cell(text: str) -> bool:
    return "NG" in text or "❌" in text


def _split_table_row(line: str) -> list:
    return [c.strip() for c in line.strip().split("|")[1:-1]]


# ------------------------------------------------------------
# Markdown -> docx
# ------------------------------------------------------------
def _flush_table(doc, rows: list):
    rows = [r for r in rows if r.strip().startswith("|")]
    if len(rows) < 3:
        for r in rows:
            doc.add_paragraph(r)
        return

    header = _split_table_row(rows[0])
    body = [_split_table_row(r) for r in rows[2:]]
    ncols = max([len(header)] + [len(r) for r in body])

    table = doc.add_table(rows=1, cols=ncols)
    table.style = "Table Grid"
    for i, text in enumerate(header):
        cell = table.rows[0].cells[i]
        _cell_text(cell, text, bold=True, color=RGBColor(0xFF, 0xFF, 0xFF))
        _shade(cell, HEADER_FILL)

    for cells in body:
        row = table.add_row()
        for i, text in enumerate(cells):
            ng = is_ng_cell(text)
            _cell_text(row.cells[i], text, bold=ng, color=NG_COLOR if ng else None)
    doc.add_paragraph("")


def render_report_markdown(doc, markdown: str):
    table_buf = []
    for raw in (markdown or "").split("\n"):
        line = raw.strip()
        if line.startswith("|"):
            table_buf.append(line)
            continue
        if table_buf:
            _flush_table(doc, table_buf)
            table_buf = []

        if line.startswith("### "):
            doc.add_heading(line[4:].strip(), level=3)
        elif line.startswith("## "):
            doc.add_heading(line[3:].strip(), level=2)
        elif line.startswith("- ") or line.startswith("* "):
            _add_inline_markdown(doc.add_paragraph(style="List Bullet"), line[2:])
        elif line and not line.startswith("```") and not line.startswith("====="):
            _add_inline_markdown(doc.add_paragraph(), line)
    if table_buf:
        _flush_table(doc, table_buf)


def build_word_report(ad_text: str, report_markdown: str, ad_text_images=(), ad_creative_images=()):
    doc = Document()
    style = doc.styles["Normal"]
    style.font.size = Pt(10.5)

    doc.add_heading("AI広告リーガルチェックレポート", level=0)
    p = doc.add_paragraph()
    run = p.add_run(f"作成日: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    run.italic = True
    run.font.color.rgb = RGBColor(0x66, 0x66, 0x66)

    # 1. 審査対象
    doc.add_heading("1. 審査対象広告内容", level=1)
    doc.add_paragraph().add_run("【広告テキスト】").bold = True
    doc.add_paragraph(ad_text or "")

    for title, images in (("広告テキスト画像", ad_text_images), ("広告クリエイティブ画像", ad_creative_images)):
        if not images:
            continue
        doc.add_paragraph().add_run(f"【{title}】").bold = True
        for data_url in images:
            png = resize_for_export(data_url)
            if png:
                doc.add_picture(BytesIO(png), width=Inches(4))

    # 2. レポート本文
    doc.add_heading("2. AI審査レポート", level=1)
    render_report_markdown(doc, report_markdown)

    # 3. 法務確認欄
    doc.add_paragraph().add_run().add_break(WD_BREAK.PAGE)
    doc.add_heading("3. 法務確認・判定欄", level=1)
    doc.add_paragraph().add_run(DISCLAIMER).italic = True

    table = doc.add_table(rows=0, cols=2)
    table.style = "Table Grid"
    for label, value in SIGN_OFF_ROWS:
        row = table.add_row()
        _cell_text(row.cells[0], label, bold=True)
        _shade(row.cells[0], LABEL_FILL)
        row.cells[1].paragraphs[0].add_run(value)
    return doc


def generate_word_report(ad_text, report_markdown, ad_text_images=(), ad_creative_images=(),
                         output_dir: str = None) -> str:
    """Writes the .docx into the outputs dir and returns the file name."""
    output_dir = output_dir or config.OUTPUT_DIR
    os.makedirs(output_dir, exist_ok=True)

    doc = build_word_report(ad_text, report_markdown, ad_text_images, ad_creative_images)
    fname = f"ad_check_report_{datetime.now().strftime('%Y%m%d_%H%M%S')}_{uuid.uuid4().hex[:6]}.docx"
    doc.save(os.path.join(output_dir, fname))
    log.info("word report written: %s", fname)
    return fname


# ------------------------------------------------------------
# Result archive
# ------------------------------------------------------------
def save_check_result(final_report: str, fact_base, ad_text: str, reference_urls=(),
                      client_shared_info=None, output_dir: str = None) -> dict:
    """NG行がある場合だけ JSON として保存する。"""
    extraction = extract_ng_items(final_report)
    if not extraction.has_ng:
        return {
            "success": False,
            "error": "NG項目が見つかりませんでした。NG項目がある場合のみ保存されます。",
        }

    output_dir = output_dir or config.OUTPUT_DIR
    os.makedirs(output_dir, exist_ok=True)

    check_id = uuid.uuid4().hex
    record = {
        "id": check_id,
        "ad_text": ad_text,
        "final_report": final_report,
        "step3_fact_base": fact_base,
        "reference_urls": ",".join(reference_urls or ()),
        "client_shared_info": client_shared_info,
        "ng_items": [asdict(i) for i in extraction.items],
        "has_ng": True,
        "created_at": datetime.now().isoformat(),
    }
    path = os.path.join(output_dir, f"check_{check_id}.json")
    try:
        with open(path, "w", encoding="utf-8") as f:
            json.dump(record, f, ensure_ascii=False, indent=2)
    except OSError as e:
        log.error("save failed: %s", e)
        return {"success": False, "error": f"データの保存に失敗しました: {e}"}

    log.info("check result saved id=%s ng=%d", check_id, len(extraction.items))
    return {"success": True, "check_id": check_id}
