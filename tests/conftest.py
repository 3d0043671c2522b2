from __future__ import annotations

import base64
from io import BytesIO

import pytest
from PIL import Image

from ad_legalcheck.models import GenerateResult, WebSource
from ad_legalcheck.prompts import load_knowledge_base


STAGE1_DIRECT_NO_IMAGE = """STEP1: 広告テキストを抽出しました。

===== CSV_TEXT_START =====
商品Aは効果抜群！
===== CSV_TEXT_END =====

🔗 検出されたURL:
https://example.com/a

📝 検出されたクライアント共有情報:
初回限定価格は1,980円
✅ STEP1 完了

===== OCR_TEXT_START =====
OCR対象の画像はありませんでした。
===== OCR_TEXT_END =====

⚠️ OCR確認が必要な場合:
なし
✅ STEP2 完了
"""

STAGE1_NEEDS_VERIFICATION = """===== CSV_TEXT_START =====
今だけ50%OFF
送料無料
===== CSV_TEXT_END =====

===== OCR_TEXT_START =====
今だけ5?%OFF
期間限定キャンペーン
===== OCR_TEXT_END =====

OCR品質チェック結果: 一部不明瞭

⚠️ OCR確認が必要な場合:
- 画像1の「5?%」の部分は何と記載されていますか？
- 画像2の右下の小さな文字は何と記載されていますか？

正確な文字をお教えいただければ、内容を修正して次に進みます。
✅ STEP2 完了
"""

STAGE2_REPORT = """ステップ3を実行します。

===== CLIENT_SHARED_INFO_SUMMARY =====
初回限定価格は1,980円
公式サイト: https://example.com/a
===== FACT_BASE_END =====

## 1. 認識した広告内容
商品Aは効果抜群！

## 2. 【最重要】修正が必要な項目
### 2-1. 薬機法
| 項目名 | 判定 | 指摘事項 | 修正提案 |
|---|---|---|---|
| 効能表現 | NG❌ | 「効果抜群」 | 「うるおいを与える」 |
| 価格表示 | OK✅ | なし | なし |

## 3. 問題のない項目
- 価格表示

🎉 Zeals 会話型広告 Wチェック完了
"""


class FakeClient:
    """Stands in for GeminiClient; replays queued answers and records calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def generate(self, prompt, attachments=(), tools=None, model=None, prompt_first=True):
        self.calls.append({
            "prompt": prompt,
            "attachments": list(attachments),
            "tools": tools,
            "model": model,
            "prompt_first": prompt_first,
        })
        r = self.responses.pop(0)
        if isinstance(r, Exception):
            raise r
        if isinstance(r, GenerateResult):
            return r
        return GenerateResult(text=r)


@pytest.fixture
def kb():
    return load_knowledge_base()


@pytest.fixture
def stage2_result():
    return GenerateResult(
        text=STAGE2_REPORT,
        citations=(WebSource(uri="https://example.com/a", title="example.com"),),
    )


def png_bytes(size=(40, 20), color=(255, 0, 0)) -> bytes:
    buf = BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    return buf.getvalue()


def png_data_url(size=(40, 20)) -> str:
    return "data:image/png;base64," + base64.b64encode(png_bytes(size)).decode("ascii")
