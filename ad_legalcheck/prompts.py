# -*- coding: utf-8 -*-
"""Prompt assembly for the two model stages.

Knowledge-base texts are plain files under KNOWLEDGE_DIR and are passed through
untouched. Only the instructions around them are built here.
"""
import os
from dataclasses import dataclass

from . import config
from .extraction import OCR_NO_IMAGE
from .models import CheckRequest

KNOWLEDGE_FILES = {
    "system_prompt": "system_prompt.md",
    "kb1": "kb1_required_output.md",
    "kb2": "kb2_line_guidelines.md",
    "kb3": "kb3_basic_ad_rules.md",
    "kb4": "kb4_financial_loan_rules.md",
    "kb5": "kb5_cosmetics_rules.md",
    "kb6": "kb6_medical_rules.md",
}

KB4_SCOPE_NOTE = (
    "**※上記のナレッジベース④は、広告対象が「金融業界（特にローン・貸金・カードローンなど）」である場合のみ適用してください。"
    "それ以外の業界の場合は、このナレッジベース④は完全に無視してください。**"
)
KB5_SCOPE_NOTE = (
    "**※上記のナレッジベース⑤は、広告対象が「化粧品」「健康食品」「美容関連」など、薬機法（旧薬事法）や景品表示法の対象となる商材の場合のみ適用してください。"
    "それ以外の業界の場合は、このナレッジベース⑤は完全に無視してください。**"
)
KB6_SCOPE_NOTE = (
    "**※上記のナレッジベース⑥は、広告対象が「医療機関」「クリニック」「歯科」「美容外科」など、医療法・医療広告ガイドラインの対象となる商材の場合のみ適用してください。"
    "それ以外の業界の場合は、このナレッジベース⑥は完全に無視してください。**"
)

STOP_INSTRUCTION = (
    "重要: ステップ2のOCR出力（ユーザー確認プロンプトがある場合はそれを含む）の最後までを実行し、その後停止してください。"
    "内部統合処理やステップ3にはまだ進まないでください。"
)


@dataclass(frozen=True)
class KnowledgeBase:
    system_prompt: str
    kb1: str
    kb2: str
    kb3: str
    kb4: str
    kb5: str
    kb6: str


def load_knowledge_base(directory: str = None) -> KnowledgeBase:
    directory = directory or config.KNOWLEDGE_DIR
    texts = {}
    for key, filename in KNOWLEDGE_FILES.items():
        path = os.path.join(directory, filename)
        with open(path, "r", encoding="utf-8") as f:
            texts[key] = f.read().strip()
    return KnowledgeBase(**texts)


# ------------------------------------------------------------
# Stage 1
# ------------------------------------------------------------
def build_stage1_prompt(system_prompt: str, request: CheckRequest) -> str:
    if request.is_csv_input:
        input_part = (
            "ユーザーは広告テキストとしてCSVファイルを提供しました。内容は以下の通りです:\n"
            f"```csv\n{request.ad_text_csv}\n```\n"
            "このCSVを解析し、「===== CSV_TEXT_START =====」ブロックを生成してください。"
        )
    elif request.has_direct_text:
        input_part = (
            "ユーザーは広告テキスト、URL、および可能性としてクライアント共有情報を含む以下のテキストを直接入力しました:\n"
            f"```\n{request.ad_text_direct}\n```\n"
            "このテキストを処理し、「===== CSV_TEXT_START =====」ブロックを生成し、検出されたURLとクライアント情報をリストアップしてください。"
        )
    else:
        input_part = (
            "ユーザーはCSVファイルもテキスト直接入力も行いませんでした。"
            "広告テキスト画像が提供されている場合は、それらが主要なテキストソースとなる可能性があります。"
            "「===== CSV_TEXT_START =====」ブロックは空または広告テキスト画像の内容に基づいて適切に処理してください。"
        )

    if request.has_images:
        lines = ["", "ユーザーは以下の画像を提供しました:"]
        if request.ad_text_images:
            lines.append(f"- 広告テキストのスクリーンショットとして {len(request.ad_text_images)} 枚の画像。")
        if request.ad_creative_images:
            lines.append(f"- 広告クリエイティブとして {len(request.ad_creative_images)} 枚の画像。")
        lines += [
            "これらのすべての画像に対してOCRを実行してください。",
            "認識されたすべてのテキストを、画像間の区切りや「画像N:」のような接頭辞を一切含めずに、単一の連続したテキストブロックとして結合してください。",
            "この結合されたOCR結果のみを「===== OCR_TEXT_START =====」と「===== OCR_TEXT_END =====」の間に配置してください。",
            "例:",
            "広告テキスト画像1の内容が「こんにちは」、広告クリエイティブ画像1の内容が「世界」の場合、出力は以下のようになります:",
            "```\n===== OCR_TEXT_START =====\nこんにちは\n世界\n===== OCR_TEXT_END =====\n```",
            "",
            "通常通り、OCR品質チェック結果と、ユーザー確認が必要な場合の「⚠️ OCR確認が必要な場合」セクション（具体的な質問を含む）も、"
            "この結合されたテキスト全体に基づいて生成してください。",
        ]
        input_part += "\n\nOCR処理について:\n" + "\n".join(lines)
    else:
        input_part += (
            "\n\nOCR処理について: OCR対象の画像は提供されませんでした。"
            f"「OCR_TEXT_START」ブロックには「{OCR_NO_IMAGE}」のように記述してください。"
            "「OCR品質チェック結果」および「⚠️ OCR確認が必要な場合」のセクションも適切に処理してください。"
        )

    return f"{system_prompt}\n\n処理指示:\n{input_part}\n\n\n{STOP_INSTRUCTION}"


# ------------------------------------------------------------
# Stage 2
# ------------------------------------------------------------
def build_stage2_context(final_ad_text: str, reference_urls, client_shared_info: str,
                         recheck_prompt: str = None) -> str:
    urls = ",".join(reference_urls) if reference_urls else ""
    msg = f"""
あなたは既にステップ1とステップ2のOCR部分を完了しています。
テキストデータとして認識している `ad_text` (CSV/直接入力と確認済みOCRから結合されたもの) は以下の通りです:
```
{final_ad_text}
```

ユーザーから提供された参照URLは: {urls or '提供なし'}
ユーザーから提供されたクライアント共有情報は: {client_shared_info or '提供なし'}
"""

    if recheck_prompt:
        msg += f"""
--------------------------------------------------
**重要: 再チェック指示**

以前の分析（ステップ3およびステップ4）は完全に破棄してください。
ユーザーから以下の追加の入力/フィードバックが提供されました。この新しい情報を最優先し、これに基づいて**完全に新しい**ステップ3（事実情報取得）とステップ4（チェックリスト評価＆最終レポート）を生成してください。

ユーザーフィードバック:
「{recheck_prompt}」

この新しいフィードバックと、上記の変更されていない `finalAdText`、参照URL、クライアント共有情報、および提供されたナレッジベース（①〜⑥）を使用して、評価をゼロからやり直してください。
以前のレポート内容に影響されない、完全に独立した新しい分析結果を期待しています。
--------------------------------------------------
"""

    msg += """

**特に「KNOWLEDGE_BASE_2_LINE_GUIDELINES」（LINE広告審査ガイドライン）のチェックに関して、以下の指示を厳守してください:**
- ガイドライン内のNG例は、あくまで「このような表記がNGである」というルールの説明です。これらがユーザーの `ad_text` 内に存在すると早合点しないでください。
- **ユーザー提供の `ad_text` 内に、ガイドライン違反の具体的な文言が実際に存在する場合にのみ、「NG」として指摘してください。**
- **NGと判断した場合、必ず「指摘事項」の列に、`ad_text` から問題のある箇所を正確に引用してください。`ad_text` 内に該当する具体的な文言が見つからない場合は、その項目はNGとして指摘しないでください。**
- 提供された `ad_text` の内容を注意深く確認し、実際に書かれていることのみを評価対象としてください。

これから、以下の処理を続行してください:
1. まだ `ad_text` を完全に統合済みとして扱っていない場合は、ステップ2の「--- 内部統合処理（確認後実行）---」部分を実行してください。上記で提供された `ad_text` はこの統合の結果です。
2. 次に、この `ad_text` と提供された参照URLおよびクライアント共有情報を使用して、ステップ3（事実情報取得）を実行してください。
   **【重要】** 参照URLにはあなたのウェブブラウジング能力（Google検索経由）を活用してください。`referenceUrls` で指定されたURLの内容を検索ツールを使ってアクセス・分析し、その結果を事実確認の根拠としてください。
3. 最後に、ステップ3で得られた事実情報データベースと `ad_text` を使用して、ステップ4（チェックリスト評価＆最終レポート）を実行してください。このステップでは、ナレッジベース（①、②、③）を厳密に使用してください。
4. **【画像ダイレクトチェック】** 添付された画像がある場合、テキストOCRの結果だけでなく**画像そのものを視覚的に分析**し、デザイン上の問題点（視認性、誤認させる配置など）や、テキストには含まれないが画像に含まれる文言のリーガルチェックも行ってください。
5. **広告内容が金融・ローン業界に該当すると判断した場合に限り、ナレッジベース④を適用してください。**
6. **広告内容が「化粧品」「健康食品」「美容関連」「医薬部外品」など、薬機法や景品表示法の対象となる商材の場合に限り、ナレッジベース⑤を適用してください。**
7. **広告内容が「医療」「クリニック」「歯科」「病院」「美容外科」などの案件の場合に限り、ナレッジベース⑥を適用してください。**

元のシステムプロンプトで指定された通り、ステップ3の結果とステップ4の完全な最終レポートを出力してください。
"""
    return msg


def build_stage2_prompt(kb: KnowledgeBase, final_ad_text: str, reference_urls,
                        client_shared_info: str, recheck_prompt: str = None) -> str:
    context = build_stage2_context(final_ad_text, reference_urls, client_shared_info, recheck_prompt)
    return "\n\n".join([
        kb.system_prompt,
        kb.kb1,
        kb.kb2,
        kb.kb3,
        f"{kb.kb4}\n{KB4_SCOPE_NOTE}",
        f"{kb.kb5}\n{KB5_SCOPE_NOTE}",
        f"{kb.kb6}\n{KB6_SCOPE_NOTE}",
        context,
    ])
