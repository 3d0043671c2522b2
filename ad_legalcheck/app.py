# -*- coding: utf-8 -*-
"""
AI広告リーガルチェック (Flask)
------------------------------------------------------------
- 入力: 広告テキスト(直接入力 / CSV) / 広告テキスト画像 / クリエイティブ画像 / 参照URL / クライアント共有情報
- ステージ1: 広告テキスト抽出 + OCR (Gemini)
- OCR確認: 不明瞭な箇所がある場合はオペレーターが修正して確定
- ステージ2: 事実情報取得 + チェックリスト評価 + 最終レポート (Gemini + Google検索)
- 再チェック / Wordレポート出力 / NG項目の保存
------------------------------------------------------------
"""
import os
import time
import uuid
import logging
import traceback

from flask import Flask, jsonify, render_template_string, request, send_from_directory

from . import config
from .errors import AdCheckError, StatePreconditionError
from .export import generate_word_report, save_check_result
from .gemini import GeminiClient
from .inputs import build_check_request
from .models import Phase
from .prompts import load_knowledge_base
from .workflow import Workflow

log = logging.getLogger(__name__)

# in-memory session storage (simple)
SESSIONS = {}  # token -> {"workflow": Workflow, "created": ...}


def new_workflow() -> Workflow:
    return Workflow(GeminiClient(), load_knowledge_base())


def prune_sessions(now: float = None) -> int:
    """Drops sessions older than SESSION_TTL_SECONDS; returns how many were removed."""
    now = time.time() if now is None else now
    expired = [t for t, entry in SESSIONS.items() if now - entry["created"] > config.SESSION_TTL_SECONDS]
    for t in expired:
        SESSIONS.pop(t, None)
    if expired:
        log.info("sessions pruned: %d (remaining %d)", len(expired), len(SESSIONS))
    return len(expired)


def get_workflow(token: str) -> Workflow:
    entry = SESSIONS.get(token)
    if not entry:
        raise StatePreconditionError("セッションが見つかりません。新しいチェックを開始してください。")
    return entry["workflow"]


def state_response(token: str, wf: Workflow):
    return jsonify({"token": token, **wf.state.to_dict()})


# ------------------------------------------------------------
# Flask App
# ------------------------------------------------------------
app = Flask(__name__)


@app.errorhandler(AdCheckError)
def handle_ad_check_error(e):
    return jsonify({"error": e.message, **e.to_dict()}), e.http_status


@app.route("/")
def index():
    return render_template_string(INDEX_HTML, max_urls=config.MAX_REFERENCE_URLS,
                                  max_text_images=config.MAX_AD_TEXT_IMAGES,
                                  max_creative_images=config.MAX_AD_CREATIVE_IMAGES)


@app.route("/check", methods=["POST"])
def check():
    prune_sessions()
    try:
        check_request = build_check_request(request.form, request.files)
        wf = new_workflow()
        wf.start_check(check_request)
        token = f"chk_{uuid.uuid4().hex[:16]}"
        SESSIONS[token] = {"workflow": wf, "created": time.time()}
        return state_response(token, wf)

    except AdCheckError:
        raise
    except Exception as e:
        log.exception("check failed")
        return jsonify({"error": f"{str(e)}\n\n{traceback.format_exc()}"}), 500


@app.route("/state/<token>")
def state(token):
    return state_response(token, get_workflow(token))


@app.route("/ocr/<token>", methods=["POST"])
def ocr(token):
    wf = get_workflow(token)
    text = request.form.get("corrected_ocr_text")
    if text is not None:
        wf.edit_ocr_text(text)
    if request.form.get("confirm") == "1":
        wf.confirm_ocr()
    return state_response(token, wf)


@app.route("/proceed/<token>", methods=["POST"])
def proceed(token):
    wf = get_workflow(token)
    wf.proceed_to_final_processing()
    return state_response(token, wf)


@app.route("/recheck/<token>", methods=["POST"])
def recheck(token):
    wf = get_workflow(token)
    # 空欄の場合は保存済みのプロンプトを使う
    wf.recheck_current_report(request.form.get("recheck_prompt") or None)
    return state_response(token, wf)


@app.route("/reset/<token>", methods=["POST"])
def reset(token):
    wf = get_workflow(token)
    wf.start_new_check()
    SESSIONS.pop(token, None)
    return jsonify({"ok": True, **wf.state.to_dict()})


@app.route("/export/<token>", methods=["POST"])
def export(token):
    s = get_workflow(token).state
    if s.phase != Phase.COMPLETE:
        raise StatePreconditionError("レポートが完成していません。")
    fname = generate_word_report(
        s.final_ad_text, s.stage2.final_report,
        s.request.ad_text_images, s.request.ad_creative_images,
    )
    return jsonify({"report": fname})


@app.route("/save/<token>", methods=["POST"])
def save(token):
    s = get_workflow(token).state
    if s.phase != Phase.COMPLETE:
        raise StatePreconditionError("レポートが完成していません。")
    result = save_check_result(
        s.stage2.final_report, s.stage2.fact_base, s.final_ad_text,
        s.request.reference_urls, s.request.client_shared_info or None,
    )
    return jsonify(result), (200 if result["success"] else 400)


@app.route("/report/<path:filename>")
def serve_report(filename):
    return send_from_directory(os.path.abspath(config.OUTPUT_DIR), filename, as_attachment=True)


INDEX_HTML = r"""
<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <title>AI広告リーガルチェックツール</title>
    <style>
        .panel { display: none; border: 1px solid #ccc; padding: 8px; margin: 8px 0; }
        .panel.active { display: block; }
        #status.error { color: #c00; }
        pre { white-space: pre-wrap; }
    </style>
</head>
<body>
    <h1>AI広告リーガルチェックツール</h1>

    <form id="check_form">
        <p>
            <label><input type="radio" name="ad_text_source" value="direct" checked /> テキスト直接入力</label>
            <label><input type="radio" name="ad_text_source" value="csv" /> CSV</label>
        </p>
        <p><textarea name="ad_text_direct" rows="6" cols="80" placeholder="広告テキスト、URL、クライアント共有情報をここに入力します。"></textarea></p>
        <p>CSV: <input type="file" name="ad_text_csv" accept=".csv" /></p>
        <p>広告テキスト画像 (最大{{ max_text_images }}枚): <input type="file" name="ad_text_images" multiple accept="image/*" /></p>
        <p>広告クリエイティブ画像 (最大{{ max_creative_images }}枚): <input type="file" name="ad_creative_images" multiple accept="image/*" /></p>
        <p>参照URL (最大{{ max_urls }}個、改行区切り):<br/><textarea name="reference_urls" rows="3" cols="80"></textarea></p>
        <p>クライアント共有情報:<br/><textarea name="client_shared_info" rows="3" cols="80"></textarea></p>
        <button type="submit" id="check_btn">チェック開始</button>
    </form>

    <div id="status"></div>

    <!-- STEP1/2: 抽出結果とOCR確認 -->
    <div id="review_panel" class="panel">
        <h2>STEP1/2 抽出結果</h2>
        <h3>広告テキスト</h3>
        <pre id="step1_csv_text"></pre>
        <h3>検出されたURL</h3>
        <pre id="step1_detected_urls"></pre>
        <h3>検出されたクライアント共有情報</h3>
        <pre id="step1_client_info"></pre>
        <div id="ocr_questions_box" class="panel">
            <h3>⚠️ OCR確認が必要です</h3>
            <ul id="ocr_questions"></ul>
        </div>
        <h3>OCRテキスト (修正できます)</h3>
        <textarea id="corrected_ocr_text" rows="8" cols="80"></textarea>
        <p>
            <button type="button" id="save_ocr_btn" onclick="saveOcr(false)">OCRテキストを更新</button>
            <button type="button" id="confirm_ocr_btn" onclick="saveOcr(true)">OCR内容を確定</button>
            <button type="button" id="proceed_btn" onclick="proceed()">STEP3/4 を実行</button>
        </p>
    </div>

    <!-- STEP3/4: 最終レポート -->
    <div id="report_panel" class="panel">
        <h2>最終レポート</h2>
        <pre id="step4_final_report"></pre>
        <h3>参照ソース</h3>
        <ul id="step3_sources"></ul>
        <h3>再チェック</h3>
        <textarea id="recheck_prompt" rows="3" cols="80" placeholder="AIの判定へのフィードバックを入力します。"></textarea>
        <p>
            <button type="button" id="recheck_btn" onclick="recheck()">再チェック</button>
            <button type="button" id="export_btn" onclick="exportReport()">Wordレポート出力</button>
            <button type="button" id="save_btn" onclick="saveResult()">NG項目を保存</button>
            <a id="report_link" href="#" style="display:none">レポートをダウンロード</a>
        </p>
    </div>

    <p><button type="button" id="reset_btn" onclick="resetCheck()">新しいチェック</button></p>

    <script>
        let token = null;

        function showStatus(cls, msg) {
            const status = document.getElementById("status");
            status.className = cls;
            status.textContent = msg;
        }

        function setText(id, value) {
            document.getElementById(id).textContent = value || "";
        }

        function render(s) {
            const review = ["OCR_VERIFICATION", "REVIEW_STEP1_STEP2"].includes(s.phase);
            document.getElementById("review_panel").classList.toggle("active", review);
            document.getElementById("report_panel").classList.toggle("active", s.phase === "COMPLETE");
            if (s.error) {
                showStatus("error", "エラー: " + s.error);
            } else {
                showStatus("", s.phase || "");
            }

            setText("step1_csv_text", s.step1_csv_text);
            setText("step1_detected_urls", s.step1_detected_urls);
            setText("step1_client_info", s.step1_client_info);
            document.getElementById("corrected_ocr_text").value = s.step2_corrected_ocr_text || "";

            const verifying = s.phase === "OCR_VERIFICATION";
            document.getElementById("ocr_questions_box").classList.toggle("active", verifying);
            document.getElementById("confirm_ocr_btn").disabled = !verifying;
            document.getElementById("proceed_btn").disabled = s.phase !== "REVIEW_STEP1_STEP2";
            const ul = document.getElementById("ocr_questions");
            ul.innerHTML = "";
            (s.step2_verification_items || []).forEach((q) => {
                const li = document.createElement("li");
                li.textContent = q.question;
                ul.appendChild(li);
            });

            setText("step4_final_report", s.step4_final_report);
            const sources = document.getElementById("step3_sources");
            sources.innerHTML = "";
            (s.step3_sources || []).forEach((w) => {
                const li = document.createElement("li");
                const a = document.createElement("a");
                a.href = w.uri;
                a.target = "_blank";
                a.textContent = w.title || w.uri;
                li.appendChild(a);
                sources.appendChild(li);
            });
            if (s.recheck_prompt && !document.getElementById("recheck_prompt").value) {
                document.getElementById("recheck_prompt").value = s.recheck_prompt;
            }
        }

        async function post(path, data) {
            showStatus("", "処理中...");
            const resp = await fetch(path, { method: "POST", body: data || new FormData() });
            const result = await resp.json();
            if (result.error && !result.phase) {
                showStatus("error", "エラー: " + result.error);
                return null;
            }
            return result;
        }

        async function step(path, data) {
            if (!token) { alert("先にチェックを開始してください。"); return; }
            const result = await post(path + token, data);
            if (result) render(result);
        }

        async function saveOcr(confirm) {
            const fd = new FormData();
            fd.append("corrected_ocr_text", document.getElementById("corrected_ocr_text").value);
            if (confirm) fd.append("confirm", "1");
            await step("/ocr/", fd);
        }

        async function proceed() {
            await step("/proceed/");
        }

        async function recheck() {
            const fd = new FormData();
            fd.append("recheck_prompt", document.getElementById("recheck_prompt").value);
            await step("/recheck/", fd);
        }

        async function exportReport() {
            if (!token) return;
            const result = await post("/export/" + token);
            if (!result) return;
            const link = document.getElementById("report_link");
            link.href = "/report/" + encodeURIComponent(result.report);
            link.style.display = "inline";
            showStatus("", "Wordレポートを作成しました。");
        }

        async function saveResult() {
            if (!token) return;
            const resp = await fetch("/save/" + token, { method: "POST" });
            const result = await resp.json();
            if (result.success) {
                showStatus("", "保存しました: " + result.check_id);
            } else {
                showStatus("error", result.error);
            }
        }

        async function resetCheck() {
            if (token) await post("/reset/" + token);
            token = null;
            document.getElementById("check_form").reset();
            document.getElementById("recheck_prompt").value = "";
            document.getElementById("report_link").style.display = "none";
            render({ phase: "INPUT" });
        }

        document.getElementById("check_form").addEventListener("submit", async (e) => {
            e.preventDefault();
            const result = await post("/check", new FormData(e.target));
            if (!result) return;
            token = result.token;
            render(result);
        });
    </script>
</body>
</html>
"""


# ------------------------------------------------------------
# Main
# ------------------------------------------------------------
def main():
    config.configure_logging()
    os.makedirs(config.OUTPUT_DIR, exist_ok=True)
    app.run(host="0.0.0.0", port=config.PORT, debug=False)


if __name__ == "__main__":
    main()
