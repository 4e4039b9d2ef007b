import logging
import traceback
from datetime import datetime

from flask import Flask, Response, jsonify, request
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ai_backends import gemini_api
from ai_client import DirectMode, schema_to_dict
from config import DEFAULT_MODEL, load_settings
from datastore import SupabaseStore
from errors import AiError, DataStoreError, IngestionError
from image_processor import InlineImage
from ingestion import ingest_alert

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["MAX_CONTENT_LENGTH"] = 20 * 1024 * 1024  # 20 MB, inline images included

ERROR_LOG = "last_error.log"

CORS_HEADERS = {
    "Access-Control-Allow-Origin":  "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS",
}


class RelayGenerationConfig(BaseModel):
    responseMimeType: str | None  = None
    responseSchema:   dict | None = None


class RelayRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    model:  str                   = DEFAULT_MODEL
    prompt: str                   = ""
    images: list[InlineImage]     = Field(default_factory=list)
    config: RelayGenerationConfig = Field(default_factory=RelayGenerationConfig)


# ── CORS ──────────────────────────────────────────────────────────────────────

@app.before_request
def answer_preflight():
    if request.method == "OPTIONS":
        return Response("ok", headers=CORS_HEADERS)


@app.after_request
def add_cors_headers(response):
    for key, value in CORS_HEADERS.items():
        response.headers.setdefault(key, value)
    return response


# ── Helpers ───────────────────────────────────────────────────────────────────

def _log_error(context: str, exc: Exception) -> None:
    """Write the last error with timestamp to last_error.log (no payload data)."""
    logger.error("%s: %s", context, exc)
    with open(ERROR_LOG, "w", encoding="utf-8") as f:
        f.write(f"[{datetime.now().isoformat(timespec='seconds')}] {context}\n\n")
        if exc.__traceback__:
            traceback.print_exception(type(exc), exc, exc.__traceback__, file=f)
        else:
            f.write(f"{type(exc).__name__}: {exc}\n")


def _error(message: str, status: int):
    return jsonify({"error": message}), status


def get_store():
    """Data store for the ingestion functions; tests may preset app.config["DATA_STORE"]."""
    store = app.config.get("DATA_STORE")
    if store is None:
        store = SupabaseStore.from_settings(load_settings())
        app.config["DATA_STORE"] = store
    return store


def get_relay_mode() -> DirectMode:
    """Server-side provider access for the relay; built once from GEMINI_API_KEY."""
    mode = app.config.get("RELAY_MODE")
    if mode is None:
        settings = load_settings()
        mode     = DirectMode(settings.gemini_api_key, settings.ai_timeout_seconds)
        app.config["RELAY_MODE"] = mode
    return mode


# ── Routes ────────────────────────────────────────────────────────────────────

@app.route("/health")
def health():
    return jsonify({"status": "ok"})


@app.route("/functions/v1/ai-proxy", methods=["POST", "OPTIONS"])
def ai_proxy():
    mode = get_relay_mode()
    if not mode.available:
        return _error("GEMINI_API_KEY is not set in the server environment.", 500)

    try:
        envelope = RelayRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
        return _error(f"Invalid request: {e.error_count()} error(s) in envelope.", 400)
    if not envelope.prompt.strip() and not envelope.images:
        return _error("A prompt or at least one image is required.", 400)

    try:
        text = gemini_api.call(
            mode.client(),
            envelope.model or DEFAULT_MODEL,
            envelope.prompt,
            envelope.images,
            envelope.config.responseMimeType,
            schema_to_dict(envelope.config.responseSchema),
        )
    except (AiError, ValueError) as e:
        _log_error("function=ai-proxy", e)
        return _error(str(e), 500)

    return jsonify({"text": text})


def _ingest(source: str | None):
    payload = request.get_json(silent=True)
    try:
        ticket = ingest_alert(payload, get_store(), source=source)
    except IngestionError as e:
        return _error(str(e), 400)
    except Exception as e:
        # Covers store and notification failures; an inserted ticket is not rolled back
        _log_error(f"function=ingest source={source}", e)
        return _error(str(e), 500)
    return jsonify({"success": True, "ticketId": ticket["id"]})


@app.route("/functions/v1/ingest-alert", methods=["POST", "OPTIONS"])
def ingest_generic_alert():
    return _ingest(request.args.get("source"))


@app.route("/functions/v1/ingest-sophos-alert", methods=["POST", "OPTIONS"])
def ingest_sophos_alert():
    return _ingest("Sophos")


@app.route("/functions/v1/sync-sophos", methods=["POST", "OPTIONS"])
def sync_sophos():
    try:
        store         = get_store()
        client_id     = store.get_global_setting("sophos_client_id")
        client_secret = store.get_global_setting("sophos_client_secret")
    except DataStoreError as e:
        _log_error("function=sync-sophos", e)
        return _error(str(e), 500)

    if not client_id or not client_secret:
        return _error("Credenciais Sophos não configuradas em Conexões & APIs.", 500)

    logger.info("Sophos sync triggered")
    return jsonify({
        "success": True,
        "message": "Sincronização processada. Alertas novos serão refletidos no inventário.",
    })


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    print("Starting on http://localhost:5000")
    app.run(debug=True, port=5000)
