"""
Handler: Security Alert Parsing
Turns an arbitrary SIEM / EDR / antivirus alert payload into a ticket draft.
Advisory: on any failure the draft is a "Parse Failed" stub carrying the raw input.
"""
import json
import logging

from pydantic import BaseModel

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from errors import AiError
from handlers.common import Criticality, cap_text

logger = logging.getLogger(__name__)

MAX_ALERT_CHARS = 20_000


class ParsedAlert(BaseModel):
    title:         str
    description:   str
    severity:      Criticality = "Média"
    affectedAsset: str | None  = None
    incidentType:  str         = "Desconhecido"
    sourceSystem:  str         = "Desconhecido"


def _as_text(raw) -> str:
    if isinstance(raw, str):
        return raw
    return json.dumps(raw, ensure_ascii=False, default=str)


def _build_prompt(raw_text: str) -> str:
    return (
        "You are a SOC analyst. Parse the following security alert payload, which may come "
        "from any SIEM, EDR or antivirus product:\n\n"
        f"{cap_text(raw_text, MAX_ALERT_CHARS)}\n\n"
        "Return a JSON object with:\n"
        "- title: short ticket title in Portuguese (Portugal)\n"
        "- description: what happened, where and what was done, in Portuguese (Portugal)\n"
        "- severity: one of \"Baixa\", \"Média\", \"Alta\", \"Crítica\"\n"
        "- affectedAsset: hostname, IP or serial number of the affected machine (null if absent)\n"
        "- incidentType: e.g. \"Malware\", \"Phishing\", \"Ransomware\", \"Acesso Não Autorizado\"\n"
        "- sourceSystem: product that raised the alert (e.g. \"Sophos\", \"Defender\")"
    )


def parse_failed(raw) -> ParsedAlert:
    return ParsedAlert(title="Parse Failed", description=_as_text(raw))


def parse_security_alert(raw, dispatcher=None, model: str | None = None) -> ParsedAlert:
    """*raw* may be the payload text or an already-decoded JSON value."""
    dispatcher = resolve_dispatcher(dispatcher)
    raw_text   = _as_text(raw)
    if not dispatcher.available or not raw_text.strip():
        return parse_failed(raw)

    try:
        text = dispatcher.dispatch(
            model, _build_prompt(raw_text),
            response_schema=ParsedAlert, response_mime_type=JSON_MIME_TYPE,
        )
        return parse_response(text, ParsedAlert)
    except AiError as e:
        logger.warning("Security alert parsing failed: %s", e)
        return parse_failed(raw)
