"""
Security-alert ingestion: webhook payload → ticket row.

Payloads come from EDR / antivirus products in arbitrary shapes. Fields are read
heuristically, with the alert e-mail layout ("Where it happened: ...") taking
precedence over top-level JSON keys.
"""
import logging
import re
import uuid
from datetime import datetime, timezone

import requests
from pydantic import BaseModel

from errors import IngestionError

logger = logging.getLogger(__name__)

UNKNOWN_HOST     = "Desconhecido"
TICKET_CATEGORY  = "Incidente de Segurança"
TICKET_STATUS    = "Pedido"
DEFAULT_SEVERITY = "Alta"
DEFAULT_SOURCE   = "Alerta"

# Alert e-mail lines, keyed by the field they fill
_TEXT_FIELDS: dict[str, str] = {
    "hostname":       r"Where it happened:\s*([^\n\r]+)",
    "path":           r"Path:\s*([^\n\r]+)",
    "detection":      r"What was detected:\s*([^\n\r]+)",
    "user":           r"User associated with device:\s*([^\n\r]+)",
    "severity":       r"How severe it is:\s*([^\n\r]+)",
    "action":         r"What Sophos has done so far:\s*([^\n\r]+)",
    "recommendation": r"What you need to do:\s*([^\n\r]+)",
}

# Checked in order; first whole word found in the source label wins
_SEVERITY_WORDS: list[tuple[str, str]] = [
    ("critical",      "Crítica"),
    ("crítica",       "Crítica"),
    ("critica",       "Crítica"),
    ("high",          "Alta"),
    ("alta",          "Alta"),
    ("medium",        "Média"),
    ("média",         "Média"),
    ("media",         "Média"),
    ("moderate",      "Média"),
    ("low",           "Baixa"),
    ("baixa",         "Baixa"),
    ("info",          "Baixa"),
    ("informational", "Baixa"),
]


class AlertDetails(BaseModel):
    source:         str
    hostname:       str
    path:           str = "N/A"
    detection:      str = "Ameaça Detetada"
    user:           str = "N/A"
    severity_raw:   str = "Medium"
    severity:       str = DEFAULT_SEVERITY
    incident_type:  str = "Malware"
    action:         str = "Tentativa de limpeza."
    recommendation: str = "Verificar manualmente."


def map_severity(raw) -> str:
    """Map a source severity (label or 0-10 score) onto Baixa / Média / Alta / Crítica."""
    if raw is None:
        return DEFAULT_SEVERITY
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        score = float(raw)
    else:
        label = str(raw).strip().lower()
        try:
            score = float(label)
        except ValueError:
            for word, level in _SEVERITY_WORDS:
                if re.search(rf"\b{re.escape(word)}\b", label):
                    return level
            return DEFAULT_SEVERITY

    if score >= 9:
        return "Crítica"
    if score >= 7:
        return "Alta"
    if score >= 4:
        return "Média"
    return "Baixa"


def _first(payload: dict, *keys: str) -> str | None:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return str(value).strip()
    return None


def parse_alert_payload(payload, source: str | None = None) -> AlertDetails:
    """
    Read alert details from a webhook payload.

    A *source* set by the caller always wins; without one the payload's own
    "source" or "product" key names the reporting system.
    """
    if not isinstance(payload, dict):
        raise IngestionError("Alert payload must be a JSON object.")

    raw   = str(payload.get("description") or payload.get("text") or "")
    found = {}
    for field, pattern in _TEXT_FIELDS.items():
        match = re.search(pattern, raw, re.IGNORECASE)
        if match and match.group(1).strip():
            found[field] = match.group(1).strip()

    hostname = (
        found.get("hostname")
        or _first(payload, "full_name", "hostname", "endpoint_name", "device_name", "host")
        or UNKNOWN_HOST
    )
    severity_value = found.get("severity") or payload.get("severity")
    severity_raw   = str(severity_value) if severity_value not in (None, "") else "Medium"

    details = AlertDetails(
        source=source or _first(payload, "source", "product") or DEFAULT_SOURCE,
        hostname=hostname,
        severity_raw=severity_raw,
        severity=map_severity(severity_value) if severity_value not in (None, "") else DEFAULT_SEVERITY,
    )
    updates = {k: v for k, v in found.items() if k not in ("hostname", "severity")}
    if "detection" not in updates:
        detection = _first(payload, "alert_type", "threat", "type")
        if detection:
            updates["detection"] = detection
    if "user" not in updates:
        user = _first(payload, "user", "username")
        if user:
            updates["user"] = user
    incident_type = _first(payload, "incident_type", "category")
    if incident_type:
        updates["incident_type"] = incident_type
    return details.model_copy(update=updates)


def match_equipment(candidates: list[dict], hostname: str) -> str | None:
    """
    Pick the equipment row an alert refers to.

    A unique exact (case-insensitive) match on network name or serial number wins;
    otherwise a lone candidate wins. Several candidates without a unique exact match
    are ambiguous and link nothing.
    """
    if not candidates:
        return None
    wanted = hostname.strip().casefold()
    exact  = [
        row for row in candidates
        if wanted in (
            str(row.get("nomeNaRede") or "").strip().casefold(),
            str(row.get("serialNumber") or "").strip().casefold(),
        )
    ]
    if len(exact) == 1:
        return exact[0].get("id")
    if len(candidates) == 1:
        return candidates[0].get("id")
    logger.warning(
        "Ambiguous equipment match for %r: %d candidates, %d exact", hostname, len(candidates), len(exact),
    )
    return None


def build_ticket(details: AlertDetails, equipment_id: str | None, now: datetime | None = None) -> dict:
    now = now or datetime.now(timezone.utc)
    description = (
        f"--- INCIDENTE DETETADO PELO {details.source.upper()} ---\n"
        f"MÁQUINA: {details.hostname}\n"
        f"UTILIZADOR: {details.user}\n"
        f"DETEÇÃO: {details.detection}\n"
        f"CAMINHO: {details.path}\n"
        f"SEVERIDADE ORIGINAL: {details.severity_raw}\n\n"
        f"AÇÃO {details.source.upper()}: {details.action}\n"
        f"RECOMENDAÇÃO: {details.recommendation}"
    )
    row = {
        "id":                   str(uuid.uuid4()),
        "title":                f"[{details.source.upper()}] {details.detection} em {details.hostname}",
        "description":          description,
        "status":               TICKET_STATUS,
        "category":             TICKET_CATEGORY,
        "securityIncidentType": details.incident_type,
        "impactCriticality":    details.severity,
        "requestDate":          now.isoformat(),
    }
    if equipment_id:
        row["equipmentId"] = equipment_id
    return row


def notify_slack(webhook_url: str, ticket: dict, timeout: float = 10.0) -> None:
    text = f":rotating_light: {ticket['title']} ({ticket['impactCriticality']})"
    response = requests.post(webhook_url, json={"text": text}, timeout=timeout)
    response.raise_for_status()


def ingest_alert(payload, store, source: str | None = None, now: datetime | None = None) -> dict:
    """
    Create one ticket from an alert payload and return it, as stored.

    The optional Slack notification runs after the insert; if it fails the error
    propagates and the ticket is kept.
    """
    details = parse_alert_payload(payload, source)
    logger.info("Alert from %s for host %s (severity %s)", details.source, details.hostname, details.severity)

    equipment_id = None
    if details.hostname != UNKNOWN_HOST:
        equipment_id = match_equipment(store.find_equipment(details.hostname), details.hostname)

    row    = build_ticket(details, equipment_id, now)
    ticket = {**row, **(store.insert_ticket(row) or {})}

    webhook_url = store.get_global_setting("slack_webhook_url")
    if webhook_url:
        notify_slack(webhook_url, ticket)
    return ticket
