"""
Handler: NIS2 Regulatory Notification
Drafts the incident notification a NIS2 / DORA entity sends to its CSIRT or
competent authority: a machine-readable report plus an HTML summary for review.
Essential: failures propagate to the caller.
"""
import json

from pydantic import BaseModel, field_validator

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from handlers.common import MAX_CONTEXT_CHARS, cap_items, to_context_json

MAX_ACTIVITIES = 50


class Nis2Notification(BaseModel):
    report_json:         str  # JSON document, kept as text so it can be downloaded verbatim
    report_summary_html: str

    @field_validator("report_json")
    @classmethod
    def _must_be_json(cls, value: str) -> str:
        json.loads(value)  # ValueError becomes a ValidationError
        return value


def _ticket_context(ticket: dict) -> dict:
    keys = (
        "id", "title", "description", "requestDate", "finishDate", "status", "category",
        "securityIncidentType", "impactCriticality", "impactConfidentiality",
        "impactIntegrity", "impactAvailability", "equipmentId", "entidadeId",
    )
    return {k: ticket[k] for k in keys if ticket.get(k) is not None}


def _activity_text(activity) -> str:
    if isinstance(activity, dict):
        date = activity.get("date", "")
        return f"{date} {activity.get('description', '')}".strip()
    return str(activity)


def _build_prompt(ticket: dict, activities: list) -> str:
    notes = [_activity_text(a) for a in cap_items(activities, MAX_ACTIVITIES)]
    return (
        "Act as the security officer of an entity subject to the NIS2 Directive "
        "(Portuguese transposition, reporting to CNCS).\n\n"
        f"Incident ticket: {to_context_json(_ticket_context(ticket), MAX_CONTEXT_CHARS)}\n"
        f"Response activities: {to_context_json(notes, MAX_CONTEXT_CHARS)}\n\n"
        "Produce a JSON object with two fields:\n"
        "report_json — a JSON document (serialised as a string) for the official notification "
        "with: incident_id, notification_type (\"early_warning\" within 24h or "
        "\"incident_notification\" within 72h), detection_datetime, incident_type, severity, "
        "suspected_malicious (bool), cross_border_impact (bool), affected_services, "
        "impact_confidentiality, impact_integrity, impact_availability, "
        "mitigation_measures, current_status, contact_point.\n"
        "report_summary_html — an HTML fragment (no <html>/<body>) in Portuguese (Portugal) "
        "summarising the incident for management, using <h3>, <ul>/<li> and <strong>.\n\n"
        "Use only facts present in the ticket; write \"Desconhecido\" for anything missing."
    )


def generate_nis2_notification(
    ticket: dict,
    activities: list | None = None,
    dispatcher=None,
    model: str | None = None,
) -> Nis2Notification:
    dispatcher = resolve_dispatcher(dispatcher)
    text = dispatcher.dispatch(
        model, _build_prompt(ticket, activities or []),
        response_schema=Nis2Notification, response_mime_type=JSON_MIME_TYPE,
    )
    return parse_response(text, Nis2Notification)
