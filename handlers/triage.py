"""
Handler: Ticket Triage
Suggests a category, a priority and a first-aid fix for a new support request,
and flags requests that look like security incidents.
Essential: failures propagate to the caller.
"""
from pydantic import BaseModel

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from handlers.common import Criticality, cap_text

MAX_DESCRIPTION_CHARS = 5_000


class TriageResult(BaseModel):
    suggestedCategory:  str
    suggestedPriority:  Criticality
    suggestedSolution:  str
    isSecurityIncident: bool


def _build_prompt(description: str) -> str:
    return (
        f"Analyze this IT support ticket description: \"{cap_text(description, MAX_DESCRIPTION_CHARS)}\".\n\n"
        "Tasks:\n"
        "1. Categorize the issue (Hardware, Software, Network, Access, Security Incident, Other).\n"
        "2. Estimate the priority from the business impact, using exactly one of: "
        "\"Baixa\", \"Média\", \"Alta\", \"Crítica\".\n"
        "3. Suggest a first-aid solution or quick fix the user or technician can try, "
        "written in Portuguese (Portugal).\n"
        "4. Decide whether this sounds like a security incident (phishing, virus, ransomware, "
        "account compromise).\n\n"
        "Return JSON."
    )


def analyze_ticket_request(description: str, dispatcher=None, model: str | None = None) -> TriageResult:
    dispatcher = resolve_dispatcher(dispatcher)
    text = dispatcher.dispatch(
        model, _build_prompt(description),
        response_schema=TriageResult, response_mime_type=JSON_MIME_TYPE,
    )
    return parse_response(text, TriageResult)
