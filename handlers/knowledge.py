"""
Handler: Knowledge Base
Resolution summaries for closed tickets and lookup of similar, already solved
tickets. Both are advisory and fall back to a neutral answer.
"""
import logging
from typing import Sequence

from pydantic import BaseModel

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from errors import AiError
from handlers.common import MAX_CONTEXT_ITEMS, cap_items, cap_text, to_context_json

logger = logging.getLogger(__name__)

SUMMARY_FALLBACK       = "Não foi possível gerar o resumo automático."
PAST_DESCRIPTION_CHARS = 100


class SimilarTicket(BaseModel):
    found:            bool
    ticketId:         str | None = None
    similarityReason: str | None = None
    resolution:       str | None = None


def not_found() -> SimilarTicket:
    return SimilarTicket(found=False)


def _summary_prompt(description: str, activities: list[str]) -> str:
    return (
        "Act as a Knowledge Base Manager.\n"
        f"Original problem: \"{cap_text(description, 5_000)}\"\n"
        f"Technician notes: {to_context_json(activities)}\n\n"
        "Create a concise, structured knowledge-base summary in Portuguese (Portugal).\n"
        "Format:\n"
        "**Problema:** [1 sentence summary]\n"
        "**Causa:** [likely cause based on the notes]\n"
        "**Resolução:** [steps taken to fix it]"
    )


def generate_ticket_resolution_summary(
    ticket_description: str,
    activities: Sequence[str],
    dispatcher=None,
    model: str | None = None,
) -> str:
    dispatcher = resolve_dispatcher(dispatcher)
    if not dispatcher.available:
        return SUMMARY_FALLBACK

    notes = [str(a) for a in cap_items(activities, MAX_CONTEXT_ITEMS)]
    try:
        text = dispatcher.dispatch(model, _summary_prompt(ticket_description, notes))
    except AiError as e:
        logger.warning("Resolution summary failed: %s", e)
        return SUMMARY_FALLBACK
    return text.strip() or SUMMARY_FALLBACK


def similar_ticket_context(past_tickets: Sequence[dict]) -> list[dict]:
    """Compact, capped view of past resolved tickets for the prompt."""
    return [
        {
            "id":   str(t.get("id", "")),
            "desc": cap_text(t.get("description") or "", PAST_DESCRIPTION_CHARS),
            "res":  t.get("resolution") or "",
        }
        for t in cap_items(past_tickets, MAX_CONTEXT_ITEMS)
    ]


def _similar_prompt(description: str, context: list[dict]) -> str:
    return (
        f"I have a new support ticket: \"{cap_text(description, 5_000)}\".\n\n"
        "Here is a list of past resolved tickets (id, desc, res):\n"
        f"{to_context_json(context)}\n\n"
        "Is there a ticket in this list that solves the EXACT SAME problem?\n"
        "If yes, return found: true with its ticketId, the resolution and why it is similar.\n"
        "If no, return found: false."
    )


def find_similar_past_tickets(
    current_description: str,
    past_resolved_tickets: Sequence[dict],
    dispatcher=None,
    model: str | None = None,
) -> SimilarTicket:
    dispatcher = resolve_dispatcher(dispatcher)
    context    = similar_ticket_context(past_resolved_tickets)
    if not dispatcher.available or not context:
        return not_found()

    try:
        text = dispatcher.dispatch(
            model, _similar_prompt(current_description, context),
            response_schema=SimilarTicket, response_mime_type=JSON_MIME_TYPE,
        )
        result = parse_response(text, SimilarTicket)
    except AiError as e:
        logger.warning("Similar ticket lookup failed: %s", e)
        return not_found()

    # A match must point at one of the tickets we actually sent
    known_ids = {c["id"] for c in context}
    if result.found and result.ticketId not in known_ids:
        logger.info("Similar ticket lookup returned unknown id %r", result.ticketId)
        return not_found()
    return result
