"""
Handler: Magic Command Bar
Maps a free-text request ("add a Dell laptop for Ana", "printer on floor 2 is down")
to an intent plus extracted fields. Advisory: failures yield intent "unknown".
"""
import json
import logging
from typing import Literal

from pydantic import BaseModel

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from errors import AiError
from handlers.common import cap_items, cap_text

logger = logging.getLogger(__name__)

MAX_CONTEXT_ENTRIES = 100
MAX_REQUEST_CHARS   = 2_000


class ActionData(BaseModel):
    # Equipment fields
    brandName:          str | None = None
    typeName:           str | None = None
    serialNumber:       str | None = None
    description:        str | None = None
    assignedToUserName: str | None = None
    # Ticket fields
    title:              str | None = None
    requesterName:      str | None = None
    priority:           str | None = None
    # Search fields
    query:              str | None = None


class MagicAction(BaseModel):
    intent:     Literal["create_equipment", "create_ticket", "search", "unknown"]
    data:       ActionData | None = None
    confidence: float


def unknown_action() -> MagicAction:
    return MagicAction(intent="unknown", confidence=0)


def _names(values) -> list[str]:
    names = []
    for v in cap_items(values or [], MAX_CONTEXT_ENTRIES):
        names.append(v.get("name", "") if isinstance(v, dict) else str(v))
    return names


def _build_prompt(text: str, context: dict) -> str:
    return (
        "You are an IT Asset Manager Assistant. Analyze the following user request: "
        f"\"{cap_text(text, MAX_REQUEST_CHARS)}\".\n\n"
        "Context data (for fuzzy matching):\n"
        f"- Known brands: {json.dumps(_names(context.get('brands')), ensure_ascii=False)}\n"
        f"- Known equipment types: {json.dumps(_names(context.get('types')), ensure_ascii=False)}\n"
        f"- Known users: {json.dumps(_names(context.get('users')), ensure_ascii=False)}\n"
        f"- Current user ID: \"{context.get('currentUser', '')}\"\n\n"
        "Determine the intent and extract entities.\n"
        "Supported intents: 'create_equipment', 'create_ticket', 'search'. Use 'unknown' otherwise.\n"
        "For 'create_equipment' fill data with brandName, typeName, serialNumber, description, "
        "assignedToUserName, mapped to the known brands/types/users where possible.\n"
        "For 'create_ticket' fill data with title, description, requesterName and priority "
        "(Baixa, Média, Alta, Crítica).\n"
        "For 'search' fill data with query.\n"
        "confidence is a float between 0 and 1."
    )


def parse_natural_language_action(
    text: str,
    context: dict | None = None,
    dispatcher=None,
    model: str | None = None,
) -> MagicAction:
    dispatcher = resolve_dispatcher(dispatcher)
    if not dispatcher.available or not text.strip():
        return unknown_action()

    try:
        raw = dispatcher.dispatch(
            model, _build_prompt(text, context or {}),
            response_schema=MagicAction, response_mime_type=JSON_MIME_TYPE,
        )
        return parse_response(raw, MagicAction)
    except AiError as e:
        logger.warning("Natural language command parsing failed: %s", e)
        return unknown_action()
