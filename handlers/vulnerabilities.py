"""
Handler: Vulnerability Lookup
Asks the model for known CVEs affecting the software and hardware listed in the
inventory. Advisory: any failure yields an empty list.
"""
import logging
from typing import Sequence

from pydantic import BaseModel

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from errors import AiError
from handlers.common import Criticality, MAX_CONTEXT_ITEMS, cap_items, cap_text, to_context_json

logger = logging.getLogger(__name__)

MAX_CUSTOM_PROMPT_CHARS = 2_000


class Vulnerability(BaseModel):
    cve_id:            str
    description:       str
    severity:          Criticality
    affected_software: str
    remediation:       str


def _build_prompt(
    inventory: list[str],
    include_eol: bool,
    lookback_years: int,
    custom_prompt: str,
) -> str:
    lines = [
        "Act as a vulnerability analyst. The organisation runs the following assets:",
        to_context_json(inventory),
        "",
        f"List relevant, publicly known CVEs published in the last {lookback_years} year(s) "
        "that affect these products.",
    ]
    if include_eol:
        lines.append("Also report products that are end-of-life or out of vendor support.")
    if custom_prompt:
        lines.append(cap_text(custom_prompt, MAX_CUSTOM_PROMPT_CHARS))
    lines += [
        "",
        "Return a JSON array; each item has cve_id, description (Portuguese, Portugal), "
        "severity (one of \"Baixa\", \"Média\", \"Alta\", \"Crítica\"), affected_software "
        "(product name as written in the list) and remediation.",
        "Return an empty array when nothing relevant is known.",
    ]
    return "\n".join(lines)


def scan_for_vulnerabilities(
    inventory: Sequence[str],
    include_eol: bool = False,
    lookback_years: int = 2,
    custom_prompt: str = "",
    dispatcher=None,
    model: str | None = None,
) -> list[Vulnerability]:
    dispatcher = resolve_dispatcher(dispatcher)
    items      = cap_items(inventory, MAX_CONTEXT_ITEMS)
    if not items or not dispatcher.available:
        return []

    try:
        text = dispatcher.dispatch(
            model, _build_prompt(items, include_eol, lookback_years, custom_prompt),
            response_schema=list[Vulnerability], response_mime_type=JSON_MIME_TYPE,
        )
        return parse_response(text, list[Vulnerability])
    except AiError as e:
        logger.warning("Vulnerability scan failed: %s", e)
        return []
