"""
Handler: Resilience Test Findings
Extracts vulnerabilities from a penetration-test / resilience-test report supplied
as an image or a PDF.
"""
from pydantic import BaseModel

from ai_client import JSON_MIME_TYPE, parse_response, resolve_dispatcher
from handlers.common import Criticality
from image_processor import InlineImage, prepare_image

SUPPORTED_PREFIXES = ("image/", "application/pdf")


class Finding(BaseModel):
    title:       str
    description: str
    severity:    Criticality
    remediation: str = ""


PROMPT = (
    "This document is a security / resilience test report (penetration test, vulnerability "
    "scan or DORA TLPT). Extract every vulnerability or finding it reports.\n\n"
    "For each finding return:\n"
    "- title: short name of the finding\n"
    "- description: one or two sentences in Portuguese (Portugal)\n"
    "- severity: one of \"Baixa\", \"Média\", \"Alta\", \"Crítica\" (map the report's own scale)\n"
    "- remediation: recommended fix, empty string if the report gives none\n\n"
    "Return an empty array if the document contains no findings."
)


def extract_findings_from_report(
    document: InlineImage,
    dispatcher=None,
    model: str | None = None,
) -> list[Finding]:
    if not document.mime_type.lower().startswith(SUPPORTED_PREFIXES):
        raise ValueError(f"Unsupported report type: {document.mime_type}. Use an image or a PDF.")

    dispatcher = resolve_dispatcher(dispatcher)
    text = dispatcher.dispatch(
        model, PROMPT, [prepare_image(document)],
        response_schema=list[Finding], response_mime_type=JSON_MIME_TYPE,
    )
    return parse_response(text, list[Finding])
