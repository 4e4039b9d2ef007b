"""
Handler: Executive Report
Writes an HTML executive summary with a NIS2-oriented risk analysis over a
snapshot of inventory / ticket data. Advisory: failures yield a short HTML notice.
"""
import logging
from typing import Any

from ai_client import resolve_dispatcher
from errors import AiError
from handlers.common import MAX_CONTEXT_CHARS, to_context_json

logger = logging.getLogger(__name__)

EMPTY_REPORT  = "<p>Não foi possível gerar o relatório.</p>"
FAILED_REPORT = "<p>Erro ao gerar análise IA. Verifique a configuração da IA.</p>"


def build_prompt(report_type: str, data_context: Any) -> str:
    # Context is truncated, not summarised, to bound the request size
    context = to_context_json(data_context, MAX_CONTEXT_CHARS)
    return (
        "Act as an expert IT Manager and CIO. Analyze the provided JSON data for a "
        f"\"{report_type}\" report.\n\n"
        f"Data context: {context}\n\n"
        "Generate an HTML fragment (inner HTML tags only, no markdown) with these sections:\n"
        "1. Executive Summary: high-level overview of the current status.\n"
        "2. Risk Analysis (NIS2 focus): security risks, outdated equipment, single points of failure.\n"
        "3. Operational Insights: efficiency, ticket volume trends, asset utilisation.\n"
        "4. Recommendations: 3-5 actionable bullet points for the administration.\n\n"
        "Use <h3> for headers, <ul>/<li> for lists and <strong> for emphasis. "
        "Keep it professional, concise and data-driven. If the data is empty, state that "
        "there is insufficient data for analysis. Language: Portuguese (Portugal)."
    )


def generate_executive_report(
    report_type: str,
    data_context: Any,
    dispatcher=None,
    model: str | None = None,
) -> str:
    dispatcher = resolve_dispatcher(dispatcher)
    if not dispatcher.available:
        return FAILED_REPORT

    try:
        text = dispatcher.dispatch(model, build_prompt(report_type, data_context))
    except AiError as e:
        logger.warning("Executive report generation failed: %s", e)
        return FAILED_REPORT
    return text or EMPTY_REPORT
