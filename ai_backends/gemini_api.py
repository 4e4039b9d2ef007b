"""
AI backend: Google Gemini (direct)
Calls the provider through the google-genai SDK with the locally held credential.
Also used server-side by the ai-proxy relay function.
"""
import json
import logging
from typing import Sequence

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from errors import DispatchError
from image_processor import InlineImage

logger = logging.getLogger(__name__)


def create_client(api_key: str, timeout: float) -> genai.Client:
    # HttpOptions.timeout is in milliseconds
    return genai.Client(
        api_key=api_key,
        http_options=types.HttpOptions(timeout=int(timeout * 1000)),
    )


def build_parts(prompt: str, images: Sequence[InlineImage]) -> list[types.Part]:
    """Images first, in input order, then exactly one text part."""
    parts = [
        types.Part.from_bytes(data=img.raw_bytes(), mime_type=img.mime_type)
        for img in images
    ]
    parts.append(types.Part.from_text(text=prompt))
    return parts


def build_config(
    response_mime_type: str | None,
    response_schema: dict | None,
) -> types.GenerateContentConfig | None:
    if not response_mime_type and response_schema is None:
        return None
    options: dict = {}
    if response_mime_type:
        options["response_mime_type"] = response_mime_type
    if response_schema is not None:
        options["response_json_schema"] = response_schema
    return types.GenerateContentConfig(**options)


def _quota_message(exc: Exception) -> str:
    msg   = str(exc)
    retry = ""
    try:
        data    = json.loads(msg[msg.index("{"):])
        details = data.get("error", {}).get("details", [])
        for d in details:
            if d.get("@type", "").endswith("RetryInfo"):
                retry = f" Retry after: {d['retryDelay']}."
    except (ValueError, AttributeError, KeyError):
        pass
    return f"Gemini API quota exceeded.{retry} Wait and try again or check the key's plan."


def call(
    client: genai.Client,
    model: str,
    prompt: str,
    images: Sequence[InlineImage] = (),
    response_mime_type: str | None = None,
    response_schema: dict | None = None,
) -> str:
    """Send one generate_content request and return the trimmed text ("" when none)."""
    try:
        response = client.models.generate_content(
            model=model,
            contents=build_parts(prompt, images),
            config=build_config(response_mime_type, response_schema),
        )
    except genai_errors.APIError as e:
        if e.code == 429 or "RESOURCE_EXHAUSTED" in str(e):
            raise DispatchError(_quota_message(e), status_code=429) from e
        raise DispatchError(f"Gemini API error: {e}", status_code=e.code) from e
    except Exception as e:
        logger.warning("Gemini request failed: %s", e)
        raise DispatchError(f"Gemini request failed: {e}") from e

    text = response.text
    return text.strip() if text else ""
