"""
AI backend: secure relay (proxy)
Sends the request envelope to the backend's ai-proxy function, which holds the
provider credential, and returns the relayed text.
"""
import logging
from dataclasses import dataclass
from typing import Sequence

import requests

from errors import DispatchError
from image_processor import InlineImage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RelayConfig:
    base_url: str
    function: str = "ai-proxy"
    auth_key: str = ""
    timeout:  float = 60.0

    @property
    def url(self) -> str:
        return f"{self.base_url.rstrip('/')}/functions/v1/{self.function}"


def build_body(
    model: str,
    prompt: str,
    images: Sequence[InlineImage],
    response_mime_type: str | None,
    response_schema: dict | None,
) -> dict:
    config: dict = {}
    if response_mime_type:
        config["responseMimeType"] = response_mime_type
    if response_schema is not None:
        config["responseSchema"] = response_schema
    return {
        "model":  model,
        "prompt": prompt,
        "images": [img.to_wire() for img in images],
        "config": config,
    }


def _error_message(response: requests.Response, payload) -> str:
    if isinstance(payload, dict) and payload.get("error"):
        return str(payload["error"])
    return response.text.strip() or response.reason or "unknown error"


def call(
    relay: RelayConfig,
    model: str,
    prompt: str,
    images: Sequence[InlineImage] = (),
    response_mime_type: str | None = None,
    response_schema: dict | None = None,
) -> str:
    headers = {"Content-Type": "application/json"}
    if relay.auth_key:
        headers["Authorization"] = f"Bearer {relay.auth_key}"
        headers["apikey"]        = relay.auth_key

    body = build_body(model, prompt, images, response_mime_type, response_schema)
    try:
        response = requests.post(relay.url, json=body, headers=headers, timeout=relay.timeout)
    except requests.RequestException as e:
        logger.warning("AI relay %s unreachable: %s", relay.url, e)
        raise DispatchError(f"AI relay unreachable: {e}") from e

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if not response.ok:
        raise DispatchError(
            f"AI relay error ({response.status_code}): {_error_message(response, payload)}",
            status_code=response.status_code,
        )
    if not isinstance(payload, dict):
        raise DispatchError("AI relay returned a malformed envelope.", status_code=response.status_code)
    if payload.get("error"):
        raise DispatchError(f"AI relay error: {payload['error']}", status_code=response.status_code)

    text = payload.get("text")
    return text if isinstance(text, str) else ""
