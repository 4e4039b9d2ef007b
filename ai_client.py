"""
AI client dispatcher.
Every AI call goes through Dispatcher.dispatch(), which hides whether the request
is sent straight to the provider or relayed through the backend function.

Modes (chosen once per process by select_mode()):
  DirectMode: a provider credential is held locally; ai_backends/gemini_api.py is used
  ProxyMode:  no local credential; ai_backends/relay.py forwards the envelope to the
              backend's ai-proxy function, which holds its own credential
"""
import logging
import threading
from typing import Any, Sequence, TypeVar, Union

from pydantic import TypeAdapter, ValidationError

from ai_backends import gemini_api, relay
from ai_backends.relay import RelayConfig
from config import DEFAULT_MODEL, Settings, load_settings
from errors import AiUnavailableError, MalformedResponseError
from image_processor import InlineImage

logger = logging.getLogger(__name__)

JSON_MIME_TYPE = "application/json"

T = TypeVar("T")


class DirectMode:
    """Locally held credential. The SDK client is built on first use and then reused."""

    def __init__(self, api_key: str, timeout: float = 60.0) -> None:
        self.api_key = api_key
        self.timeout = timeout
        self._client = None
        self._lock   = threading.Lock()

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def client(self):
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = gemini_api.create_client(self.api_key, self.timeout)
        return self._client

    def __repr__(self) -> str:
        return f"DirectMode(timeout={self.timeout})"


class ProxyMode:
    """Every call is relayed through the backend function."""

    def __init__(self, relay_config: RelayConfig) -> None:
        self.relay = relay_config

    @property
    def available(self) -> bool:
        # The backend is trusted to hold its own credential
        return bool(self.relay.base_url)

    def __repr__(self) -> str:
        return f"ProxyMode(url={self.relay.url!r})"


DispatchMode = Union[DirectMode, ProxyMode]


def select_mode(settings: Settings) -> DispatchMode:
    if settings.gemini_api_key:
        return DirectMode(settings.gemini_api_key, settings.ai_timeout_seconds)
    return ProxyMode(RelayConfig(
        base_url=settings.supabase_url,
        function=settings.relay_function,
        auth_key=settings.supabase_anon_key,
        timeout=settings.ai_timeout_seconds,
    ))


def schema_to_dict(schema: Any) -> dict | None:
    """JSON-schema dict for a dict, a pydantic model class or any TypeAdapter-able type."""
    if schema is None or isinstance(schema, dict):
        return schema
    return TypeAdapter(schema).json_schema()


class Dispatcher:
    def __init__(self, mode: DispatchMode, default_model: str | None = None) -> None:
        self.mode          = mode
        self.default_model = default_model or DEFAULT_MODEL

    @property
    def available(self) -> bool:
        return self.mode.available

    def dispatch(
        self,
        model: str | None,
        prompt: str,
        images: Sequence[InlineImage] = (),
        response_schema: Any = None,
        response_mime_type: str | None = None,
    ) -> str:
        """
        Send one request and return the model's text output.

        The text is returned as-is; decoding structured output is the caller's job.
        Raises AiUnavailableError when the mode is not usable and DispatchError on
        transport, relay or provider failure. Never retries.
        """
        if not (prompt and prompt.strip()) and not images:
            raise ValueError("A prompt or at least one image is required.")
        if not self.available:
            raise AiUnavailableError()

        model  = model or self.default_model
        images = list(images)
        schema = schema_to_dict(response_schema)

        logger.debug(
            "Dispatching to %s via %r (images=%d, schema=%s)",
            model, self.mode, len(images), schema is not None,
        )
        if isinstance(self.mode, DirectMode):
            return gemini_api.call(
                self.mode.client(), model, prompt, images, response_mime_type, schema,
            )
        return relay.call(self.mode.relay, model, prompt, images, response_mime_type, schema)


_dispatcher: Dispatcher | None = None
_dispatcher_lock = threading.Lock()


def get_dispatcher() -> Dispatcher:
    """Process-wide dispatcher; the mode is decided on first use and never re-evaluated."""
    global _dispatcher
    if _dispatcher is None:
        with _dispatcher_lock:
            if _dispatcher is None:
                settings = load_settings()
                mode     = select_mode(settings)
                logger.info("AI dispatch mode: %r (available=%s)", mode, mode.available)
                _dispatcher = Dispatcher(mode, settings.ai_model)
    return _dispatcher


def reset_dispatcher() -> None:
    global _dispatcher
    with _dispatcher_lock:
        _dispatcher = None


def is_ai_available(dispatcher: Dispatcher | None = None) -> bool:
    return resolve_dispatcher(dispatcher).available


def call_ai(
    prompt: str,
    images: Sequence[InlineImage] = (),
    response_schema: Any = None,
    response_mime_type: str | None = None,
    model: str | None = None,
) -> str:
    return get_dispatcher().dispatch(model, prompt, images, response_schema, response_mime_type)


def parse_response(text: str, schema: type[T] | Any) -> T:
    """Validate *text* as JSON of the declared shape; MalformedResponseError otherwise."""
    try:
        return TypeAdapter(schema).validate_json(text.strip() if text else "")
    except ValidationError as e:
        raise MalformedResponseError(
            f"AI response does not match the expected shape: {e.error_count()} error(s).",
            raw_text=text or "",
        ) from e


def resolve_dispatcher(dispatcher: Dispatcher | None = None) -> Dispatcher:
    return dispatcher if dispatcher is not None else get_dispatcher()
