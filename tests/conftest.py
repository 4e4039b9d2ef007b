import base64
import io

import pytest
from PIL import Image

import ai_client
from ai_client import DirectMode, Dispatcher
from errors import AiUnavailableError

_ENV_VARS = (
    "GEMINI_API_KEY", "API_KEY", "VITE_API_KEY", "AI_MODEL", "AI_TIMEOUT_SECONDS",
    "SUPABASE_URL", "SUPABASE_ANON_KEY", "SUPABASE_SERVICE_ROLE_KEY", "AI_RELAY_FUNCTION",
)


class FakeDispatcher(Dispatcher):
    """Returns canned texts in order and records every request."""

    def __init__(self, responses=None, available=True, error=None):
        super().__init__(DirectMode("test-key" if available else ""))
        self.responses = list(responses or [])
        self.error     = error
        self.calls     = []

    def dispatch(self, model, prompt, images=(), response_schema=None, response_mime_type=None):
        self.calls.append({
            "model":              model,
            "prompt":             prompt,
            "images":             list(images),
            "response_schema":    response_schema,
            "response_mime_type": response_mime_type,
        })
        if not self.available:
            raise AiUnavailableError()
        if self.error is not None:
            raise self.error
        return self.responses.pop(0) if self.responses else ""


class FakeStore:
    def __init__(self, equipment=None, licenses=None, vulnerabilities=None, settings=None):
        self.equipment       = list(equipment or [])
        self.licenses        = list(licenses or [])
        self.vulnerabilities = list(vulnerabilities or [])
        self.settings        = dict(settings or {})
        self.tickets         = []
        self.audit           = []

    def find_equipment(self, term):
        wanted = term.casefold()
        return [
            row for row in self.equipment
            if any(wanted in str(row.get(col) or "").casefold()
                   for col in ("nomeNaRede", "serialNumber", "description"))
        ]

    def list_equipment(self):
        return list(self.equipment)

    def list_software_licenses(self):
        return list(self.licenses)

    def insert_ticket(self, row):
        self.tickets.append(dict(row))
        return dict(row)

    def list_vulnerabilities(self):
        return list(self.vulnerabilities)

    def insert_vulnerability(self, row):
        self.vulnerabilities.append(dict(row))
        return dict(row)

    def get_global_setting(self, key):
        return self.settings.get(key)

    def set_global_setting(self, key, value):
        self.settings[key] = value

    def log_action(self, action, resource_type, details="", resource_id=None):
        self.audit.append((action, resource_type, details))


def make_image_b64(size=(64, 32), fmt="PNG", color=(200, 30, 30)) -> str:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return base64.b64encode(buf.getvalue()).decode("ascii")


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for var in _ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    ai_client.reset_dispatcher()
    yield
    ai_client.reset_dispatcher()


@pytest.fixture
def store():
    return FakeStore()
