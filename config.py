"""
Centralized runtime configuration.
Values come from the environment (or a local .env file) and are read once per call
to load_settings().
"""
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()

DEFAULT_MODEL = "gemini-2.5-flash"

# Key lookup order for the provider credential
_API_KEY_VARS = ("GEMINI_API_KEY", "API_KEY", "VITE_API_KEY")


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    gemini_api_key:            str   = ""
    ai_model:                  str   = DEFAULT_MODEL
    ai_timeout_seconds:        float = 60.0
    supabase_url:              str   = ""
    supabase_anon_key:         str   = ""
    supabase_service_role_key: str   = ""
    relay_function:            str   = "ai-proxy"
    db_timeout_seconds:        float = 30.0


def _get(environ, name: str) -> str | None:
    value = (environ.get(name) or "").strip()
    return value or None


def load_settings(environ=None) -> Settings:
    """Build Settings from *environ* (defaults to os.environ). Blank values count as unset."""
    if environ is None:
        environ = os.environ

    values: dict = {}
    for var in _API_KEY_VARS:
        key = _get(environ, var)
        if key:
            values["gemini_api_key"] = key
            break

    mapping = {
        "ai_model":                  "AI_MODEL",
        "ai_timeout_seconds":        "AI_TIMEOUT_SECONDS",
        "supabase_url":              "SUPABASE_URL",
        "supabase_anon_key":         "SUPABASE_ANON_KEY",
        "supabase_service_role_key": "SUPABASE_SERVICE_ROLE_KEY",
        "relay_function":            "AI_RELAY_FUNCTION",
        "db_timeout_seconds":        "DB_TIMEOUT_SECONDS",
    }
    for field, var in mapping.items():
        value = _get(environ, var)
        if value is not None:
            values[field] = value

    return Settings(**values)
