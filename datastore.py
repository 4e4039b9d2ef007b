"""
CRUD helpers over the hosted database's REST interface (PostgREST under /rest/v1).

Only the tables the ingestion and automation functions touch are covered:
equipment, software_licenses, tickets, vulnerabilities, global_settings, audit_log.
"""
import logging

import requests

from config import Settings
from errors import DataStoreError

logger = logging.getLogger(__name__)


def _quote(value: str) -> str:
    """Quote a value for use inside a PostgREST or=(...) filter."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _like_pattern(term: str) -> str:
    # "*" is PostgREST's wildcard inside like/ilike
    return f"*{term.replace('*', '')}*"


class SupabaseStore:
    def __init__(self, base_url: str, api_key: str, timeout: float = 30.0, session=None) -> None:
        if not base_url or not api_key:
            raise DataStoreError("Database URL and key must be configured.")
        self.base_url = base_url.rstrip("/")
        self.timeout  = timeout
        self.session  = session or requests.Session()
        self.session.headers.update({
            "apikey":        api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type":  "application/json",
        })

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseStore":
        key = settings.supabase_service_role_key or settings.supabase_anon_key
        return cls(settings.supabase_url, key, settings.db_timeout_seconds)

    # ── Transport ─────────────────────────────────────────────────────────────

    def _request(self, method: str, table: str, params=None, json=None, prefer: str | None = None):
        url     = f"{self.base_url}/rest/v1/{table}"
        headers = {"Prefer": prefer} if prefer else None
        try:
            response = self.session.request(
                method, url, params=params, json=json, headers=headers, timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise DataStoreError(f"Database unreachable ({table}): {e}") from e

        if not response.ok:
            try:
                detail = response.json().get("message") or response.text
            except (ValueError, AttributeError):
                detail = response.text
            raise DataStoreError(
                f"Database error on {method} {table} ({response.status_code}): {detail}",
                status_code=response.status_code,
            )
        if not response.content:
            return []
        return response.json()

    def _select(self, table: str, columns: str = "*", **filters) -> list[dict]:
        params = {"select": columns, **filters}
        return self._request("GET", table, params=params)

    def _insert(self, table: str, row: dict) -> dict:
        rows = self._request("POST", table, json=row, prefer="return=representation")
        if not rows:
            raise DataStoreError(f"Insert into {table} returned no row.")
        return rows[0]

    # ── Equipment / licenses ──────────────────────────────────────────────────

    def find_equipment(self, term: str) -> list[dict]:
        """Equipment whose network name, serial number or description contains *term*."""
        term = term.strip()
        if not term:
            return []
        pattern = _quote(_like_pattern(term))
        filters = ",".join(
            f"{column}.ilike.{pattern}" for column in ("nomeNaRede", "serialNumber", "description")
        )
        return self._select(
            "equipment", "id,nomeNaRede,serialNumber,description", **{"or": f"({filters})"},
        )

    def list_equipment(self) -> list[dict]:
        return self._select("equipment")

    def list_software_licenses(self) -> list[dict]:
        return self._select("software_licenses")

    # ── Tickets / vulnerabilities ────────────────────────────────────────────

    def insert_ticket(self, row: dict) -> dict:
        return self._insert("tickets", row)

    def list_vulnerabilities(self) -> list[dict]:
        return self._select("vulnerabilities")

    def insert_vulnerability(self, row: dict) -> dict:
        return self._insert("vulnerabilities", row)

    # ── Settings / audit ─────────────────────────────────────────────────────

    def get_global_setting(self, key: str) -> str | None:
        rows = self._select("global_settings", "setting_value", setting_key=f"eq.{key}")
        return rows[0].get("setting_value") if rows else None

    def set_global_setting(self, key: str, value: str) -> None:
        self._request(
            "POST", "global_settings",
            params={"on_conflict": "setting_key"},
            json={"setting_key": key, "setting_value": value},
            prefer="resolution=merge-duplicates",
        )

    def log_action(self, action: str, resource_type: str, details: str = "", resource_id: str | None = None) -> None:
        row = {"action": action, "resource_type": resource_type, "details": details}
        if resource_id:
            row["resource_id"] = resource_id
        self._request("POST", "audit_log", json=row)
