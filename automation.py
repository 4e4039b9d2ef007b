"""
Automated vulnerability scan.

Builds an inventory summary from equipment and software licenses, asks the
vulnerability handler for matching CVEs and records the new ones. Runs on the
frequency configured in global settings unless forced.
"""
import logging
from datetime import datetime, timedelta, timezone

from errors import DataStoreError
from handlers.vulnerabilities import scan_for_vulnerabilities

logger = logging.getLogger(__name__)

OPEN_STATUS      = "Aberto"
GENERAL_ASSETS   = "Inventário Geral"
DEFAULT_LOOKBACK = 2


def _parse_datetime(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def scan_is_due(store, now: datetime) -> bool:
    frequency = (store.get_global_setting("scan_frequency_days") or "").strip()
    if not frequency or frequency == "0":
        return False
    try:
        days = int(frequency)
    except ValueError:
        logger.warning("Invalid scan_frequency_days %r; scan disabled", frequency)
        return False
    if days <= 0:
        return False

    last_scan = store.get_global_setting("last_auto_scan")
    if not last_scan:
        return True
    last = _parse_datetime(last_scan)
    return last is None or now >= last + timedelta(days=days)


def build_inventory_context(equipment: list[dict], licenses: list[dict]) -> list[str]:
    """Deduplicated "OS: / Hardware: / Software:" lines, first-seen order."""
    context: dict[str, None] = {}
    for eq in equipment:
        if eq.get("os_version"):
            context[f"OS: {eq['os_version']}"] = None
        if eq.get("description"):
            context[f"Hardware: {eq['description']}"] = None
    for lic in licenses:
        if lic.get("productName"):
            context[f"Software: {lic['productName']}"] = None
    return list(context)


def affected_assets(affected_software: str, equipment: list[dict]) -> str:
    software = (affected_software or "").lower()
    matches  = []
    for eq in equipment:
        desc = (eq.get("description") or "").lower()
        if not desc or not software:
            continue
        if software in desc or (len(software) > 4 and desc in software):
            matches.append(desc)
    return ", ".join(matches) if matches else GENERAL_ASSETS


def _scan_options(store) -> dict:
    include_eol = (store.get_global_setting("scan_include_eol") or "").lower() == "true"
    try:
        lookback = int(store.get_global_setting("scan_lookback_years") or DEFAULT_LOOKBACK)
    except ValueError:
        lookback = DEFAULT_LOOKBACK
    return {
        "include_eol":    include_eol,
        "lookback_years": lookback,
        "custom_prompt":  store.get_global_setting("scan_custom_prompt") or "",
    }


def run_vulnerability_scan(store, dispatcher=None, force: bool = False, now: datetime | None = None) -> int:
    """Return the number of new vulnerabilities recorded (0 when not due or on failure)."""
    now = now or datetime.now(timezone.utc)
    new_count = 0
    try:
        if not force and not scan_is_due(store, now):
            return 0

        logger.info("Running %s security scan", "manual" if force else "automated")
        equipment = store.list_equipment()
        context   = build_inventory_context(equipment, store.list_software_licenses())
        if not context:
            logger.info("Inventory empty, nothing to scan")
            return 0

        results = scan_for_vulnerabilities(context, dispatcher=dispatcher, **_scan_options(store))
        known   = {v.get("cve_id") for v in store.list_vulnerabilities()}

        for vuln in results:
            if vuln.cve_id in known:
                continue
            store.insert_vulnerability({
                "cve_id":            vuln.cve_id,
                "description":       vuln.description,
                "severity":          vuln.severity,
                "affected_software": vuln.affected_software,
                "remediation":       vuln.remediation,
                "status":            OPEN_STATUS,
                "published_date":    now.date().isoformat(),
                "affected_assets":   affected_assets(vuln.affected_software, equipment),
            })
            known.add(vuln.cve_id)
            new_count += 1

        store.set_global_setting("last_auto_scan", now.isoformat())
        store.log_action(
            "AUTO_SCAN", "System",
            f"Automated scan completed. {new_count} new vulnerabilities found.",
        )
    except DataStoreError:
        logger.exception("Vulnerability scan aborted after %d new record(s)", new_count)
    return new_count
