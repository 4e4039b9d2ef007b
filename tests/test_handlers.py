"""Structured-extraction handlers: declared shapes, caps and the advisory/essential split."""
import json

import pytest

from errors import AiUnavailableError, DispatchError, MalformedResponseError
from handlers.alerts import ParsedAlert, parse_security_alert
from handlers.common import MAX_CONTEXT_CHARS, cap_items, to_context_json
from handlers.device import DeviceInfo, extract_serial_from_image, get_device_info, suggest_peripherals
from handlers.findings import extract_findings_from_report
from handlers.knowledge import (
    SUMMARY_FALLBACK,
    find_similar_past_tickets,
    generate_ticket_resolution_summary,
    not_found,
    similar_ticket_context,
)
from handlers.magic_command import parse_natural_language_action, unknown_action
from handlers.nis2 import generate_nis2_notification
from handlers.report import FAILED_REPORT, build_prompt, generate_executive_report
from handlers.triage import TriageResult, analyze_ticket_request
from handlers.vulnerabilities import scan_for_vulnerabilities
from image_processor import InlineImage

from conftest import FakeDispatcher, make_image_b64


class TestTriage:

    def test_printer_scenario(self):
        dispatcher = FakeDispatcher([
            '{"suggestedCategory":"Hardware","suggestedPriority":"Média",'
            '"suggestedSolution":"Verificar alimentação","isSecurityIncident":false}'
        ])
        result = analyze_ticket_request("A impressora do 2º andar não liga", dispatcher=dispatcher)

        assert isinstance(result, TriageResult)
        assert result.suggestedPriority == "Média"
        assert result.isSecurityIncident is False
        call = dispatcher.calls[0]
        assert "A impressora do 2º andar não liga" in call["prompt"]
        assert call["response_schema"] is TriageResult
        assert call["response_mime_type"] == "application/json"

    def test_priority_outside_enumeration_is_rejected(self):
        dispatcher = FakeDispatcher([
            '{"suggestedCategory":"Rede","suggestedPriority":"Urgent",'
            '"suggestedSolution":"x","isSecurityIncident":false}'
        ])
        with pytest.raises(MalformedResponseError):
            analyze_ticket_request("sem rede", dispatcher=dispatcher)

    def test_dispatch_errors_propagate(self):
        dispatcher = FakeDispatcher(error=DispatchError("timeout"))
        with pytest.raises(DispatchError):
            analyze_ticket_request("x", dispatcher=dispatcher)


class TestSecurityAlert:

    def test_non_json_output_returns_parse_failed(self):
        raw = '{"alert_type": "Event::Endpoint::Threat::Detected", "full_name": "PC-01"}'
        result = parse_security_alert(raw, dispatcher=FakeDispatcher(["I could not parse this."]))

        assert result.title == "Parse Failed"
        assert result.description == raw

    def test_dispatch_error_returns_parse_failed(self):
        result = parse_security_alert({"a": 1}, dispatcher=FakeDispatcher(error=DispatchError("down")))
        assert result.title == "Parse Failed"
        assert json.loads(result.description) == {"a": 1}

    def test_parsed_alert(self):
        answer = json.dumps({
            "title": "Malware em PC-FINANCEIRO-01", "description": "Troj/Agent-AUW detetado",
            "severity": "Alta", "affectedAsset": "PC-FINANCEIRO-01",
            "incidentType": "Malware", "sourceSystem": "Sophos",
        })
        result = parse_security_alert({"severity": "high"}, dispatcher=FakeDispatcher([answer]))
        assert isinstance(result, ParsedAlert)
        assert result.severity == "Alta"
        assert result.affectedAsset == "PC-FINANCEIRO-01"


class TestMagicCommand:

    def test_create_ticket_intent(self):
        answer = '{"intent":"create_ticket","data":{"title":"Impressora","priority":"Alta"},"confidence":0.9}'
        result = parse_natural_language_action(
            "a impressora avariou, urgente",
            {"brands": ["HP"], "types": ["Impressora"], "users": [{"name": "Ana", "id": "1"}]},
            dispatcher=FakeDispatcher([answer]),
        )
        assert result.intent == "create_ticket"
        assert result.data.priority == "Alta"

    def test_unknown_on_bad_json(self):
        result = parse_natural_language_action("xyz", dispatcher=FakeDispatcher(["{"]))
        assert result.intent == "unknown"
        assert result.confidence == 0

    def test_fallback_is_a_fresh_instance(self):
        first = parse_natural_language_action("xyz", dispatcher=FakeDispatcher(available=False))
        first.confidence = 0.9
        second = parse_natural_language_action("xyz", dispatcher=FakeDispatcher(available=False))
        assert second is not first
        assert second == unknown_action()
        assert second.confidence == 0

    def test_context_lists_are_capped(self):
        dispatcher = FakeDispatcher(['{"intent":"search","data":{"query":"x"},"confidence":1}'])
        brands = [f"Brand{i:04d}" for i in range(500)]
        parse_natural_language_action("procurar x", {"brands": brands}, dispatcher=dispatcher)
        prompt = dispatcher.calls[0]["prompt"]
        assert "Brand0099" in prompt
        assert "Brand0100" not in prompt


class TestKnowledge:

    def test_similar_ticket_context_is_capped(self):
        past = [{"id": str(i), "description": "x" * 500, "resolution": "r"} for i in range(500)]
        context = similar_ticket_context(past)
        assert len(context) == 50
        assert all(len(c["desc"]) <= 100 for c in context)

    def test_similar_ticket_found(self):
        past = [{"id": "t-1", "description": "VPN não liga", "resolution": "Reinstalar cliente"}]
        dispatcher = FakeDispatcher(['{"found":true,"ticketId":"t-1","resolution":"Reinstalar cliente"}'])
        result = find_similar_past_tickets("VPN falha", past, dispatcher=dispatcher)
        assert result.found is True
        assert result.ticketId == "t-1"

    def test_unknown_ticket_id_is_not_a_match(self):
        past = [{"id": "t-1", "description": "VPN", "resolution": "r"}]
        dispatcher = FakeDispatcher(['{"found":true,"ticketId":"t-999"}'])
        assert find_similar_past_tickets("VPN", past, dispatcher=dispatcher) == not_found()

    def test_similar_ticket_failure_is_not_found(self):
        past = [{"id": "t-1", "description": "VPN", "resolution": "r"}]
        result = find_similar_past_tickets("VPN", past, dispatcher=FakeDispatcher(["nope"]))
        assert result.found is False

    def test_not_found_is_a_fresh_instance(self):
        first = find_similar_past_tickets("y", [], dispatcher=FakeDispatcher())
        first.found = True
        assert find_similar_past_tickets("y", [], dispatcher=FakeDispatcher()).found is False

    def test_summary_text_and_fallback(self):
        assert generate_ticket_resolution_summary(
            "ecrã preto", ["troca de cabo"], dispatcher=FakeDispatcher(["  **Problema:** ecrã  "]),
        ) == "**Problema:** ecrã"
        assert generate_ticket_resolution_summary(
            "ecrã preto", [], dispatcher=FakeDispatcher(error=DispatchError("x")),
        ) == SUMMARY_FALLBACK


class TestExecutiveReport:

    def test_context_is_truncated(self):
        data = {"tickets": [{"id": i, "description": "y" * 200} for i in range(500)]}
        prompt = build_prompt("Inventário", data)
        overhead = len(build_prompt("Inventário", {}))
        assert len(prompt) <= overhead + MAX_CONTEXT_CHARS
        assert len(to_context_json(data)) == MAX_CONTEXT_CHARS

    def test_failure_returns_notice(self):
        assert generate_executive_report(
            "Tickets", {}, dispatcher=FakeDispatcher(error=DispatchError("x")),
        ) == FAILED_REPORT

    def test_unavailable_returns_notice_without_call(self):
        dispatcher = FakeDispatcher(available=False)
        assert generate_executive_report("Tickets", {}, dispatcher=dispatcher) == FAILED_REPORT
        assert dispatcher.calls == []


class TestVulnerabilities:

    def test_inventory_is_capped_to_fifty_entries(self):
        dispatcher = FakeDispatcher(["[]"])
        inventory = [f"Software: Product {i:03d}" for i in range(200)]
        scan_for_vulnerabilities(inventory, dispatcher=dispatcher)
        prompt = dispatcher.calls[0]["prompt"]
        assert "Product 049" in prompt
        assert "Product 050" not in prompt

    def test_results(self):
        answer = json.dumps([{
            "cve_id": "CVE-2024-0001", "description": "d", "severity": "Crítica",
            "affected_software": "Windows 10", "remediation": "Atualizar",
        }])
        results = scan_for_vulnerabilities(["OS: Windows 10"], include_eol=True, dispatcher=FakeDispatcher([answer]))
        assert [v.cve_id for v in results] == ["CVE-2024-0001"]

    def test_malformed_returns_empty_list(self):
        assert scan_for_vulnerabilities(["OS: Windows 10"], dispatcher=FakeDispatcher(['{"x":1}'])) == []

    def test_empty_inventory_skips_call(self):
        dispatcher = FakeDispatcher()
        assert scan_for_vulnerabilities([], dispatcher=dispatcher) == []
        assert dispatcher.calls == []


class TestNis2:

    def test_notification(self):
        answer = json.dumps({
            "report_json": json.dumps({"incident_id": "abc", "notification_type": "early_warning"}),
            "report_summary_html": "<h3>Resumo</h3>",
        })
        ticket = {"id": "abc", "title": "Ransomware", "impactCriticality": "Crítica"}
        result = generate_nis2_notification(ticket, ["isolado"], dispatcher=FakeDispatcher([answer]))
        assert json.loads(result.report_json)["incident_id"] == "abc"

    def test_report_json_must_be_json(self):
        answer = json.dumps({"report_json": "not json", "report_summary_html": ""})
        with pytest.raises(MalformedResponseError):
            generate_nis2_notification({"id": "abc"}, dispatcher=FakeDispatcher([answer]))

    def test_activities_are_capped(self):
        answer = json.dumps({"report_json": "{}", "report_summary_html": ""})
        dispatcher = FakeDispatcher([answer])
        activities = [{"date": "2026-01-01", "description": f"nota-{i:03d}"} for i in range(120)]
        generate_nis2_notification({"id": "abc"}, activities, dispatcher=dispatcher)
        prompt = dispatcher.calls[0]["prompt"]
        assert "nota-049" in prompt
        assert "nota-050" not in prompt


class TestDevice:

    def test_serial_from_image(self):
        dispatcher = FakeDispatcher(["  `SN-DELL-001`  "])
        image = InlineImage(data=make_image_b64(size=(3000, 1000)), mime_type="image/png")
        assert extract_serial_from_image(image, dispatcher=dispatcher) == "SN-DELL-001"

        sent = dispatcher.calls[0]["images"]
        assert len(sent) == 1
        assert sent[0].mime_type == "image/png"

    def test_empty_serial_is_an_error(self):
        image = InlineImage(data=make_image_b64(), mime_type="image/png")
        with pytest.raises(MalformedResponseError):
            extract_serial_from_image(image, dispatcher=FakeDispatcher([""]))

    def test_device_info(self):
        result = get_device_info("SN-DELL-001", dispatcher=FakeDispatcher(['{"brand":"Dell","type":"Laptop"}']))
        assert result == DeviceInfo(brand="Dell", type="Laptop")

    def test_device_info_malformed_propagates(self):
        with pytest.raises(MalformedResponseError):
            get_device_info("SN", dispatcher=FakeDispatcher(['{"brand":"Dell"}']))

    def test_unavailable_raises(self):
        with pytest.raises(AiUnavailableError):
            get_device_info("SN", dispatcher=FakeDispatcher(available=False))

    def test_peripherals(self):
        answer = '[{"brandName":"Dell","typeName":"Monitor","description":"P2422H"}]'
        result = suggest_peripherals("Dell", "Laptop", "Latitude 5440", dispatcher=FakeDispatcher([answer]))
        assert result[0].typeName == "Monitor"


class TestFindings:

    def test_pdf_is_sent_unchanged(self):
        document = InlineImage(data="JVBERi0xLjQ=", mime_type="application/pdf")
        answer = '[{"title":"SMBv1 ativo","description":"d","severity":"Alta","remediation":"Desativar"}]'
        dispatcher = FakeDispatcher([answer])

        findings = extract_findings_from_report(document, dispatcher=dispatcher)
        assert findings[0].severity == "Alta"
        assert dispatcher.calls[0]["images"] == [document]

    def test_unsupported_type(self):
        with pytest.raises(ValueError):
            extract_findings_from_report(InlineImage(data="eA==", mime_type="text/plain"),
                                         dispatcher=FakeDispatcher())


def test_cap_items():
    assert cap_items(range(10), 3) == [0, 1, 2]
    assert cap_items([1, 2], 50) == [1, 2]
