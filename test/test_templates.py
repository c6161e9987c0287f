import logging

import pytest

from scriptgraph.compiler import CompilationError, Node, NodeCodeGenerator, NodeKind
from scriptgraph.compiler.templates import (
    TEMPLATE_REGISTRY,
    UnknownNodeTemplate,
    context_path,
    get_template,
    runtime_string,
    supported_node_types,
    template_stats,
)

from conftest import default_options

EXPECTED = {
    "trigger.time.cron":         ("time_trigger", "triggered"),
    "trigger.webhook":           ("webhook_trigger", "triggered"),
    "trigger.gmail.new_email":   ("gmail_trigger", "triggered"),
    "trigger.sheets.row_added":  ("sheets_trigger", "triggered"),
    "action.gmail.send":         ("gmail_send", "sent"),
    "action.gmail.read":         ("gmail_read", "completed"),
    "action.sheets.append":      ("sheets_append", "completed"),
    "action.sheets.read":        ("sheets_read", "completed"),
    "action.drive.create_file":  ("drive_create", "created"),
    "action.http.request":       ("http_request", "completed"),
    "action.slack.post_message": ("slack_post_message", "sent"),
    "condition.if":              ("condition", "evaluated"),
    "transform.data_mapper":     ("data_mapper", "transformed"),
    "utility.delay":             ("delay", "completed"),
    "utility.logger":            ("logger", "completed"),
}


def synth(node_type, data=None, node_id="n1", **options):
    return NodeCodeGenerator().synthesize(Node(id=node_id, type=node_type, data=data or {}), default_options(**options))


# ── Registry ──────────────────────────────────────────────────────────────────

def test_registry_covers_every_kind():
    assert set(TEMPLATE_REGISTRY) == set(NodeKind)
    for kind, template in TEMPLATE_REGISTRY.items():
        assert template.kind is kind


def test_supported_node_types_and_stats():
    assert supported_node_types() == sorted(EXPECTED)
    assert template_stats() == {"trigger": 4, "action": 7, "condition": 1, "transform": 1, "utility": 2}


def test_parse_unknown_tag():
    assert NodeKind.parse("action.http.request") is NodeKind.HTTP_REQUEST
    assert NodeKind.parse("action.fax.send") is None
    assert NodeKind.parse(None) is None
    assert isinstance(get_template("action.fax.send"), UnknownNodeTemplate)


# ── Per-kind synthesis ────────────────────────────────────────────────────────

@pytest.mark.parametrize("node_type", sorted(EXPECTED))
def test_every_kind_returns_type_and_status(node_type):
    result_type, status = EXPECTED[node_type]
    code = synth(node_type)
    assert code.splitlines()[0] == "/**"
    assert "function execute_n1(context) {" in code
    assert f'type: "{result_type}",' in code
    assert f'status: "{status}"' in code
    assert code.count("{") == code.count("}")
    assert "// {{" not in code


def test_unknown_type_stub(caplog):
    with caplog.at_level(logging.WARNING):
        code = synth("custom.thing", node_id="odd")
    assert "function execute_odd(context) {" in code
    assert 'type: "custom.thing",' in code
    assert 'status: "skipped"' in code
    assert "custom.thing" in caplog.text


def test_description_goes_into_doc_comment():
    code = synth("utility.delay", {"description": "Wait a bit */ then go"})
    assert " * Wait a bit * / then go" in code
    assert " * Type: utility.delay" in code


class TestHttpRequest:

    def test_get_has_no_payload(self):
        code = synth("action.http.request", {"url": "https://api.example.com/items/{{triggerData.id}}"})
        assert 'const url = resolveTemplate("https://api.example.com/items/{{triggerData.id}}", context);' in code
        assert "options.payload" not in code
        assert "const response = UrlFetchApp.fetch(url, options);" in code
        assert "response.getResponseCode() >= 400" in code

    def test_post_serialises_payload(self):
        code = synth("action.http.request", {"url": "https://x.test", "method": "post", "payload": {"a": "{{results.n0.id}}"}})
        assert 'const method = "POST";' in code
        assert 'options.payload = JSON.stringify(resolveObject({"a": "{{results.n0.id}}"}, context));' in code

    def test_bearer_auth_reads_slug_property(self):
        code = synth("action.http.request", {"url": "https://x.test", "authType": "bearer"})
        assert 'getProperty("HTTP_TOKEN")' in code

    def test_token_property_override(self):
        code = synth("action.http.request", {"authType": "bearer", "tokenProperty": "CRM_TOKEN"})
        assert 'getProperty("CRM_TOKEN")' in code
        assert "HTTP_TOKEN" not in code

    def test_connector_slug(self):
        code = synth("action.http.request", {"authType": "apikey", "connector": "open-weather"})
        assert 'getProperty("OPEN_WEATHER_API_KEY")' in code
        assert '"open-weather API error ("' in code

    def test_rate_limiting_toggle(self):
        assert "checkRateLimit" not in synth("action.http.request")
        code = synth("action.http.request", {"rateLimit": {"requestsPerMinute": 10}}, include_rate_limiting=True)
        assert 'checkRateLimit("http", 10, 60000);' in code

    @pytest.mark.parametrize("limits", [
        {"rateLimit": {"requestsPerMinute": "fast"}},
        {"rateLimit": {"windowMs": "1 minute"}},
        {"requestsPerMinute": "lots"},
    ])
    def test_malformed_rate_limit_raises(self, limits):
        with pytest.raises(CompilationError, match="must be a number"):
            synth("action.http.request", limits, include_rate_limiting=True)

    def test_auth_precedes_fetch_and_error_follows(self):
        code = synth("action.http.request", {"authType": "bearer"}, include_rate_limiting=True)
        assert code.index("checkRateLimit") < code.index("const token") < code.index("UrlFetchApp.fetch")
        assert code.index("UrlFetchApp.fetch") < code.index("getResponseCode() >= 400")


def test_slack_defaults_to_bearer():
    code = synth("action.slack.post_message", {"channel": "#ops", "text": "Deployed {{triggerData.version}}"})
    assert 'getProperty("SLACK_TOKEN")' in code
    assert 'const channel = "#ops";' in code
    assert 'resolveTemplate("Deployed {{triggerData.version}}", context)' in code
    assert '"https://slack.com/api/chat.postMessage"' in code
    assert "responseData.ok === false" in code


def test_polling_triggers_deduplicate():
    gmail = synth("trigger.gmail.new_email", {"query": "label:invoices", "dedupTtlHours": 48})
    assert 'const query = "label:invoices";' in gmail
    assert '"gmail:n1:"' in gmail
    assert "markProcessed(itemKey, 48);" in gmail
    sheets = synth("trigger.sheets.row_added", {"spreadsheetId": "abc"}, node_id="rows")
    assert '"sheets:rows:"' in sheets
    assert "isAlreadyProcessed(itemKey)" in sheets


def test_condition_operator_is_chosen_at_compile_time():
    code = synth("condition.if", {"leftValue": "{{triggerData.amount}}", "operator": ">", "rightValue": "100"})
    assert 'const leftValue = getContextValue(context, "triggerData.amount");' in code
    assert "const result = Number(leftValue) > Number(rightValue);" in code


def test_condition_unknown_operator_falls_back(caplog):
    with caplog.at_level(logging.WARNING):
        code = synth("condition.if", {"leftValue": "x", "operator": "~="})
    assert "const result = Boolean(leftValue);" in code
    assert "~=" in caplog.text


def test_data_mapper():
    code = synth("transform.data_mapper", {
        "sourceField": "{{results.n0}}",
        "mapping": {"email": "{{triggerData.email}}", "greeting": "Hi {{triggerData.name}}", "source": "web"},
    })
    assert 'const sourceData = getContextValue(context, "results.n0");' in code
    assert 'transformedData["email"] = getContextValue(context, "triggerData.email");' in code
    assert 'transformedData["greeting"] = resolveTemplate("Hi {{triggerData.name}}", context);' in code
    assert 'transformedData["source"] = "web";' in code


def test_delay_is_capped():
    assert "const delayMs = 3500;" in synth("utility.delay", {"delayMs": 500, "delaySeconds": 3})
    assert "const delayMs = 300000;" in synth("utility.delay", {"delaySeconds": 3600})


def test_gmail_send_options():
    code = synth("action.gmail.send", {"to": "ops@example.com", "cc": "boss@example.com", "htmlBody": True})
    assert 'const to = "ops@example.com";' in code
    assert "htmlBody: body" in code
    assert 'emailOptions.cc = "boss@example.com";' in code
    assert "MailApp.sendEmail(emailOptions);" in code


def test_sheets_append_wraps_flat_row():
    code = synth("action.sheets.append", {"values": ["{{triggerData.name}}", 3]})
    assert 'const rows = [["{{triggerData.name}}", 3]].map(function (row) {' in code


def test_malformed_numeric_config_raises():
    with pytest.raises(CompilationError, match="maxResults"):
        synth("action.gmail.read", {"maxResults": "lots"})


def test_helpers():
    assert context_path("{{ triggerData.x }}") == "triggerData.x"
    assert context_path("${a.b}") == "a.b"
    assert context_path("plain.path") == "plain.path"
    assert runtime_string("static") == '"static"'
    assert runtime_string("{{a}}") == 'resolveTemplate("{{a}}", context)'
