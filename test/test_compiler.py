import datetime
import json
import logging

import pytest

from scriptgraph import compile_workflow
from scriptgraph.compiler import ScriptCompiler, ValidationResult
from scriptgraph.compiler.compiler import load_graph, parse_graph
from scriptgraph.compiler.errors import SchemaError

from conftest import FIXED_TIME, fixed_clock

SCRIPT_APP = "https://www.googleapis.com/auth/script.scriptapp"
EXTERNAL_REQUEST = "https://www.googleapis.com/auth/script.external_request"
SEND_MAIL = "https://www.googleapis.com/auth/script.send_mail"
HELPERS = ["RuntimeHelpers.js", "HttpHelpers.js", "StorageHelpers.js"]


def code_of(result, name="Code.js"):
    found = result.get_file(name)
    assert found is not None, f"{name} missing from {[f.name for f in result.files]}"
    return found.content


class TestEndToEnd:

    def test_trigger_then_http(self, compiler, two_node_graph):
        result = compiler.compile(two_node_graph)
        assert result.success, result.error
        assert result.error is None
        assert [f.name for f in result.files] == ["Code.js", *HELPERS, "Triggers.js"]
        assert result.entry == "Code.js"
        assert list(result.required_scopes) == [SCRIPT_APP, EXTERNAL_REQUEST, SEND_MAIL]
        assert result.manifest["oauthScopes"] == [SCRIPT_APP, EXTERNAL_REQUEST, SEND_MAIL]

        code = code_of(result)
        assert "function executeWorkflow(triggerData) {" in code
        assert "function execute_t1(context) {" in code
        assert "function execute_a1(context) {" in code
        assert code.index("= execute_t1(context);") < code.index("= execute_a1(context);")
        assert f" * Generated: {FIXED_TIME.isoformat()}" in code

    def test_estimated_size_is_sum_of_files(self, compiler, two_node_graph):
        result = compiler.compile(two_node_graph)
        assert result.estimated_size == sum(len(f.content) for f in result.files)

    def test_same_input_same_output(self, two_node_graph):
        first = ScriptCompiler(clock=fixed_clock).compile(two_node_graph)
        second = ScriptCompiler(clock=fixed_clock).compile(two_node_graph)
        assert first.as_dict() == second.as_dict()

    def test_only_the_generated_line_depends_on_the_clock(self, two_node_graph):
        later = datetime.datetime(2030, 6, 1, tzinfo=datetime.timezone.utc)
        a = code_of(ScriptCompiler(clock=fixed_clock).compile(two_node_graph))
        b = code_of(ScriptCompiler(clock=lambda: later).compile(two_node_graph))
        assert a != b

        def strip(text):
            return [line for line in text.splitlines() if not line.startswith(" * Generated:")]

        assert strip(a) == strip(b)

    def test_accepts_json_text(self, compiler, two_node_graph):
        assert compiler.compile(json.dumps(two_node_graph)).success

    def test_as_dict_shape(self, compiler, two_node_graph):
        out = compiler.compile(two_node_graph).as_dict()
        assert set(out) == {
            "success", "files", "manifest", "entry", "estimatedSize", "requiredScopes", "deploymentInstructions",
        }
        assert out["files"][0]["name"] == "Code.js"
        assert out["files"][0]["type"] == "code"

    def test_compile_workflow_helper(self, two_node_graph):
        assert compile_workflow(two_node_graph).success


class TestGraphShapes:

    def test_empty_graph(self, compiler):
        result = compiler.compile({"id": "empty", "nodes": [], "edges": []})
        assert result.success
        assert [f.name for f in result.files] == ["Code.js", *HELPERS]
        assert "// No nodes to execute" in code_of(result)
        assert result.required_scopes == (SEND_MAIL,)

    def test_no_triggers_means_no_triggers_file(self, compiler):
        result = compiler.compile({"nodes": [{"id": "d", "type": "utility.delay"}]})
        assert result.success
        assert result.get_file("Triggers.js") is None

    def test_unknown_type_compiles_to_stub(self, compiler, caplog):
        with caplog.at_level(logging.WARNING):
            result = compiler.compile({"nodes": [{"id": "x", "type": "action.fax.send"}]})
        assert result.success
        assert 'status: "skipped"' in code_of(result)
        assert "action.fax.send" in caplog.text

    def test_cycle_fails_with_no_files(self, compiler):
        result = compiler.compile({
            "nodes": [{"id": "a", "type": "utility.delay"}, {"id": "b", "type": "utility.delay"}],
            "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
        })
        assert not result.success
        assert result.error.startswith("Circular dependency detected involving node:")
        assert result.files == ()
        assert result.manifest == {}

    def test_cycle_reported_before_unknown_types(self, compiler, caplog):
        with caplog.at_level(logging.WARNING, logger="scriptgraph.compiler.templates"):
            result = compiler.compile({
                "nodes": [{"id": "a", "type": "custom.one"}, {"id": "b", "type": "custom.two"}],
                "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
            })
        assert not result.success
        assert "Circular dependency" in result.error
        assert "emitting a skip stub" not in caplog.text

    def test_dangling_edge_is_ignored(self, compiler):
        result = compiler.compile({
            "nodes": [{"id": "a", "type": "utility.logger"}],
            "edges": [{"source": "a", "target": "ghost"}],
        })
        assert result.success

    def test_duplicate_ids_fail_validation(self, compiler):
        result = compiler.compile({
            "nodes": [{"id": "a", "type": "utility.delay"}, {"id": "a", "type": "utility.logger"}],
        })
        assert not result.success
        assert "duplicate node id 'a'" in result.error

    def test_compile_time_placeholders_reach_code(self, compiler):
        result = compiler.compile({
            "id": "wf-7",
            "name": "Nightly Sync",
            "nodes": [{"id": "log", "type": "utility.logger", "data": {"message": "Run of {{workflow.name}}"}}],
        })
        assert 'const message = "Run of Nightly Sync";' in code_of(result)


class TestFailures:

    def test_external_validation_failure(self, compiler, two_node_graph):
        result = compiler.compile(two_node_graph, validation={"valid": False, "errors": ["a", {"message": "b"}]})
        assert not result.success
        assert result.error == "Graph validation failed: a; b"

    def test_external_validation_scopes_are_used(self, compiler, two_node_graph):
        verdict = ValidationResult(valid=True, required_scopes=["s1", "s2", "s1"])
        result = compiler.compile(two_node_graph, validation=verdict)
        assert result.success
        assert result.manifest["oauthScopes"] == ["s1", "s2", SEND_MAIL]

    def test_malformed_graph(self, compiler):
        result = compiler.compile({"nodes": [{"type": "utility.delay"}]})
        assert not result.success
        assert result.error.startswith("Invalid graph")

    def test_bad_json_text(self, compiler):
        result = compiler.compile("{not json")
        assert not result.success
        assert result.error.startswith("Invalid graph JSON")

    def test_bad_node_config(self, compiler):
        result = compiler.compile({"nodes": [{"id": "r", "type": "action.gmail.read", "data": {"maxResults": "many"}}]})
        assert not result.success
        assert "maxResults" in result.error

    def test_unexpected_error_is_contained(self, caplog, two_node_graph):
        class ExplodingValidator:
            def validate(self, graph):
                raise RuntimeError("validator exploded")

        compiler = ScriptCompiler(validator=ExplodingValidator(), clock=fixed_clock)
        with caplog.at_level(logging.ERROR):
            result = compiler.compile(two_node_graph)
        assert not result.success
        assert result.error == "validator exploded"
        assert any(r.levelno == logging.ERROR and r.exc_info for r in caplog.records)


class TestOptions:

    def test_logging_toggle(self, compiler, two_node_graph):
        quiet = code_of(compiler.compile(two_node_graph, {"includeLogging": False}))
        assert "Logger.log('Executing node: '" not in quiet
        loud = code_of(compiler.compile(two_node_graph, {"includeLogging": True}))
        assert "Logger.log('Executing node: ' + \"t1\");" in loud

    def test_error_handling_toggle(self, compiler, two_node_graph):
        bare = code_of(compiler.compile(two_node_graph, {"includeErrorHandling": False}))
        assert "catch (nodeError)" not in bare
        assert "ERROR_NOTIFICATION_EMAIL" not in bare
        assert "throw error;" in bare
        guarded = code_of(compiler.compile(two_node_graph, {"includeErrorHandling": True}))
        assert "catch (nodeError)" in guarded
        assert "ERROR_NOTIFICATION_EMAIL" in guarded

    def test_mail_scope_follows_mail_usage(self, compiler, two_node_graph):
        quiet = compiler.compile(two_node_graph, {"includeErrorHandling": False})
        assert SEND_MAIL not in quiet.required_scopes
        send = compiler.compile({"nodes": [{"id": "m", "type": "action.gmail.send"}]}, {"includeErrorHandling": False})
        assert list(send.required_scopes) == [SEND_MAIL]

    def test_mark_as_read_needs_modify_scope(self, compiler):
        modify = "https://www.googleapis.com/auth/gmail.modify"
        plain = compiler.compile({"nodes": [{"id": "r", "type": "action.gmail.read"}]})
        assert modify not in plain.required_scopes
        marking = compiler.compile({"nodes": [{"id": "r", "type": "action.gmail.read", "data": {"markAsRead": True}}]})
        assert modify in marking.required_scopes

    def test_configured_property_names_match_code_and_docs(self, compiler):
        result = compiler.compile({"nodes": [
            {"id": "jira", "type": "action.http.request", "data": {
                "authType": "basic", "connector": "jira",
                "usernameProperty": "JIRA_USER", "passwordProperty": "JIRA_PASS",
            }},
            {"id": "gh", "type": "action.http.request", "data": {
                "authType": "oauth2", "connector": "github", "accessTokenProperty": "GH_ACCESS",
            }},
        ]})
        code = code_of(result)
        docs = result.deployment_instructions
        for name in ("JIRA_USER", "JIRA_PASS", "GH_ACCESS"):
            assert f'getProperty("{name}")' in code
            assert f"- `{name}`" in docs
        for name in ("JIRA_USERNAME", "JIRA_PASSWORD", "GITHUB_ACCESS_TOKEN"):
            assert name not in code
            assert name not in docs

    def test_continue_on_error_false_rethrows(self, compiler):
        graph = {"nodes": [{"id": "d", "type": "utility.delay", "data": {"continueOnError": False}}]}
        assert "throw nodeError;" in code_of(compiler.compile(graph))
        graph["nodes"][0]["data"]["continueOnError"] = True
        assert "throw nodeError;" not in code_of(compiler.compile(graph))

    def test_rate_limiting_toggle(self, compiler, two_node_graph):
        off = compiler.compile(two_node_graph)
        assert "checkRateLimit" not in code_of(off, "RuntimeHelpers.js")
        assert "checkRateLimit" not in code_of(off)
        on = compiler.compile(two_node_graph, {"includeRateLimiting": True})
        assert "function checkRateLimit(" in code_of(on, "RuntimeHelpers.js")
        assert 'checkRateLimit("http", 60, 60000);' in code_of(on)

    def test_project_name_and_timezone(self, compiler, two_node_graph):
        result = compiler.compile(two_node_graph, {"projectName": "Pinger", "timezone": "Europe/Paris"})
        assert code_of(result).splitlines()[1] == " * Pinger"
        assert result.manifest["timeZone"] == "Europe/Paris"

    def test_webhook_adds_handlers(self, compiler):
        result = compiler.compile({
            "nodes": [
                {"id": "hook", "type": "trigger.webhook"},
                {"id": "log", "type": "utility.logger", "data": {"message": "{{triggerData.body.name}}"}},
            ],
            "edges": [{"source": "hook", "target": "log"}],
        })
        triggers = code_of(result, "Triggers.js")
        assert "function doPost(e) {" in triggers
        assert "function doGet(e) {" in triggers
        assert "Publish as Web App" in result.deployment_instructions


# ── Parsing helpers ───────────────────────────────────────────────────────────

def test_parse_graph_rejects_non_objects():
    with pytest.raises(SchemaError):
        parse_graph("[1, 2]")


def test_load_graph(tmp_path, two_node_graph):
    path = tmp_path / "graph.json"
    path.write_text(json.dumps(two_node_graph), encoding="utf-8")
    graph = load_graph(path)
    assert graph.display_name == "Ping API"
    assert [n.id for n in graph.nodes] == ["t1", "a1"]
    assert graph.get_node("a1").type == "action.http.request"
    assert graph.get_node("zz") is None
