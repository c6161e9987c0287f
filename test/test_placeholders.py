import pytest

from scriptgraph.compiler import PlaceholderResolver
from scriptgraph.compiler.placeholders import MISSING, lookup, resolve


class TestPlaceholderResolver:

    def setup_method(self):
        self.resolver = PlaceholderResolver()

    def test_double_brace(self):
        assert self.resolver.resolve("Hello {{user.name}}", {"user": {"name": "Ann"}}) == "Hello Ann"

    def test_missing_path_is_left_untouched(self):
        assert self.resolver.resolve("Hi ${missing.path}", {}) == "Hi ${missing.path}"
        assert self.resolver.resolve("Hi {{user.age}}", {"user": {"name": "Ann"}}) == "Hi {{user.age}}"

    def test_dollar_brace(self):
        assert self.resolver.resolve("v${app.version}", {"app": {"version": "1.2"}}) == "v1.2"

    def test_path_whitespace_is_trimmed(self):
        assert self.resolver.resolve("{{ user.name }}", {"user": {"name": "Ann"}}) == "Ann"

    @pytest.mark.parametrize("value, expected", [
        (True, "true"),
        (None, "null"),
        (42, "42"),
        ({"a": [1, 2]}, '{"a":[1,2]}'),
    ])
    def test_non_string_values_render_as_json(self, value, expected):
        assert self.resolver.resolve("{{v}}", {"v": value}) == expected

    def test_list_index_segments(self):
        values = {"rows": [{"id": "r0"}, {"id": "r1"}]}
        assert self.resolver.resolve("{{rows.1.id}}", values) == "r1"
        assert self.resolver.resolve("{{rows.5.id}}", values) == "{{rows.5.id}}"

    def test_non_decimal_digit_segment_is_left_untouched(self):
        assert self.resolver.resolve("{{a.²}}", {"a": [1]}) == "{{a.²}}"
        assert lookup({"a": [1]}, "a.²") is MISSING

    def test_substituted_text_is_not_rescanned(self):
        values = {"a": "{{b}}", "b": "nope"}
        assert self.resolver.resolve("{{a}}", values) == "{{b}}"

    def test_mixed_syntaxes_in_one_string(self):
        values = {"x": "1", "y": "2"}
        assert self.resolver.resolve("{{x}}-${y}-{{z}}", values) == "1-2-{{z}}"

    def test_non_strings_pass_through(self):
        assert self.resolver.resolve(None, {}) is None

    def test_resolve_value_walks_nested_config(self):
        config = {"to": "{{user.email}}", "cc": ["{{user.name}}", 3], "opts": {"flag": False}}
        resolved = self.resolver.resolve_value(config, {"user": {"email": "a@b.c", "name": "Ann"}})
        assert resolved == {"to": "a@b.c", "cc": ["Ann", 3], "opts": {"flag": False}}

    def test_has_placeholders(self):
        assert self.resolver.has_placeholders("{{a}}")
        assert self.resolver.has_placeholders("${a}")
        assert not self.resolver.has_placeholders("plain {text}")


def test_lookup_reports_missing():
    assert lookup({"a": {"b": 1}}, "a.b") == 1
    assert lookup({"a": {"b": 1}}, "a.c") is MISSING
    assert lookup({"a": "text"}, "a.b") is MISSING


def test_module_level_resolve():
    assert resolve("{{a}}", {"a": "ok"}) == "ok"
