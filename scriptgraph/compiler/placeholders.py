"""
scriptgraph Compiler — Placeholder Resolution
==============================================
Two placeholder syntaxes appear in node configuration:

    {{dotted.path}}     ${dotted.path}

Both are resolved by walking the dotted path through nested mappings (and
list indices).  A path that cannot be walked leaves the placeholder text
exactly as written, so partially-configured nodes still compile to valid,
inspectable output.

At compile time the value bag holds workflow/node/options metadata; any
placeholder that refers to run-time data (triggerData, results, ...) is
therefore left alone and resolved later by the generated resolveTemplate()
helper against the live context, which implements the same rules.
"""

from __future__ import annotations

import json
import re
from typing import Any, Mapping, Sequence, Tuple

DOUBLE_BRACE = re.compile(r"\{\{([^{}]+)\}\}")
DOLLAR_BRACE = re.compile(r"\$\{([^{}]+)\}")
# One pass over both syntaxes so substituted text is never re-scanned.
_EITHER = re.compile(r"\{\{([^{}]+)\}\}|\$\{([^{}]+)\}")

MISSING = object()


def lookup(values: Any, path: str) -> Any:
    """Walk `path` through `values`; returns MISSING when any segment is missing."""
    current = values
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, (str, bytes)):
            if not part.isdecimal() or int(part) >= len(current):
                return MISSING
            current = current[int(part)]
        else:
            return MISSING
    return current


def format_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, separators=(",", ":"), default=str)


class PlaceholderResolver:
    """Stateless resolver; one instance can be shared across compilations."""

    patterns: Tuple[re.Pattern, ...] = (DOUBLE_BRACE, DOLLAR_BRACE)

    def resolve(self, template: str, values: Mapping[str, Any]) -> str:
        if not isinstance(template, str) or ("{" not in template):
            return template

        def _sub(match: re.Match) -> str:
            path = (match.group(1) or match.group(2)).strip()
            if not path:
                return match.group(0)
            value = lookup(values, path)
            if value is MISSING:
                return match.group(0)
            return format_value(value)

        return _EITHER.sub(_sub, template)

    def resolve_value(self, value: Any, values: Mapping[str, Any]) -> Any:
        """Resolve every string inside a nested config value; other leaves pass through."""
        if isinstance(value, str):
            return self.resolve(value, values)
        if isinstance(value, Mapping):
            return {k: self.resolve_value(v, values) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_value(v, values) for v in value]
        return value

    def has_placeholders(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


_DEFAULT = PlaceholderResolver()


def resolve(template: str, values: Mapping[str, Any]) -> str:
    return _DEFAULT.resolve(template, values)


__all__ = ["MISSING", "PlaceholderResolver", "format_value", "lookup", "resolve"]
