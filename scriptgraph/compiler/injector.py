"""
scriptgraph Compiler — Cross-Cutting Injection
===============================================
Fills the four injection points a node template may leave behind:

    auth       add credentials to the outgoing request options
    error      fail loudly on an HTTP error response
    rateLimit  consult the checkRateLimit() helper before calling out
    dedup      drop items already seen; every sighting renews the TTL, so
               only items that have left the source ever expire

Two entry points share the same snippet builders:

    inject_block(writer, kind, params)   fills SlotKind slots in a CodeWriter
    inject(code, kind, params)           replaces the marker comment in text

Either way a missing slot/marker is a no-op, so injection is idempotent and
safe to run unconditionally over every generated unit.

Credentials are never embedded.  Each auth mechanism reads a script property
whose name is the connector slug upper-cased plus a fixed suffix, e.g. the
"slack" connector with bearer auth reads SLACK_TOKEN.  The node config may
name the property instead (tokenProperty, apiKeyProperty, usernameProperty,
passwordProperty, accessTokenProperty).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from .writer import CodeWriter, SlotKind, js_literal

logger = logging.getLogger(__name__)


AUTH_TYPES = ("api_key", "bearer", "basic", "oauth2")

_AUTH_ALIASES = {
    "apikey": "api_key",
    "api_key": "api_key",
    "bearer": "bearer",
    "token": "bearer",
    "basic": "basic",
    "oauth": "oauth2",
    "oauth2": "oauth2",
}


def normalize_auth_type(raw: Optional[str]) -> Optional[str]:
    """Map the editor's spellings onto AUTH_TYPES; None/"none" mean no auth."""
    if not raw:
        return None
    key = re.sub(r"[\s\-]+", "_", str(raw).strip().lower())
    if key in ("", "none"):
        return None
    return _AUTH_ALIASES.get(key, key)


def property_prefix(slug: str) -> str:
    prefix = re.sub(r"[^A-Za-z0-9]+", "_", slug).strip("_").upper()
    return prefix or "API"


@dataclass(frozen=True)
class InjectionParams:
    slug: str = "http"
    connector_name: str = "HTTP"
    auth_type: Optional[str] = None
    api_key_header: str = "X-API-Key"
    token_property: Optional[str] = None
    api_key_property: Optional[str] = None
    username_property: Optional[str] = None
    password_property: Optional[str] = None
    access_token_property: Optional[str] = None
    rate_limiting: bool = False
    requests_per_minute: int = 60
    window_ms: int = 60000
    dedup_key: str = "items"
    ttl_hours: float = 24
    options_var: str = "options"
    response_var: str = "response"
    items_var: str = "items"

    @property
    def prefix(self) -> str:
        return property_prefix(self.slug)


def secret_properties(params: InjectionParams) -> List[str]:
    """Script property names the generated auth snippet will read."""
    auth = normalize_auth_type(params.auth_type)
    if auth == "api_key":
        return [params.api_key_property or f"{params.prefix}_API_KEY"]
    if auth == "bearer":
        return [params.token_property or f"{params.prefix}_TOKEN"]
    if auth == "basic":
        return [
            params.username_property or f"{params.prefix}_USERNAME",
            params.password_property or f"{params.prefix}_PASSWORD",
        ]
    if auth == "oauth2":
        return [params.access_token_property or params.token_property or f"{params.prefix}_ACCESS_TOKEN"]
    return []


# ── Snippet builders ──────────────────────────────────────────────────────────

def _property(name: str) -> str:
    return f"PropertiesService.getScriptProperties().getProperty({js_literal(name)})"


def auth_snippet(params: InjectionParams) -> List[str]:
    auth = normalize_auth_type(params.auth_type)
    if auth is None:
        return []
    if auth not in AUTH_TYPES:
        logger.warning(f"Unsupported auth type '{params.auth_type}' for connector '{params.slug}'; no auth injected")
        return []

    opts = params.options_var
    names = secret_properties(params)
    lines = [f"{opts}.headers = {opts}.headers || {{}};"]

    if auth == "api_key":
        lines = ["// API key authentication"] + lines + [
            f"const apiKey = {_property(names[0])};",
            "if (apiKey) {",
            f"  {opts}.headers[{js_literal(params.api_key_header)}] = apiKey;",
            "}",
        ]
    elif auth == "bearer":
        lines = ["// Bearer token authentication"] + lines + [
            f"const token = {_property(names[0])};",
            "if (token) {",
            f"  {opts}.headers['Authorization'] = 'Bearer ' + token;",
            "}",
        ]
    elif auth == "basic":
        lines = ["// Basic authentication"] + lines + [
            f"const username = {_property(names[0])};",
            f"const password = {_property(names[1])};",
            "if (username && password) {",
            f"  {opts}.headers['Authorization'] = 'Basic ' + Utilities.base64Encode(username + ':' + password);",
            "}",
        ]
    else:
        lines = ["// OAuth2 authentication"] + lines + [
            f"const accessToken = {_property(names[0])};",
            "if (accessToken) {",
            f"  {opts}.headers['Authorization'] = 'Bearer ' + accessToken;",
            "}",
        ]
    return lines


def error_snippet(params: InjectionParams) -> List[str]:
    resp = params.response_var
    label = js_literal(f"{params.connector_name} API error (")
    return [
        "// Fail on HTTP error responses",
        f"if ({resp}.getResponseCode() >= 400) {{",
        f"  const errorMessage = {label} + {resp}.getResponseCode() + '): ' + {resp}.getContentText();",
        "  Logger.log(errorMessage);",
        "  throw new Error(errorMessage);",
        "}",
    ]


def rate_limit_snippet(params: InjectionParams) -> List[str]:
    if not params.rate_limiting:
        return []
    return [
        "// Rate limiting",
        f"checkRateLimit({js_literal(params.slug)}, {int(params.requests_per_minute)}, {int(params.window_ms)});",
    ]


def dedup_snippet(params: InjectionParams) -> List[str]:
    items = params.items_var
    ttl = params.ttl_hours
    ttl_literal = str(int(ttl)) if float(ttl).is_integer() else str(ttl)
    return [
        f"// Skip items already processed in the last {ttl_literal} hours",
        f"{items} = {items}.filter(function (item) {{",
        f"  const itemKey = {js_literal(params.dedup_key + ':')} + (item.id || item.uuid || JSON.stringify(item));",
        "  if (isAlreadyProcessed(itemKey)) {",
        "    // Seen again: push the expiry forward",
        f"    markProcessed(itemKey, {ttl_literal});",
        "    return false;",
        "  }",
        f"  markProcessed(itemKey, {ttl_literal});",
        "  return true;",
        "});",
    ]


_SNIPPETS = {
    SlotKind.AUTH: auth_snippet,
    SlotKind.ERROR: error_snippet,
    SlotKind.RATE_LIMIT: rate_limit_snippet,
    SlotKind.DEDUP: dedup_snippet,
}

_MARKER_LINE = {
    kind: re.compile(r"^([ \t]*)" + re.escape(kind.marker) + r"[ \t]*$", re.MULTILINE)
    for kind in SlotKind
}


# ── Injector ──────────────────────────────────────────────────────────────────

class CrossCuttingInjector:

    def snippet(self, kind: Union[SlotKind, str], params: InjectionParams) -> List[str]:
        return _SNIPPETS[SlotKind(kind)](params)

    def inject(self, code: str, kind: Union[SlotKind, str], params: InjectionParams) -> str:
        """Replace the marker comment for `kind` in rendered text; absent marker → unchanged."""
        kind = SlotKind(kind)
        pattern = _MARKER_LINE[kind]
        if not pattern.search(code):
            return code
        lines = self.snippet(kind, params)
        if not lines:
            # Nothing to insert: remove the marker line itself.
            return "\n".join(line for line in code.split("\n") if not pattern.fullmatch(line))

        def _sub(match: re.Match) -> str:
            indent = match.group(1)
            return "\n".join(indent + line if line else "" for line in lines)

        return pattern.sub(_sub, code)

    def inject_block(self, writer: CodeWriter, kind: Union[SlotKind, str], params: InjectionParams) -> bool:
        kind = SlotKind(kind)
        if not writer.has_slot(kind):
            return False
        filled = writer.fill(kind, self.snippet(kind, params))
        logger.debug(f"Filled {kind.value} slot for connector '{params.slug}'")
        return filled

    def inject_all(
        self,
        writer: CodeWriter,
        params: InjectionParams,
        kinds: Iterable[SlotKind] = tuple(SlotKind),
    ) -> List[SlotKind]:
        return [kind for kind in kinds if self.inject_block(writer, kind, params)]


__all__ = [
    "AUTH_TYPES",
    "CrossCuttingInjector",
    "InjectionParams",
    "auth_snippet",
    "dedup_snippet",
    "error_snippet",
    "normalize_auth_type",
    "property_prefix",
    "rate_limit_snippet",
    "secret_properties",
]
