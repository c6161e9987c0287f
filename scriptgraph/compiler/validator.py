"""
scriptgraph Compiler — Graph Validation Seam
=============================================
Semantic validation belongs to an external collaborator.  The compiler only
needs its verdict:

    {valid, errors, requiredScopes}

GraphValidator is the protocol the compiler calls when the caller does not
pass a ready-made ValidationResult.  StructuralValidator is the default
implementation: it checks the shape of nodes and edges (no cycle check; the
topological sorter owns that diagnostic) and derives OAuth scopes from each
node's capability tag.

Dangling edges and unknown node types are warnings, not errors: the compiler
tolerates both.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Set

from .ir import Graph
from .templates import NodeKind, config_flag

logger = logging.getLogger(__name__)


_SCRIPT_APP = "https://www.googleapis.com/auth/script.scriptapp"
_EXTERNAL_REQUEST = "https://www.googleapis.com/auth/script.external_request"
# MailApp.sendEmail(): gmail.send nodes and the failure notification.
SEND_MAIL_SCOPE = "https://www.googleapis.com/auth/script.send_mail"
_GMAIL_MODIFY = "https://www.googleapis.com/auth/gmail.modify"

SCOPE_MAP: Dict[str, List[str]] = {
    "trigger.time.cron":        [_SCRIPT_APP],
    "trigger.webhook":          [_SCRIPT_APP],
    "trigger.gmail.new_email":  ["https://www.googleapis.com/auth/gmail.readonly", _SCRIPT_APP],
    "trigger.sheets.row_added": ["https://www.googleapis.com/auth/spreadsheets.readonly", _SCRIPT_APP],
    "action.gmail.send":        [SEND_MAIL_SCOPE],
    "action.gmail.read":        ["https://www.googleapis.com/auth/gmail.readonly"],
    "action.sheets.append":     ["https://www.googleapis.com/auth/spreadsheets"],
    "action.sheets.read":       ["https://www.googleapis.com/auth/spreadsheets.readonly"],
    "action.drive.create_file": ["https://www.googleapis.com/auth/drive.file"],
    "action.http.request":      [_EXTERNAL_REQUEST],
    "action.slack.post_message": [_EXTERNAL_REQUEST],
}

COMPLEXITY_MAP: Dict[str, int] = {
    "trigger.time.cron": 1,
    "trigger.webhook": 2,
    "trigger.gmail.new_email": 3,
    "trigger.sheets.row_added": 2,
    "action.gmail.send": 3,
    "action.gmail.read": 3,
    "action.sheets.append": 2,
    "action.sheets.read": 2,
    "action.drive.create_file": 2,
    "action.http.request": 4,
    "action.slack.post_message": 3,
    "condition.if": 2,
    "transform.data_mapper": 3,
    "utility.delay": 1,
    "utility.logger": 1,
}

_DEFAULT_COMPLEXITY = 2


def scopes_for(node_type: str, config: Optional[Mapping[str, Any]] = None) -> List[str]:
    """OAuth scopes a node needs; `config` refines them where behaviour depends on it."""
    scopes = list(SCOPE_MAP.get(node_type, []))
    if node_type == NodeKind.GMAIL_READ.value and config and config_flag(config, "markAsRead"):
        scopes.append(_GMAIL_MODIFY)
    return scopes


@dataclass
class ValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    required_scopes: List[str] = field(default_factory=list)
    estimated_complexity: int = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ValidationResult":
        """
        Accept the external validator's wire shape.

        Errors may be plain strings or objects carrying a "message" key.
        """
        def _messages(items: Any) -> List[str]:
            out: List[str] = []
            for item in items or []:
                if isinstance(item, Mapping):
                    out.append(str(item.get("message", item)))
                else:
                    out.append(str(item))
            return out

        return cls(
            valid=bool(data.get("valid", False)),
            errors=_messages(data.get("errors")),
            warnings=_messages(data.get("warnings")),
            required_scopes=list(data.get("requiredScopes", data.get("required_scopes", [])) or []),
            estimated_complexity=int(data.get("estimatedComplexity", 0) or 0),
        )


class GraphValidator(Protocol):
    def validate(self, graph: Graph) -> ValidationResult:
        ...


class StructuralValidator:
    """Default validator: structural checks plus scope derivation."""

    def validate(self, graph: Graph) -> ValidationResult:
        errors: List[str] = []
        warnings: List[str] = []
        scopes: List[str] = []
        complexity = 0

        seen_ids: Set[str] = set()
        for i, node in enumerate(graph.nodes):
            ctx = f"nodes[{i}]"
            if not node.id:
                errors.append(f"{ctx}: node id is required")
            elif node.id in seen_ids:
                errors.append(f"{ctx}: duplicate node id '{node.id}'")
            seen_ids.add(node.id)

            if not node.type:
                errors.append(f"{ctx}: node type is required")
                continue

            if NodeKind.parse(node.type) is None:
                warnings.append(f"{ctx}: unknown node type '{node.type}' (will compile to a stub)")

            for scope in scopes_for(node.type, node.data):
                if scope not in scopes:
                    scopes.append(scope)
            complexity += COMPLEXITY_MAP.get(node.type, _DEFAULT_COMPLEXITY)

        for i, edge in enumerate(graph.edges):
            ctx = f"edges[{i}]"
            if not edge.source:
                errors.append(f"{ctx}: edge source is required")
            if not edge.target:
                errors.append(f"{ctx}: edge target is required")
            for end, node_id in (("source", edge.source), ("target", edge.target)):
                if node_id and node_id not in seen_ids:
                    warnings.append(f"{ctx}: {end} node '{node_id}' not found (edge ignored)")

        for message in warnings:
            logger.warning(message)

        return ValidationResult(
            valid=not errors,
            errors=errors,
            warnings=warnings,
            required_scopes=scopes,
            estimated_complexity=complexity,
        )


__all__ = [
    "COMPLEXITY_MAP",
    "GraphValidator",
    "SCOPE_MAP",
    "SEND_MAIL_SCOPE",
    "StructuralValidator",
    "ValidationResult",
    "scopes_for",
]
