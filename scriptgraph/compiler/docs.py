"""
scriptgraph Compiler — Deployment Instructions
===============================================
Produces the markdown handed to whoever deploys the bundle: which script
properties must be set, then numbered steps.

Required properties come from two places:

    • node config fields that name a property (tokenProperty,
      apiKeyProperty, usernameProperty, passwordProperty,
      accessTokenProperty, secretProperty), at any depth
    • the property names the injected auth snippets read
      (e.g. SLACK_TOKEN for a Slack node with bearer auth)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .emitter import ENTRY_FUNCTION, ERROR_EMAIL_PROPERTY
from .ir import CompiledFile
from .scheduler import ExecutionPlan
from .templates import NodeCodeGenerator, NodeKind

logger = logging.getLogger(__name__)

SECRET_FIELDS = (
    "tokenProperty",
    "apiKeyProperty",
    "usernameProperty",
    "passwordProperty",
    "accessTokenProperty",
    "secretProperty",
)

NO_CONFIGURATION = "No additional configuration is required."


def scan_secret_fields(config: Any) -> List[str]:
    """Property names referenced by SECRET_FIELDS keys anywhere in `config`."""
    found: List[str] = []

    def _walk(value: Any) -> None:
        if isinstance(value, Mapping):
            for key, item in value.items():
                if key in SECRET_FIELDS and isinstance(item, str) and item.strip():
                    found.append(item.strip())
                else:
                    _walk(item)
        elif isinstance(value, list):
            for item in value:
                _walk(item)

    _walk(config)
    return found


class DeploymentDocGenerator:

    def __init__(self, generator: Optional[NodeCodeGenerator] = None):
        self.generator = generator or NodeCodeGenerator()

    def required_properties(self, plan: ExecutionPlan) -> Dict[str, List[str]]:
        """property name → ids of the nodes that read it, in first-seen order."""
        props: Dict[str, List[str]] = {}
        for snode in plan.nodes:
            names = scan_secret_fields(snode.config) + self.generator.secret_properties(snode, plan.options)
            for name in names:
                readers = props.setdefault(name, [])
                if snode.node_id not in readers:
                    readers.append(snode.node_id)
        return props

    def generate(self, plan: ExecutionPlan, files: Sequence[CompiledFile]) -> str:
        graph = plan.graph
        props = self.required_properties(plan)
        has_triggers = bool(graph.trigger_nodes())
        has_webhook = any(n.kind is NodeKind.WEBHOOK_TRIGGER for n in plan.nodes)
        logger.debug(f"Deployment doc: {len(props)} required propert(ies)")

        lines: List[str] = [f"# Deployment Instructions: {graph.display_name}", ""]
        if graph.description:
            lines += [graph.description, ""]

        lines += ["## Required Script Properties", ""]
        if props:
            for name, readers in props.items():
                lines.append(f"- `{name}` (used by {', '.join(f'`{r}`' for r in readers)})")
        else:
            lines.append(NO_CONFIGURATION)
        if plan.options.include_error_handling:
            lines += [
                "",
                f"Optional: set `{ERROR_EMAIL_PROPERTY}` to receive an email when a run fails.",
            ]
        lines.append("")

        lines += ["## Steps", ""]
        for number, (title, body) in enumerate(self._steps(files, props, has_triggers, has_webhook), start=1):
            lines += [f"### {number}. {title}", *body, ""]

        return "\n".join(lines).rstrip() + "\n"

    def _steps(
        self,
        files: Sequence[CompiledFile],
        props: Mapping[str, List[str]],
        has_triggers: bool,
        has_webhook: bool,
    ) -> Iterable[tuple]:
        yield "Upload Files", [
            "Create an Apps Script project and add these files:",
            *(f"- `{f.name}`" + (f": {f.description}" if f.description else "") for f in files),
            "- `appsscript.json`: the manifest (enable \"Show appsscript.json\" in Project Settings)",
        ]

        if props:
            yield "Set Script Properties", [
                "In Project Settings > Script Properties add:",
                *(f"- `{name}`" for name in props),
            ]
        else:
            yield "Set Script Properties", [NO_CONFIGURATION]

        if has_triggers:
            yield "Install Triggers", [
                "Run `installTriggers()` once from the editor and authorise the requested scopes.",
                "Running it again replaces the existing triggers.",
            ]

        yield "Test Run", [
            f"Run `{ENTRY_FUNCTION}({{}})` from the editor and check the execution log.",
        ]

        if has_webhook:
            yield "Publish as Web App", [
                "Deploy > New deployment > Web app.",
                "Copy the web app URL and use it as the webhook endpoint (POST or GET).",
            ]


__all__ = ["DeploymentDocGenerator", "NO_CONFIGURATION", "SECRET_FIELDS", "scan_secret_fields"]
