"""
scriptgraph Compiler — Orchestrator
====================================
ScriptCompiler.compile() runs the whole pipeline and never raises:

    dict / JSON   →  [parse]      →  Graph, CompilerOptions
    Graph         →  [validator]  →  ValidationResult (or the caller's own)
    Graph         →  [scheduler]  →  ExecutionPlan          CycleDetectedError
    ExecutionPlan →  [emitter]    →  Code.js
                     [helpers]    →  RuntimeHelpers.js, HttpHelpers.js, StorageHelpers.js
                     [triggers]   →  Triggers.js             only with trigger.* nodes
                     [manifest]   →  appsscript.json dict
                     [docs]       →  deployment instructions

Every failure becomes CompilerResult.failure(message).  Ordering happens
before any node is synthesised, so a graph that is both cyclic and uses an
unknown node type reports the cycle.

The clock is injectable; it only feeds the "Generated:" header line and the
log, so compiling the same input twice with a fixed clock is byte-identical.
"""

from __future__ import annotations

import datetime
import json
import logging
from pathlib import Path
from typing import Any, Callable, Mapping, Optional, Union

from pydantic import ValidationError

from ..config import Settings, load_settings
from .docs import DeploymentDocGenerator
from .emitter import emit
from .errors import CompilationError, SchemaError, UpstreamValidationError
from .helpers import helper_files
from .ir import CompiledFile, CompilerOptions, CompilerResult, FileType, Graph
from .manifest import ManifestBuilder
from .placeholders import PlaceholderResolver
from .scheduler import Scheduler
from .templates import NodeCodeGenerator
from .triggers import TRIGGERS_FILE, TriggerInstallerGenerator
from .validator import SEND_MAIL_SCOPE, GraphValidator, StructuralValidator, ValidationResult

logger = logging.getLogger(__name__)

MAIN_FILE = "Code.js"

Clock = Callable[[], datetime.datetime]
GraphInput = Union[Graph, Mapping[str, Any], str]
OptionsInput = Union[CompilerOptions, Mapping[str, Any], None]
ValidationInput = Union[ValidationResult, Mapping[str, Any], None]


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


# ── Input parsing ─────────────────────────────────────────────────────────────

def _schema_error(what: str, exc: ValidationError) -> SchemaError:
    problems = []
    for err in exc.errors():
        loc = ".".join(str(part) for part in err.get("loc", ())) or what
        problems.append(f"{loc}: {err.get('msg', 'invalid value')}")
    return SchemaError(f"Invalid {what}: " + "; ".join(problems))


def parse_graph(data: GraphInput) -> Graph:
    """
    Accept a Graph, a camelCase mapping, or JSON text.

    Raises:
        SchemaError: if the payload does not describe a graph.
    """
    if isinstance(data, Graph):
        return data
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"Invalid graph JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise SchemaError(f"Graph must be an object, got {type(data).__name__}")
    try:
        return Graph.model_validate(dict(data))
    except ValidationError as exc:
        raise _schema_error("graph", exc) from exc


def parse_options(data: OptionsInput) -> CompilerOptions:
    if data is None:
        return CompilerOptions()
    if isinstance(data, CompilerOptions):
        return data
    if not isinstance(data, Mapping):
        raise SchemaError(f"Compiler options must be an object, got {type(data).__name__}")
    try:
        return CompilerOptions.model_validate(dict(data))
    except ValidationError as exc:
        raise _schema_error("compiler options", exc) from exc


def load_graph(path: Union[str, Path]) -> Graph:
    """Read a graph from a JSON file on disk."""
    return parse_graph(Path(path).read_text(encoding="utf-8"))


# ── Compiler ──────────────────────────────────────────────────────────────────

class ScriptCompiler:
    """
    Graph → Apps Script bundle.  Holds no per-call state, so one instance
    can serve concurrent compile() calls.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        validator: Optional[GraphValidator] = None,
        clock: Optional[Clock] = None,
        resolver: Optional[PlaceholderResolver] = None,
        generator: Optional[NodeCodeGenerator] = None,
    ):
        self.settings = settings or Settings()
        self.validator = validator or StructuralValidator()
        self.clock = clock or utc_now
        self.resolver = resolver or PlaceholderResolver()
        self.generator = generator or NodeCodeGenerator()
        self.manifests = ManifestBuilder(self.settings)
        self.triggers = TriggerInstallerGenerator()
        self.docs = DeploymentDocGenerator(self.generator)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None, **kwargs: Any) -> "ScriptCompiler":
        """Build a compiler whose defaults come from SCRIPTGRAPH_* variables / .env."""
        return cls(settings=load_settings(env_file), **kwargs)

    def compile(
        self,
        graph: GraphInput,
        options: OptionsInput = None,
        validation: ValidationInput = None,
    ) -> CompilerResult:
        """
        Compile a workflow graph.

        Args:
            graph:      Graph model, camelCase dict, or JSON text.
            options:    CompilerOptions or dict; unset fields use Settings.
            validation: The external validator's verdict.  When omitted the
                        configured GraphValidator runs.

        Returns:
            CompilerResult.  Check `success` before using `files`.
        """
        started = self.clock()
        logger.info(f"Compilation started at {started.isoformat()}")
        try:
            result = self._compile(graph, options, validation, started)
        except CompilationError as exc:
            logger.error(f"Compilation failed: {exc}")
            return CompilerResult.failure(str(exc))
        except Exception as exc:
            logger.exception("Compilation failed with an unexpected error")
            return CompilerResult.failure(str(exc) or type(exc).__name__)

        logger.info(
            f"Compilation finished: {len(result.files)} file(s), "
            f"{result.estimated_size} bytes, {len(result.required_scopes)} scope(s)"
        )
        return result

    # ── Pipeline ──────────────────────────────────────────────────────────

    def _validate(self, graph: Graph, validation: ValidationInput) -> ValidationResult:
        if validation is None:
            return self.validator.validate(graph)
        if isinstance(validation, ValidationResult):
            return validation
        return ValidationResult.from_dict(validation)

    def _compile(
        self,
        graph_input: GraphInput,
        options_input: OptionsInput,
        validation_input: ValidationInput,
        started: datetime.datetime,
    ) -> CompilerResult:
        graph = parse_graph(graph_input)
        options = parse_options(options_input).with_defaults(self.settings)

        validation = self._validate(graph, validation_input)
        if not validation.valid:
            raise UpstreamValidationError(validation.errors)

        plan = Scheduler(graph, options, resolver=self.resolver).build()
        logger.debug(f"Scheduled {len(plan.order)} node(s) for '{graph.display_name}'")

        files = [CompiledFile(MAIN_FILE, emit(plan, started, self.generator), FileType.CODE, "Main workflow execution")]
        files.extend(helper_files(options))
        triggers = self.triggers.generate(plan)
        if triggers is not None:
            files.append(CompiledFile(TRIGGERS_FILE, triggers, FileType.CODE, "Trigger setup and webhook handlers"))

        scopes = list(validation.required_scopes)
        if options.include_error_handling:
            # executeWorkflow() mails ERROR_NOTIFICATION_EMAIL on failure.
            scopes.append(SEND_MAIL_SCOPE)
        manifest = self.manifests.build(scopes, options)
        instructions = self.docs.generate(plan, files)

        return CompilerResult(
            success=True,
            files=tuple(files),
            manifest=manifest,
            entry=MAIN_FILE,
            estimated_size=sum(f.size for f in files),
            required_scopes=tuple(manifest["oauthScopes"]),
            deployment_instructions=instructions,
        )


def compile_workflow(
    graph: GraphInput,
    options: OptionsInput = None,
    validation: ValidationInput = None,
    settings: Optional[Settings] = None,
) -> CompilerResult:
    """One-shot convenience wrapper around ScriptCompiler().compile()."""
    return ScriptCompiler(settings=settings).compile(graph, options, validation)


__all__ = [
    "MAIN_FILE",
    "ScriptCompiler",
    "compile_workflow",
    "load_graph",
    "parse_graph",
    "parse_options",
    "utc_now",
]
