"""
scriptgraph Compiler
====================
Compiles a workflow graph (trigger / action / logic nodes joined by
dependency edges) into a Google Apps Script bundle.

Pipeline:
    dict / JSON    →  [ir]          →  Graph, CompilerOptions
    Graph          →  [validator]   →  ValidationResult (requiredScopes)
    Graph          →  [scheduler]   →  ExecutionPlan (topological order)
    ExecutionPlan  →  [templates]   →  one execute_<id>() per node
                      [injector]       auth / error / rateLimit / dedup
    ExecutionPlan  →  [emitter]     →  Code.js
                      [helpers]     →  RuntimeHelpers.js, HttpHelpers.js, StorageHelpers.js
                      [triggers]    →  Triggers.js
                      [manifest]    →  appsscript.json
                      [docs]        →  deployment instructions

Public API
----------
    from scriptgraph.compiler import ScriptCompiler

    result = ScriptCompiler().compile(graph_dict, {"includeRateLimiting": True})
    if result.success:
        for f in result.files:
            print(f.name, f.size)
    else:
        print(result.error)
"""

from __future__ import annotations

from .compiler import MAIN_FILE, ScriptCompiler, compile_workflow, load_graph, parse_graph, parse_options
from .errors import CompilationError, CycleDetectedError, SchemaError, UpstreamValidationError
from .injector import CrossCuttingInjector, InjectionParams
from .ir import CompiledFile, CompilerOptions, CompilerResult, Edge, FileType, Graph, Node
from .manifest import ManifestBuilder
from .placeholders import PlaceholderResolver
from .scheduler import ExecutionPlan, ScheduledNode, Scheduler, TopologicalSorter
from .templates import NodeCodeGenerator, NodeKind, get_template, supported_node_types, template_stats
from .triggers import TriggerInstallerGenerator
from .docs import DeploymentDocGenerator
from .validator import GraphValidator, StructuralValidator, ValidationResult
from .writer import CodeWriter, SlotKind

__all__ = [
    "CodeWriter",
    "CompilationError",
    "CompiledFile",
    "CompilerOptions",
    "CompilerResult",
    "CrossCuttingInjector",
    "CycleDetectedError",
    "DeploymentDocGenerator",
    "Edge",
    "ExecutionPlan",
    "FileType",
    "Graph",
    "GraphValidator",
    "InjectionParams",
    "MAIN_FILE",
    "ManifestBuilder",
    "Node",
    "NodeCodeGenerator",
    "NodeKind",
    "PlaceholderResolver",
    "ScheduledNode",
    "Scheduler",
    "SchemaError",
    "ScriptCompiler",
    "SlotKind",
    "StructuralValidator",
    "TopologicalSorter",
    "TriggerInstallerGenerator",
    "UpstreamValidationError",
    "ValidationResult",
    "compile_workflow",
    "get_template",
    "load_graph",
    "parse_graph",
    "parse_options",
    "supported_node_types",
    "template_stats",
]
