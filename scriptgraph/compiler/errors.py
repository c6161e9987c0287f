"""
scriptgraph Compiler — Errors
==============================
Every exception raised inside the compiler derives from CompilationError.
ScriptCompiler.compile() converts them into a failed CompilerResult; none of
them reach the caller of compile().
"""

from __future__ import annotations

from typing import List, Sequence


class CompilationError(Exception):
    """Base class for all compile-time failures."""


class SchemaError(CompilationError, ValueError):
    """Raised when a graph or options payload fails structural parsing."""


class CycleDetectedError(CompilationError):
    """Raised by the topological sorter when the dependency graph has a cycle."""

    def __init__(self, node_id: str):
        self.node_id = node_id
        super().__init__(f"Circular dependency detected involving node: {node_id}")


class UpstreamValidationError(CompilationError):
    """The external validator rejected the graph; compilation never started."""

    def __init__(self, errors: Sequence[str]):
        self.errors: List[str] = list(errors)
        summary = "; ".join(self.errors) if self.errors else "unknown validation error"
        super().__init__(f"Graph validation failed: {summary}")


__all__ = [
    "CompilationError",
    "CycleDetectedError",
    "SchemaError",
    "UpstreamValidationError",
]
