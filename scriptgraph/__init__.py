"""
scriptgraph
===========
Workflow graph → Google Apps Script compiler.

    from scriptgraph import ScriptCompiler
    result = ScriptCompiler().compile(graph)
"""

from __future__ import annotations

from .compiler import CompilerOptions, CompilerResult, Graph, ScriptCompiler, compile_workflow
from .config import Settings, load_settings

__version__ = "1.0.0"

__all__ = [
    "CompilerOptions",
    "CompilerResult",
    "Graph",
    "ScriptCompiler",
    "Settings",
    "compile_workflow",
    "load_settings",
]
