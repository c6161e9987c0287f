"""
scriptgraph Compiler — Data Model
==================================
Input side (pydantic, parsed from the editor's camelCase JSON):

    Graph            id, name, description?, nodes[], edges[]
    Node             id, type (dotted capability tag), data (opaque config)
    Edge             id, source, target        — target runs after source
    CompilerOptions  projectName?, includeLogging?, includeErrorHandling?,
                     includeRateLimiting?, timezone?, version?

Output side (frozen dataclasses, owned by the result that produced them):

    CompiledFile     name, content, type, description?
    CompilerResult   success, files, manifest, entry, estimatedSize,
                     requiredScopes, deploymentInstructions, error?

Both sides are plain data with no references back into the compiler, so a
result can be handed to a deployer or serialised with as_dict().
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

if TYPE_CHECKING:
    from ..config import Settings


_MODEL_CONFIG = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
    coerce_numbers_to_str=True,
)


# ── Graph ─────────────────────────────────────────────────────────────────────

class Node(BaseModel):
    model_config = _MODEL_CONFIG

    id: str
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    @classmethod
    def _none_is_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def category(self) -> str:
        """First segment of the type tag: trigger / action / condition / ..."""
        return self.type.split(".", 1)[0]

    @property
    def is_trigger(self) -> bool:
        return self.category == "trigger"


class Edge(BaseModel):
    model_config = _MODEL_CONFIG

    id: str = ""
    source: str
    target: str


class Graph(BaseModel):
    model_config = _MODEL_CONFIG

    id: str = ""
    name: str = ""
    description: Optional[str] = None
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.id or "Unnamed Workflow"

    def get_node(self, node_id: str) -> Optional[Node]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def trigger_nodes(self) -> List[Node]:
        return [n for n in self.nodes if n.is_trigger]


class CompilerOptions(BaseModel):
    """Unset (None) toggles fall back to scriptgraph.config.Settings."""

    model_config = _MODEL_CONFIG

    project_name: Optional[str] = None
    include_logging: Optional[bool] = None
    include_error_handling: Optional[bool] = None
    include_rate_limiting: Optional[bool] = None
    timezone: Optional[str] = None
    version: Optional[str] = None

    def with_defaults(self, settings: "Settings") -> "CompilerOptions":
        """Return a copy with every unset field taken from `settings`."""

        def _pick(value: Any, default: Any) -> Any:
            return default if value is None else value

        return CompilerOptions(
            project_name=self.project_name,
            include_logging=_pick(self.include_logging, settings.include_logging),
            include_error_handling=_pick(self.include_error_handling, settings.include_error_handling),
            include_rate_limiting=_pick(self.include_rate_limiting, settings.include_rate_limiting),
            timezone=_pick(self.timezone, settings.timezone),
            version=_pick(self.version, settings.version),
        )

    def as_values(self) -> Dict[str, Any]:
        """camelCase view used as the `options` entry of the placeholder bag."""
        return self.model_dump(by_alias=True)


# ── Output ────────────────────────────────────────────────────────────────────

class FileType(str, Enum):
    CODE = "code"
    DATA = "data"
    MARKUP = "markup"


@dataclass(frozen=True)
class CompiledFile:
    name: str
    content: str
    type: FileType = FileType.CODE
    description: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "name": self.name,
            "content": self.content,
            "type": self.type.value,
        }
        if self.description is not None:
            out["description"] = self.description
        return out


@dataclass(frozen=True)
class CompilerResult:
    success: bool
    files: Tuple[CompiledFile, ...] = ()
    manifest: Dict[str, Any] = field(default_factory=dict)
    entry: str = ""
    estimated_size: int = 0
    required_scopes: Tuple[str, ...] = ()
    deployment_instructions: str = ""
    error: Optional[str] = None

    @classmethod
    def failure(cls, message: str) -> "CompilerResult":
        return cls(success=False, error=message)

    def get_file(self, name: str) -> Optional[CompiledFile]:
        return next((f for f in self.files if f.name == name), None)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "success": self.success,
            "files": [f.as_dict() for f in self.files],
            "manifest": copy.deepcopy(self.manifest),
            "entry": self.entry,
            "estimatedSize": self.estimated_size,
            "requiredScopes": list(self.required_scopes),
            "deploymentInstructions": self.deployment_instructions,
        }
        if self.error is not None:
            out["error"] = self.error
        return out


__all__ = [
    "CompiledFile",
    "CompilerOptions",
    "CompilerResult",
    "Edge",
    "FileType",
    "Graph",
    "Node",
]
