"""
scriptgraph Compiler — Execution Scheduler
===========================================
Maps a Graph → ExecutionPlan: the ordered list of ScheduledNodes the emitter
turns into node-call statements inside executeWorkflow().

Ordering
--------
TopologicalSorter.order() is a depth-first search over predecessor lists:

    • nodes are visited in input order
    • a node's predecessors are visited first, in edge order
    • a node is appended when all its predecessors have finished

Each node is in one of three states (unvisited / visiting / visited);
reaching a node that is still "visiting" means the path has looped back on
itself and CycleDetectedError names that node.  The walk uses an explicit
stack, so long chains never hit the interpreter recursion limit.

Edges whose source or target is not a node id are ignored.

Function naming
---------------
Every node gets a JavaScript function name:

    execute_{safe_id}                    e.g.  execute_send_email

where safe_id = node id with every character outside [A-Za-z0-9_] → "_".
Ids that collide after sanitising get a numeric suffix (_2, _3 ...) in
graph order, so names are stable across compilations.

Compile-time values
-------------------
Node config strings are resolved against

    {workflow: {id, name, description}, node: {id, type}, options: {...}}

Placeholders that point anywhere else (triggerData, results ...) survive and
are resolved at run time by resolveTemplate().
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from .errors import CycleDetectedError
from .ir import CompilerOptions, Edge, Graph, Node
from .placeholders import PlaceholderResolver
from .templates import NodeKind

logger = logging.getLogger(__name__)


EdgeLike = Union[Edge, Tuple[str, str]]

_UNVISITED, _VISITING, _VISITED = 0, 1, 2


# ── Topological sort ──────────────────────────────────────────────────────────

def _endpoints(edge: EdgeLike) -> Tuple[str, str]:
    if isinstance(edge, Edge):
        return edge.source, edge.target
    source, target = edge
    return source, target


class TopologicalSorter:

    def order(self, node_ids: Iterable[str], edges: Iterable[EdgeLike]) -> List[str]:
        """
        Return node ids so that every edge source precedes its target.

        Raises:
            CycleDetectedError: if the edges contain a cycle; the error names
                                a node on it.
        """
        ids = list(dict.fromkeys(node_ids))
        known: Set[str] = set(ids)

        preds: Dict[str, List[str]] = {nid: [] for nid in ids}
        for edge in edges:
            source, target = _endpoints(edge)
            if source not in known or target not in known:
                logger.debug(f"Ignoring dangling edge {source!r} -> {target!r}")
                continue
            preds[target].append(source)

        state: Dict[str, int] = {nid: _UNVISITED for nid in ids}
        result: List[str] = []

        for root in ids:
            if state[root] != _UNVISITED:
                continue
            state[root] = _VISITING
            stack = [(root, iter(preds[root]))]
            while stack:
                nid, pending = stack[-1]
                for pred in pending:
                    if state[pred] == _VISITING:
                        raise CycleDetectedError(pred)
                    if state[pred] == _UNVISITED:
                        state[pred] = _VISITING
                        stack.append((pred, iter(preds[pred])))
                        break
                else:
                    stack.pop()
                    state[nid] = _VISITED
                    result.append(nid)

        logger.debug(f"Execution order: {result}")
        return result


# ── Scheduled node ────────────────────────────────────────────────────────────

def safe_identifier(node_id: str) -> str:
    """Convert a node id to a JavaScript identifier fragment."""
    safe = re.sub(r"[^A-Za-z0-9_]", "_", node_id)
    return safe or "node"


@dataclass
class ScheduledNode:
    node_id: str
    tag: str
    func_name: str
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> Optional[NodeKind]:
        return NodeKind.parse(self.tag)

    @property
    def description(self) -> Optional[str]:
        value = self.config.get("description")
        return str(value) if value else None

    @property
    def continue_on_error(self) -> bool:
        """Only an explicit `continueOnError: false` stops the run."""
        return self.config.get("continueOnError") is not False

    @classmethod
    def from_node(cls, node: Node, func_name: Optional[str] = None) -> "ScheduledNode":
        return cls(
            node_id=node.id,
            tag=node.type,
            func_name=func_name or f"execute_{safe_identifier(node.id)}",
            config=dict(node.data),
        )


@dataclass
class ExecutionPlan:
    graph: Graph
    options: CompilerOptions
    # Node functions in graph order (stable file layout).
    nodes: List[ScheduledNode] = field(default_factory=list)
    # The same nodes in execution order.
    order: List[ScheduledNode] = field(default_factory=list)

    def get(self, node_id: str) -> Optional[ScheduledNode]:
        return next((n for n in self.nodes if n.node_id == node_id), None)


# ── Scheduler ────────────────────────────────────────────────────────────────

class Scheduler:
    def __init__(
        self,
        graph: Graph,
        options: CompilerOptions,
        resolver: Optional[PlaceholderResolver] = None,
        sorter: Optional[TopologicalSorter] = None,
    ):
        self.graph = graph
        self.options = options
        self.resolver = resolver or PlaceholderResolver()
        self.sorter = sorter or TopologicalSorter()

    # ── Naming ────────────────────────────────────────────────────────────

    def _function_names(self, nodes: Sequence[Node]) -> Dict[str, str]:
        names: Dict[str, str] = {}
        taken: Set[str] = set()
        for node in nodes:
            if node.id in names:
                continue
            base = f"execute_{safe_identifier(node.id)}"
            name, suffix = base, 2
            while name in taken:
                name = f"{base}_{suffix}"
                suffix += 1
            taken.add(name)
            names[node.id] = name
        return names

    # ── Compile-time resolution ───────────────────────────────────────────

    def values_for(self, node: Node) -> Dict[str, Any]:
        return {
            "workflow": {
                "id": self.graph.id,
                "name": self.graph.display_name,
                "description": self.graph.description or "",
            },
            "node": {"id": node.id, "type": node.type},
            "options": self.options.as_values(),
        }

    def _schedule(self, node: Node, func_name: str) -> ScheduledNode:
        config = self.resolver.resolve_value(dict(node.data), self.values_for(node))
        return ScheduledNode(node_id=node.id, tag=node.type, func_name=func_name, config=config)

    # ── Public API ────────────────────────────────────────────────────────

    def build(self) -> ExecutionPlan:
        """Order the graph and resolve every node.  Raises CycleDetectedError."""
        ordered_ids = self.sorter.order([n.id for n in self.graph.nodes], self.graph.edges)

        # First occurrence wins for duplicate ids.
        unique: Dict[str, Node] = {}
        for node in self.graph.nodes:
            unique.setdefault(node.id, node)

        names = self._function_names(list(unique.values()))
        scheduled = {nid: self._schedule(node, names[nid]) for nid, node in unique.items()}

        return ExecutionPlan(
            graph=self.graph,
            options=self.options,
            nodes=list(scheduled.values()),
            order=[scheduled[nid] for nid in ordered_ids],
        )


__all__ = [
    "ExecutionPlan",
    "ScheduledNode",
    "Scheduler",
    "TopologicalSorter",
    "safe_identifier",
]
