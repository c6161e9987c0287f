import itertools

import pytest

from scriptgraph.compiler import CycleDetectedError, Edge, TopologicalSorter
from scriptgraph.compiler.scheduler import ScheduledNode, safe_identifier

from conftest import build_plan


def _edges(*pairs):
    return [Edge(id=f"e{i}", source=s, target=t) for i, (s, t) in enumerate(pairs)]


def _respects(order, edges):
    pos = {nid: i for i, nid in enumerate(order)}
    return all(pos[e.source] < pos[e.target] for e in edges)


class TestTopologicalSorter:

    def setup_method(self):
        self.sorter = TopologicalSorter()

    def test_linear_chain(self):
        edges = _edges(("a", "b"), ("b", "c"))
        assert self.sorter.order(["c", "b", "a"], edges) == ["a", "b", "c"]

    def test_diamond_visits_predecessors_in_edge_order(self):
        edges = _edges(("a", "b"), ("a", "c"), ("b", "d"), ("c", "d"))
        assert self.sorter.order(["d", "c", "b", "a"], edges) == ["a", "b", "c", "d"]

    def test_independent_nodes_keep_input_order(self):
        assert self.sorter.order(["x", "y", "z"], []) == ["x", "y", "z"]

    def test_every_permutation_is_valid(self):
        """Whatever order the nodes arrive in, every edge is respected."""
        nodes = ["a", "b", "c", "d", "e"]
        edges = _edges(("a", "c"), ("b", "c"), ("c", "d"), ("a", "e"))
        for perm in itertools.permutations(nodes):
            order = self.sorter.order(list(perm), edges)
            assert sorted(order) == sorted(nodes)
            assert _respects(order, edges)

    def test_cycle_names_a_node_on_the_cycle(self):
        edges = _edges(("a", "b"), ("b", "c"), ("c", "a"))
        with pytest.raises(CycleDetectedError) as info:
            self.sorter.order(["x", "a", "b", "c"], edges)
        assert info.value.node_id in {"a", "b", "c"}
        assert "Circular dependency detected involving node:" in str(info.value)

    def test_self_loop_is_a_cycle(self):
        with pytest.raises(CycleDetectedError) as info:
            self.sorter.order(["a"], _edges(("a", "a")))
        assert info.value.node_id == "a"

    def test_dangling_edges_are_ignored(self):
        edges = _edges(("ghost", "a"), ("a", "b"), ("b", "nowhere"))
        assert self.sorter.order(["b", "a"], edges) == ["a", "b"]

    def test_duplicate_ids_are_visited_once(self):
        assert self.sorter.order(["a", "b", "a"], _edges(("a", "b"))) == ["a", "b"]

    def test_accepts_plain_pairs(self):
        assert self.sorter.order(["b", "a"], [("a", "b")]) == ["a", "b"]

    def test_long_chain_does_not_recurse(self):
        n = 5000
        ids = [f"n{i}" for i in range(n)]
        edges = [(ids[i], ids[i + 1]) for i in range(n - 1)]
        assert self.sorter.order(list(reversed(ids)), edges) == ids


def test_safe_identifier():
    assert safe_identifier("send-email") == "send_email"
    assert safe_identifier("node 1.a") == "node_1_a"
    assert safe_identifier("") == "node"


def test_function_names_are_unique_in_graph_order():
    plan = build_plan({
        "nodes": [
            {"id": "a-b", "type": "utility.logger"},
            {"id": "a_b", "type": "utility.logger"},
            {"id": "a.b", "type": "utility.logger"},
        ],
    })
    assert [n.func_name for n in plan.nodes] == ["execute_a_b", "execute_a_b_2", "execute_a_b_3"]


def test_plan_orders_nodes_and_keeps_graph_layout():
    plan = build_plan({
        "nodes": [
            {"id": "a1", "type": "action.http.request"},
            {"id": "t1", "type": "trigger.time.cron"},
        ],
        "edges": [{"source": "t1", "target": "a1"}],
    })
    assert [n.node_id for n in plan.nodes] == ["a1", "t1"]
    assert [n.node_id for n in plan.order] == ["t1", "a1"]
    assert plan.get("t1").tag == "trigger.time.cron"


def test_compile_time_placeholders_are_resolved():
    plan = build_plan({
        "id": "wf-9",
        "name": "Daily Digest",
        "nodes": [{
            "id": "log",
            "type": "utility.logger",
            "data": {
                "message": "{{workflow.name}} ({{node.id}}) for {{triggerData.user}}",
                "meta": {"version": "${options.version}", "tags": ["{{workflow.id}}"]},
            },
        }],
    }, version="2.1.0")
    config = plan.get("log").config
    assert config["message"] == "Daily Digest (log) for {{triggerData.user}}"
    assert config["meta"] == {"version": "2.1.0", "tags": ["wf-9"]}


def test_continue_on_error_defaults_to_true():
    assert ScheduledNode("n", "utility.delay", "execute_n").continue_on_error
    assert ScheduledNode("n", "utility.delay", "execute_n", {"continueOnError": True}).continue_on_error
    assert not ScheduledNode("n", "utility.delay", "execute_n", {"continueOnError": False}).continue_on_error


def test_cycle_surfaces_from_build():
    with pytest.raises(CycleDetectedError):
        build_plan({
            "nodes": [{"id": "a", "type": "utility.delay"}, {"id": "b", "type": "utility.delay"}],
            "edges": [{"source": "a", "target": "b"}, {"source": "b", "target": "a"}],
        })
