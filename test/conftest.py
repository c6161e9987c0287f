import datetime

import pytest

from scriptgraph.compiler import CompilerOptions, Graph, Scheduler, ScriptCompiler
from scriptgraph.config import Settings

FIXED_TIME = datetime.datetime(2024, 1, 2, 3, 4, 5, tzinfo=datetime.timezone.utc)


def fixed_clock():
    return FIXED_TIME


def default_options(**overrides):
    return CompilerOptions(**overrides).with_defaults(Settings())


def build_plan(graph_dict, **overrides):
    graph = Graph.model_validate(graph_dict)
    return Scheduler(graph, default_options(**overrides)).build()


@pytest.fixture
def compiler():
    return ScriptCompiler(clock=fixed_clock)


@pytest.fixture
def two_node_graph():
    return {
        "id": "wf-1",
        "name": "Ping API",
        "nodes": [
            {"id": "t1", "type": "trigger.time.cron", "data": {"schedule": "@hourly"}},
            {"id": "a1", "type": "action.http.request", "data": {"url": "https://api.example.com"}},
        ],
        "edges": [{"id": "e1", "source": "t1", "target": "a1"}],
    }
