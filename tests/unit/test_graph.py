"""
Unit tests for topological ordering of containers and init containers.
"""
import pytest
from dockyard.errors import ContainerStartupCycleError, InitContainerCycleError
from dockyard.MANAGERS.multi_container import container_start_order, init_container_order
from dockyard.MODELS.catalog import ContainerSpec, InitContainer, ServiceSpec
from dockyard.UTILS.graph import topological_sort


def test_dependencies_come_first():
    order = topological_sort(["web", "db", "cache"], {"web": ["db", "cache"]}, ContainerStartupCycleError)
    assert order.index("db") < order.index("web")
    assert order.index("cache") < order.index("web")


def test_declaration_order_kept_without_edges():
    assert topological_sort(["c", "a", "b"], {}, ContainerStartupCycleError) == ["c", "a", "b"]


def test_unknown_edges_ignored():
    assert topological_sort(["a"], {"a": ["postgres"]}, ContainerStartupCycleError) == ["a"]


def test_cycle_raises_given_error():
    with pytest.raises(InitContainerCycleError) as exc:
        topological_sort(["a", "b"], {"a": ["b"], "b": ["a"]}, InitContainerCycleError)
    assert exc.value.containers == ["a", "b", "a"]


def test_container_start_order():
    spec = ServiceSpec(port=8080, containers=[
        ContainerSpec(name="collector", image="c", depends_on=["query", "clickhouse"]),
        ContainerSpec(name="query", image="q"),
    ])
    assert container_start_order(spec) == ["query", "collector"]


def test_container_start_cycle():
    spec = ServiceSpec(port=8080, containers=[
        ContainerSpec(name="a", image="a", depends_on=["b"]),
        ContainerSpec(name="b", image="b", depends_on=["a"]),
    ])
    with pytest.raises(ContainerStartupCycleError):
        container_start_order(spec)


def test_init_container_order():
    inits = [
        InitContainer(name="migrate", image="m", command=["up"], depends_on=["schema"]),
        InitContainer(name="schema", image="m", command=["create"]),
    ]
    assert [i.name for i in init_container_order(inits)] == ["schema", "migrate"]
