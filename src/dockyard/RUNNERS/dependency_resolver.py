"""
Dependency resolution for catalog services to determine installation order.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..errors import CircularDependencyError, DockyardError
from ..MODELS.catalog import ServiceCatalog
from ..STORE.config_store import ConfigStore

UNVISITED, IN_PROGRESS, DONE = 0, 1, 2


@dataclass
class DependencyNode:
    """
    One service in an installation plan.

    `installed` is True when an instance named after the service already exists.
    """
    service_name: str
    version: str
    required: bool = True
    installed: bool = False
    environment: Dict[str, str] = field(default_factory=dict)
    depth: int = 0


@dataclass
class ResolutionResult:
    """
    Output of DependencyResolver.resolve.

    `install_order` lists dependencies before their dependents and ends with the root.
    `graph` maps each walked service to the services it declares.
    """
    root: str
    install_order: List[DependencyNode] = field(default_factory=list)
    graph: Dict[str, List[str]] = field(default_factory=dict)
    nodes: Dict[str, DependencyNode] = field(default_factory=dict)


class DependencyResolver:
    """
    Resolves the services that must be installed before a given service.
    """
    def __init__(self, catalog: ServiceCatalog, store: ConfigStore):
        self.catalog = catalog
        self.store = store

    def resolve(self, service_name: str, version: Optional[str] = None) -> ResolutionResult:
        """
        Walks the declared dependencies of a service depth first.

        Already installed services are recorded but their own dependencies are
        not walked again.

        :param service_name: The service to install.
        :param version: Requested version; empty or "latest" picks the catalog default.
        :return: The plan, dependencies first.
        :raises CircularDependencyError: If a cycle is reachable from the service.
        """
        root_version = self.catalog.get_service(service_name).resolve_version(version)
        result = ResolutionResult(root=service_name)
        state: Dict[str, int] = {}
        chain: List[str] = []
        required_edges: Dict[str, List[str]] = {}

        def visit(name: str, requested_version: str, depth: int):
            """
            Recursive function for topological sort.
            """
            current = state.get(name, UNVISITED)
            if current == IN_PROGRESS:
                raise CircularDependencyError(name, chain + [name])
            if current == DONE:
                node = result.nodes[name]
                node.depth = min(node.depth, depth)
                return

            service = self.catalog.get_service(name)
            resolved = service.resolve_version(requested_version)
            installed = self.store.has_instance(name)
            node = DependencyNode(service_name=name, version=resolved, installed=installed, depth=depth)
            result.nodes[name] = node

            state[name] = IN_PROGRESS
            chain.append(name)
            if not installed or depth == 0:
                spec = service.versions[resolved]
                result.graph[name] = spec.dependency_names()
                required_edges[name] = [dep.name for dep in spec.dependencies if dep.required]
                for dep in spec.dependencies:
                    visit(dep.name, dep.version or "latest", depth + 1)
                    if dep.environment:
                        result.nodes[dep.name].environment.update(dep.environment)
            chain.pop()
            state[name] = DONE
            result.install_order.append(node)

        visit(service_name, root_version, 0)
        self._mark_required(result, required_edges)
        return result

    @staticmethod
    def _mark_required(result: ResolutionResult, required_edges: Dict[str, List[str]]):
        """
        A node is required when the root reaches it through required edges only.
        """
        reachable = {result.root}
        stack = [result.root]
        while stack:
            name = stack.pop()
            for dep in required_edges.get(name, []):
                if dep not in reachable:
                    reachable.add(dep)
                    stack.append(dep)
        for name, node in result.nodes.items():
            node.required = name in reachable

    def get_missing_dependencies(self, result: ResolutionResult) -> List[DependencyNode]:
        """
        Required, not yet installed dependencies in installation order. Never includes the root.
        """
        return [
            node for node in result.install_order
            if node.service_name != result.root and node.required and not node.installed
        ]

    def get_installed_dependencies(self, result: ResolutionResult) -> List[DependencyNode]:
        return [
            node for node in result.install_order
            if node.service_name != result.root and node.installed
        ]

    def get_optional_dependencies(self, result: ResolutionResult) -> List[DependencyNode]:
        """Optional dependencies that are missing. They are reported, never installed."""
        return [
            node for node in result.install_order
            if node.service_name != result.root and not node.required and not node.installed
        ]

    def validate_dependencies(self, service_name: str, version: Optional[str] = None):
        """
        Checks that every declared dependency of the service exists in the catalog
        and that its requested version resolves.

        :raises DockyardError: Naming the first dependency that does not resolve.
        """
        spec = self.catalog.get_spec(service_name, version)
        for dep in spec.dependencies:
            if not self.catalog.has_service(dep.name):
                raise DockyardError(f"Dependency '{dep.name}' of '{service_name}' not found in catalog")
            self.catalog.get_service(dep.name).resolve_version(dep.version)

    def dependency_tree(self, service_name: str, version: Optional[str] = None) -> str:
        """
        Renders the dependency tree of a service, marking installed services with ✓
        and missing ones with ○.
        """
        result = self.resolve(service_name, version)
        lines = []

        def render(name: str, prefix: str, is_last: bool, is_root: bool):
            node = result.nodes[name]
            marker = "✓" if node.installed else "○"
            label = f"{marker} {name} ({node.version})"
            if not node.required:
                label += " [optional]"
            if is_root:
                lines.append(label)
                child_prefix = ""
            else:
                lines.append(f"{prefix}{'└── ' if is_last else '├── '}{label}")
                child_prefix = prefix + ("    " if is_last else "│   ")
            children = result.graph.get(name, [])
            for idx, child in enumerate(children):
                render(child, child_prefix, idx == len(children) - 1, False)

        render(service_name, "", True, True)
        return "\n".join(lines)
