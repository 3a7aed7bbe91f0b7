"""Graph model: elements, dependency edges and the dependency graph."""

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from ..exceptions import NodeNotFoundError

logger = logging.getLogger(__name__)

# Element kinds
CLASS = "class"
INTERFACE = "interface"
FIELD = "field"
METHOD = "method"
CONSTRUCTOR = "constructor"

TYPE_KINDS = (CLASS, INTERFACE)
MEMBER_KINDS = (FIELD, METHOD, CONSTRUCTOR)

# Edge kinds
IMPORT = "import"
EXTENDS = "extends"
IMPLEMENTS = "implements"
CALLS = "calls"
CREATES = "creates"
USES = "uses"

EDGE_KINDS = (IMPORT, EXTENDS, IMPLEMENTS, CALLS, CREATES, USES)

PACKAGE_PRIVATE = "package-private"


def node_key(package: str, name: str) -> str:
    """Identity key of an element: ``package.name``."""
    return f"{package}.{name}"


@dataclass
class CodeDependency:
    """A directed, typed relationship between two element keys."""

    kind: str
    source: str
    target: str
    source_file: str
    target_file: str = ""
    source_line: int = 0
    description: str = ""

    @property
    def is_resolved(self) -> bool:
        return bool(self.target_file)

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "source": self.source,
            "target": self.target,
            "sourceLine": self.source_line,
            "description": self.description,
        }


@dataclass
class AstNode:
    """A parsed element: class, interface, field, method or constructor."""

    kind: str
    name: str
    package: str
    file_path: str
    line_number: int = 0
    visibility: str = PACKAGE_PRIVATE
    is_static: bool = False
    is_interface: bool = False
    is_abstract: bool = False
    return_type: Optional[str] = None  # methods and fields only
    children: list["AstNode"] = field(default_factory=list)
    dependencies: list[CodeDependency] = field(default_factory=list)
    start_line: int = 0
    end_line: int = 0
    source_code: Optional[str] = None

    @property
    def key(self) -> str:
        return node_key(self.package, self.name)

    @property
    def is_type(self) -> bool:
        return self.kind in TYPE_KINDS

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly summary (children and edges by name only)."""
        data = {
            "type": self.kind,
            "name": self.name,
            "packageName": self.package,
            "fqn": self.key,
            "filePath": self.file_path,
            "lineNumber": self.line_number,
            "visibility": self.visibility,
        }
        if self.return_type is not None:
            data["returnType"] = self.return_type
        data["isStatic"] = self.is_static
        data["isInterface"] = self.is_interface
        data["isAbstract"] = self.is_abstract
        return data


class DependencyGraph:
    """Ordered nodes and edges plus a key index for O(1) lookup."""

    def __init__(self):
        self.nodes: list[AstNode] = []
        self.edges: list[CodeDependency] = []
        self._index: dict[str, AstNode] = {}
        self.collisions = 0

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def add_node(self, node: AstNode) -> None:
        """Append a node and index it by key.

        The first node registered under a key keeps it. Later nodes with the
        same key (overloads, same-named members in one package) stay in the
        node list but are not reachable through the index.
        """
        self.nodes.append(node)
        if node.key in self._index:
            self.collisions += 1
            logger.debug("Key collision for %s (%s)", node.key, node.kind)
            return
        self._index[node.key] = node

    def add_dependency(self, dependency: CodeDependency) -> None:
        """Append an edge and attach it to its source node if indexed."""
        self.edges.append(dependency)
        source = self._index.get(dependency.source)
        if source is not None:
            source.dependencies.append(dependency)

    def find_node(self, key: str) -> Optional[AstNode]:
        return self._index.get(key)

    def get_node(self, key: str) -> AstNode:
        """Look up a node by key.

        Raises:
            NodeNotFoundError: if no node is indexed under the key
        """
        node = self._index.get(key)
        if node is None:
            raise NodeNotFoundError(key)
        return node

    def dependencies_for(self, key: str) -> list[CodeDependency]:
        return list(self.get_node(key).dependencies)

    def keys(self) -> list[str]:
        return list(self._index)

    def nodes_of_kind(self, *kinds: str) -> list[AstNode]:
        return [n for n in self.nodes if n.kind in kinds]

    def nodes_for_package(self, prefix: str) -> list[AstNode]:
        """All nodes whose package starts with the given prefix."""
        return [n for n in self.nodes if n.package.startswith(prefix)]

    def edges_of_kind(self, *kinds: str) -> list[CodeDependency]:
        return [e for e in self.edges if e.kind in kinds]

    def containing_type(self, node: AstNode) -> Optional[AstNode]:
        """Find the class or interface that owns a member node."""
        for candidate in self.nodes:
            if candidate.is_type and any(child is node for child in candidate.children):
                return candidate
        return None

    def packages(self) -> list[str]:
        return sorted({n.package for n in self.nodes})

    def stats(self) -> dict:
        """Counts by node kind and edge kind."""
        return {
            "total_nodes": len(self.nodes),
            "total_edges": len(self.edges),
            "nodes_by_kind": dict(Counter(n.kind for n in self.nodes)),
            "edges_by_kind": dict(Counter(e.kind for e in self.edges)),
            "resolved_edges": sum(1 for e in self.edges if e.is_resolved),
            "key_collisions": self.collisions,
        }
