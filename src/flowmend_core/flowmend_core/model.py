# Copyright (c) Microsoft Corporation.
# Licensed under the MIT License.

"""Workflow graph data model.

Graphs usually arrive as JSON documents produced by an editor or a language
model, so :meth:`WorkflowGraph.from_dict` is deliberately lenient: values are
kept as given and anything that cannot be represented is recorded in
``parse_errors`` for the validator to report instead of raising.
"""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional, Set, Tuple

_NODE_KEYS = ("id", "name", "type", "position", "parameters", "credentials")


@dataclass
class Connection:
    """One directed edge target: ``{"node": ..., "type": ..., "index": ...}``.

    ``output`` is the branch of the source port the edge leaves from when the
    document nests targets per branch (``[[...], [...]]``, as IF and Switch
    nodes do), and None for a flat target list.
    """

    node: Any
    type: Any = None  # connection kind, e.g. "main"
    index: Any = None
    output: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], output: Optional[int] = None) -> "Connection":
        return cls(node=data.get("node"), type=data.get("type"), index=data.get("index"), output=output)

    def to_dict(self) -> Dict[str, Any]:
        return {"node": self.node, "type": self.type, "index": self.index}


@dataclass
class WorkflowNode:
    """A node placed on the workflow canvas."""

    id: Any
    name: Any
    type: Any
    position: Any = None
    parameters: Dict[str, Any] = field(default_factory=dict)
    credentials: Dict[str, Any] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)  # e.g. typeVersion, disabled

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "position": list(self.position) if isinstance(self.position, tuple) else self.position,
            "parameters": self.parameters,
        }
        if self.credentials:
            data["credentials"] = self.credentials
        data.update(self.extra)
        return data


@dataclass
class WorkflowGraph:
    """A workflow: named, ordered nodes plus connections keyed by source id and output port."""

    name: Any
    nodes: List[WorkflowNode] = field(default_factory=list)
    connections: Dict[Any, Dict[str, List[Connection]]] = field(default_factory=dict)
    extra: Dict[str, Any] = field(default_factory=dict)
    parse_errors: List[str] = field(default_factory=list, compare=False)
    # Number of branches of each nested (source, port) target list, empty ones included
    branch_counts: Dict[Tuple[Any, str], int] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowGraph":
        """Build a graph from a JSON-style mapping without raising on bad shapes.

        The input is deep-copied so that repairing the graph never mutates the
        caller's document.
        """
        data = copy.deepcopy(dict(data))
        errors: List[str] = []

        raw_nodes = data.pop("nodes", None)
        nodes: List[WorkflowNode] = []
        if raw_nodes is None:
            errors.append("Workflow is missing the 'nodes' field")
        elif not isinstance(raw_nodes, list):
            errors.append("Field 'nodes' must be a list")
        else:
            for index, raw in enumerate(raw_nodes):
                if not isinstance(raw, dict):
                    errors.append(f"Node at index {index} must be an object")
                    continue
                nodes.append(_node_from_dict(raw, index, errors))

        raw_connections = data.pop("connections", None)
        connections: Dict[Any, Dict[str, List[Connection]]] = {}
        branch_counts: Dict[Tuple[Any, str], int] = {}
        if raw_connections is None:
            raw_connections = {}
        if not isinstance(raw_connections, dict):
            errors.append("Field 'connections' must be an object")
        else:
            for source, ports in raw_connections.items():
                if not isinstance(ports, dict):
                    errors.append(f"Connections of '{source}' must be an object keyed by output port")
                    continue
                connections[source] = {}
                for port, targets in ports.items():
                    connections[source][port] = _targets_from_list(source, port, targets, errors)
                    if isinstance(targets, list) and any(isinstance(t, list) for t in targets):
                        branch_counts[(source, port)] = len(targets)

        name = data.pop("name", None)
        return cls(
            name=name,
            nodes=nodes,
            connections=connections,
            extra=data,
            parse_errors=errors,
            branch_counts=branch_counts,
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "nodes": [n.to_dict() for n in self.nodes],
            "connections": {
                source: {
                    port: _targets_to_list(targets, self.branch_counts.get((source, port), 0))
                    for port, targets in ports.items()
                }
                for source, ports in self.connections.items()
            },
        }
        data.update(self.extra)
        return data

    def node_ids(self) -> Set[Any]:
        return {n.id for n in self.nodes if _hashable(n.id)}

    def get_node(self, node_id: Any) -> Optional[WorkflowNode]:
        """Find the first node with *node_id*."""
        for n in self.nodes:
            if n.id == node_id:
                return n
        return None

    def iter_connections(self) -> Iterator[Tuple[Any, str, Connection]]:
        """Yield ``(source_id, output_port, connection)`` in declaration order."""
        for source, ports in self.connections.items():
            for port, targets in ports.items():
                for conn in targets:
                    yield source, port, conn

    def connection_count(self) -> int:
        return sum(1 for _ in self.iter_connections())


def _hashable(value: Any) -> bool:
    try:
        hash(value)
    except TypeError:
        return False
    return True


def _node_from_dict(raw: Dict[str, Any], index: int, errors: List[str]) -> WorkflowNode:
    parameters = raw.get("parameters")
    if parameters is None:
        parameters = {}
    elif not isinstance(parameters, dict):
        errors.append(f"Parameters of node at index {index} must be an object")
        parameters = {}

    credentials = raw.get("credentials")
    if credentials is None:
        credentials = {}
    elif not isinstance(credentials, dict):
        errors.append(f"Credentials of node at index {index} must be an object")
        credentials = {}

    return WorkflowNode(
        id=raw.get("id"),
        name=raw.get("name"),
        type=raw.get("type"),
        position=raw.get("position"),
        parameters=parameters,
        credentials=credentials,
        extra={k: v for k, v in raw.items() if k not in _NODE_KEYS},
    )


def _targets_from_list(source: Any, port: str, targets: Any, errors: List[str]) -> List[Connection]:
    if not isinstance(targets, list):
        errors.append(f"Connections '{source}'.{port} must be a list")
        return []

    # Editors export one list of targets per branch: [[{...}, {...}], [{...}]]
    nested = any(isinstance(target, list) for target in targets)
    result: List[Connection] = []
    for i, target in enumerate(targets):
        items = target if isinstance(target, list) else [target]
        for item in items:
            if not isinstance(item, dict):
                errors.append(f"Connection '{source}'.{port}[{i}] must be an object")
                continue
            result.append(Connection.from_dict(item, output=i if nested else None))
    return result


def _targets_to_list(targets: List[Connection], width: int = 0) -> List[Any]:
    """Write targets flat, or as *width* or more branches when the port is nested."""
    if not width and all(c.output is None for c in targets):
        return [c.to_dict() for c in targets]
    width = max([width] + [(c.output or 0) + 1 for c in targets])
    branches: List[List[Dict[str, Any]]] = [[] for _ in range(width)]
    for c in targets:
        branches[c.output or 0].append(c.to_dict())
    return branches
