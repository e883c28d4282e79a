"""
Flow definition models
"""
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import uuid4

from ..exceptions import GraphError


@dataclass
class Node:
    """Flow node"""
    id: str
    type: str
    function_id: Optional[str] = None  # resolved through the method registry
    data: Dict[str, Any] = field(default_factory=dict)
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Node":
        data = dict(payload.get("data") or {})
        function_id = payload.get("function_id") or payload.get("function") or data.get("function")
        return cls(
            id=payload["id"],
            type=payload["type"],
            function_id=function_id,
            data=data,
            name=payload.get("name"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function_id": self.function_id,
            "data": self.data,
            "name": self.name,
        }


@dataclass
class Edge:
    """Directed dependency between two nodes"""
    source: str
    target: str

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Edge":
        return cls(
            source=payload.get("source") or payload["from"],
            target=payload.get("target") or payload["to"],
        )


@dataclass
class Flow:
    """Flow definition: a graph of nodes owned by a user"""
    id: str = field(default_factory=lambda: str(uuid4()))
    name: str = ""
    user_id: Optional[str] = None
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    description: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Flow":
        """Build a flow from its serialized form (YAML/JSON/database)"""
        if "flow" in payload:
            payload = payload["flow"]
        kwargs = {}
        if payload.get("id"):
            kwargs["id"] = str(payload["id"])
        return cls(
            name=payload.get("name", ""),
            user_id=payload.get("user_id"),
            nodes=[Node.from_dict(n) for n in payload.get("nodes", [])],
            edges=[Edge.from_dict(e) for e in payload.get("edges", [])],
            description=payload.get("description"),
            metadata=payload.get("metadata") or {},
            **kwargs
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "user_id": self.user_id,
            "description": self.description,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [{"source": e.source, "target": e.target} for e in self.edges],
            "metadata": self.metadata,
        }

    def get_node(self, node_id: str) -> Optional[Node]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def upstream_ids(self, node_id: str) -> List[str]:
        """Ids of nodes with an edge into node_id, in edge order"""
        return [edge.source for edge in self.edges if edge.target == node_id]

    def downstream_ids(self, node_id: str) -> List[str]:
        return [edge.target for edge in self.edges if edge.source == node_id]

    def topological_order(self) -> List[Node]:
        """
        Order nodes so that every node follows all of its upstream nodes.

        Kahn's algorithm; ties keep declaration order so runs are deterministic.
        Raises GraphError on a cycle or on an edge pointing at an unknown node.
        """
        node_ids = [node.id for node in self.nodes]
        if len(node_ids) != len(set(node_ids)):
            raise GraphError(self.id, "duplicate node ids")

        known = set(node_ids)
        adj = defaultdict(list)
        in_degree = {node_id: 0 for node_id in node_ids}

        for edge in self.edges:
            if edge.source not in known or edge.target not in known:
                raise GraphError(
                    self.id,
                    f"edge {edge.source!r} -> {edge.target!r} references an unknown node"
                )
            adj[edge.source].append(edge.target)
            in_degree[edge.target] += 1

        position = {node_id: index for index, node_id in enumerate(node_ids)}
        queue = deque(node_id for node_id in node_ids if in_degree[node_id] == 0)
        ordered: List[str] = []

        while queue:
            node_id = queue.popleft()
            ordered.append(node_id)

            released = []
            for neighbor in adj[node_id]:
                in_degree[neighbor] -= 1
                if in_degree[neighbor] == 0:
                    released.append(neighbor)
            queue.extend(sorted(released, key=position.__getitem__))

        if len(ordered) != len(node_ids):
            stuck = sorted(set(node_ids) - set(ordered), key=position.__getitem__)
            raise GraphError(self.id, f"cycle detected among nodes {stuck}")

        return [self.get_node(node_id) for node_id in ordered]
