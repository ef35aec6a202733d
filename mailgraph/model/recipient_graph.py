"""
mailgraph Recipient Graph
=========================

NetworkX-based in-memory directory.

Design Decisions:
-----------------
1. Uses a NetworkX MultiDiGraph so one pair of recipients can carry several
   relations (a delegate who is also a group member)
2. Nodes are stored with their full DirectoryNode as an attribute
3. Implements the DirectorySource protocol, so offline exports and test
   fixtures drive the walker exactly like the live LDAP source
4. Dangling edges (members that point at ids with no node) are allowed; they
   model stale directory references and resolve to NotFoundError
"""

from collections import defaultdict
from typing import Iterable, Iterator, Optional

import networkx as nx

from .schemas import DirectoryNode, DirectoryEdge, NodeKind, RelationKind
from ..errors import NotFoundError, ExternalRecipientError, ExpansionError


class RecipientGraph:
    """Abstraction layer over NetworkX for recipient graph operations.

    Example Usage:
        graph = RecipientGraph(managed_domains=["contoso.com"])
        graph.add_node(DirectoryNode("lista@contoso.com", NodeKind.DISTRIBUTION_GROUP, "ListA"))
        graph.add_node(DirectoryNode("user1@contoso.com", NodeKind.USER_MAILBOX, "user1"))
        graph.add_member("lista@contoso.com", "user1@contoso.com")

        walker = DirectoryGraphWalker(graph)
        result = walker.walk("lista@contoso.com")
    """

    def __init__(self, managed_domains: Optional[Iterable[str]] = None,
                 fail_on: Optional[dict] = None):
        """Initialize empty recipient graph.

        Args:
            managed_domains: SMTP domains owned by this directory. Unknown
                             addresses outside them are external recipients.
            fail_on: node_id -> operation name ("resolve", "expand_members",
                     "expand_relations") that should raise ExpansionError,
                     for simulating remote failures
        """
        self._graph = nx.MultiDiGraph()
        self._nodes_by_name: dict[str, str] = {}  # label/alias.lower() -> node_id
        self._nodes_by_kind: dict[NodeKind, set[str]] = defaultdict(set)
        self.managed_domains = {d.lower() for d in (managed_domains or [])}
        self.fail_on = dict(fail_on or {})

    @property
    def nx_graph(self) -> nx.MultiDiGraph:
        """Access underlying NetworkX graph for advanced operations."""
        return self._graph

    def add_node(self, node: DirectoryNode) -> None:
        self._graph.add_node(node.node_id, node_obj=node, kind=node.kind)
        self._nodes_by_kind[node.kind].add(node.node_id)
        if node.label:
            self._nodes_by_name[node.label.lower()] = node.node_id
        for address in node.properties.get("addresses", []):
            self._nodes_by_name[address.lower()] = node.node_id

    def add_edge(self, edge: DirectoryEdge) -> None:
        """Add an edge. Endpoints without nodes stay as bare graph vertices."""
        # One edge per (source, target, relation); edge order is insertion order
        if self._graph.has_edge(edge.source_id, edge.target_id, key=edge.relation):
            return
        self._graph.add_edge(
            edge.source_id,
            edge.target_id,
            key=edge.relation,
            edge_obj=edge,
        )

    def add_member(self, group_id: str, member_id: str) -> None:
        self.add_edge(DirectoryEdge(group_id, member_id, RelationKind.MEMBER))

    def add_relation(self, mailbox_id: str, target_id: str, relation: RelationKind) -> None:
        self.add_edge(DirectoryEdge(mailbox_id, target_id, relation))

    def get_node(self, node_id: str) -> Optional[DirectoryNode]:
        if not self._graph.has_node(node_id):
            return None
        return self._graph.nodes[node_id].get("node_obj")

    def get_node_by_name(self, name: str) -> Optional[DirectoryNode]:
        """Get a node by label or address (case-insensitive)."""
        node_id = self._nodes_by_name.get(name.lower())
        if node_id:
            return self.get_node(node_id)
        return None

    def get_nodes_by_kind(self, kind: NodeKind) -> Iterator[DirectoryNode]:
        for node_id in self._nodes_by_kind[kind]:
            node = self.get_node(node_id)
            if node:
                yield node

    def get_edges(self, source_id: str, relation: Optional[RelationKind] = None) -> list:
        """Outgoing edges of a node in insertion order."""
        if not self._graph.has_node(source_id):
            return []
        edges = []
        for _, _, key, attrs in self._graph.out_edges(source_id, keys=True, data=True):
            if relation is None or key == relation:
                edges.append(attrs["edge_obj"])
        return edges

    @property
    def node_count(self) -> int:
        """Number of recipients (dangling references excluded)."""
        return sum(1 for _, obj in self._graph.nodes(data="node_obj") if obj is not None)

    @property
    def edge_count(self) -> int:
        return self._graph.number_of_edges()

    def _is_external_address(self, identifier: str) -> bool:
        if "@" not in identifier or not self.managed_domains:
            return False
        return identifier.rsplit("@", 1)[1].lower() not in self.managed_domains

    def _check_failure(self, node_id: str, operation: str) -> None:
        if self.fail_on.get(node_id) == operation:
            raise ExpansionError(node_id, operation, "simulated failure")

    # DirectorySource protocol

    def resolve_node(self, node_id: str) -> DirectoryNode:
        self._check_failure(node_id, "resolve")
        node = self.get_node(node_id) or self.get_node_by_name(node_id)
        if node is not None:
            if node.kind == NodeKind.EXTERNAL:
                raise ExternalRecipientError(node.node_id, node.label)
            return node
        if self._is_external_address(node_id):
            raise ExternalRecipientError(node_id)
        raise NotFoundError(node_id)

    def expand_members(self, group_id: str) -> list:
        """Members of a group: resolved nodes, or bare ids for dangling refs."""
        self._check_failure(group_id, "expand_members")
        members = []
        for edge in self.get_edges(group_id, RelationKind.MEMBER):
            node = self.get_node(edge.target_id)
            members.append(node if node is not None else edge.target_id)
        return members

    def expand_relations(self, mailbox_id: str) -> list:
        self._check_failure(mailbox_id, "expand_relations")
        return [
            edge for edge in self.get_edges(mailbox_id)
            if edge.relation != RelationKind.MEMBER
        ]
