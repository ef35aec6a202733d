"""
mailgraph Data Schemas
======================

Typed dataclasses representing directory recipients, the relationships
between them, and the output of a graph walk.

Design Decisions:
-----------------
1. Every recipient is a DirectoryNode keyed by an opaque node_id (an SMTP
   address, a DN or an object GUID, whatever the source hands out)
2. NodeKind and RelationKind enums provide type safety and easy serialization
3. TraversalResult is the primary unit of output, built fresh for each walk
4. Edges carry ids rather than node objects so sources can hand out
   unresolved references (stale member DNs) for the walker to resolve

Schema Overview:
- DirectoryNode: mailbox, group or external address
- DirectoryEdge: Member / Delegate / ForwardsTo relationship
- TraversalRecord: a discovered node with the path used to reach it
- PartialFailure: a node that could not be resolved or expanded
- VisitedSet: ids already discovered during one walk
- TraversalResult: records + failures for one walk
"""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator, Optional

import networkx as nx


class NodeKind(Enum):
    """Kinds of directory recipients.

    Only the two group kinds are expanded for membership. Everything else is
    a terminal node.
    """
    USER_MAILBOX = "UserMailbox"
    SHARED_MAILBOX = "SharedMailbox"
    DISTRIBUTION_GROUP = "DistributionGroup"
    SECURITY_GROUP = "SecurityGroup"
    EXTERNAL = "External"
    UNKNOWN = "Unknown"

    @property
    def is_group(self) -> bool:
        return self in (NodeKind.DISTRIBUTION_GROUP, NodeKind.SECURITY_GROUP)

    @property
    def is_mailbox(self) -> bool:
        return self in (NodeKind.USER_MAILBOX, NodeKind.SHARED_MAILBOX)

    @classmethod
    def from_string(cls, s: str) -> "NodeKind":
        """Convert a kind name or a RecipientTypeDetails value to NodeKind."""
        if not s:
            return cls.UNKNOWN
        normalized = s.strip().lower()

        for kind in cls:
            if kind.value.lower() == normalized:
                return kind

        aliases = {
            "user": cls.USER_MAILBOX,
            "mailbox": cls.USER_MAILBOX,
            "usermailbox": cls.USER_MAILBOX,
            "linkedmailbox": cls.USER_MAILBOX,
            "remoteusermailbox": cls.USER_MAILBOX,
            "shared": cls.SHARED_MAILBOX,
            "sharedmailbox": cls.SHARED_MAILBOX,
            "remotesharedmailbox": cls.SHARED_MAILBOX,
            "roommailbox": cls.SHARED_MAILBOX,
            "equipmentmailbox": cls.SHARED_MAILBOX,
            "distributiongroup": cls.DISTRIBUTION_GROUP,
            "distributionlist": cls.DISTRIBUTION_GROUP,
            "dl": cls.DISTRIBUTION_GROUP,
            "mailuniversaldistributiongroup": cls.DISTRIBUTION_GROUP,
            "mailnonuniversalgroup": cls.DISTRIBUTION_GROUP,
            "roomlist": cls.DISTRIBUTION_GROUP,
            "securitygroup": cls.SECURITY_GROUP,
            "mailuniversalsecuritygroup": cls.SECURITY_GROUP,
            "universalsecuritygroup": cls.SECURITY_GROUP,
            "external": cls.EXTERNAL,
            "contact": cls.EXTERNAL,
            "mailcontact": cls.EXTERNAL,
            "mailuser": cls.EXTERNAL,
            "guestmailuser": cls.EXTERNAL,
        }
        return aliases.get(normalized, cls.UNKNOWN)


class RelationKind(Enum):
    """Types of relationships discovered during a walk."""
    MEMBER = "Member"
    DELEGATE = "Delegate"
    FORWARDS_TO = "ForwardsTo"

    @classmethod
    def from_string(cls, s: str) -> "RelationKind":
        """Convert string to RelationKind, handling common aliases.

        Raises:
            ValueError: if the name is not a known relation
        """
        normalized = s.strip().lower()

        for relation in cls:
            if relation.value.lower() == normalized:
                return relation

        aliases = {
            "members": cls.MEMBER,
            "memberof": cls.MEMBER,
            "delegates": cls.DELEGATE,
            "delegation": cls.DELEGATE,
            "fullaccess": cls.DELEGATE,
            "sendas": cls.DELEGATE,
            "sendonbehalf": cls.DELEGATE,
            "publicdelegates": cls.DELEGATE,
            "forward": cls.FORWARDS_TO,
            "forwarding": cls.FORWARDS_TO,
            "forwardingaddress": cls.FORWARDS_TO,
            "forwardingsmtpaddress": cls.FORWARDS_TO,
            "altrecipient": cls.FORWARDS_TO,
            "redirect": cls.FORWARDS_TO,
        }
        if normalized in aliases:
            return aliases[normalized]
        raise ValueError(f"Unknown relation kind: {s}")


@dataclass
class DirectoryNode:
    """Any addressable directory object.

    Attributes:
        node_id: Opaque key (SMTP address, DN or object id)
        kind: Recipient kind
        label: Human-readable name
        properties: Extra attributes from the source (addresses, DN, ...)
    """
    node_id: str
    kind: NodeKind = NodeKind.UNKNOWN
    label: str = ""
    properties: dict = field(default_factory=dict)

    def __hash__(self):
        return hash(self.node_id)

    def __eq__(self, other):
        if isinstance(other, DirectoryNode):
            return self.node_id == other.node_id
        return False

    @property
    def display_name(self) -> str:
        return self.label or self.node_id

    @property
    def is_terminal(self) -> bool:
        """Terminal nodes are never expanded for membership."""
        return not self.kind.is_group

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "kind": self.kind.value,
            "label": self.label,
            "properties": self.properties,
        }


@dataclass
class DirectoryEdge:
    """A directed relationship between two recipients.

    Direction follows mail flow: a group points at its members, a mailbox
    points at its delegates and forwarding targets.
    """
    source_id: str
    target_id: str
    relation: RelationKind = RelationKind.MEMBER
    properties: dict = field(default_factory=dict)

    def __hash__(self):
        return hash((self.source_id, self.target_id, self.relation))

    def __eq__(self, other):
        if isinstance(other, DirectoryEdge):
            return (self.source_id == other.source_id and
                    self.target_id == other.target_id and
                    self.relation == other.relation)
        return False

    @property
    def description(self) -> str:
        """Human-readable description of the edge."""
        return f"{self.source_id} --[{self.relation.value}]--> {self.target_id}"

    def to_dict(self) -> dict:
        return {
            "source": self.source_id,
            "target": self.target_id,
            "relation": self.relation.value,
        }


@dataclass
class TraversalRecord:
    """A node reached during a walk and the first path that reached it."""
    node: DirectoryNode
    path: tuple = ()  # DirectoryEdge objects from the root

    @property
    def depth(self) -> int:
        return len(self.path)

    @property
    def via(self) -> Optional[RelationKind]:
        """Relation of the edge that discovered this node."""
        if not self.path:
            return None
        return self.path[-1].relation

    @property
    def parent_id(self) -> Optional[str]:
        if not self.path:
            return None
        return self.path[-1].source_id

    def to_dict(self) -> dict:
        return {
            "node": self.node.to_dict(),
            "depth": self.depth,
            "path": [e.to_dict() for e in self.path],
        }


@dataclass
class PartialFailure:
    """A node that could not be resolved or expanded.

    Attributes:
        node_id: Identifier that failed
        operation: resolve, expand_members or expand_relations
        error: Error detail
        error_type: Exception class name
        parent_id: Node whose expansion referenced node_id (None for expansions)
    """
    node_id: str
    operation: str
    error: str
    error_type: str = ""
    parent_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "node_id": self.node_id,
            "operation": self.operation,
            "error": self.error,
            "error_type": self.error_type,
            "parent_id": self.parent_id,
        }


class VisitedSet:
    """Ids already discovered during one walk.

    add_if_absent is the atomic check-and-mark: exactly one caller gets True
    for a given id, even with concurrent workers.
    """

    def __init__(self):
        self._ids: set[str] = set()
        self._lock = threading.Lock()

    def add_if_absent(self, node_id: str) -> bool:
        with self._lock:
            if node_id in self._ids:
                return False
            self._ids.add(node_id)
            return True

    def __contains__(self, node_id: str) -> bool:
        with self._lock:
            return node_id in self._ids

    def __len__(self) -> int:
        with self._lock:
            return len(self._ids)


@dataclass
class TraversalResult:
    """Output of a single walk.

    Records are in discovery order and every node appears once. The root is
    kept apart from the records.

    Attributes:
        root: The resolved root node
        records: TraversalRecord objects in discovery order
        failures: PartialFailure objects (unresolved branches)
        expansions: node_id -> number of children returned by a successful expansion
        truncated: Ids left unexpanded because of the depth limit
        relations: Every Delegate/ForwardsTo edge returned by an expansion,
                   including edges to nodes first reached another way
        relations_enabled: Whether side relations were followed
    """
    root: DirectoryNode
    records: list = field(default_factory=list)
    failures: list = field(default_factory=list)
    expansions: dict = field(default_factory=dict)
    truncated: list = field(default_factory=list)
    relations: list = field(default_factory=list)
    relations_enabled: bool = False

    def __post_init__(self):
        self._index: dict[str, TraversalRecord] = {r.node.node_id: r for r in self.records}

    def add_record(self, record: TraversalRecord) -> None:
        self.records.append(record)
        self._index[record.node.node_id] = record

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[TraversalRecord]:
        return iter(self.records)

    @property
    def nodes(self) -> list:
        return [r.node for r in self.records]

    def get(self, node_id: str) -> Optional[TraversalRecord]:
        return self._index.get(node_id)

    def contains(self, node_id: str) -> bool:
        return node_id in self._index

    def get_node(self, node_id: str) -> Optional[DirectoryNode]:
        if node_id == self.root.node_id:
            return self.root
        record = self._index.get(node_id)
        return record.node if record else None

    @property
    def empty_groups(self) -> list:
        """Groups that expanded successfully to zero members."""
        empty = []
        for node_id, count in self.expansions.items():
            node = self.get_node(node_id)
            if count == 0 and node is not None and node.kind.is_group:
                empty.append(node_id)
        return empty

    @property
    def failed_ids(self) -> list:
        return [f.node_id for f in self.failures]

    @property
    def is_complete(self) -> bool:
        return not self.failures and not self.truncated

    @property
    def status(self) -> str:
        if self.is_complete:
            return "fully explored"
        unresolved = len(self.failures) + len(self.truncated)
        noun = "branch" if unresolved == 1 else "branches"
        return f"explored with {unresolved} unresolved {noun}"

    def format_path(self, record: TraversalRecord, separator: str = " -> ") -> str:
        """Render a record's path with labels, e.g. "ListA -> ListB -> user2"."""
        names = [self.root.display_name]
        for edge in record.path:
            node = self.get_node(edge.target_id)
            names.append(node.display_name if node else edge.target_id)
        return separator.join(names)

    def to_networkx(self) -> nx.DiGraph:
        """Project the discovery tree onto a NetworkX DiGraph.

        Only the edge that first reached each node is included.
        """
        graph = nx.DiGraph()
        graph.add_node(self.root.node_id, kind=self.root.kind.value, label=self.root.label, depth=0)
        for record in self.records:
            node = record.node
            graph.add_node(node.node_id, kind=node.kind.value, label=node.label, depth=record.depth)
            if record.path:
                edge = record.path[-1]
                graph.add_edge(edge.source_id, edge.target_id, relation=edge.relation.value)
        return graph

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "root": self.root.to_dict(),
            "status": self.status,
            "relations_enabled": self.relations_enabled,
            "records": [
                {**r.to_dict(), "path_text": self.format_path(r)} for r in self.records
            ],
            "failures": [f.to_dict() for f in self.failures],
            "empty_groups": self.empty_groups,
            "truncated": list(self.truncated),
            "relations": [e.to_dict() for e in self.relations],
        }
