"""
Directory Graph Walker
======================

Explores the recipient graph reachable from one root: group members,
nested groups and, when enabled, mailbox delegates and forwarding targets.

Walk semantics:
- Children of an expanded node are emitted in source order as soon as they
  are discovered, then explored depth-first. A node reachable over several
  paths keeps the first one discovered. With a depth limit the walk goes
  level by level instead, so every node is seen at its shortest depth.
- Every delegate/forwarding edge an expansion returns is kept on the result,
  including edges to nodes that were already discovered another way.
- Every node id is discovered at most once per walk (VisitedSet), which
  bounds the walk by the number of distinct recipients and ends cycles.
- Only root resolution may raise. Per-node failures become PartialFailure
  entries and the walk continues with the remaining frontier.

The walker never talks to a directory itself. It is handed a DirectorySource
(the live LDAP source, a RecipientGraph, or a test double).
"""

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence, Union

from ..config import WalkerConfig
from ..errors import ExternalRecipientError
from ..logging import get_logger
from ..model.schemas import (
    DirectoryNode, DirectoryEdge, NodeKind, RelationKind,
    TraversalRecord, PartialFailure, VisitedSet, TraversalResult
)

logger = get_logger(__name__)


class DirectorySource(Protocol):
    """Capabilities the walker needs from a directory."""

    def resolve_node(self, node_id: str) -> DirectoryNode:
        """Raises NotFoundError or ExternalRecipientError."""
        ...

    def expand_members(self, group_id: str) -> Sequence[Union[DirectoryNode, str]]:
        """Direct members; bare strings are references the walker resolves."""
        ...

    def expand_relations(self, mailbox_id: str) -> Sequence[DirectoryEdge]:
        """Delegate / forwarding edges out of a mailbox."""
        ...


@dataclass
class _Expansion:
    """What one node expansion produced. Built without touching shared state."""
    links: list = field(default_factory=list)      # (DirectoryEdge, DirectoryNode)
    relations: list = field(default_factory=list)  # every side-relation DirectoryEdge
    failures: list = field(default_factory=list)   # PartialFailure
    child_count: Optional[int] = None              # None = expansion failed


class DirectoryGraphWalker:
    """Walks the recipient graph from a root node.

    Usage:
        walker = DirectoryGraphWalker(source)
        result = walker.walk("sales@contoso.com")
        for record in result:
            print(result.format_path(record))

        # Full mail flow: follow delegates and forwarding as well
        walker = DirectoryGraphWalker(source, expand_relations=True)
    """

    def __init__(self, source: DirectorySource, config: Optional[WalkerConfig] = None,
                 expand_relations: Optional[bool] = None):
        """Initialize the walker.

        Args:
            source: DirectorySource providing resolve/expand capabilities
            config: Walker configuration (uses defaults if None)
            expand_relations: Overrides config.expand_relations when given
        """
        self.source = source
        self.config = config or WalkerConfig()
        if expand_relations is None:
            expand_relations = self.config.expand_relations
        self.expand_relations = expand_relations
        self.relation_filter = {RelationKind.from_string(r) for r in self.config.relation_kinds}

    def walk(self, root_id: str) -> TraversalResult:
        """Walk depth-first from root_id on the calling thread.

        With config.max_depth set the walk is level-ordered, like walk_concurrent.

        Raises:
            NotFoundError: root does not resolve
            ExternalRecipientError: root is outside the managed directory
        """
        result, visited = self._start(root_id, mode="sequential")
        # A depth limit is only exact when nodes are reached at their shortest depth
        level_order = self.config.max_depth is not None
        pending = deque([(result.root, ())])

        while pending:
            node, path = pending.popleft() if level_order else pending.pop()
            if not self._should_expand(node, path, result):
                continue
            expansion = self._expand(node, visited)
            children = self._merge(node, path, expansion, result, visited)
            if level_order:
                pending.extend(children)
            else:
                # Reversed so the first child is expanded first
                pending.extend(reversed(children))

        return self._finish(result)

    def walk_concurrent(self, root_id: str) -> TraversalResult:
        """Walk level by level, expanding each frontier on a worker pool.

        At most config.max_workers expansions run at once. Outcomes are merged
        in frontier order, so results are deterministic for a given source.
        """
        result, visited = self._start(root_id, mode="concurrent")
        frontier = [(result.root, ())]

        with ThreadPoolExecutor(max_workers=self.config.max_workers) as pool:
            while frontier:
                batch = [(node, path) for node, path in frontier
                         if self._should_expand(node, path, result)]
                futures = [pool.submit(self._expand, node, visited) for node, _ in batch]

                next_frontier = []
                for (node, path), future in zip(batch, futures):
                    next_frontier.extend(
                        self._merge(node, path, future.result(), result, visited)
                    )
                frontier = next_frontier

        return self._finish(result)

    def _start(self, root_id: str, mode: str) -> tuple:
        logger.info("walk_started", root=root_id, mode=mode,
                    relations=self.expand_relations)
        root = self.source.resolve_node(root_id)
        result = TraversalResult(root=root, relations_enabled=self.expand_relations)
        visited = VisitedSet()
        visited.add_if_absent(root.node_id)
        return result, visited

    def _finish(self, result: TraversalResult) -> TraversalResult:
        logger.info(
            "walk_completed",
            root=result.root.node_id,
            discovered=len(result),
            failures=len(result.failures),
            status=result.status,
        )
        return result

    def _operation_for(self, node: DirectoryNode) -> Optional[str]:
        if node.kind.is_group:
            return "expand_members"
        if node.kind.is_mailbox and self.expand_relations:
            return "expand_relations"
        return None

    def _should_expand(self, node: DirectoryNode, path: tuple, result: TraversalResult) -> bool:
        if self._operation_for(node) is None:
            return False
        if self.config.max_depth is not None and len(path) >= self.config.max_depth:
            result.truncated.append(node.node_id)
            return False
        return True

    def _expand(self, node: DirectoryNode, visited: VisitedSet) -> _Expansion:
        """Run one expansion. Never raises: failures land in the outcome."""
        operation = self._operation_for(node)
        expansion = _Expansion()

        try:
            if operation == "expand_members":
                raw = [(RelationKind.MEMBER, ref, {}) for ref in self.source.expand_members(node.node_id)]
            else:
                raw = []
                for edge in self.source.expand_relations(node.node_id):
                    if self.relation_filter and edge.relation not in self.relation_filter:
                        continue
                    raw.append((edge.relation, edge.target_id, edge.properties))
        except Exception as e:
            logger.warning(
                "node_expansion_failed",
                node=node.node_id,
                operation=operation,
                error=str(e),
                type=type(e).__name__,
            )
            expansion.failures.append(PartialFailure(
                node_id=node.node_id,
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            ))
            return expansion

        expansion.child_count = len(raw)

        for relation, ref, properties in raw:
            if isinstance(ref, DirectoryNode):
                child = ref
            elif ref in visited:
                # Already discovered: no new node, but the side relation still counts
                if relation != RelationKind.MEMBER:
                    expansion.relations.append(
                        DirectoryEdge(node.node_id, ref, relation, dict(properties))
                    )
                continue
            else:
                child = self._resolve_ref(ref, node, expansion)
                if child is None:
                    continue
            edge = DirectoryEdge(node.node_id, child.node_id, relation, dict(properties))
            expansion.links.append((edge, child))
            if relation != RelationKind.MEMBER:
                expansion.relations.append(edge)

        return expansion

    def _resolve_ref(self, ref: str, parent: DirectoryNode,
                     expansion: _Expansion) -> Optional[DirectoryNode]:
        try:
            return self.source.resolve_node(ref)
        except ExternalRecipientError as e:
            return DirectoryNode(node_id=e.address, kind=NodeKind.EXTERNAL, label=e.label or "")
        except Exception as e:
            logger.warning(
                "member_resolution_failed",
                node=ref,
                parent=parent.node_id,
                error=str(e),
                type=type(e).__name__,
            )
            expansion.failures.append(PartialFailure(
                node_id=ref,
                operation="resolve",
                error=str(e),
                error_type=type(e).__name__,
                parent_id=parent.node_id,
            ))
            return None

    def _merge(self, node: DirectoryNode, path: tuple, expansion: _Expansion,
               result: TraversalResult, visited: VisitedSet) -> list:
        """Fold one expansion into the result; return newly discovered children."""
        if expansion.child_count is not None:
            result.expansions[node.node_id] = expansion.child_count
        result.relations.extend(expansion.relations)

        for failure in expansion.failures:
            # A dangling reference shared by several groups is reported once
            if failure.operation == "resolve" and not visited.add_if_absent(failure.node_id):
                continue
            result.failures.append(failure)

        children = []
        for edge, child in expansion.links:
            if not visited.add_if_absent(child.node_id):
                continue
            child_path = path + (edge,)
            result.add_record(TraversalRecord(node=child, path=child_path))
            children.append((child, child_path))

        if expansion.child_count == 0 and node.kind.is_group:
            logger.debug("empty_group", node=node.node_id)

        return children
