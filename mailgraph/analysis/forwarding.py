"""
External Forwarding Scan
========================

Finds mailboxes in a walk result whose mail leaves the managed directory
through a forwarding relation.

Run the walker with relation expansion enabled first; a members-only walk
has no ForwardsTo edges to report.
"""

from dataclasses import dataclass
from typing import Iterable, Optional

from ..model.schemas import DirectoryEdge, NodeKind, RelationKind, TraversalResult


@dataclass
class ForwardingFinding:
    """One mailbox forwarding to an external address."""
    mailbox_id: str
    target_id: str
    target_label: str
    path: str

    def to_dict(self) -> dict:
        return {
            "mailbox_id": self.mailbox_id,
            "target_id": self.target_id,
            "target_label": self.target_label,
            "path": self.path,
        }


def _domain_of(address: str) -> Optional[str]:
    if "@" not in address:
        return None
    return address.rsplit("@", 1)[1].lower()


def _edge_path(result: TraversalResult, edge: DirectoryEdge, separator: str = " -> ") -> str:
    """Path to the edge's source followed by its target."""
    source = result.get(edge.source_id)
    prefix = result.format_path(source, separator) if source else result.root.display_name
    target = result.get_node(edge.target_id)
    return separator.join([prefix, target.display_name if target else edge.target_id])


def find_external_forwarding(result: TraversalResult,
                             managed_domains: Optional[Iterable[str]] = None) -> list:
    """List forwarding edges that point outside the directory.

    Every ForwardsTo edge the walk returned is checked, including edges to
    recipients first reached some other way (a contact that is also a list
    member). A target counts as external when its kind is External, or when
    managed_domains is given and the target address is in none of them.

    Args:
        result: Walk result produced with relation expansion enabled
        managed_domains: SMTP domains owned by the directory

    Returns:
        ForwardingFinding objects in discovery order
    """
    domains = {d.lower() for d in (managed_domains or [])}
    findings = []

    for edge in result.relations:
        if edge.relation != RelationKind.FORWARDS_TO:
            continue
        node = result.get_node(edge.target_id)
        external = node is not None and node.kind == NodeKind.EXTERNAL
        if not external and domains:
            domain = _domain_of(edge.target_id)
            external = domain is not None and domain not in domains
        if external:
            findings.append(ForwardingFinding(
                mailbox_id=edge.source_id,
                target_id=edge.target_id,
                target_label=node.display_name if node else edge.target_id,
                path=_edge_path(result, edge),
            ))

    return findings
