"""
Pytest configuration and shared fixtures for the mailgraph test suite.
"""

import pytest
import structlog

from mailgraph.model.recipient_graph import RecipientGraph
from mailgraph.model.schemas import DirectoryNode, NodeKind, RelationKind


def make_group(node_id, kind=NodeKind.DISTRIBUTION_GROUP):
    return DirectoryNode(node_id=node_id, kind=kind, label=node_id)


def make_mailbox(node_id, kind=NodeKind.USER_MAILBOX):
    return DirectoryNode(node_id=node_id, kind=kind, label=node_id)


def build_graph(nodes, members=None, relations=None, **kwargs):
    """Build a RecipientGraph from nodes, {group: [members]} and (src, dst, relation) triples."""
    graph = RecipientGraph(**kwargs)
    for node in nodes:
        graph.add_node(node)
    for group_id, member_ids in (members or {}).items():
        for member_id in member_ids:
            graph.add_member(group_id, member_id)
    for source_id, target_id, relation in (relations or []):
        graph.add_relation(source_id, target_id, relation)
    return graph


@pytest.fixture
def make_graph():
    """Factory fixture: make_graph(nodes, members=..., relations=..., **graph_kwargs)."""
    return build_graph


@pytest.fixture
def group():
    """Factory fixture: group(node_id, kind=DistributionGroup)."""
    return make_group


@pytest.fixture
def mailbox():
    """Factory fixture: mailbox(node_id, kind=UserMailbox)."""
    return make_mailbox


@pytest.fixture
def list_graph():
    """ListA -> [ListB, user1]; ListB -> [user1, user2]."""
    return build_graph(
        [make_group("ListA"), make_group("ListB"), make_mailbox("user1"), make_mailbox("user2")],
        members={"ListA": ["ListB", "user1"], "ListB": ["user1", "user2"]},
    )


@pytest.fixture
def cyclic_graph():
    """Root -> A; A -> B; B -> A (mutual nesting)."""
    return build_graph(
        [make_group("Root"), make_group("A"), make_group("B", NodeKind.SECURITY_GROUP), make_mailbox("m1")],
        members={"Root": ["A"], "A": ["B"], "B": ["A", "m1"]},
    )


@pytest.fixture
def chain_graph():
    """root -> G1 -> G2 -> M."""
    return build_graph(
        [make_group("root"), make_group("G1"), make_group("G2"), make_mailbox("M")],
        members={"root": ["G1"], "G1": ["G2"], "G2": ["M"]},
    )


@pytest.fixture
def mail_flow_graph():
    """Sales list whose members delegate and forward, inside contoso.com."""
    return build_graph(
        [
            make_group("sales@contoso.com"),
            make_mailbox("alice@contoso.com"),
            make_mailbox("bob@contoso.com"),
            make_mailbox("assistant@contoso.com"),
            make_mailbox("shared@contoso.com", NodeKind.SHARED_MAILBOX),
        ],
        members={"sales@contoso.com": ["alice@contoso.com", "bob@contoso.com"]},
        relations=[
            ("alice@contoso.com", "assistant@contoso.com", RelationKind.DELEGATE),
            ("alice@contoso.com", "alice.personal@gmail.com", RelationKind.FORWARDS_TO),
            ("bob@contoso.com", "shared@contoso.com", RelationKind.FORWARDS_TO),
        ],
        managed_domains=["contoso.com"],
    )


@pytest.fixture(autouse=True)
def reset_structlog():
    """The CLI configures structlog against the captured stderr of its test."""
    yield
    structlog.reset_defaults()
