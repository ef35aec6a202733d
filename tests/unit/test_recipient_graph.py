"""
Unit tests for the in-memory RecipientGraph source.
"""

import pytest

from mailgraph.errors import NotFoundError, ExternalRecipientError, ExpansionError
from mailgraph.model.recipient_graph import RecipientGraph
from mailgraph.model.schemas import DirectoryNode, DirectoryEdge, NodeKind, RelationKind


@pytest.fixture
def graph():
    graph = RecipientGraph(managed_domains=["Contoso.com"])
    graph.add_node(DirectoryNode("sales@contoso.com", NodeKind.DISTRIBUTION_GROUP, "Sales"))
    graph.add_node(DirectoryNode(
        "alice@contoso.com", NodeKind.USER_MAILBOX, "Alice",
        properties={"addresses": ["a.smith@contoso.com"]},
    ))
    graph.add_node(DirectoryNode("partner@fabrikam.com", NodeKind.EXTERNAL, "Partner"))
    graph.add_member("sales@contoso.com", "alice@contoso.com")
    graph.add_member("sales@contoso.com", "stale@contoso.com")
    graph.add_member("sales@contoso.com", "partner@fabrikam.com")
    graph.add_relation("alice@contoso.com", "sales@contoso.com", RelationKind.DELEGATE)
    return graph


class TestLookup:

    def test_counts_exclude_dangling_ids(self, graph):
        assert graph.node_count == 3
        assert graph.edge_count == 4

    def test_duplicate_edges_ignored(self, graph):
        graph.add_member("sales@contoso.com", "alice@contoso.com")
        assert graph.edge_count == 4

    def test_same_pair_different_relations(self, graph):
        graph.add_member("alice@contoso.com", "sales@contoso.com")
        assert len(graph.get_edges("alice@contoso.com")) == 2

    def test_get_node_by_name(self, graph):
        assert graph.get_node_by_name("SALES").node_id == "sales@contoso.com"
        assert graph.get_node_by_name("A.Smith@contoso.com").node_id == "alice@contoso.com"
        assert graph.get_node_by_name("nobody") is None

    def test_get_nodes_by_kind(self, graph):
        groups = list(graph.get_nodes_by_kind(NodeKind.DISTRIBUTION_GROUP))
        assert [n.node_id for n in groups] == ["sales@contoso.com"]


class TestResolve:

    def test_resolve_by_id_and_alias(self, graph):
        assert graph.resolve_node("alice@contoso.com").label == "Alice"
        assert graph.resolve_node("a.smith@contoso.com").node_id == "alice@contoso.com"

    def test_unknown_managed_address(self, graph):
        with pytest.raises(NotFoundError):
            graph.resolve_node("stale@contoso.com")

    def test_unknown_foreign_address(self, graph):
        with pytest.raises(ExternalRecipientError) as exc_info:
            graph.resolve_node("someone@gmail.com")
        assert exc_info.value.address == "someone@gmail.com"

    def test_external_node(self, graph):
        with pytest.raises(ExternalRecipientError) as exc_info:
            graph.resolve_node("partner@fabrikam.com")
        assert exc_info.value.label == "Partner"

    def test_no_managed_domains_means_not_found(self):
        with pytest.raises(NotFoundError):
            RecipientGraph().resolve_node("someone@gmail.com")


class TestExpand:

    def test_expand_members_keeps_order_and_dangling_refs(self, graph):
        members = graph.expand_members("sales@contoso.com")

        assert members[0] == DirectoryNode("alice@contoso.com")
        assert members[1] == "stale@contoso.com"
        assert members[2].kind == NodeKind.EXTERNAL

    def test_expand_relations_skips_membership(self, graph):
        graph.add_member("alice@contoso.com", "sales@contoso.com")
        edges = graph.expand_relations("alice@contoso.com")

        assert edges == [DirectoryEdge("alice@contoso.com", "sales@contoso.com", RelationKind.DELEGATE)]

    def test_unknown_node_expands_to_nothing(self, graph):
        assert graph.expand_members("nobody") == []

    def test_simulated_failure(self):
        graph = RecipientGraph(fail_on={"g": "expand_members"})
        graph.add_node(DirectoryNode("g", NodeKind.DISTRIBUTION_GROUP))

        assert graph.resolve_node("g").node_id == "g"
        with pytest.raises(ExpansionError) as exc_info:
            graph.expand_members("g")
        assert exc_info.value.operation == "expand_members"
