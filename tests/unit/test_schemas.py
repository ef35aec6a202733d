"""
Unit tests for the mailgraph data schemas.
"""

import threading

import pytest

from mailgraph.model.schemas import (
    DirectoryNode, DirectoryEdge, NodeKind, RelationKind,
    TraversalRecord, TraversalResult, VisitedSet
)


class TestNodeKind:

    @pytest.mark.parametrize("text,expected", [
        ("UserMailbox", NodeKind.USER_MAILBOX),
        ("sharedmailbox", NodeKind.SHARED_MAILBOX),
        ("RoomMailbox", NodeKind.SHARED_MAILBOX),
        ("MailUniversalDistributionGroup", NodeKind.DISTRIBUTION_GROUP),
        ("MailUniversalSecurityGroup", NodeKind.SECURITY_GROUP),
        ("MailContact", NodeKind.EXTERNAL),
        ("GuestMailUser", NodeKind.EXTERNAL),
        ("  dl  ", NodeKind.DISTRIBUTION_GROUP),
        ("PublicFolder", NodeKind.UNKNOWN),
        ("", NodeKind.UNKNOWN),
    ])
    def test_from_string(self, text, expected):
        assert NodeKind.from_string(text) == expected

    def test_group_and_mailbox_flags(self):
        assert NodeKind.SECURITY_GROUP.is_group
        assert not NodeKind.SECURITY_GROUP.is_mailbox
        assert NodeKind.SHARED_MAILBOX.is_mailbox
        assert not NodeKind.EXTERNAL.is_group
        assert not NodeKind.EXTERNAL.is_mailbox


class TestRelationKind:

    @pytest.mark.parametrize("text,expected", [
        ("Member", RelationKind.MEMBER),
        ("FullAccess", RelationKind.DELEGATE),
        ("publicDelegates", RelationKind.DELEGATE),
        ("altRecipient", RelationKind.FORWARDS_TO),
        ("forwarding", RelationKind.FORWARDS_TO),
    ])
    def test_from_string(self, text, expected):
        assert RelationKind.from_string(text) == expected

    def test_unknown_relation_raises(self):
        with pytest.raises(ValueError, match="Unknown relation kind"):
            RelationKind.from_string("manager")


class TestNodesAndEdges:

    def test_node_identity_is_the_id(self):
        a = DirectoryNode("x@contoso.com", NodeKind.USER_MAILBOX, "X")
        b = DirectoryNode("x@contoso.com", NodeKind.UNKNOWN)

        assert a == b
        assert len({a, b}) == 1

    def test_display_name_falls_back_to_id(self):
        assert DirectoryNode("x@contoso.com").display_name == "x@contoso.com"
        assert DirectoryNode("x@contoso.com", label="X").display_name == "X"

    def test_terminal(self):
        assert DirectoryNode("g", NodeKind.DISTRIBUTION_GROUP).is_terminal is False
        assert DirectoryNode("m", NodeKind.USER_MAILBOX).is_terminal is True

    def test_edge_equality_includes_relation(self):
        member = DirectoryEdge("a", "b", RelationKind.MEMBER)
        delegate = DirectoryEdge("a", "b", RelationKind.DELEGATE)

        assert member != delegate
        assert member == DirectoryEdge("a", "b")
        assert delegate.description == "a --[Delegate]--> b"


class TestVisitedSet:

    def test_add_if_absent(self):
        visited = VisitedSet()

        assert visited.add_if_absent("a") is True
        assert visited.add_if_absent("a") is False
        assert "a" in visited
        assert "b" not in visited
        assert len(visited) == 1

    def test_single_winner_across_threads(self):
        visited = VisitedSet()
        wins = []
        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            if visited.add_if_absent("shared"):
                wins.append(1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert wins == [1]


class TestTraversalResult:

    def _result(self):
        root = DirectoryNode("root", NodeKind.DISTRIBUTION_GROUP, "Root")
        child = DirectoryNode("child", NodeKind.DISTRIBUTION_GROUP, "Child")
        leaf = DirectoryNode("leaf", NodeKind.USER_MAILBOX, "Leaf")
        e1 = DirectoryEdge("root", "child")
        e2 = DirectoryEdge("child", "leaf")
        return TraversalResult(
            root=root,
            records=[TraversalRecord(child, (e1,)), TraversalRecord(leaf, (e1, e2))],
            expansions={"root": 1, "child": 1},
        )

    def test_index_built_from_records(self):
        result = self._result()

        assert result.contains("leaf")
        assert result.get("leaf").parent_id == "child"
        assert result.get_node("root").label == "Root"
        assert result.get_node("missing") is None

    def test_format_path_uses_labels(self):
        result = self._result()

        assert result.format_path(result.get("leaf")) == "Root -> Child -> Leaf"
        assert result.format_path(result.get("leaf"), separator="/") == "Root/Child/Leaf"

    def test_status(self):
        result = self._result()
        assert result.status == "fully explored"

        result.truncated.append("child")
        assert result.status == "explored with 1 unresolved branch"
