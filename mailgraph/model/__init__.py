"""
mailgraph Model Module
======================

Contains the core data models and the in-memory recipient graph.

Key Components:
- schemas.py: Typed dataclasses for recipients, edges and walk results
- recipient_graph.py: NetworkX-based directory usable as a walker source
"""

from .schemas import (
    NodeKind,
    RelationKind,
    DirectoryNode,
    DirectoryEdge,
    TraversalRecord,
    PartialFailure,
    VisitedSet,
    TraversalResult
)
from .recipient_graph import RecipientGraph
