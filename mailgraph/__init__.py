"""
mailgraph - Directory Recipient Graph Walker
============================================

Administrative toolkit for a hosted mailbox/directory platform: enumerate
distribution-list membership, trace delegation and forwarding, spot
external forwarding and audit license assignments.

Architecture Overview:
----------------------
- model/: Typed recipient/edge/result models and an in-memory recipient graph
- ingestion/: Directory sources (JSON exports, live LDAP)
- analysis/: Graph walker, forwarding scan, license classifier

Design Decisions:
-----------------
1. The walker is a thin core that only sees resolve/expand capabilities, so
   it is tested against in-memory graphs without a live directory
2. All data models use Python dataclasses and enums
3. NetworkX backs the in-memory graph and the result projection
"""

__version__ = "1.0.0"

from .config import MailGraphConfig
from .errors import DirectoryError, NotFoundError, ExternalRecipientError, ExpansionError
