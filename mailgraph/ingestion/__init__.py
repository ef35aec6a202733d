"""
mailgraph Ingestion Module
==========================

Directory sources for the walker.

Supported Sources:
- JSON directory exports (loaded into an in-memory RecipientGraph)
- Live Exchange-enabled Active Directory over LDAP (using ldap3)

Design Philosophy:
- Every source implements the same resolve/expand capabilities, so the
  walker never knows which one it is talking to
"""

from .json_loader import JSONDirectoryLoader
from .ldap_source import LDAPDirectory, classify_recipient
