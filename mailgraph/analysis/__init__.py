"""
mailgraph Analysis Module
=========================

Deterministic traversal and classification over directory data.

Components:
- walker.py: Recursive group/relationship expansion with cycle avoidance
- forwarding.py: External-forwarding scan over a walk result
- license_policy.py: Rule-based license-compliance verdicts
"""

from .walker import DirectoryGraphWalker, DirectorySource
from .forwarding import ForwardingFinding, find_external_forwarding
from .license_policy import (
    LicenseAssignment,
    LicensePolicy,
    LicenseVerdict,
    VerdictStatus
)
