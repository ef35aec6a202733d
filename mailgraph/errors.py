"""Error taxonomy for directory lookups and graph expansion.

Only a failure to resolve the root of a walk escapes the walker. Everything
raised while expanding individual nodes is recorded on the TraversalResult
as a PartialFailure and the walk carries on.
"""

from typing import Optional


class DirectoryError(Exception):
    """Base exception for all directory errors."""

    pass


class NotFoundError(DirectoryError):
    """Identifier does not resolve to any known recipient.

    Examples: deleted mailbox, stale member DN, typo in the root address.
    """

    def __init__(self, identifier: str, message: Optional[str] = None):
        self.identifier = identifier
        super().__init__(message or f"Recipient not found: {identifier}")


class ExternalRecipientError(DirectoryError):
    """Identifier resolves to an address outside the managed directory.

    Mid-walk this is not a failure: the walker turns it into an External
    leaf node. Only a root that is external is reported to the caller.
    """

    def __init__(self, address: str, label: Optional[str] = None):
        self.address = address
        self.label = label or address
        super().__init__(f"Recipient is outside the managed directory: {address}")


class ExpansionError(DirectoryError):
    """A group or mailbox could not be expanded.

    Examples: remote lookup failed, permission denied, timeout.
    """

    def __init__(self, node_id: str, operation: str, detail: str = ""):
        self.node_id = node_id
        self.operation = operation
        self.detail = detail
        message = f"{operation} failed for {node_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
