"""
LDAP Directory Source
=====================

Live DirectorySource for an Exchange-enabled Active Directory, via ldap3.

Features:
- Resolves recipients by DN, SMTP address (mail / proxyAddresses) or
  sAMAccountName
- Classifies recipients from msExchRecipientTypeDetails, falling back to
  objectClass and groupType
- Expands group membership from the member attribute
- Expands delegates (publicDelegates) and forwarding (altRecipient,
  msExchGenericForwardingAddress)

Design Decisions:
-----------------
1. Node ids are distinguished names, so member DNs are usable as-is
2. Lookups are cached per instance; a walk never asks for the same DN twice
3. Searches on the shared connection are serialized with a lock, which keeps
   the source safe for walk_concurrent
4. ldap3 errors are wrapped in the mailgraph error taxonomy

This module performs read-only operations. Nothing is modified in the directory.
"""

import threading
from typing import Optional

from ldap3 import Server, Connection, ALL, BASE, SUBTREE, NTLM, SIMPLE
from ldap3.core.exceptions import LDAPException, LDAPNoSuchObjectResult
from ldap3.utils.conv import escape_filter_chars

from ..config import LDAPConfig
from ..errors import NotFoundError, ExternalRecipientError, ExpansionError
from ..logging import get_logger
from ..model.schemas import DirectoryNode, DirectoryEdge, NodeKind, RelationKind

logger = get_logger(__name__)

RECIPIENT_ATTRIBUTES = [
    'objectClass', 'distinguishedName', 'sAMAccountName', 'displayName', 'cn',
    'mail', 'proxyAddresses', 'targetAddress', 'groupType',
    'msExchRecipientTypeDetails', 'member',
]

RELATION_ATTRIBUTES = ['publicDelegates', 'altRecipient', 'msExchGenericForwardingAddress']

# msExchRecipientTypeDetails values
RECIPIENT_TYPE_DETAILS = {
    1: NodeKind.USER_MAILBOX,            # UserMailbox
    2: NodeKind.USER_MAILBOX,            # LinkedMailbox
    4: NodeKind.SHARED_MAILBOX,          # SharedMailbox
    16: NodeKind.SHARED_MAILBOX,         # RoomMailbox
    32: NodeKind.SHARED_MAILBOX,         # EquipmentMailbox
    64: NodeKind.EXTERNAL,               # MailContact
    128: NodeKind.EXTERNAL,              # MailUser
    256: NodeKind.DISTRIBUTION_GROUP,    # MailUniversalDistributionGroup
    512: NodeKind.DISTRIBUTION_GROUP,    # MailNonUniversalGroup
    1024: NodeKind.SECURITY_GROUP,       # MailUniversalSecurityGroup
    2147483648: NodeKind.USER_MAILBOX,   # RemoteUserMailbox
    8589934592: NodeKind.SHARED_MAILBOX,   # RemoteRoomMailbox
    17179869184: NodeKind.SHARED_MAILBOX,  # RemoteEquipmentMailbox
    34359738368: NodeKind.SHARED_MAILBOX,  # RemoteSharedMailbox
}

GROUP_TYPE_SECURITY_ENABLED = 0x80000000


def _values(attrs: dict, name: str) -> list:
    """Attribute values as a list, whatever shape ldap3 returned them in."""
    value = attrs.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [v for v in value if v not in (None, "", b"")]
    return [value]


def _first(attrs: dict, name: str, default=None):
    values = _values(attrs, name)
    return values[0] if values else default


def _as_int(value) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _strip_smtp(address: str) -> str:
    """'SMTP:a@b' / 'smtp:a@b' -> 'a@b'."""
    if ":" in address:
        prefix, rest = address.split(":", 1)
        if prefix.lower() == "smtp":
            return rest
    return address


def classify_recipient(attrs: dict) -> NodeKind:
    """Determine the recipient kind from directory attributes."""
    details = _as_int(_first(attrs, 'msExchRecipientTypeDetails'))
    if details is not None and details in RECIPIENT_TYPE_DETAILS:
        return RECIPIENT_TYPE_DETAILS[details]

    classes = {str(c).lower() for c in _values(attrs, 'objectClass')}
    if 'group' in classes:
        group_type = _as_int(_first(attrs, 'groupType')) or 0
        # groupType is a signed 32-bit value in AD
        if group_type & GROUP_TYPE_SECURITY_ENABLED:
            return NodeKind.SECURITY_GROUP
        return NodeKind.DISTRIBUTION_GROUP
    if 'contact' in classes:
        return NodeKind.EXTERNAL
    if 'user' in classes and _first(attrs, 'mail'):
        if _first(attrs, 'targetAddress'):
            return NodeKind.EXTERNAL
        return NodeKind.USER_MAILBOX
    return NodeKind.UNKNOWN


class LDAPDirectory:
    """DirectorySource backed by a live LDAP connection.

    Usage:
        directory = LDAPDirectory(LDAPConfig(server="10.0.0.10", domain="contoso.com",
                                             username="svc_audit", password="..."))
        walker = DirectoryGraphWalker(directory, expand_relations=True)
        result = walker.walk("sales@contoso.com")
        directory.disconnect()
    """

    def __init__(self, config: Optional[LDAPConfig] = None,
                 connection: Optional[Connection] = None,
                 search_base: Optional[str] = None):
        """Initialize the LDAP directory source.

        Args:
            config: LDAPConfig with server, domain and credentials
            connection: Already-bound ldap3 Connection (skips connect())
            search_base: Overrides the base DN derived from config.domain
        """
        self.config = config or LDAPConfig()
        self.connection = connection
        self.search_base = search_base or self.config.base_dn
        self.managed_domains = {d.lower() for d in self.config.managed_domains}

        self._lock = threading.Lock()
        self._cache: dict[str, tuple] = {}  # identifier.lower() -> (dn, attributes)

    def connect(self) -> bool:
        """Establish connection to the LDAP server.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            server = Server(
                self.config.server,
                port=self.config.port,
                use_ssl=self.config.use_ssl,
                get_info=ALL,
                connect_timeout=self.config.timeout
            )

            username = self.config.username
            if username and self.config.password:
                if '\\' not in username and '@' not in username and self.config.domain:
                    ntlm_user = f"{self.config.domain.split('.')[0].upper()}\\{username}"
                else:
                    ntlm_user = username

                logger.info("ldap_connecting", server=self.config.server,
                            port=self.config.port, user=ntlm_user)
                try:
                    self.connection = Connection(
                        server,
                        user=ntlm_user,
                        password=self.config.password,
                        authentication=NTLM,
                        auto_bind=True,
                        receive_timeout=self.config.timeout
                    )
                except LDAPException as ntlm_error:
                    logger.info("ldap_ntlm_failed", error=str(ntlm_error), fallback="simple")
                    self.connection = Connection(
                        server,
                        user=username if '@' in username else f"{username}@{self.config.domain}",
                        password=self.config.password,
                        authentication=SIMPLE,
                        auto_bind=True,
                        receive_timeout=self.config.timeout
                    )
            else:
                logger.info("ldap_connecting", server=self.config.server,
                            port=self.config.port, user=None)
                self.connection = Connection(
                    server,
                    auto_bind=True,
                    receive_timeout=self.config.timeout
                )

            logger.info("ldap_connected", server=self.config.server)
            return True

        except LDAPException as e:
            logger.error("ldap_connection_failed", server=self.config.server, error=str(e))
            return False

    def disconnect(self) -> None:
        """Close the LDAP connection."""
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logger.debug("ldap_unbind_failed", error=str(e))
            self.connection = None

    def _ensure_connection(self) -> Connection:
        if self.connection is None and not self.connect():
            raise ConnectionError("Failed to connect to LDAP server")
        return self.connection

    def _is_external_address(self, address: str) -> bool:
        if "@" not in address or not self.managed_domains:
            return False
        return address.rsplit("@", 1)[1].lower() not in self.managed_domains

    def _search(self, search_base: str, search_filter: str, scope, attributes: list) -> list:
        """Run one search and return (dn, attributes) pairs."""
        connection = self._ensure_connection()
        with self._lock:
            try:
                connection.search(
                    search_base=search_base,
                    search_filter=search_filter,
                    search_scope=scope,
                    attributes=attributes
                )
            except LDAPNoSuchObjectResult:
                return []
            return [
                (str(entry.entry_dn), entry.entry_attributes_as_dict)
                for entry in connection.entries
            ]

    def _lookup(self, identifier: str) -> Optional[tuple]:
        """Find the directory entry for a DN, SMTP address or account name."""
        attributes = RECIPIENT_ATTRIBUTES + RELATION_ATTRIBUTES
        if '=' in identifier and ',' in identifier:
            entries = self._search(identifier, '(objectClass=*)', BASE, attributes)
        elif '@' in identifier:
            address = escape_filter_chars(identifier.lower())
            search_filter = (
                f"(|(mail={address})(proxyAddresses=SMTP:{address})"
                f"(proxyAddresses=smtp:{address}))"
            )
            entries = self._search(self.search_base, search_filter, SUBTREE, attributes)
        else:
            search_filter = f"(sAMAccountName={escape_filter_chars(identifier)})"
            entries = self._search(self.search_base, search_filter, SUBTREE, attributes)

        if not entries:
            return None
        if len(entries) > 1:
            logger.warning("ambiguous_recipient", identifier=identifier, matches=len(entries))
        return entries[0]

    def _entry(self, identifier: str) -> tuple:
        key = identifier.lower()
        if key in self._cache:
            return self._cache[key]

        try:
            found = self._lookup(identifier)
        except LDAPException as e:
            raise ExpansionError(identifier, "resolve", str(e)) from e

        if found is None:
            if self._is_external_address(identifier):
                raise ExternalRecipientError(identifier)
            raise NotFoundError(identifier)

        self._cache[key] = found
        self._cache[found[0].lower()] = found
        return found

    def _to_node(self, dn: str, attrs: dict) -> DirectoryNode:
        addresses = [
            _strip_smtp(str(a)) for a in _values(attrs, 'proxyAddresses')
            if str(a).lower().startswith('smtp:')
        ]
        label = (_first(attrs, 'displayName') or _first(attrs, 'cn')
                 or _first(attrs, 'sAMAccountName') or dn)
        properties = {'dn': dn, 'addresses': addresses}
        mail = _first(attrs, 'mail')
        if mail:
            properties['mail'] = str(mail)
        return DirectoryNode(
            node_id=dn,
            kind=classify_recipient(attrs),
            label=str(label),
            properties=properties,
        )

    # DirectorySource protocol

    def resolve_node(self, node_id: str) -> DirectoryNode:
        dn, attrs = self._entry(node_id)
        node = self._to_node(dn, attrs)
        if node.kind == NodeKind.EXTERNAL:
            target = _first(attrs, 'targetAddress') or _first(attrs, 'mail') or dn
            raise ExternalRecipientError(_strip_smtp(str(target)), node.label)
        return node

    def expand_members(self, group_id: str) -> list:
        """Member DNs of a group, left unresolved for the walker."""
        try:
            dn, attrs = self._entry(group_id)
        except (NotFoundError, ExternalRecipientError) as e:
            raise ExpansionError(group_id, "expand_members", str(e)) from e
        # TODO: ranged retrieval (member;range=...) for groups above the 1500-value limit
        return [str(m) for m in _values(attrs, 'member')]

    def expand_relations(self, mailbox_id: str) -> list:
        try:
            dn, attrs = self._entry(mailbox_id)
        except (NotFoundError, ExternalRecipientError) as e:
            raise ExpansionError(mailbox_id, "expand_relations", str(e)) from e

        edges = []
        for delegate_dn in _values(attrs, 'publicDelegates'):
            edges.append(DirectoryEdge(dn, str(delegate_dn), RelationKind.DELEGATE,
                                       {'attribute': 'publicDelegates'}))
        for target_dn in _values(attrs, 'altRecipient'):
            edges.append(DirectoryEdge(dn, str(target_dn), RelationKind.FORWARDS_TO,
                                       {'attribute': 'altRecipient'}))
        for address in _values(attrs, 'msExchGenericForwardingAddress'):
            edges.append(DirectoryEdge(dn, _strip_smtp(str(address)), RelationKind.FORWARDS_TO,
                                       {'attribute': 'msExchGenericForwardingAddress'}))
        return edges
