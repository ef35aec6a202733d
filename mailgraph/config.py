"""
mailgraph Configuration Module
==============================

Centralized configuration management for the mailgraph toolkit.
Supports environment variables for sensitive data (bind credentials) and
for the log level.

Design Decision:
- Configuration is a set of dataclasses aggregated into one object that is
  passed to the walker, the LDAP source and the CLI
- Side-relation expansion (delegates, forwarding) is a walker setting, not a
  property of the node kinds, so one walker serves both the "list members"
  and the "trace mail flow" callers
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Optional


@dataclass
class WalkerConfig:
    """Configuration for directory graph traversal.

    Attributes:
        expand_relations: Follow delegate/forwarding edges out of mailboxes
        relation_kinds: Relation names to follow when expand_relations is on
                        (empty = all side relations)
        max_depth: Maximum path length to expand (None = unlimited)
        max_workers: Concurrency limit for walk_concurrent
        concurrent: Whether callers should prefer the concurrent walk
    """
    expand_relations: bool = False
    relation_kinds: list = field(default_factory=list)
    max_depth: Optional[int] = None
    max_workers: int = 10
    concurrent: bool = False

    def __post_init__(self):
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if self.max_depth is not None and self.max_depth < 1:
            raise ValueError("max_depth must be at least 1")


@dataclass
class LDAPConfig:
    """Configuration for the live LDAP directory source.

    Attributes:
        server: Domain controller / global catalog host
        domain: AD domain name (e.g., corp.local), used to derive the base DN
        username: Bind user (loaded from MAILGRAPH_LDAP_USER if not provided)
        password: Bind password (loaded from MAILGRAPH_LDAP_PASSWORD if not provided)
        use_ssl: Whether to use LDAPS (port 636) vs LDAP (port 389)
        timeout: Connect/receive timeout in seconds
        managed_domains: SMTP domains that belong to this directory
    """
    server: Optional[str] = None
    domain: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    use_ssl: bool = False
    port: Optional[int] = None  # Auto-detect based on use_ssl
    timeout: int = 30
    managed_domains: list = field(default_factory=list)

    def __post_init__(self):
        if self.port is None:
            self.port = 636 if self.use_ssl else 389
        if self.username is None:
            self.username = os.environ.get("MAILGRAPH_LDAP_USER")
        if self.password is None:
            self.password = os.environ.get("MAILGRAPH_LDAP_PASSWORD")
        self.managed_domains = list(self.managed_domains)
        # The AD domain is always a managed SMTP domain
        if self.domain and self.domain.lower() not in [d.lower() for d in self.managed_domains]:
            self.managed_domains.append(self.domain.lower())

    @property
    def base_dn(self) -> str:
        """Search base derived from the domain name."""
        if not self.domain:
            return ""
        return ",".join(f"DC={part}" for part in self.domain.split("."))


@dataclass
class LoggingConfig:
    """Configuration for structured logging.

    Attributes:
        json_output: Emit JSON lines instead of console output
        log_level: Level name (loaded from MAILGRAPH_LOG_LEVEL if not provided)
    """
    json_output: bool = False
    log_level: Optional[str] = None

    def __post_init__(self):
        if self.log_level is None:
            self.log_level = os.environ.get("MAILGRAPH_LOG_LEVEL", "INFO")


@dataclass
class MailGraphConfig:
    """Main configuration container for mailgraph.

    Usage:
        config = MailGraphConfig()  # Uses all defaults
        config = MailGraphConfig(walker=WalkerConfig(expand_relations=True))
    """
    walker: WalkerConfig = field(default_factory=WalkerConfig)
    ldap: LDAPConfig = field(default_factory=LDAPConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    verbose: bool = False

    @classmethod
    def from_dict(cls, config_dict: dict) -> "MailGraphConfig":
        """Create configuration from a dictionary.

        Useful for loading from JSON files or CLI arguments.
        """
        return cls(
            walker=WalkerConfig(**config_dict.get("walker", {})),
            ldap=LDAPConfig(**config_dict.get("ldap", {})),
            logging=LoggingConfig(**config_dict.get("logging", {})),
            verbose=config_dict.get("verbose", False),
        )

    def to_dict(self) -> dict:
        """Convert configuration to dictionary, without the bind password."""
        data = asdict(self)
        if data["ldap"].get("password"):
            data["ldap"]["password"] = "***"
        return data


# Default global configuration instance
_default_config: Optional[MailGraphConfig] = None


def get_config() -> MailGraphConfig:
    """Get the global configuration instance."""
    global _default_config
    if _default_config is None:
        _default_config = MailGraphConfig()
    return _default_config


def set_config(config: MailGraphConfig) -> None:
    """Set the global configuration instance."""
    global _default_config
    _default_config = config
