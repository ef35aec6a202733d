#!/usr/bin/env python3
"""
mailgraph - Directory Recipient Graph Walker
============================================

Command-line interface for walking a recipient graph.

Usage:
    # Expand a distribution list from a JSON export
    mailgraph sales@contoso.com --fixture directory.json

    # Trace full mail flow against a live domain controller
    mailgraph sales@contoso.com -s 10.0.0.10 -d contoso.com -u svc_audit -p Secret --relations

Options:
    --fixture           JSON directory export to walk instead of LDAP
    --server, -s        Domain controller / global catalog host
    --domain, -d        Domain name (e.g., contoso.com)
    --username, -u      Bind user
    --password, -p      Bind password
    --relations         Follow delegates and forwarding out of mailboxes
    --concurrent        Expand each frontier level on a worker pool
    --output, -o        Write the result as JSON

Environment Variables:
    MAILGRAPH_LDAP_USER       Bind user (when -u is not given)
    MAILGRAPH_LDAP_PASSWORD   Bind password (when -p is not given)
    MAILGRAPH_LOG_LEVEL       Log level (default INFO)
"""

import argparse
import json
import sys
from pathlib import Path

from .analysis.forwarding import find_external_forwarding
from .analysis.walker import DirectoryGraphWalker
from .config import MailGraphConfig, set_config
from .errors import DirectoryError
from .ingestion.json_loader import JSONDirectoryLoader
from .ingestion.ldap_source import LDAPDirectory
from .logging import get_logger, setup_logging

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mailgraph",
        description="mailgraph - walk distribution lists, delegation and forwarding",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sales@contoso.com --fixture directory.json
  %(prog)s sales@contoso.com -s 10.0.0.10 -d contoso.com -u svc_audit -p Secret --relations
  %(prog)s "CN=Sales,OU=Groups,DC=contoso,DC=com" -s dc01 -d contoso.com --concurrent -o sales.json
        """
    )
    parser.add_argument("root", help="Root recipient (SMTP address, DN or account name)")

    source_group = parser.add_argument_group("Directory Source")
    source_group.add_argument("--fixture", help="JSON directory export")
    source_group.add_argument("-s", "--server", help="Domain controller host")
    source_group.add_argument("-d", "--domain", help="Domain name (e.g., contoso.com)")
    source_group.add_argument("-u", "--username", help="Bind user")
    source_group.add_argument("-p", "--password", help="Bind password")
    source_group.add_argument("--ssl", action="store_true", help="Use LDAPS (port 636)")
    source_group.add_argument(
        "--managed-domain",
        dest="managed_domains",
        action="append",
        default=[],
        help="SMTP domain owned by the directory (repeatable)"
    )

    walk_group = parser.add_argument_group("Walk Options")
    walk_group.add_argument("--relations", action="store_true",
                            help="Follow delegates and forwarding out of mailboxes")
    walk_group.add_argument("--concurrent", action="store_true",
                            help="Expand sibling nodes on a worker pool")
    walk_group.add_argument("--max-workers", type=int, default=10,
                            help="Concurrent expansion limit (default: 10)")
    walk_group.add_argument("--max-depth", type=int, default=None,
                            help="Maximum path length to expand")

    output_group = parser.add_argument_group("Output")
    output_group.add_argument("-o", "--output", help="Write the result as JSON to this file")
    output_group.add_argument("--json-logs", action="store_true", help="Emit logs as JSON")
    output_group.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    parser.add_argument("--version", action="version", version="mailgraph 1.0.0")
    return parser


def config_from_args(args: argparse.Namespace) -> MailGraphConfig:
    return MailGraphConfig.from_dict({
        "walker": {
            "expand_relations": args.relations,
            "max_depth": args.max_depth,
            "max_workers": args.max_workers,
            "concurrent": args.concurrent,
        },
        "ldap": {
            "server": args.server,
            "domain": args.domain,
            "username": args.username,
            "password": args.password,
            "use_ssl": args.ssl,
            "managed_domains": list(args.managed_domains),
        },
        "logging": {
            "json_output": args.json_logs,
            "log_level": "DEBUG" if args.verbose else None,
        },
        "verbose": args.verbose,
    })


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.fixture and not (args.server and args.domain):
        parser.error("Provide --fixture FILE, or LDAP settings: -s (server) and -d (domain)")

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))
    set_config(config)
    setup_logging(json_output=config.logging.json_output, log_level=config.logging.log_level)

    ldap_source = None
    if args.fixture:
        try:
            source = JSONDirectoryLoader(managed_domains=args.managed_domains).load_file(args.fixture)
        except (OSError, ValueError) as e:
            print(f"[!] Could not load {args.fixture}: {e}")
            return 1
        managed_domains = source.managed_domains
    else:
        ldap_source = LDAPDirectory(config.ldap)
        source = ldap_source
        managed_domains = ldap_source.managed_domains

    walker = DirectoryGraphWalker(source, config.walker)
    try:
        if config.walker.concurrent:
            result = walker.walk_concurrent(args.root)
        else:
            result = walker.walk(args.root)
    except (DirectoryError, ConnectionError) as e:
        logger.error("walk_failed", root=args.root, error=str(e), type=type(e).__name__)
        print(f"[!] Error: {e}")
        return 1
    finally:
        if ldap_source is not None:
            ldap_source.disconnect()

    print(f"Root: {result.root.display_name} ({result.root.kind.value})")
    print(f"Recipients reached: {len(result)}")
    print(f"Status: {result.status}")
    if result.empty_groups:
        print(f"Empty groups: {len(result.empty_groups)}")
    if result.relations_enabled:
        findings = find_external_forwarding(result, managed_domains)
        print(f"External forwarding: {len(findings)}")

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2)
        print(f"Results saved to: {output_path}")

    return 0 if result.is_complete else 2


if __name__ == "__main__":
    sys.exit(main())
