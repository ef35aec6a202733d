"""
JSON Directory Loader
=====================

Builds a RecipientGraph from a JSON export of a directory.

Supported Format:
    {
      "managed_domains": ["contoso.com"],
      "recipients": [
        {"id": "sales@contoso.com", "kind": "DistributionGroup", "label": "Sales",
         "members": ["user1@contoso.com", "emea-sales@contoso.com"]},
        {"id": "user1@contoso.com", "kind": "UserMailbox", "label": "User One",
         "addresses": ["u1@contoso.com"],
         "delegates": ["assistant@contoso.com"],
         "forward_to": ["someone@gmail.com"]}
      ]
    }

A bare list of recipient objects is accepted as well. Kinds go through
NodeKind.from_string, so Exchange RecipientTypeDetails values work as-is.

Design Decisions:
-----------------
1. All nodes are added before any edge so member order is preserved
2. Members pointing at ids that are not in the export are kept as dangling
   edges; the walker reports them as unresolvable references
"""

import json
from pathlib import Path
from typing import Optional, Union

from ..logging import get_logger
from ..model.schemas import DirectoryNode, NodeKind, RelationKind
from ..model.recipient_graph import RecipientGraph

logger = get_logger(__name__)

# JSON key -> relation carried by the listed ids
RELATION_KEYS = {
    "members": RelationKind.MEMBER,
    "delegates": RelationKind.DELEGATE,
    "forward_to": RelationKind.FORWARDS_TO,
}


class JSONDirectoryLoader:
    """Loader for JSON directory exports.

    Usage:
        loader = JSONDirectoryLoader()
        graph = loader.load_file("directory.json")
        result = DirectoryGraphWalker(graph).walk("sales@contoso.com")
    """

    def __init__(self, managed_domains: Optional[list] = None):
        """Initialize the loader.

        Args:
            managed_domains: Extra managed SMTP domains merged with the export's own list
        """
        self.managed_domains = list(managed_domains or [])

    def load_file(self, file_path: Union[str, Path]) -> RecipientGraph:
        """Load a JSON export from disk.

        Raises:
            FileNotFoundError: if the file does not exist
            ValueError: if the content is not a directory export
        """
        path = Path(file_path)
        logger.info("loading_directory_export", path=str(path))
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return self.load_data(data)

    def load_data(self, data: Union[dict, list]) -> RecipientGraph:
        """Build a RecipientGraph from parsed JSON."""
        if isinstance(data, list):
            recipients = data
            domains = []
        elif isinstance(data, dict):
            recipients = data.get("recipients", [])
            domains = data.get("managed_domains", [])
        else:
            raise ValueError(f"Unsupported directory export type: {type(data).__name__}")

        graph = RecipientGraph(managed_domains=self.managed_domains + list(domains))

        for item in recipients:
            graph.add_node(self._parse_node(item))

        for item in recipients:
            node_id = item["id"]
            for key, relation in RELATION_KEYS.items():
                targets = item.get(key) or []
                if isinstance(targets, str):
                    targets = [targets]
                for target_id in targets:
                    graph.add_relation(node_id, target_id, relation)

        logger.info(
            "directory_export_loaded",
            recipients=graph.node_count,
            edges=graph.edge_count,
        )
        return graph

    def _parse_node(self, item: dict) -> DirectoryNode:
        if "id" not in item:
            raise ValueError(f"Recipient entry without an id: {item!r}")
        properties = dict(item.get("properties", {}))
        if item.get("addresses"):
            properties["addresses"] = list(item["addresses"])
        return DirectoryNode(
            node_id=item["id"],
            kind=NodeKind.from_string(item.get("kind", "")),
            label=item.get("label", ""),
            properties=properties,
        )
