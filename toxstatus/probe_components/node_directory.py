"""
Node Directory - Fetch and parse the bootstrap node list

The directory is a pipe-delimited wiki table. Each qualifying line becomes
a fresh NodeRecord; ping history is carried over from the previous snapshot
by public key.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

import requests

from ..errors import DirectorySourceError
from ..nodes import NO_IPV6, NodeRecord, Snapshot

logger = logging.getLogger(__name__)

FIELD_COUNT = 8
PORT_PATTERN = re.compile(r"[+-]?[0-9]+")


def parse_node_line(line: str) -> Optional[NodeRecord]:
    """
    Parse one directory line.

    Returns None for anything that is not a node row: lines not starting
    with "|", rows with the wrong number of fields, or a non-numeric port.
    """
    line = line.strip()
    if not line.startswith("|"):
        return None

    parts = [part.strip() for part in line.split("|")]
    if len(parts) != FIELD_COUNT:
        return None

    if not PORT_PATTERN.fullmatch(parts[3]):
        return None
    port = int(parts[3])

    ipv6 = parts[2]
    if ipv6 == "NONE":
        ipv6 = NO_IPV6

    return NodeRecord(
        ipv4=parts[1],
        ipv6=ipv6,
        port=port,
        public_key=parts[4],
        maintainer=parts[5],
        location=parts[6],
    )


def parse_nodes(content: str) -> List[NodeRecord]:
    """Parse every node row of a directory document, in source order."""
    nodes = []
    for line in content.splitlines():
        node = parse_node_line(line)
        if node is None:
            if line.strip():
                logger.debug(f"Skipping non-node directory line: {line[:60]!r}")
            continue
        nodes.append(node)
    return nodes


def carry_forward_history(nodes: Iterable[NodeRecord], previous: Snapshot) -> List[NodeRecord]:
    """Copy last-ping fields from `previous` onto matching (by public key) fresh records."""
    known = {node.public_key: node for node in previous.nodes}
    merged = []
    for node in nodes:
        old = known.get(node.public_key)
        if old is not None:
            node.last_ping = old.last_ping
            node.last_ping_string = old.last_ping_string
        merged.append(node)
    return merged


class NodeDirectory:
    """Loads the node list from an HTTP(S) URL or a local file"""

    def __init__(self, source: str, timeout: float = 10, session: Optional[requests.Session] = None):
        self.source = source
        self.timeout = timeout
        self.session = session or requests.Session()

    def fetch(self) -> str:
        """Return the raw directory text, raising DirectorySourceError on failure."""
        if not self.source.startswith(("http://", "https://")):
            try:
                return Path(self.source).read_text(encoding="utf-8")
            except OSError as e:
                raise DirectorySourceError(f"Could not read node list {self.source}: {e}") from e

        try:
            response = self.session.get(self.source, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise DirectorySourceError(f"Could not fetch node list from {self.source}: {e}") from e

        return response.text

    def load(self, previous: Optional[Snapshot] = None) -> List[NodeRecord]:
        """Fetch, parse and merge with the ping history of `previous`."""
        nodes = parse_nodes(self.fetch())
        logger.info(f"Loaded {len(nodes)} nodes from {self.source}")
        return carry_forward_history(nodes, previous or Snapshot.empty())
