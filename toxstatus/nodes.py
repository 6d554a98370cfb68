"""
Node records and published scan snapshots.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

NEVER = "Never"
NO_IPV6 = "-"


def format_timestamp(timestamp: int) -> str:
    """Human readable rendering of a unix timestamp, 0 meaning never."""
    if not timestamp:
        return NEVER
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")


@dataclass
class NodeRecord:
    """One bootstrap node as listed in the directory plus what probing learned"""
    ipv4: str
    ipv6: str
    port: int
    public_key: str
    maintainer: str
    location: str
    tcp_ports: List[int] = field(default_factory=list)
    status: bool = False
    version: str = ""
    motd: str = ""
    last_ping: int = 0
    last_ping_string: str = NEVER

    def mark_pinged(self, timestamp: Optional[int] = None):
        """Record a successful probe at `timestamp` (defaults to now)."""
        self.last_ping = int(time.time()) if timestamp is None else timestamp
        self.last_ping_string = format_timestamp(self.last_ping)
        self.status = True

    def add_tcp_port(self, port: int):
        if port not in self.tcp_ports:
            self.tcp_ports.append(port)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ipv4": self.ipv4,
            "ipv6": self.ipv6,
            "port": self.port,
            "tcp_ports": list(self.tcp_ports),
            "public_key": self.public_key,
            "maintainer": self.maintainer,
            "location": self.location,
            "status": self.status,
            "version": self.version,
            "motd": self.motd,
            "last_ping": self.last_ping,
            "last_ping_string": self.last_ping_string,
        }


@dataclass(frozen=True)
class Snapshot:
    """
    Complete result of one scan cycle.

    A snapshot is built once and then only read; the scheduler replaces it
    wholesale on the next successful scan.
    """
    last_scan: int
    nodes: Tuple[NodeRecord, ...] = ()

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls(last_scan=0, nodes=())

    @property
    def last_scan_string(self) -> str:
        return format_timestamp(self.last_scan)

    def find(self, public_key: str) -> Optional[NodeRecord]:
        for node in self.nodes:
            if node.public_key == public_key:
                return node
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_scan": self.last_scan,
            "last_scan_string": self.last_scan_string,
            "nodes": [node.to_dict() for node in self.nodes],
        }
