"""
toxstatus - Tox Bootstrap Node Status Monitor

Periodically probes the Tox bootstrap nodes listed in the node directory
and publishes the latest results as an HTML page and a JSON document.
"""

from .nodes import NodeRecord, Snapshot
from .scanner import ScanScheduler, SnapshotStore, probe_bootstrap_node, scan_directory

__version__ = "0.1.0"
__all__ = [
    "NodeRecord",
    "Snapshot",
    "ScanScheduler",
    "SnapshotStore",
    "probe_bootstrap_node",
    "scan_directory",
]
