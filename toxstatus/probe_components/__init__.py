"""
Probe components: crypto, transport, directory loading and the probe engine.
"""

from .config_helper import ToxStatusConfig, load_config
from .crypto_provider import CryptoProvider
from .node_directory import NodeDirectory, parse_node_line, parse_nodes
from .probe_engine import ProbeEngine, candidate_ports
from .transport import Transport

__all__ = [
    "ToxStatusConfig",
    "load_config",
    "CryptoProvider",
    "NodeDirectory",
    "parse_node_line",
    "parse_nodes",
    "ProbeEngine",
    "candidate_ports",
    "Transport",
]
