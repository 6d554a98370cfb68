"""
toxstatus scanner - periodic rescans of the bootstrap node directory

Each cycle loads the directory, probes every node in parallel and publishes
one new Snapshot. Readers only ever see complete snapshots.
"""

import time
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import DirectorySourceError
from .nodes import NO_IPV6, NodeRecord, Snapshot
from .probe_components.config_helper import ToxStatusConfig, load_config
from .probe_components.crypto_provider import CryptoProvider
from .probe_components.node_directory import NodeDirectory
from .probe_components.probe_engine import ProbeEngine
from .probe_components.transport import Transport

logger = logging.getLogger(__name__)


class ScanState(Enum):
    """Scheduler states"""
    IDLE = "idle"
    SCANNING = "scanning"


class SnapshotStore:
    """Holds the latest published Snapshot; publishing replaces it as a whole"""

    def __init__(self, snapshot: Optional[Snapshot] = None):
        self._lock = threading.Lock()
        self._snapshot = snapshot or Snapshot.empty()

    def current(self) -> Snapshot:
        with self._lock:
            return self._snapshot

    def publish(self, snapshot: Snapshot):
        with self._lock:
            self._snapshot = snapshot


class ScanScheduler:
    """Runs directory load + probe cycles with a fixed sleep between them"""

    def __init__(self, directory: NodeDirectory, engine: ProbeEngine, store: SnapshotStore,
                 interval: float = 60, max_node_workers: int = 0):
        """
        Args:
            directory: Source of the node list
            engine: Probe engine used for every node
            store: Where snapshots are published
            interval: Seconds to sleep after each cycle
            max_node_workers: Cap on nodes probed at once, 0 for one thread per node
        """
        self.directory = directory
        self.engine = engine
        self.store = store
        self.interval = interval
        self.max_node_workers = max_node_workers
        self.state = ScanState.IDLE
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def probe_all(self, nodes: List[NodeRecord]) -> List[NodeRecord]:
        """Probe every node concurrently, wait for all of them, keep directory order."""
        if not nodes:
            return []

        workers = len(nodes)
        if self.max_node_workers > 0:
            workers = min(workers, self.max_node_workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as executor:
            futures = [executor.submit(self.engine.probe_node, node) for node in nodes]
            wait(futures)

        results = []
        for node, future in zip(nodes, futures):
            try:
                results.append(future.result())
            except Exception as e:
                logger.error(f"Unexpected error while probing {node.ipv4}:{node.port}: {e}")
                results.append(node)
        return results

    def scan_once(self) -> bool:
        """
        Run one scan cycle.

        Returns:
            True if a new snapshot was published, False if the directory
            could not be loaded and the previous snapshot was kept.
        """
        self.state = ScanState.SCANNING
        started = time.time()
        try:
            try:
                nodes = self.directory.load(self.store.current())
            except DirectorySourceError as e:
                logger.error(f"Error while trying to parse nodes: {e}")
                return False

            probed = self.probe_all(nodes)
            snapshot = Snapshot(last_scan=int(time.time()), nodes=tuple(probed))
            self.store.publish(snapshot)

            online = sum(1 for node in probed if node.status)
            logger.info(
                f"Scan completed in {round(time.time() - started, 2)}s: "
                f"{online}/{len(probed)} nodes online"
            )
            return True
        finally:
            self.state = ScanState.IDLE

    def run_forever(self):
        """Scan, sleep `interval`, repeat until stop() is called."""
        logger.info(f"Scanner started, rescanning every {self.interval}s after each scan")
        while not self._stop_event.is_set():
            self.scan_once()
            self._stop_event.wait(self.interval)
        logger.info("Scanner stopped")

    def start(self) -> threading.Thread:
        """Run the scan loop on a daemon thread."""
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run_forever, name="scanner", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)


def build_engine(config: ToxStatusConfig, crypto: Optional[CryptoProvider] = None) -> ProbeEngine:
    """Create a ProbeEngine from config, generating a keypair unless one is given."""
    return ProbeEngine(
        crypto=crypto or CryptoProvider.generate(),
        transport=Transport(config.connect_timeout, config.read_timeout),
        tcp_ports=config.tcp_ports,
        max_motd_length=config.max_motd_length,
        max_port_workers=config.max_port_workers,
    )


def build_scheduler(config: ToxStatusConfig, store: Optional[SnapshotStore] = None,
                    crypto: Optional[CryptoProvider] = None) -> ScanScheduler:
    return ScanScheduler(
        directory=NodeDirectory(config.directory_url, timeout=config.directory_timeout),
        engine=build_engine(config, crypto),
        store=store or SnapshotStore(),
        interval=config.refresh_interval,
        max_node_workers=config.max_node_workers,
    )


def scan_directory(config: Optional[ToxStatusConfig] = None) -> Dict[str, Any]:
    """
    Convenience function: run a single scan and return the snapshot as a dictionary.

    Raises:
        DirectorySourceError: the node list could not be loaded
        StartupError: no keypair could be generated
    """
    config = config or load_config()
    scheduler = build_scheduler(config)
    nodes = scheduler.directory.load()
    probed = scheduler.probe_all(nodes)
    return Snapshot(last_scan=int(time.time()), nodes=tuple(probed)).to_dict()


def probe_bootstrap_node(ipv4: str, port: int, public_key: str,
                         config: Optional[ToxStatusConfig] = None) -> Dict[str, Any]:
    """Convenience function: probe one node given on the command line."""
    config = config or load_config()
    engine = build_engine(config)
    node = NodeRecord(ipv4=ipv4, ipv6=NO_IPV6, port=port, public_key=public_key,
                      maintainer="", location="")
    return engine.probe_node(node).to_dict()
