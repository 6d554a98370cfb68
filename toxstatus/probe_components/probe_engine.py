"""
Probe Engine - Three-phase health probe for one bootstrap node

Phase A: bootstrap info query over UDP (version + MOTD, unauthenticated)
Phase B: encrypted get-nodes query over UDP (gates phase C)
Phase C: encrypted TCP relay handshake on every candidate port, in parallel
"""

import struct
import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import nacl.exceptions

from ..errors import PhaseError
from ..nodes import NodeRecord
from .crypto_provider import CryptoProvider, PUBLIC_KEY_SIZE
from .transport import Transport, TCP, UDP

logger = logging.getLogger(__name__)

# Wire constants
MAX_UDP_PACKET_SIZE = 2048
GET_NODES_PACKET_ID = 2
BOOTSTRAP_INFO_PACKET_ID = 240
BOOTSTRAP_INFO_PACKET_LENGTH = 78
BOOTSTRAP_INFO_HEADER_LENGTH = 1 + 4
PING_ID_LENGTH = 8
TCP_HANDSHAKE_PACKET_LENGTH = 128
TCP_HANDSHAKE_RESPONSE_LENGTH = 96

PHASE_INFO = "bootstrap info"
PHASE_GET_NODES = "get nodes"
PHASE_HANDSHAKE = "tcp handshake"

CRYPTO_ERRORS = (ValueError, TypeError, nacl.exceptions.CryptoError)


@dataclass
class HandshakeResult:
    """Outcome of the handshake attempt on one port"""
    port: int
    error: Optional[PhaseError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def candidate_ports(well_known: Sequence[int], node_port: int) -> List[int]:
    """Well-known TCP ports followed by the node's own port, without duplicates."""
    ports = []
    for port in list(well_known) + [node_port]:
        if port not in ports:
            ports.append(port)
    return ports


def build_bootstrap_info_request() -> bytes:
    return bytes([BOOTSTRAP_INFO_PACKET_ID]) + bytes(BOOTSTRAP_INFO_PACKET_LENGTH - 1)


def decode_bootstrap_info(reply: bytes) -> Tuple[str, str]:
    """
    Decode a bootstrap info reply into (version, motd).

    Raises:
        PhaseError: wrong packet id or reply shorter than the header
    """
    if not reply or reply[0] != BOOTSTRAP_INFO_PACKET_ID:
        packet_id = reply[0] if reply else None
        raise PhaseError(PHASE_INFO, f"packet id: {packet_id} is not a bootstrap info packet")
    if len(reply) < BOOTSTRAP_INFO_HEADER_LENGTH:
        raise PhaseError(PHASE_INFO, "bootstrap info packet too small")

    version = struct.unpack(">I", reply[1:BOOTSTRAP_INFO_HEADER_LENGTH])[0]
    motd = reply[BOOTSTRAP_INFO_HEADER_LENGTH:].rstrip(b"\x00")
    return str(version), motd.decode("utf-8", errors="replace")


def decode_public_key(public_key: str, phase: str) -> bytes:
    try:
        key = bytes.fromhex(public_key)
    except ValueError as e:
        raise PhaseError(phase, f"public key is not valid hex: {e}") from e
    if len(key) != PUBLIC_KEY_SIZE:
        raise PhaseError(phase, f"public key must be {PUBLIC_KEY_SIZE} bytes, got {len(key)}")
    return key


class ProbeEngine:
    """Runs the bootstrap info, get-nodes and TCP handshake phases against nodes"""

    def __init__(self, crypto: CryptoProvider, transport: Transport,
                 tcp_ports: Sequence[int] = (443, 3389, 33445),
                 max_motd_length: int = 256, max_port_workers: int = 0):
        """
        Args:
            crypto: Scanner identity and crypto_box operations
            transport: Connection factory with connect/read deadlines
            tcp_ports: Well-known relay ports probed on every node
            max_motd_length: Largest MOTD accepted in the info reply
            max_port_workers: Cap on parallel handshakes per node, 0 for one per port
        """
        self.crypto = crypto
        self.transport = transport
        self.tcp_ports = list(tcp_ports)
        self.max_motd_length = max_motd_length
        self.max_port_workers = max_port_workers

    def probe_node(self, node: NodeRecord) -> NodeRecord:
        """
        Probe one node and fill in whatever each phase manages to learn.

        Phase failures are logged and absorbed; only a get-nodes failure
        stops the probe before the TCP phase.
        """
        target = f"{node.ipv4}:{node.port}"

        try:
            node.version, node.motd = self.query_bootstrap_info(node)
        except PhaseError as e:
            logger.info(f"{target}: {e}")

        try:
            self.query_nodes(node)
        except PhaseError as e:
            logger.info(f"{target}: {e}")
            return node

        for port in self.probe_tcp_ports(node):
            node.add_tcp_port(port)

        node.mark_pinged()
        logger.debug(f"{target}: online, open tcp ports {node.tcp_ports}")
        return node

    def query_bootstrap_info(self, node: NodeRecord) -> Tuple[str, str]:
        """Phase A: ask the node for its version and MOTD."""
        try:
            with self.transport.open(node.ipv4, node.port, UDP) as conn:
                conn.send(build_bootstrap_info_request())
                reply = conn.recv(BOOTSTRAP_INFO_HEADER_LENGTH + self.max_motd_length)
        except OSError as e:
            raise PhaseError(PHASE_INFO, str(e)) from e

        return decode_bootstrap_info(reply)

    def build_get_nodes_request(self, node: NodeRecord) -> bytes:
        node_public_key = decode_public_key(node.public_key, PHASE_GET_NODES)

        plain = self.crypto.public_key + self.crypto.random_bytes(PING_ID_LENGTH)
        nonce = self.crypto.new_nonce()
        try:
            shared_key = self.crypto.shared_key(node_public_key)
            encrypted = self.crypto.encrypt(shared_key, nonce, plain)
        except CRYPTO_ERRORS as e:
            raise PhaseError(PHASE_GET_NODES, f"could not encrypt request: {e}") from e

        return bytes([GET_NODES_PACKET_ID]) + self.crypto.public_key + nonce + encrypted

    def query_nodes(self, node: NodeRecord) -> int:
        """
        Phase B: send an encrypted get-nodes request.

        Any reply read without error counts as success; its content is
        not validated. Returns the number of bytes read.
        """
        payload = self.build_get_nodes_request(node)
        try:
            with self.transport.open(node.ipv4, node.port, UDP) as conn:
                conn.send(payload)
                reply = conn.recv(MAX_UDP_PACKET_SIZE)
        except OSError as e:
            raise PhaseError(PHASE_GET_NODES, str(e)) from e

        return len(reply)

    def build_handshake_request(self, node: NodeRecord, port: Optional[int] = None) -> bytes:
        node_public_key = decode_public_key(node.public_key, PHASE_HANDSHAKE)

        nonce = self.crypto.new_nonce()
        base_nonce = self.crypto.new_nonce()
        session_public_key, _ = self.crypto.new_session_keypair()
        try:
            shared_key = self.crypto.shared_key(node_public_key)
            encrypted = self.crypto.encrypt(shared_key, nonce, session_public_key + base_nonce)
        except CRYPTO_ERRORS as e:
            raise PhaseError(PHASE_HANDSHAKE, f"could not encrypt handshake: {e}", port) from e

        payload = self.crypto.public_key + nonce + encrypted
        if len(payload) != TCP_HANDSHAKE_PACKET_LENGTH:
            raise PhaseError(PHASE_HANDSHAKE, f"handshake packet has length {len(payload)}", port)
        return payload

    def try_tcp_handshake(self, node: NodeRecord, port: int) -> HandshakeResult:
        """Phase C, one port: succeed iff exactly the full handshake response is read."""
        try:
            payload = self.build_handshake_request(node, port)
            with self.transport.open(node.ipv4, port, TCP) as conn:
                conn.sendall(payload)
                reply = conn.recv(TCP_HANDSHAKE_RESPONSE_LENGTH)
        except PhaseError as e:
            return HandshakeResult(port, e)
        except OSError as e:
            return HandshakeResult(port, PhaseError(PHASE_HANDSHAKE, str(e), port))

        if len(reply) != TCP_HANDSHAKE_RESPONSE_LENGTH:
            return HandshakeResult(
                port,
                PhaseError(PHASE_HANDSHAKE, "tcp handshake response has an incorrect length", port)
            )
        return HandshakeResult(port)

    def probe_tcp_ports(self, node: NodeRecord) -> List[int]:
        """
        Phase C: handshake on every candidate port in parallel.

        Waits for every attempt to finish. Returns the ports that answered,
        in candidate order.
        """
        ports = candidate_ports(self.tcp_ports, node.port)
        workers = len(ports)
        if self.max_port_workers > 0:
            workers = min(workers, self.max_port_workers)

        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="handshake") as executor:
            futures = [executor.submit(self.try_tcp_handshake, node, port) for port in ports]
            wait(futures)

        open_ports = []
        for future in futures:
            result = future.result()
            if result.ok:
                open_ports.append(result.port)
            else:
                logger.info(f"{node.ipv4}: {result.error}")
        return open_ports
