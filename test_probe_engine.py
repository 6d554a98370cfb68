#!/usr/bin/env python3
"""
Tests for the three-phase probe engine
"""

import socket
import threading
import unittest

from toxstatus.errors import PhaseError
from toxstatus.nodes import NodeRecord
from toxstatus.probe_components.crypto_provider import CryptoProvider
from toxstatus.probe_components.probe_engine import (
    ProbeEngine,
    TCP_HANDSHAKE_RESPONSE_LENGTH,
    build_bootstrap_info_request,
    candidate_ports,
    decode_bootstrap_info,
)
from toxstatus.probe_components.transport import TCP, UDP, Transport

INFO_REPLY = bytes([240, 0, 0, 0, 7]) + b"hi\x00\x00"
HANDSHAKE_REPLY = bytes(TCP_HANDSHAKE_RESPONSE_LENGTH)
REFUSE = object()


class FakeSocket:
    """Connected socket stand-in that answers every recv with one canned reply"""

    def __init__(self, reply, on_recv=None):
        self.reply = reply
        self.on_recv = on_recv
        self.sent = []
        self.recv_sizes = []
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.closed = True
        return False

    def send(self, data):
        self.sent.append(bytes(data))
        return len(data)

    def sendall(self, data):
        self.sent.append(bytes(data))

    def recv(self, size):
        self.recv_sizes.append(size)
        if self.on_recv is not None:
            self.on_recv()
        if isinstance(self.reply, BaseException):
            raise self.reply
        return self.reply[:size]


class FakeTransport:
    """
    UDP replies are consumed in order (bootstrap info, then get nodes).
    TCP replies are looked up per port; REFUSE fails the connect itself.
    """

    def __init__(self, udp_replies, tcp_replies=None, on_tcp_recv=None):
        self.udp_replies = list(udp_replies)
        self.tcp_replies = dict(tcp_replies or {})
        self.on_tcp_recv = on_tcp_recv
        self.opened = []
        self.sockets = []
        self._lock = threading.Lock()

    def open(self, host, port, kind=UDP):
        with self._lock:
            self.opened.append((kind, port))
            if kind == UDP:
                reply = self.udp_replies.pop(0)
                on_recv = None
            else:
                reply = self.tcp_replies.get(port, REFUSE)
                on_recv = self.on_tcp_recv
            if reply is REFUSE:
                raise ConnectionRefusedError(f"connection to {host}:{port} refused")
            sock = FakeSocket(reply, on_recv)
            self.sockets.append((kind, port, sock))
            return sock

    def tcp_ports_opened(self):
        return sorted(port for kind, port in self.opened if kind == TCP)


class ProbeEngineTestCase(unittest.TestCase):

    @classmethod
    def setUpClass(cls):
        cls.crypto = CryptoProvider.generate()
        cls.peer = CryptoProvider.generate()

    def make_node(self, port=33445, public_key=None):
        return NodeRecord("127.0.0.1", "-", port, public_key or self.peer.public_key.hex().upper(),
                          "Alice", "CA")

    def make_engine(self, transport, **kwargs):
        return ProbeEngine(self.crypto, transport, tcp_ports=[443, 3389, 33445], **kwargs)


class TestDecodeBootstrapInfo(unittest.TestCase):

    def test_version_and_motd(self):
        version, motd = decode_bootstrap_info(INFO_REPLY)
        self.assertEqual(version, "7")
        self.assertEqual(motd, "hi")

    def test_big_endian_version(self):
        version, motd = decode_bootstrap_info(bytes([240]) + (1000002018).to_bytes(4, "big"))
        self.assertEqual(version, "1000002018")
        self.assertEqual(motd, "")

    def test_wrong_packet_id(self):
        with self.assertRaises(PhaseError):
            decode_bootstrap_info(bytes([241, 0, 0, 0, 7]) + b"hi")

    def test_too_short(self):
        with self.assertRaises(PhaseError):
            decode_bootstrap_info(bytes([240, 0, 0]))

    def test_empty(self):
        with self.assertRaises(PhaseError):
            decode_bootstrap_info(b"")


class TestCandidatePorts(unittest.TestCase):

    def test_primary_port_already_well_known(self):
        self.assertEqual(candidate_ports([443, 3389, 33445], 443), [443, 3389, 33445])

    def test_primary_port_added(self):
        self.assertEqual(candidate_ports([443, 3389, 33445], 8080), [443, 3389, 33445, 8080])


class TestPackets(ProbeEngineTestCase):

    def test_get_nodes_request_layout(self):
        engine = self.make_engine(FakeTransport([]))
        packet = engine.build_get_nodes_request(self.make_node())

        self.assertEqual(len(packet), 113)
        self.assertEqual(packet[0], 2)
        self.assertEqual(packet[1:33], self.crypto.public_key)

        nonce, encrypted = packet[33:57], packet[57:]
        plain = self.peer.decrypt(self.peer.shared_key(self.crypto.public_key), nonce, encrypted)
        self.assertEqual(len(plain), 32 + 8)
        self.assertEqual(plain[:32], self.crypto.public_key)

    def test_handshake_request_layout(self):
        engine = self.make_engine(FakeTransport([]))
        packet = engine.build_handshake_request(self.make_node())

        self.assertEqual(len(packet), 128)
        self.assertEqual(packet[:32], self.crypto.public_key)

        nonce, encrypted = packet[32:56], packet[56:]
        plain = self.peer.decrypt(self.peer.shared_key(self.crypto.public_key), nonce, encrypted)
        # ephemeral session public key + base nonce
        self.assertEqual(len(plain), 32 + 24)
        self.assertNotEqual(plain[:32], self.crypto.public_key)


class TestProbeNode(ProbeEngineTestCase):

    def test_all_phases_succeed(self):
        transport = FakeTransport(
            [INFO_REPLY, b"\x04anything"],
            {443: HANDSHAKE_REPLY, 3389: HANDSHAKE_REPLY, 33445: HANDSHAKE_REPLY},
        )
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertEqual(node.version, "7")
        self.assertEqual(node.motd, "hi")
        self.assertTrue(node.status)
        self.assertEqual(node.tcp_ports, [443, 3389, 33445])
        self.assertGreater(node.last_ping, 0)
        self.assertNotEqual(node.last_ping_string, "Never")

    def test_bootstrap_info_request_sent(self):
        transport = FakeTransport([INFO_REPLY, b"\x04"], {})
        self.make_engine(transport).probe_node(self.make_node())

        kind, port, info_sock = transport.sockets[0]
        self.assertEqual((kind, port), (UDP, 33445))
        self.assertEqual(info_sock.sent, [build_bootstrap_info_request()])
        self.assertEqual(info_sock.recv_sizes, [1 + 4 + 256])
        self.assertTrue(info_sock.closed)

    def test_info_failure_does_not_stop_later_phases(self):
        transport = FakeTransport(
            [bytes([2, 0, 0, 0, 7]) + b"hi", b"\x04"],
            {443: HANDSHAKE_REPLY},
        )
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertEqual(node.version, "")
        self.assertEqual(node.motd, "")
        self.assertTrue(node.status)
        self.assertEqual(node.tcp_ports, [443])

    def test_info_timeout_does_not_stop_later_phases(self):
        transport = FakeTransport([socket.timeout("timed out"), b"\x04"], {33445: HANDSHAKE_REPLY})
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertEqual(node.version, "")
        self.assertTrue(node.status)
        self.assertEqual(node.tcp_ports, [33445])

    def test_get_nodes_accepts_any_reply(self):
        transport = FakeTransport([INFO_REPLY, b"\xff"], {})
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertTrue(node.status)

    def test_get_nodes_failure_skips_tcp_phase(self):
        transport = FakeTransport([INFO_REPLY, socket.timeout("timed out")], {443: HANDSHAKE_REPLY})
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertEqual(transport.tcp_ports_opened(), [])
        self.assertFalse(node.status)
        self.assertEqual(node.tcp_ports, [])
        self.assertEqual(node.last_ping, 0)
        self.assertEqual(node.version, "7")

    def test_invalid_public_key_fails_get_nodes(self):
        for public_key in ("not-hex", "AB" * 31):
            transport = FakeTransport([INFO_REPLY], {443: HANDSHAKE_REPLY})
            node = self.make_engine(transport).probe_node(self.make_node(public_key=public_key))

            # only the bootstrap info channel was opened
            self.assertEqual(transport.opened, [(UDP, 33445)])
            self.assertFalse(node.status)
            self.assertEqual(node.version, "7")

    def test_handshake_port_results_are_independent(self):
        transport = FakeTransport(
            [INFO_REPLY, b"\x04"],
            {
                443: HANDSHAKE_REPLY,
                3389: HANDSHAKE_REPLY[:-1],
                33445: REFUSE,
                8080: ConnectionResetError("reset"),
            },
        )
        node = self.make_engine(transport).probe_node(self.make_node(port=8080))

        self.assertEqual(transport.tcp_ports_opened(), [443, 3389, 8080, 33445])
        self.assertEqual(node.tcp_ports, [443])
        self.assertTrue(node.status)

    def test_status_true_without_open_ports(self):
        transport = FakeTransport([INFO_REPLY, b"\x04"], {})
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertTrue(node.status)
        self.assertEqual(node.tcp_ports, [])
        self.assertGreater(node.last_ping, 0)

    def test_handshakes_run_concurrently(self):
        # every handshake blocks until all three are in flight at once
        barrier = threading.Barrier(3, timeout=5)
        transport = FakeTransport(
            [INFO_REPLY, b"\x04"],
            {443: HANDSHAKE_REPLY, 3389: HANDSHAKE_REPLY, 33445: HANDSHAKE_REPLY},
            on_tcp_recv=barrier.wait,
        )
        node = self.make_engine(transport).probe_node(self.make_node())

        self.assertEqual(node.tcp_ports, [443, 3389, 33445])

    def test_port_worker_cap_still_waits_for_all(self):
        transport = FakeTransport(
            [INFO_REPLY, b"\x04"],
            {443: HANDSHAKE_REPLY, 3389: HANDSHAKE_REPLY, 33445: HANDSHAKE_REPLY, 8080: HANDSHAKE_REPLY},
        )
        engine = self.make_engine(transport, max_port_workers=1)
        node = engine.probe_node(self.make_node(port=8080))

        self.assertEqual(node.tcp_ports, [443, 3389, 33445, 8080])

    def test_out_of_range_port_is_a_phase_failure(self):
        # the port comes straight from the directory; the socket layer rejects it
        node = self.make_node(port=70000)
        engine = ProbeEngine(self.crypto, Transport(connect_timeout=1, read_timeout=1))

        with self.assertLogs('toxstatus.probe_components.probe_engine', level='INFO') as logs:
            result = engine.probe_node(node)

        self.assertIs(result, node)
        self.assertFalse(node.status)
        self.assertEqual(node.version, "")
        self.assertEqual(node.tcp_ports, [])
        self.assertIn("70000", "\n".join(logs.output))

    def test_try_tcp_handshake_short_read(self):
        transport = FakeTransport([], {443: HANDSHAKE_REPLY[:10]})
        result = self.make_engine(transport).try_tcp_handshake(self.make_node(), 443)

        self.assertFalse(result.ok)
        self.assertEqual(result.port, 443)
        self.assertEqual(result.error.port, 443)


if __name__ == "__main__":
    unittest.main(verbosity=2)
