#!/usr/bin/env python3
"""
Basic tests for toxstatus functionality
"""

import unittest
from unittest.mock import patch, MagicMock

from toxstatus.nodes import NodeRecord
from toxstatus.probe_components.config_helper import ToxStatusConfig
from toxstatus.probe_components import probe_engine
from toxstatus.scanner import probe_bootstrap_node, scan_directory


class TestConvenienceFunctions(unittest.TestCase):
    """Test the scan_directory / probe_bootstrap_node convenience functions"""

    @patch('toxstatus.scanner.build_engine')
    def test_probe_bootstrap_node(self, mock_build_engine):
        """probe_bootstrap_node builds a record and returns its dictionary"""
        mock_engine = MagicMock()
        mock_engine.probe_node.side_effect = lambda node: node
        mock_build_engine.return_value = mock_engine
        config = ToxStatusConfig()

        result = probe_bootstrap_node("127.0.0.1", 33445, "AB" * 32, config)

        mock_build_engine.assert_called_once_with(config)
        probed = mock_engine.probe_node.call_args[0][0]
        self.assertIsInstance(probed, NodeRecord)
        self.assertEqual(probed.ipv4, "127.0.0.1")
        self.assertEqual(result["port"], 33445)
        self.assertEqual(result["ipv6"], "-")
        self.assertEqual(result["last_ping_string"], "Never")
        self.assertFalse(result["status"])

    @patch('toxstatus.scanner.build_scheduler')
    def test_scan_directory(self, mock_build_scheduler):
        """scan_directory returns a snapshot dictionary in directory order"""
        nodes = [
            NodeRecord("1.1.1.1", "-", 33445, "AA" * 32, "alice", "DE"),
            NodeRecord("2.2.2.2", "-", 443, "BB" * 32, "bob", "US"),
        ]
        mock_scheduler = MagicMock()
        mock_scheduler.directory.load.return_value = nodes
        mock_scheduler.probe_all.side_effect = lambda n: n
        mock_build_scheduler.return_value = mock_scheduler

        result = scan_directory(ToxStatusConfig())

        self.assertEqual([n["ipv4"] for n in result["nodes"]], ["1.1.1.1", "2.2.2.2"])
        self.assertGreater(result["last_scan"], 0)
        self.assertIn("UTC", result["last_scan_string"])


class TestConstants(unittest.TestCase):
    """Test the wire and default constants"""

    def test_packet_sizes(self):
        self.assertEqual(probe_engine.BOOTSTRAP_INFO_PACKET_ID, 240)
        self.assertEqual(probe_engine.BOOTSTRAP_INFO_PACKET_LENGTH, 78)
        self.assertEqual(probe_engine.GET_NODES_PACKET_ID, 2)
        self.assertEqual(probe_engine.MAX_UDP_PACKET_SIZE, 2048)
        self.assertEqual(probe_engine.TCP_HANDSHAKE_PACKET_LENGTH, 128)
        self.assertEqual(probe_engine.TCP_HANDSHAKE_RESPONSE_LENGTH, 96)

    def test_default_tcp_ports(self):
        self.assertEqual(ToxStatusConfig().tcp_ports, [443, 3389, 33445])

    def test_info_request_layout(self):
        request = probe_engine.build_bootstrap_info_request()
        self.assertEqual(len(request), 78)
        self.assertEqual(request[0], 240)
        self.assertEqual(request[1:], bytes(77))


if __name__ == "__main__":
    unittest.main(verbosity=2)
