"""
Transport - UDP/TCP connections to bootstrap nodes with deadlines

Every connection gets a connect deadline while it is being opened and a
read deadline for the rest of its life.
"""

import socket
import logging

logger = logging.getLogger(__name__)

UDP = "udp"
TCP = "tcp"


class Transport:
    """Opens connected sockets towards a node address"""

    def __init__(self, connect_timeout: float = 2, read_timeout: float = 4):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    def open(self, host: str, port: int, kind: str = UDP) -> socket.socket:
        """
        Open a connected socket.

        Args:
            host: Target IPv4 address or hostname
            port: Target port
            kind: "udp" or "tcp"

        Returns:
            Connected socket with the read deadline applied

        Raises:
            OSError: connection could not be established (socket.timeout and
                out-of-range ports included)
        """
        try:
            sock = self._connect(host, port, kind)
        except (OverflowError, UnicodeError) as e:
            # out-of-range port or unencodable host name
            raise OSError(f"cannot connect to {host}:{port}: {e}") from e

        sock.settimeout(self.read_timeout)
        logger.debug(f"Opened {kind} connection to {host}:{port}")
        return sock

    def _connect(self, host: str, port: int, kind: str) -> socket.socket:
        if kind == TCP:
            return socket.create_connection((host, port), timeout=self.connect_timeout)
        if kind != UDP:
            raise ValueError(f"Unsupported transport kind: {kind}")

        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.settimeout(self.connect_timeout)
            sock.connect((host, port))
        except (OSError, OverflowError, UnicodeError):
            sock.close()
            raise
        return sock
