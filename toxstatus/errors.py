"""
Error types raised by toxstatus.

Phase errors stay inside the probe engine, directory errors stop a single
scan cycle, and startup errors stop the process.
"""

from typing import Optional


class ToxStatusError(Exception):
    """Base class for all toxstatus errors."""


class DirectorySourceError(ToxStatusError):
    """The node directory could not be fetched or read."""


class StartupError(ToxStatusError):
    """The process cannot start (e.g. the local keypair could not be generated)."""


class PhaseError(ToxStatusError):
    """A single probe phase failed for one node (and, for handshakes, one port)."""

    def __init__(self, phase: str, message: str, port: Optional[int] = None):
        self.phase = phase
        self.message = message
        self.port = port
        super().__init__(message)

    def __str__(self) -> str:
        if self.port is not None:
            return f"{self.phase} (port {self.port}): {self.message}"
        return f"{self.phase}: {self.message}"
