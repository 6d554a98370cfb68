"""
Crypto Provider - NaCl crypto_box primitives used by the probe engine

Wraps PyNaCl (libsodium) so the probe engine only sees a small capability
surface: keypairs, shared keys, authenticated encryption and randomness.
"""

import logging
from typing import Tuple

import nacl.bindings
import nacl.exceptions
import nacl.utils

from ..errors import StartupError

logger = logging.getLogger(__name__)

PUBLIC_KEY_SIZE = nacl.bindings.crypto_box_PUBLICKEYBYTES
SECRET_KEY_SIZE = nacl.bindings.crypto_box_SECRETKEYBYTES
NONCE_SIZE = nacl.bindings.crypto_box_NONCEBYTES
MAC_SIZE = nacl.bindings.crypto_box_ZEROBYTES - nacl.bindings.crypto_box_BOXZEROBYTES


class CryptoProvider:
    """
    Long-term identity of this scanner plus the crypto_box operations.

    `encrypt` returns the authentication tag followed by the ciphertext,
    i.e. the classic NaCl output with its zero-byte prefix already removed.
    That block is what goes on the wire.
    """

    def __init__(self, public_key: bytes, secret_key: bytes):
        if len(public_key) != PUBLIC_KEY_SIZE or len(secret_key) != SECRET_KEY_SIZE:
            raise ValueError("invalid keypair size")
        self.public_key = public_key
        self._secret_key = secret_key

    @classmethod
    def generate(cls) -> "CryptoProvider":
        """Create a provider with a fresh keypair, raising StartupError on failure."""
        try:
            public_key, secret_key = nacl.bindings.crypto_box_keypair()
        except (nacl.exceptions.CryptoError, RuntimeError, ValueError) as e:
            raise StartupError(f"Could not generate keypair: {e}") from e

        logger.debug(f"Generated scanner keypair {public_key.hex()[:16]}...")
        return cls(public_key, secret_key)

    @staticmethod
    def new_session_keypair() -> Tuple[bytes, bytes]:
        """Ephemeral (public, secret) keypair for one handshake."""
        return nacl.bindings.crypto_box_keypair()

    def shared_key(self, peer_public_key: bytes) -> bytes:
        """Precompute the crypto_box key shared with `peer_public_key`."""
        if len(peer_public_key) != PUBLIC_KEY_SIZE:
            raise ValueError(
                f"peer public key must be {PUBLIC_KEY_SIZE} bytes, got {len(peer_public_key)}"
            )
        return nacl.bindings.crypto_box_beforenm(peer_public_key, self._secret_key)

    @staticmethod
    def encrypt(shared_key: bytes, nonce: bytes, plaintext: bytes) -> bytes:
        return nacl.bindings.crypto_box_afternm(plaintext, nonce, shared_key)

    @staticmethod
    def decrypt(shared_key: bytes, nonce: bytes, ciphertext: bytes) -> bytes:
        return nacl.bindings.crypto_box_open_afternm(ciphertext, nonce, shared_key)

    @staticmethod
    def new_nonce() -> bytes:
        return nacl.utils.random(NONCE_SIZE)

    @staticmethod
    def random_bytes(size: int) -> bytes:
        return nacl.utils.random(size)
