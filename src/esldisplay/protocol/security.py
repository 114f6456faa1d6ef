"""Unlock handshake for the vendor security characteristic."""

from __future__ import annotations

from Crypto.Cipher import AES

from ..exceptions import SecurityHandshakeError

# Pre-shared key of this hardware family. It is the same for every device and
# must be reproduced bit for bit for the peripheral to accept the unlock.
SECURITY_KEY = bytes.fromhex("9b609f28bc49e25729bd7b8df22b4420")

CHALLENGE_SIZE = 16


def encrypt_challenge(random: bytes, key: bytes = SECURITY_KEY) -> bytes:
    """Encrypt the 16-byte random challenge read from the security characteristic.

    AES-128 in ECB mode without padding.

    Raises:
        SecurityHandshakeError: If the challenge is not exactly 16 bytes
    """
    if len(random) != CHALLENGE_SIZE:
        raise SecurityHandshakeError(
            f"Expected {CHALLENGE_SIZE} byte challenge, got {len(random)}"
        )
    cipher = AES.new(key, AES.MODE_ECB)
    return cipher.encrypt(bytes(random))
