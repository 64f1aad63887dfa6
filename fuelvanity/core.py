"""
Address derivation for Fuel wallets.

A Fuel secret key is a 32-byte secp256k1 scalar. The public key is the
64-byte uncompressed curve point (X || Y, without the SEC1 0x04 tag) and the
address is the SHA-256 digest of that public key, rendered as lowercase hex.
"""

import hashlib

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from fuelvanity.errors import DerivationError

SECRET_KEY_LENGTH = 32         # bytes
PUBLIC_KEY_LENGTH = 64         # bytes, X || Y
ADDRESS_HEX_LENGTH = 64        # sha256 digest as hex
ADDRESS_ALPHABET = "0123456789abcdef"
ADDRESS_PREFIX = "0x"

SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Curve and serialization constants cached at module level for performance
_CURVE = ec.SECP256K1()
_X962 = serialization.Encoding.X962
_UNCOMPRESSED = serialization.PublicFormat.UncompressedPoint


def public_key_bytes(secret_key) -> bytes:
    """Return the 64-byte uncompressed public key for a secret key.

    Args:
        secret_key: 32 bytes (bytes, bytearray or memoryview), big-endian.

    Raises:
        DerivationError: wrong length, or the scalar is outside [1, n).
    """
    if len(secret_key) != SECRET_KEY_LENGTH:
        raise DerivationError(
            f"Secret key must be {SECRET_KEY_LENGTH} bytes, got {len(secret_key)}."
        )
    scalar = int.from_bytes(secret_key, "big")
    if not 0 < scalar < SECP256K1_ORDER:
        raise DerivationError("Secret key is not a valid secp256k1 scalar.")
    try:
        private_key = ec.derive_private_key(scalar, _CURVE)
    except ValueError as e:
        raise DerivationError(str(e)) from e
    return private_key.public_key().public_bytes(_X962, _UNCOMPRESSED)[1:]


def derive_address(secret_key) -> str:
    """Derive the 64-char lowercase hex address of a secret key.

    This is the hot-path function called in the inner loop of each worker.
    """
    return hashlib.sha256(public_key_bytes(secret_key)).hexdigest()


def format_address(address_hex: str) -> str:
    """Render an address in its canonical 0x-prefixed display form."""
    if address_hex.startswith(ADDRESS_PREFIX):
        return address_hex
    return ADDRESS_PREFIX + address_hex


def strip_prefix(text: str) -> str:
    """Drop a leading 0x / 0X from a hex string."""
    if text[:2].lower() == ADDRESS_PREFIX:
        return text[2:]
    return text
