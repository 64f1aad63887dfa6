"""
Verification of a private key / address pair.

Used after a search to double-check the winning key, and handy for checking
a key that was copied out of a previous run.
"""

from fuelvanity.core import SECRET_KEY_LENGTH, derive_address, strip_prefix
from fuelvanity.errors import DerivationError


def verify_key_address_pair(private_key_hex: str, expected_address: str) -> bool:
    """Check that a hex private key derives the expected address.

    Both values may carry a 0x prefix; the address comparison ignores case.
    Returns False for malformed keys instead of raising.
    """
    clean_key = strip_prefix(private_key_hex.strip())
    if len(clean_key) != SECRET_KEY_LENGTH * 2:
        return False
    try:
        key_bytes = bytearray.fromhex(clean_key)
    except ValueError:
        return False

    try:
        address = derive_address(key_bytes)
    except DerivationError:
        return False
    finally:
        key_bytes[:] = bytes(len(key_bytes))

    return address == strip_prefix(expected_address.strip()).lower()
