"""
Display formats for a search result.

Nothing here writes to disk: what the caller does with the key is up to the
caller.
"""

import base64
from dataclasses import dataclass

from fuelvanity.core import ADDRESS_PREFIX, format_address, public_key_bytes
from fuelvanity.generator import SearchResult


@dataclass
class ExportedKeypair:
    """All printable information about a winning keypair."""
    address: str                # 0x-prefixed, 64 hex chars
    public_key_hex: str         # 0x-prefixed, 128 hex chars
    private_key_hex: str        # 0x-prefixed, 64 hex chars
    private_key_base64: str


def prepare_export(result: SearchResult) -> ExportedKeypair:
    """Prepare all display formats for a search result."""
    secret = result.secret_key.buffer
    return ExportedKeypair(
        address=format_address(result.address),
        public_key_hex=ADDRESS_PREFIX + public_key_bytes(secret).hex(),
        private_key_hex=ADDRESS_PREFIX + secret.hex(),
        private_key_base64=base64.b64encode(secret).decode("ascii"),
    )
