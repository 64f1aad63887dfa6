"""
Secret key buffers and the candidate key stream.

Every SecretKey owns a mutable bytearray so it can be overwritten with zeros
when the key is discarded. Use it as a context manager to guarantee that on
every exit path:

    with next(candidates) as key:
        address = derive_address(key.buffer)
"""

import secrets
from typing import Iterator

from fuelvanity.core import SECRET_KEY_LENGTH


class SecretKey:
    """A fixed-length secret key held in a zeroable buffer."""

    __slots__ = ("buffer",)

    def __init__(self, data):
        self.buffer = bytearray(data)

    @classmethod
    def generate(cls, length: int = SECRET_KEY_LENGTH) -> "SecretKey":
        """Draw a fresh key from the OS CSPRNG."""
        key = cls(length)
        key.buffer[:] = secrets.token_bytes(length)
        return key

    def copy(self) -> "SecretKey":
        return type(self)(self.buffer)

    def zero(self) -> None:
        """Overwrite the buffer with zeros in place."""
        self.buffer[:] = bytes(len(self.buffer))

    @property
    def is_zeroed(self) -> bool:
        return not any(self.buffer)

    def hex(self) -> str:
        return self.buffer.hex()

    def __len__(self) -> int:
        return len(self.buffer)

    def __enter__(self) -> "SecretKey":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.zero()

    def __repr__(self) -> str:
        return f"<SecretKey {len(self.buffer)} bytes>"


def generate_secret_keys(key_type: type = SecretKey) -> Iterator[SecretKey]:
    """Yield fresh random secret keys forever.

    The stream is lazy and never ends on its own; callers stop pulling from
    it when the search is over. Each worker must own its own stream.
    """
    while True:
        yield key_type.generate()
