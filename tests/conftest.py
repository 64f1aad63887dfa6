import threading

import pytest

from fuelvanity.keys import SecretKey, generate_secret_keys


@pytest.fixture
def hex_deriver():
    """Cheap stand-in for the real deriver: the address is the key's hex."""
    def derive(secret) -> str:
        return secret.hex()
    return derive


@pytest.fixture
def tracking_keys():
    """Key source whose keys record every zero() call."""
    created = []
    lock = threading.Lock()

    class TrackingKey(SecretKey):
        def __init__(self, data):
            super().__init__(data)
            self.zero_calls = 0
            with lock:
                created.append(self)

        def zero(self):
            self.zero_calls += 1
            super().zero()

    def source():
        return generate_secret_keys(TrackingKey)

    source.created = created
    return source
