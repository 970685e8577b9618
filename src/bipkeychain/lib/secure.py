"""
Wipeable containers for root secrets and private key seeds.
"""

import secrets
from typing import Optional

from bipkeychain.lib.logs import get_logger, log

_logger = get_logger("secure")


class SecureBytes:
    """
    A secure wrapper for sensitive byte data that:
    1. Uses mutable bytearray instead of immutable bytes
    2. Explicitly wipes memory when released
    3. Provides controlled access to the underlying data
    """

    def __init__(self, data: bytes):
        self._length = len(data)
        # Use bytearray for mutable memory that we can wipe
        self._data: Optional[bytearray] = bytearray(data)

    def __len__(self) -> int:
        return self._length

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.wipe()

    @property
    def wiped(self) -> bool:
        return self._data is None

    def get_bytes(self) -> bytes:
        """Get the underlying bytes. Use sparingly and drop the copy when done."""
        if self._data is None:
            raise RuntimeError("SecureBytes has been wiped")
        return bytes(self._data)

    def wipe(self):
        """Overwrite the buffer with random data, then zeros, and release it."""
        if self._data is not None:
            for _ in range(2):
                for i in range(len(self._data)):
                    self._data[i] = secrets.randbits(8)
            for i in range(len(self._data)):
                self._data[i] = 0

            buffer = self._data
            self._data = None
            log(_logger, "debug", "Wiped secure memory", size=len(buffer))

    def __del__(self):
        self.wipe()

    def __repr__(self) -> str:
        state = "wiped" if self._data is None else "live"
        return f"SecureBytes(<{self._length} bytes, {state}>)"
