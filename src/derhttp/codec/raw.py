"""Codec that passes bytes through unchanged."""

from typing import Optional, Union

from derhttp.errors import EncodeError

from .base import Decoded

__all__ = ("RawCodec",)


class RawCodec:
    """Codec for opaque byte strings. Raw bytes do not describe their own
    length so `measure()` never returns a length.
    """

    def encode(self, value: Union[bytes, bytearray, memoryview]) -> bytes:
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise EncodeError(f"Expected bytes, got {type(value).__name__}")
        return bytes(value)

    def decode(self, data: bytes) -> Decoded[bytes]:
        return Decoded(bytes(data), len(data))

    def measure(self, data: bytes) -> Optional[int]:
        return None
