"""Interface definition for structured codecs."""

from dataclasses import dataclass
from typing import Generic, Optional, Protocol, TypeVar

__all__ = ("Codec", "Decoded")


T = TypeVar("T")


@dataclass(frozen=True)
class Decoded(Generic[T]):
    """Result of a successful decoding attempt."""

    value: T
    """The decoded value."""

    consumed: int
    """The number of bytes consumed from the input."""


class Codec(Protocol[T]):
    def encode(self, value: T) -> bytes:
        """Serializes the given value.

        Raises:
            EncodeError: if the value cannot be serialized
        """
        ...

    def decode(self, data: bytes) -> Decoded[T]:
        """Decodes a single value from the start of the given bytes.

        Raises:
            IncompleteDataError: if the bytes are a truncated prefix of a
                valid encoding
            DecodeError: if the bytes are not a valid encoding
        """
        ...

    def measure(self, data: bytes) -> Optional[int]:
        """Returns the total length of the encoded value that starts at the
        beginning of the given bytes, or ``None`` if the length cannot be
        determined from the bytes seen so far.

        Raises:
            DecodeError: if the bytes cannot be the start of a valid encoding
        """
        ...
