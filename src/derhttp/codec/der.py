"""Codec for ASN.1 values in the Distinguished Encoding Rules (DER).

DER values are tag-length-value triplets with a definite length, so the total
length of a value is known as soon as its identifier and length octets have
arrived. This is what allows the request engine to find the end of a response
body that has no ``Content-Length`` header.
"""

from __future__ import annotations

from bitstring import ConstBitStream, pack
from dataclasses import dataclass
from enum import IntEnum
from typing import Optional, Union

from derhttp.errors import DecodeError, EncodeError, IncompleteDataError

from .base import Decoded

__all__ = ("DERCodec", "DERElement", "TagClass", "UniversalTag")


#: Maximum number of octets in the long form of the length field that we are
#: willing to process
MAX_LENGTH_OCTETS = 8

#: Maximum number of subsequent octets in high tag number form
MAX_TAG_OCTETS = 4

#: Maximum nesting depth of constructed values that we validate
MAX_DEPTH = 64


class TagClass(IntEnum):
    UNIVERSAL = 0
    APPLICATION = 1
    CONTEXT = 2
    PRIVATE = 3


class UniversalTag(IntEnum):
    BOOLEAN = 1
    INTEGER = 2
    BIT_STRING = 3
    OCTET_STRING = 4
    NULL = 5
    OBJECT_IDENTIFIER = 6
    ENUMERATED = 10
    UTF8_STRING = 12
    SEQUENCE = 16
    SET = 17


@dataclass
class DERElement:
    """A single DER-encoded ASN.1 value with its raw content octets."""

    tag_class: TagClass
    constructed: bool
    tag_number: int
    content: bytes = b""

    @classmethod
    def integer(cls, value: int) -> DERElement:
        """Creates an INTEGER element."""
        num_bytes = (value + (value < 0)).bit_length() // 8 + 1
        return cls(
            TagClass.UNIVERSAL,
            False,
            UniversalTag.INTEGER,
            value.to_bytes(num_bytes, "big", signed=True),
        )

    @classmethod
    def null(cls) -> DERElement:
        """Creates a NULL element."""
        return cls(TagClass.UNIVERSAL, False, UniversalTag.NULL)

    @classmethod
    def octet_string(cls, value: bytes) -> DERElement:
        """Creates an OCTET STRING element."""
        return cls(TagClass.UNIVERSAL, False, UniversalTag.OCTET_STRING, bytes(value))

    @classmethod
    def sequence(cls, *children: DERElement) -> DERElement:
        """Creates a SEQUENCE element from the given child elements."""
        return cls(
            TagClass.UNIVERSAL,
            True,
            UniversalTag.SEQUENCE,
            b"".join(child.encode() for child in children),
        )

    @property
    def children(self) -> list[DERElement]:
        """Decodes the content octets of a constructed element into the list
        of its child elements.
        """
        if not self.constructed:
            raise DecodeError("Primitive elements have no children")
        return _split_elements(self.content)

    def encode(self) -> bytes:
        """Encodes the element into its raw DER representation."""
        return (
            _encode_identifier(self.tag_class, self.constructed, self.tag_number)
            + _encode_length(len(self.content))
            + self.content
        )

    @property
    def is_sequence(self) -> bool:
        return (
            self.tag_class == TagClass.UNIVERSAL
            and self.tag_number == UniversalTag.SEQUENCE
        )

    def to_int(self) -> int:
        """Interprets the content octets of an INTEGER element."""
        if self.tag_class != TagClass.UNIVERSAL or self.tag_number not in (
            UniversalTag.INTEGER,
            UniversalTag.ENUMERATED,
        ):
            raise DecodeError(f"Not an INTEGER: {self!r}")
        if not self.content:
            raise DecodeError("INTEGER with no content octets")
        return int.from_bytes(self.content, "big", signed=True)


def _encode_identifier(tag_class: int, constructed: bool, tag_number: int) -> bytes:
    if tag_number < 0:
        raise EncodeError(f"Invalid tag number: {tag_number}")

    if tag_number < 31:
        return pack("uint:2, bool, uint:5", tag_class, constructed, tag_number).bytes

    digits = []
    while True:
        digits.append(tag_number & 0x7F)
        tag_number >>= 7
        if not tag_number:
            break
    digits.reverse()
    for i in range(len(digits) - 1):
        digits[i] |= 0x80

    first = pack("uint:2, bool, uint:5", tag_class, constructed, 31).bytes
    return first + bytes(digits)


def _encode_length(length: int) -> bytes:
    if length < 0x80:
        return bytes([length])
    body = length.to_bytes((length.bit_length() + 7) // 8, "big")
    return bytes([0x80 | len(body)]) + body


def _parse_header(data: bytes, offset: int = 0) -> tuple[int, bool, int, int, int]:
    """Parses the identifier and length octets of the element starting at the
    given offset.

    Returns:
        the tag class, the constructed flag, the tag number, the length of the
        header and the length of the content octets

    Raises:
        IncompleteDataError: if the header is truncated
        DecodeError: if the header is not valid DER
    """
    available = len(data) - offset
    if available < 2:
        raise IncompleteDataError(2 - available)

    tag_class, constructed, tag_number = ConstBitStream(
        data[offset : offset + 1]
    ).readlist("uint:2, bool, uint:5")
    pos = offset + 1

    if tag_number == 31:
        tag_number = 0
        num_octets = 0
        while True:
            if pos >= len(data):
                raise IncompleteDataError(1)
            byte = data[pos]
            pos += 1
            num_octets += 1
            if num_octets == 1 and byte == 0x80:
                raise DecodeError("Tag number is not encoded minimally")
            if num_octets > MAX_TAG_OCTETS:
                raise DecodeError("Tag number too large")
            tag_number = (tag_number << 7) | (byte & 0x7F)
            if not byte & 0x80:
                break
        if tag_number < 31:
            raise DecodeError("Low tag number encoded in high tag number form")

    if pos >= len(data):
        raise IncompleteDataError(1)

    first = data[pos]
    pos += 1
    if first < 0x80:
        length = first
    elif first == 0x80:
        raise DecodeError("Indefinite length form is not allowed in DER")
    else:
        num_octets = first & 0x7F
        if num_octets > MAX_LENGTH_OCTETS:
            raise DecodeError(f"Length field of {num_octets} octets is too long")
        if pos + num_octets > len(data):
            raise IncompleteDataError(pos + num_octets - len(data))
        length_octets = data[pos : pos + num_octets]
        pos += num_octets
        if length_octets[0] == 0:
            raise DecodeError("Length is not encoded minimally")
        length = int.from_bytes(length_octets, "big")
        if length < 0x80:
            raise DecodeError("Short length encoded in long form")

    return tag_class, constructed, tag_number, pos - offset, length


def _decode_element(
    data: bytes, offset: int = 0, depth: int = 0
) -> tuple[DERElement, int]:
    tag_class, constructed, tag_number, header_length, length = _parse_header(
        data, offset
    )
    start = offset + header_length
    end = start + length
    if end > len(data):
        raise IncompleteDataError(end - len(data))

    if (
        tag_class == TagClass.UNIVERSAL
        and tag_number in (UniversalTag.SEQUENCE, UniversalTag.SET)
        and not constructed
    ):
        raise DecodeError("SEQUENCE and SET must use the constructed form")

    content = bytes(data[start:end])
    if constructed:
        if depth >= MAX_DEPTH:
            raise DecodeError("Elements are nested too deeply")
        _split_elements(content, depth + 1)

    element = DERElement(TagClass(tag_class), constructed, tag_number, content)
    return element, end - offset


def _split_elements(content: bytes, depth: int = 0) -> list[DERElement]:
    result = []
    offset = 0
    while offset < len(content):
        try:
            element, consumed = _decode_element(content, offset, depth)
        except IncompleteDataError:
            raise DecodeError("Nested element overruns its parent") from None
        result.append(element)
        offset += consumed
    return result


class DERCodec:
    """Codec that encodes `DERElement` objects into DER and decodes DER back
    into `DERElement` objects.
    """

    def encode(self, value: Union[DERElement, bytes]) -> bytes:
        """Encodes the given element. Pre-encoded bytes are accepted if they
        contain exactly one valid DER element.
        """
        if isinstance(value, DERElement):
            return value.encode()

        if isinstance(value, (bytes, bytearray, memoryview)):
            data = bytes(value)
            try:
                decoded = self.decode(data)
            except DecodeError as ex:
                raise EncodeError(f"Invalid pre-encoded DER value: {ex}") from ex
            if decoded.consumed != len(data):
                raise EncodeError("Trailing bytes after pre-encoded DER value")
            return data

        raise EncodeError(f"Cannot encode {type(value).__name__} as DER")

    def decode(self, data: bytes) -> Decoded[DERElement]:
        element, consumed = _decode_element(bytes(data))
        return Decoded(element, consumed)

    def measure(self, data: bytes) -> Optional[int]:
        try:
            _, _, _, header_length, length = _parse_header(data)
        except IncompleteDataError:
            return None
        return header_length + length
