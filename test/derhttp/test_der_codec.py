from pytest import raises

from derhttp.codec import DERCodec, DERElement, RawCodec, TagClass
from derhttp.codec.der import UniversalTag
from derhttp.errors import DecodeError, EncodeError, IncompleteDataError


def test_integer_encoding():
    assert DERElement.integer(0).encode() == b"\x02\x01\x00"
    assert DERElement.integer(127).encode() == b"\x02\x01\x7f"
    assert DERElement.integer(128).encode() == b"\x02\x02\x00\x80"
    assert DERElement.integer(-1).encode() == b"\x02\x01\xff"
    assert DERElement.integer(-128).encode() == b"\x02\x01\x80"
    assert DERElement.integer(-129).encode() == b"\x02\x02\xff\x7f"
    assert DERElement.integer(0x1234).to_int() == 0x1234


def test_sequence():
    seq = DERElement.sequence(
        DERElement.integer(1), DERElement.octet_string(b"abc"), DERElement.null()
    )
    encoded = seq.encode()
    assert encoded == b"\x30\x0a\x02\x01\x01\x04\x03abc\x05\x00"

    decoded = DERCodec().decode(encoded + b"trailing")
    assert decoded.consumed == len(encoded)
    assert decoded.value.is_sequence
    assert decoded.value.constructed

    children = decoded.value.children
    assert [child.tag_number for child in children] == [
        UniversalTag.INTEGER,
        UniversalTag.OCTET_STRING,
        UniversalTag.NULL,
    ]
    assert children[0].to_int() == 1
    assert children[1].content == b"abc"

    with raises(DecodeError):
        children[1].children


def test_long_length_form():
    element = DERElement.octet_string(b"x" * 200)
    encoded = element.encode()
    assert encoded[:3] == b"\x04\x81\xc8"
    assert DERCodec().decode(encoded).value == element

    element = DERElement.octet_string(b"y" * 300)
    assert element.encode()[:4] == b"\x04\x82\x01\x2c"


def test_high_tag_number():
    element = DERElement(TagClass.CONTEXT, False, 100, b"\x01")
    encoded = element.encode()
    assert encoded == b"\x9f\x64\x01\x01"
    assert DERCodec().decode(encoded).value == element

    element = DERElement(TagClass.APPLICATION, True, 200)
    encoded = element.encode()
    assert encoded == b"\x7f\x81\x48\x00"
    assert DERCodec().decode(encoded).value == element


def test_measure():
    codec = DERCodec()
    assert codec.measure(b"") is None
    assert codec.measure(b"\x30") is None
    assert codec.measure(b"\x30\x82\x01") is None
    assert codec.measure(b"\x30\x82\x01\x00") == 260
    assert codec.measure(b"\x04\x0a") == 12
    assert codec.measure(b"\x05\x00") == 2


def test_incomplete_data():
    codec = DERCodec()
    encoded = DERElement.octet_string(b"hello").encode()

    with raises(IncompleteDataError) as info:
        codec.decode(encoded[:4])
    assert info.value.needed == 3
    assert isinstance(info.value, DecodeError)

    with raises(IncompleteDataError):
        codec.decode(b"\x04")


def test_invalid_encodings():
    codec = DERCodec()

    # indefinite length
    with raises(DecodeError):
        codec.measure(b"\x30\x80")
    # non-minimal length
    with raises(DecodeError):
        codec.decode(b"\x04\x81\x05hello")
    with raises(DecodeError):
        codec.decode(b"\x04\x82\x00\x05hello")
    # primitive SEQUENCE
    with raises(DecodeError):
        codec.decode(b"\x10\x00")
    # child overruns its parent
    with raises(DecodeError):
        codec.decode(b"\x30\x03\x04\x05abc")


def test_encode():
    codec = DERCodec()
    element = DERElement.sequence(DERElement.integer(5))
    encoded = codec.encode(element)
    assert encoded == b"\x30\x03\x02\x01\x05"
    assert codec.encode(encoded) == encoded

    with raises(EncodeError):
        codec.encode(encoded + b"\x00")
    with raises(EncodeError):
        codec.encode(b"\x30\x05")
    with raises(EncodeError):
        codec.encode(42)


def test_raw_codec():
    codec = RawCodec()
    assert codec.encode(bytearray(b"abc")) == b"abc"
    assert codec.measure(b"abc") is None

    decoded = codec.decode(b"hello")
    assert decoded.value == b"hello"
    assert decoded.consumed == 5

    with raises(EncodeError):
        codec.encode("text")
