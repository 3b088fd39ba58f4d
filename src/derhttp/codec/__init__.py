"""Structured codecs that serialize request bodies and decode response
bodies.
"""

from .base import Codec, Decoded
from .der import DERCodec, DERElement, TagClass
from .raw import RawCodec

__all__ = ("Codec", "Decoded", "DERCodec", "DERElement", "RawCodec", "TagClass")
