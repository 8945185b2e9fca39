"""Wire schema layer: exact provider payload shapes and tagged decoding."""

from chatwire.core.wire.base import DecodeMode, DecodeReport, WireModel, decode, decode_batch, encode

__all__ = ["DecodeMode", "DecodeReport", "WireModel", "decode", "decode_batch", "encode"]
