# Copyright (c) 2025 Yubico AB
# All rights reserved.
#
#   Redistribution and use in source and binary forms, with or
#   without modification, are permitted provided that the following
#   conditions are met:
#
#    1. Redistributions of source code must retain the above copyright
#       notice, this list of conditions and the following disclaimer.
#    2. Redistributions in binary form must reproduce the above
#       copyright notice, this list of conditions and the following
#       disclaimer in the documentation and/or other materials provided
#       with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS
# "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT
# LIMITED TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS
# FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE
# COPYRIGHT HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT,
# INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING,
# BUT NOT LIMITED TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES;
# LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER
# CAUSED AND ON ANY THEORY OF LIABILITY, WHETHER IN CONTRACT, STRICT
# LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN
# ANY WAY OUT OF THE USE OF THIS SOFTWARE, EVEN IF ADVISED OF THE
# POSSIBILITY OF SUCH DAMAGE.

"""
Minimal CBOR implementation covering the fixed message shapes an authenticator
emits: COSE keys and attestation objects.

Maps are written in CTAP2 canonical order (shorter encoded keys first, then
bytewise). Floats, tags and indefinite lengths are not supported.
"""

from __future__ import annotations

from enum import IntEnum
import struct
from typing import Any, Tuple, Union, Sequence, Mapping, Type, Callable


CborType = Union[int, bool, str, bytes, Sequence[Any], Mapping[Any, Any]]


class MajorType(IntEnum):
    UNSIGNED = 0
    NEGATIVE = 1
    BYTES = 2
    TEXT = 3
    ARRAY = 4
    MAP = 5
    SIMPLE = 7


_FALSE = b"\xf4"
_TRUE = b"\xf5"


def _head(mt: int, value: int) -> bytes:
    mt = mt << 5
    if value <= 23:
        return struct.pack(">B", mt | value)
    if value <= 0xFF:
        return struct.pack(">BB", mt | 24, value)
    if value <= 0xFFFF:
        return struct.pack(">BH", mt | 25, value)
    if value <= 0xFFFFFFFF:
        return struct.pack(">BI", mt | 26, value)
    return struct.pack(">BQ", mt | 27, value)


def dump_int(data: int) -> bytes:
    if data < 0:
        return _head(MajorType.NEGATIVE, -1 - data)
    return _head(MajorType.UNSIGNED, data)


def dump_bool(data: bool) -> bytes:
    return _TRUE if data else _FALSE


def dump_bytes(data: bytes) -> bytes:
    return _head(MajorType.BYTES, len(data)) + bytes(data)


def dump_text(data: str) -> bytes:
    data_bytes = data.encode("utf8")
    return _head(MajorType.TEXT, len(data_bytes)) + data_bytes


def dump_list(data: Sequence[CborType]) -> bytes:
    return _head(MajorType.ARRAY, len(data)) + b"".join(encode(x) for x in data)


def _canonical(entry: Tuple[bytes, bytes]):
    key = entry[0]
    return key[0], len(key), key


def dump_dict(data: Mapping[CborType, CborType]) -> bytes:
    items = sorted(((encode(k), encode(v)) for k, v in data.items()), key=_canonical)
    return _head(MajorType.MAP, len(items)) + b"".join(k + v for k, v in items)


# Order matters: bool is a subclass of int, and bytes/str are Sequences.
_SERIALIZERS: Sequence[Tuple[Type, Callable[[Any], bytes]]] = [
    (bool, dump_bool),
    (int, dump_int),
    (str, dump_text),
    (bytes, dump_bytes),
    (Mapping, dump_dict),
    (Sequence, dump_list),
]


def encode(data: CborType) -> bytes:
    """Encodes a value to CBOR.

    :param data: The value to encode.
    :return: The CBOR encoding of the value.
    """
    for k, v in _SERIALIZERS:
        if isinstance(data, k):
            return v(data)
    raise ValueError(f"Unsupported value: {data!r}")


def load_int(ai: int, data: bytes) -> Tuple[int, bytes]:
    if ai < 24:
        return ai, data
    sizes = {24: ">B", 25: ">H", 26: ">I", 27: ">Q"}
    if ai not in sizes:
        raise ValueError("Invalid additional information")
    fmt = sizes[ai]
    size = struct.calcsize(fmt)
    if len(data) < size:
        raise ValueError("Truncated CBOR data")
    return struct.unpack_from(fmt, data)[0], data[size:]


def load_nint(ai: int, data: bytes) -> Tuple[int, bytes]:
    val, rest = load_int(ai, data)
    return -1 - val, rest


def load_simple(ai: int, data: bytes) -> Tuple[bool, bytes]:
    if ai not in (20, 21):
        raise ValueError("Unsupported simple value")
    return ai == 21, data


def load_bytes(ai: int, data: bytes) -> Tuple[bytes, bytes]:
    ln, data = load_int(ai, data)
    if len(data) < ln:
        raise ValueError("Truncated CBOR data")
    return data[:ln], data[ln:]


def load_text(ai: int, data: bytes) -> Tuple[str, bytes]:
    enc, rest = load_bytes(ai, data)
    return enc.decode("utf8"), rest


def load_array(ai: int, data: bytes) -> Tuple[Sequence[CborType], bytes]:
    ln, data = load_int(ai, data)
    values = []
    for _ in range(ln):
        val, data = decode_from(data)
        values.append(val)
    return values, data


def load_map(ai: int, data: bytes) -> Tuple[Mapping[CborType, CborType], bytes]:
    ln, data = load_int(ai, data)
    values = {}
    for _ in range(ln):
        k, data = decode_from(data)
        v, data = decode_from(data)
        values[k] = v
    return values, data


_DESERIALIZERS = {
    MajorType.UNSIGNED: load_int,
    MajorType.NEGATIVE: load_nint,
    MajorType.BYTES: load_bytes,
    MajorType.TEXT: load_text,
    MajorType.ARRAY: load_array,
    MajorType.MAP: load_map,
    MajorType.SIMPLE: load_simple,
}


def decode_from(data: bytes) -> Tuple[Any, bytes]:
    """Decodes one CBOR value from the start of data.

    :param data: Bytes starting with a CBOR value.
    :return: The decoded value, and any remaining bytes.
    """
    if not data:
        raise ValueError("Truncated CBOR data")
    fb = data[0]
    try:
        load = _DESERIALIZERS[MajorType(fb >> 5)]
    except (ValueError, KeyError):
        raise ValueError(f"Unsupported CBOR major type: {fb >> 5}")
    return load(fb & 0b11111, data[1:])


def decode(data: bytes) -> CborType:
    """Decodes a single CBOR value, which must span all of data."""
    value, rest = decode_from(data)
    if rest != b"":
        raise ValueError("Extraneous data")
    return value
