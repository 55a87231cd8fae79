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
Conversion of fixed-length ECDSA signatures into ASN.1 DER.

Signing providers such as WebCrypto and PKCS#11 tokens return ECDSA signatures
as the raw concatenation r || s, each half being a big endian unsigned integer
of the curve's byte length. WebAuthn relying parties expect the DER form:

    SEQUENCE {
        INTEGER r,
        INTEGER s
    }
"""

from __future__ import annotations

from .utils import int2bytes

TAG_INTEGER = 0x02
TAG_SEQUENCE = 0x30


def encode_length(length: int) -> bytes:
    """Encodes a DER definite length.

    :param length: The number of content bytes.
    :return: The short form for lengths below 128, the long form otherwise.
    """
    if length < 0x80:
        return bytes([length])
    encoded = int2bytes(length)
    return bytes([0x80 | len(encoded)]) + encoded


def encode_tlv(tag: int, value: bytes) -> bytes:
    return bytes([tag]) + encode_length(len(value)) + value


def encode_integer(value: bytes) -> bytes:
    """Encodes an unsigned big endian integer as a DER INTEGER.

    Leading zero bytes are dropped. A zero byte is then prepended if the high bit
    of the first byte is set, so that the value is not read as negative. A value
    that is all zeros encodes as a single zero byte.

    :param value: The integer, as big endian bytes.
    :return: The DER encoded INTEGER.
    """
    trimmed = value.lstrip(b"\0")
    if not trimmed or trimmed[0] & 0x80:
        trimmed = b"\0" + trimmed
    return encode_tlv(TAG_INTEGER, trimmed)


def encode_signature(raw: bytes) -> bytes:
    """Converts a raw r || s ECDSA signature to DER.

    :param raw: The signature, two equally sized big endian integers.
    :return: The DER encoded signature.
    """
    if not raw or len(raw) % 2:
        raise ValueError(f"Invalid raw signature length: {len(raw)}")
    half = len(raw) // 2
    return encode_tlv(
        TAG_SEQUENCE, encode_integer(raw[:half]) + encode_integer(raw[half:])
    )
