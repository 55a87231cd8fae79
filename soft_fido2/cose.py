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

from __future__ import annotations

from enum import IntEnum, unique
from typing import Any, Mapping, TypeVar

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from .utils import bytes2int, int2bytes


@unique
class CoseLabel(IntEnum):
    """Map labels of the COSE_Key parameters used for EC2 keys."""

    KTY = 1
    ALG = 3
    CRV = -1
    X = -2
    Y = -3


@unique
class CoseKeyType(IntEnum):
    EC2 = 2


@unique
class CoseCurve(IntEnum):
    P256 = 1


class CoseKey(dict):
    """A COSE formatted public key.

    :param _: The COSE key paramters.
    :cvar ALGORITHM: COSE algorithm identifier.
    """

    ALGORITHM: int = None  # type: ignore

    def verify(self, message: bytes, signature: bytes) -> None:
        """Validates a digital signature over a given message.

        :param message: The message which was signed.
        :param signature: The signature to check.
        """
        raise NotImplementedError("Signature verification not supported.")

    @classmethod
    def from_cryptography_key(cls: type[T_CoseKey], public_key) -> T_CoseKey:
        """Converts a PublicKey object from Cryptography into a COSE key.

        :param public_key: A public key.
        :return: A CoseKey.
        """
        raise NotImplementedError("Creation from cryptography not supported.")

    @staticmethod
    def for_alg(alg: int) -> type[CoseKey]:
        """Get a subclass of CoseKey corresponding to an algorithm identifier.

        :param alg: The COSE identifier of the algorithm.
        :return: A CoseKey.
        """
        for cls in CoseKey.__subclasses__():
            if cls.ALGORITHM == alg:
                return cls
        return UnsupportedKey

    @staticmethod
    def parse(cose: Mapping[int, Any]) -> CoseKey:
        """Create a CoseKey from a dict"""
        alg = cose.get(CoseLabel.ALG)
        if not alg:
            raise ValueError("COSE alg identifier must be provided.")
        return CoseKey.for_alg(alg)(cose)


T_CoseKey = TypeVar("T_CoseKey", bound=CoseKey)


class UnsupportedKey(CoseKey):
    """A COSE key with an unsupported algorithm."""


class ES256(CoseKey):
    """ECDSA over P-256 with SHA-256, the only algorithm an authenticator here
    creates credentials for."""

    ALGORITHM = -7
    _HASH_ALG = hashes.SHA256()
    COORDINATE_SIZE = 32

    def verify(self, message, signature):
        if self[CoseLabel.CRV] != CoseCurve.P256:
            raise ValueError("Unsupported elliptic curve")
        ec.EllipticCurvePublicNumbers(
            bytes2int(self[CoseLabel.X]), bytes2int(self[CoseLabel.Y]), ec.SECP256R1()
        ).public_key().verify(signature, message, ec.ECDSA(self._HASH_ALG))

    @classmethod
    def from_cryptography_key(cls, public_key):
        if not isinstance(public_key, ec.EllipticCurvePublicKey) or not isinstance(
            public_key.curve, ec.SECP256R1
        ):
            raise ValueError("ES256 requires a P-256 public key")
        pn = public_key.public_numbers()
        x = int2bytes(pn.x, cls.COORDINATE_SIZE)
        y = int2bytes(pn.y, cls.COORDINATE_SIZE)
        if len(x) != cls.COORDINATE_SIZE or len(y) != cls.COORDINATE_SIZE:
            raise ValueError("Coordinate does not fit in 32 bytes")
        return cls(
            {
                CoseLabel.KTY: CoseKeyType.EC2,
                CoseLabel.ALG: cls.ALGORITHM,
                CoseLabel.CRV: CoseCurve.P256,
                CoseLabel.X: x,
                CoseLabel.Y: y,
            }
        )
