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
A software WebAuthn authenticator for testing relying parties.

MockCredentials plays the part of navigator.credentials with a platform
authenticator attached, creating P-256 credentials with "none" attestation and
answering assertions for them, with no user interaction. Responses are returned as
RegistrationResponse and AuthenticationResponse objects, which serialize to the
JSON a browser would send by calling dict() on them.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Any, Dict, Iterator, Mapping
from urllib.parse import urlparse

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import decode_dss_signature

from .cose import ES256
from .der import encode_signature
from .utils import LOG_LEVEL_TRAFFIC, int2bytes, websafe_encode
from .webauthn import (
    Aaguid,
    AttestationObject,
    AttestedCredentialData,
    AuthenticationResponse,
    AuthenticatorAssertionResponse,
    AuthenticatorAttestationResponse,
    AuthenticatorData,
    CollectedClientData,
    RegistrationResponse,
)

logger = logging.getLogger(__name__)


ATTESTATION_NONE = "none"
CREDENTIAL_ID_LENGTH = 32
MAX_SIGN_COUNT = 0xFFFFFFFF


class UnsupportedAttestation(ValueError):
    """Registration requested an attestation format other than "none"."""

    def __init__(self, fmt: Any):
        super().__init__(f'Only "none" attestation supported, got: {fmt!r}')
        self.fmt = fmt


class UnknownCredential(KeyError):
    """No credential with the given ID exists."""

    def __init__(self, credential_id: str):
        super().__init__(credential_id)
        self.credential_id = credential_id

    def __str__(self):
        return f"Credential not found: {self.credential_id}"


def _credential_key(credential_id: str | bytes) -> str:
    if isinstance(credential_id, bytes):
        return websafe_encode(credential_id)
    return credential_id


class Credential:
    """A credential held by the authenticator.

    The private key is kept internal, and is only used by sign(). The signature
    counter can only be advanced through the CredentialStore holding the
    credential.

    :param credential_id: The binary credential ID.
    :param private_key: The P-256 private key of the credential.
    :param user_id: The user handle the credential was created for.
    """

    def __init__(
        self,
        credential_id: bytes,
        private_key: ec.EllipticCurvePrivateKey,
        user_id: Any,
    ):
        self._credential_id = credential_id
        self._private_key = private_key
        self._user_id = user_id
        self._sign_count = 0

    @property
    def credential_id(self) -> bytes:
        return self._credential_id

    @property
    def id(self) -> str:
        """The credential ID, websafe-base64 encoded."""
        return websafe_encode(self._credential_id)

    @property
    def user_id(self) -> Any:
        return self._user_id

    @property
    def sign_count(self) -> int:
        return self._sign_count

    @property
    def public_key(self) -> ES256:
        return ES256.from_cryptography_key(self._private_key.public_key())

    def sign(self, message: bytes) -> bytes:
        """Signs a message using ECDSA with SHA-256.

        :param message: The data to sign.
        :return: The raw signature, r || s as two 32 byte integers.
        """
        r, s = decode_dss_signature(
            self._private_key.sign(message, ec.ECDSA(hashes.SHA256()))
        )
        size = ES256.COORDINATE_SIZE
        return int2bytes(r, size) + int2bytes(s, size)

    def _increment(self) -> int:
        if self._sign_count >= MAX_SIGN_COUNT:
            raise ValueError(f"Signature counter exhausted for credential {self.id}")
        self._sign_count += 1
        return self._sign_count

    def __repr__(self):
        return f"Credential(id={self.id}, sign_count={self._sign_count})"


class CredentialStore(Mapping[str, Credential]):
    """Credentials of an authenticator, keyed by websafe-base64 credential ID.

    Lookups accept the binary ID as well. All access is serialized by a lock, so
    a store may be shared between threads and between MockCredentials instances.
    """

    def __init__(self):
        self._credentials: Dict[str, Credential] = {}
        self._lock = threading.Lock()

    def add(self, credential: Credential) -> None:
        """Adds a newly created credential.

        :param credential: The credential to store.
        """
        with self._lock:
            if credential.id in self._credentials:
                raise ValueError(f"Duplicate credential ID: {credential.id}")
            self._credentials[credential.id] = credential

    def increment(self, credential_id: str | bytes) -> tuple[Credential, int]:
        """Looks up a credential and advances its signature counter, atomically.

        :param credential_id: The ID of the credential.
        :return: The credential, and the new value of its counter.
        """
        with self._lock:
            credential = self._lookup(credential_id)
            return credential, credential._increment()

    def _lookup(self, credential_id: str | bytes) -> Credential:
        key = _credential_key(credential_id)
        try:
            return self._credentials[key]
        except KeyError:
            raise UnknownCredential(key) from None

    def __getitem__(self, credential_id: str | bytes) -> Credential:
        with self._lock:
            return self._lookup(credential_id)

    def __iter__(self) -> Iterator[str]:
        with self._lock:
            return iter(list(self._credentials))

    def __len__(self):
        with self._lock:
            return len(self._credentials)


def _unwrap(options: Mapping[str, Any]) -> Mapping[str, Any]:
    # Accept both the bare options and the {"publicKey": options} wrapper.
    return options.get("publicKey", options)


def _rp_id(rp_id: str | None, origin: str) -> str:
    # An omitted RP ID defaults to the effective domain of the origin.
    if rp_id:
        return rp_id
    host = urlparse(origin).hostname
    if not host:
        raise ValueError(f"No RP ID given, and none derivable from origin: {origin}")
    return host


def _challenge(options: Mapping[str, Any]) -> str | bytes:
    challenge = options.get("challenge")
    if not isinstance(challenge, (str, bytes)):
        raise ValueError("A challenge must be provided")
    return challenge


def _user_id(options: Mapping[str, Any]) -> Any:
    user_id = options.get("user", {}).get("id")
    if user_id is None:
        raise ValueError("A user ID must be provided")
    return user_id


class MockCredentials:
    """Simulates the WebAuthn browser API with a software authenticator attached.

    Credentials created by one instance are kept in its CredentialStore for the
    life of the process. Pass the same store to several instances to share
    credentials between them.

    :param store: (optional) The CredentialStore to hold credentials in.
    :param aaguid: (optional) The AAGUID to report for new credentials, by default
        all zeros.
    """

    def __init__(
        self,
        store: CredentialStore | None = None,
        aaguid: bytes = Aaguid.NONE,
    ):
        self.store = store if store is not None else CredentialStore()
        self.aaguid = Aaguid(aaguid)

    def create(self, origin: str, options: Mapping[str, Any]) -> RegistrationResponse:
        """Creates a new credential, like navigator.credentials.create().

        :param origin: The origin of the calling page.
        :param options: The PublicKeyCredentialCreationOptions, as JSON-style
            mapping. Uses rp.id, user.id, challenge and attestation.
        :return: The registration response.
        """
        options = _unwrap(options)
        fmt = options.get("attestation")
        if fmt != ATTESTATION_NONE:
            raise UnsupportedAttestation(fmt)

        rp_id = _rp_id(options.get("rp", {}).get("id"), origin)
        user_id = _user_id(options)
        client_data = CollectedClientData.create(
            CollectedClientData.TYPE.CREATE, _challenge(options), origin
        )

        credential = Credential(
            os.urandom(CREDENTIAL_ID_LENGTH),
            ec.generate_private_key(ec.SECP256R1()),
            user_id,
        )
        auth_data = AuthenticatorData.for_rp(
            rp_id,
            AuthenticatorData.FLAG.UP | AuthenticatorData.FLAG.AT,
            credential.sign_count,
            AttestedCredentialData.create(
                self.aaguid, credential.credential_id, credential.public_key
            ),
        )
        logger.log(LOG_LEVEL_TRAFFIC, "authenticatorData: %s", auth_data.hex())
        attestation_object = AttestationObject.create(ATTESTATION_NONE, auth_data, {})

        self.store.add(credential)
        logger.info(f"New credential created for RP {rp_id}: {credential.id}")

        return RegistrationResponse(
            raw_id=credential.credential_id,
            response=AuthenticatorAttestationResponse(
                client_data=client_data,
                attestation_object=attestation_object,
            ),
        )

    def get(
        self,
        origin: str,
        options: Mapping[str, Any],
        credential_id: str | bytes,
    ) -> AuthenticationResponse:
        """Asserts an existing credential, like navigator.credentials.get().

        The signature counter of the credential is incremented before signing, and
        the signed authenticator data carries the new value.

        :param origin: The origin of the calling page.
        :param options: The PublicKeyCredentialRequestOptions, as JSON-style
            mapping. Uses rpId and challenge.
        :param credential_id: The ID of a credential returned by create().
        :return: The authentication response.
        """
        if credential_id not in self.store:
            raise UnknownCredential(_credential_key(credential_id))

        options = _unwrap(options)
        rp_id = _rp_id(options.get("rpId"), origin)
        challenge = _challenge(options)

        credential, counter = self.store.increment(credential_id)
        logger.debug(f"Asserting credential {credential.id}, counter: {counter}")

        client_data = CollectedClientData.create(
            CollectedClientData.TYPE.GET, challenge, origin
        )
        auth_data = AuthenticatorData.for_rp(rp_id, AuthenticatorData.FLAG.UP, counter)
        logger.log(LOG_LEVEL_TRAFFIC, "authenticatorData: %s", auth_data.hex())
        signature = encode_signature(credential.sign(auth_data + client_data.hash))

        return AuthenticationResponse(
            raw_id=credential.credential_id,
            response=AuthenticatorAssertionResponse(
                client_data=client_data,
                authenticator_data=auth_data,
                signature=signature,
                user_handle=credential.user_id,
            ),
        )
