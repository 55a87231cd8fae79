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

import json
import threading
import unittest
import uuid
from unittest import mock

from cryptography.hazmat.primitives.asymmetric import ec

from soft_fido2.authenticator import (
    Credential,
    CredentialStore,
    MockCredentials,
    UnknownCredential,
    UnsupportedAttestation,
)
from soft_fido2.cose import ES256
from soft_fido2.utils import sha256, websafe_decode, websafe_encode
from soft_fido2.webauthn import AttestationObject, AuthenticatorData

ORIGIN = "https://localhost:8000"
RP_ID = "example.com"
SETUP_CHALLENGE = "RFMZLxsZFoHS6YOAxVo4yyoSEmwreexGX0Cf6t-9F6U"
ASSERTION_CHALLENGE = "am3tdmXiCqTAms8uom9oTx7yiBKiVun4-4OCj4v_tTQ"


def create_options(user_id, attestation="none", challenge=SETUP_CHALLENGE):
    return {
        "challenge": challenge,
        "rp": {"id": RP_ID},
        "user": {"id": user_id},
        "pubKeyCredParams": [{"alg": -7, "type": "public-key"}],
        "timeout": 60000,
        "attestation": attestation,
    }


def request_options(challenge=ASSERTION_CHALLENGE):
    return {
        "challenge": challenge,
        "rpId": RP_ID,
        "timeout": 60000,
        "userVerification": "preferred",
    }


def parse_attestation(result):
    return AttestationObject(
        websafe_decode(dict(result)["response"]["attestationObject"])
    )


class TestCredentialStore(unittest.TestCase):
    def setUp(self):
        self.store = CredentialStore()
        self.cred_id = bytes(range(32))
        self.credential = Credential(self.cred_id, mock.Mock(), "user")
        self.store.add(self.credential)

    def test_lookup(self):
        self.assertEqual(len(self.store), 1)
        self.assertIs(self.store[websafe_encode(self.cred_id)], self.credential)
        self.assertIs(self.store[self.cred_id], self.credential)
        self.assertIn(websafe_encode(self.cred_id), self.store)
        self.assertEqual(list(self.store), [websafe_encode(self.cred_id)])

    def test_unknown(self):
        with self.assertRaises(UnknownCredential) as cm:
            self.store["nonexistent-id"]
        self.assertIsInstance(cm.exception, KeyError)
        self.assertEqual(cm.exception.credential_id, "nonexistent-id")
        self.assertNotIn("nonexistent-id", self.store)
        self.assertIsNone(self.store.get("nonexistent-id"))

    def test_duplicate(self):
        with self.assertRaises(ValueError):
            self.store.add(Credential(self.cred_id, mock.Mock(), "other"))
        self.assertEqual(self.store[self.cred_id].user_id, "user")

    def test_increment(self):
        self.assertEqual(self.credential.sign_count, 0)
        self.assertEqual(self.store.increment(self.cred_id), (self.credential, 1))
        self.assertEqual(self.store.increment(self.cred_id), (self.credential, 2))
        self.assertEqual(self.credential.sign_count, 2)

    def test_increment_unknown(self):
        with self.assertRaises(UnknownCredential):
            self.store.increment("nonexistent-id")
        self.assertEqual(self.credential.sign_count, 0)

    def test_increment_exhausted(self):
        self.credential._sign_count = 0xFFFFFFFF
        with self.assertRaises(ValueError):
            self.store.increment(self.cred_id)
        self.assertEqual(self.credential.sign_count, 0xFFFFFFFF)

    def test_concurrent_increment(self):
        counters = []
        lock = threading.Lock()

        def work():
            for _ in range(200):
                _, counter = self.store.increment(self.cred_id)
                with lock:
                    counters.append(counter)

        threads = [threading.Thread(target=work) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(counters), list(range(1, 1601)))
        self.assertEqual(self.credential.sign_count, 1600)


class TestCreate(unittest.TestCase):
    def setUp(self):
        self.credentials = MockCredentials()
        self.user_id = str(uuid.uuid4())

    def test_create(self):
        result = self.credentials.create(ORIGIN, create_options(self.user_id))
        data = dict(result)

        self.assertEqual(data["id"], data["rawId"])
        self.assertEqual(len(websafe_decode(data["id"])), 32)
        self.assertEqual(data["type"], "public-key")
        self.assertEqual(data["clientExtensionResults"], {})
        self.assertEqual(set(data["response"]), {"clientDataJSON", "attestationObject"})

        self.assertIn(data["id"], self.credentials.store)
        credential = self.credentials.store[data["id"]]
        self.assertEqual(credential.sign_count, 0)
        self.assertEqual(credential.user_id, self.user_id)

    def test_client_data(self):
        result = self.credentials.create(ORIGIN, create_options(self.user_id))
        client_data = websafe_decode(dict(result)["response"]["clientDataJSON"])
        self.assertEqual(
            client_data,
            b'{"type":"webauthn.create","challenge":"'
            + SETUP_CHALLENGE.encode()
            + b'","origin":"https://localhost:8000"}',
        )

    def test_authenticator_data_layout(self):
        result = self.credentials.create(ORIGIN, create_options(self.user_id))
        att_obj = parse_attestation(result)
        auth_data = bytes(att_obj.auth_data)

        self.assertEqual(att_obj.fmt, "none")
        self.assertEqual(att_obj.att_stmt, {})
        self.assertEqual(auth_data[0:32], sha256(b"example.com"))
        self.assertEqual(auth_data[32], 0x41)
        self.assertEqual(auth_data[33:37], b"\0\0\0\0")
        self.assertEqual(auth_data[37:53], b"\0" * 16)
        self.assertEqual(auth_data[53:55], b"\x00\x20")
        self.assertEqual(auth_data[55:87], websafe_decode(result.id))

    def test_cose_key(self):
        result = self.credentials.create(ORIGIN, create_options(self.user_id))
        public_key = parse_attestation(result).auth_data.credential_data.public_key

        self.assertIsInstance(public_key, ES256)
        self.assertEqual(list(public_key), [1, 3, -1, -2, -3])
        self.assertEqual(public_key[1], 2)
        self.assertEqual(public_key[3], -7)
        self.assertEqual(public_key[-1], 1)
        self.assertEqual(len(public_key[-2]), 32)
        self.assertEqual(len(public_key[-3]), 32)
        self.assertEqual(public_key, self.credentials.store[result.id].public_key)

    def test_unsupported_attestation(self):
        for fmt in ("direct", "indirect", "enterprise", None):
            with self.assertRaises(UnsupportedAttestation) as cm:
                self.credentials.create(
                    ORIGIN, create_options(self.user_id, attestation=fmt)
                )
            self.assertEqual(cm.exception.fmt, fmt)
        self.assertEqual(len(self.credentials.store), 0)

    def test_unsupported_attestation_before_validation(self):
        with self.assertRaises(UnsupportedAttestation):
            self.credentials.create(ORIGIN, {"user": {}, "attestation": "direct"})
        self.assertEqual(len(self.credentials.store), 0)

    def test_missing_challenge(self):
        options = create_options(self.user_id)
        del options["challenge"]
        with self.assertRaises(ValueError):
            self.credentials.create(ORIGIN, options)
        self.assertEqual(len(self.credentials.store), 0)

    def test_missing_user_id(self):
        options = create_options(self.user_id)
        del options["user"]["id"]
        with self.assertRaises(ValueError):
            self.credentials.create(ORIGIN, options)
        del options["user"]
        with self.assertRaises(ValueError):
            self.credentials.create(ORIGIN, options)
        self.assertEqual(len(self.credentials.store), 0)

    def test_public_key_wrapper(self):
        result = self.credentials.create(
            ORIGIN, {"publicKey": create_options(self.user_id)}
        )
        self.assertIn(result.id, self.credentials.store)

    def test_bytes_challenge(self):
        options = create_options(self.user_id, challenge=b"\xfb\xff")
        result = self.credentials.create(ORIGIN, options)
        self.assertEqual(result.response.client_data.challenge, "-_8")

    def test_rp_id_from_origin(self):
        options = create_options(self.user_id)
        del options["rp"]["id"]
        result = self.credentials.create("https://login.example.org", options)
        self.assertEqual(
            parse_attestation(result).auth_data.rp_id_hash,
            sha256(b"login.example.org"),
        )

    def test_custom_aaguid(self):
        aaguid = bytes.fromhex("F8A011F38C0A4D15800617111F9EDC7D")
        credentials = MockCredentials(aaguid=aaguid)
        result = credentials.create(ORIGIN, create_options(self.user_id))
        self.assertEqual(
            parse_attestation(result).auth_data.credential_data.aaguid, aaguid
        )

    def test_unique_ids(self):
        ids = {
            self.credentials.create(ORIGIN, create_options(self.user_id)).id
            for _ in range(10)
        }
        self.assertEqual(len(ids), 10)
        self.assertEqual(len(self.credentials.store), 10)

    def test_key_generation_failure(self):
        with mock.patch.object(
            ec, "generate_private_key", side_effect=RuntimeError("no entropy")
        ):
            with self.assertRaisesRegex(RuntimeError, "no entropy"):
                self.credentials.create(ORIGIN, create_options(self.user_id))
        self.assertEqual(len(self.credentials.store), 0)


class TestGet(unittest.TestCase):
    def setUp(self):
        self.credentials = MockCredentials()
        self.user_id = str(uuid.uuid4())
        self.registration = self.credentials.create(
            ORIGIN, create_options(self.user_id)
        )
        self.credential_id = self.registration.id

    def test_get(self):
        result = self.credentials.get(ORIGIN, request_options(), self.credential_id)
        data = dict(result)

        self.assertEqual(data["id"], self.credential_id)
        self.assertEqual(data["rawId"], self.credential_id)
        self.assertEqual(data["type"], "public-key")
        self.assertEqual(data["clientExtensionResults"], {})
        self.assertEqual(data["response"]["userHandle"], self.user_id)
        self.assertEqual(
            websafe_decode(data["response"]["clientDataJSON"]),
            b'{"type":"webauthn.get","challenge":"'
            + ASSERTION_CHALLENGE.encode()
            + b'","origin":"https://localhost:8000"}',
        )

        auth_data = AuthenticatorData(
            websafe_decode(data["response"]["authenticatorData"])
        )
        self.assertEqual(len(auth_data), 37)
        self.assertEqual(auth_data.rp_id_hash, sha256(b"example.com"))
        self.assertEqual(auth_data.flags, AuthenticatorData.FLAG.UP)
        self.assertEqual(auth_data.counter, 1)

    def test_signature(self):
        result = self.credentials.get(ORIGIN, request_options(), self.credential_id)
        response = dict(result)["response"]
        auth_data = websafe_decode(response["authenticatorData"])
        client_data = websafe_decode(response["clientDataJSON"])
        signature = websafe_decode(response["signature"])

        self.assertEqual(signature[0], 0x30)
        credential_data = parse_attestation(self.registration).auth_data.credential_data
        credential_data.public_key.verify(auth_data + sha256(client_data), signature)

    def test_counter_increments(self):
        counters = [
            self.credentials.get(
                ORIGIN, request_options(), self.credential_id
            ).response.authenticator_data.counter
            for _ in range(5)
        ]
        self.assertEqual(counters, [1, 2, 3, 4, 5])
        self.assertEqual(self.credentials.store[self.credential_id].sign_count, 5)

    def test_counter_per_credential(self):
        other = self.credentials.create(ORIGIN, create_options("other")).id
        self.credentials.get(ORIGIN, request_options(), self.credential_id)
        self.credentials.get(ORIGIN, request_options(), self.credential_id)
        result = self.credentials.get(ORIGIN, request_options(), other)
        self.assertEqual(result.response.authenticator_data.counter, 1)
        self.assertEqual(result.response.user_handle, "other")

    def test_binary_credential_id(self):
        result = self.credentials.get(
            ORIGIN, request_options(), websafe_decode(self.credential_id)
        )
        self.assertEqual(result.id, self.credential_id)

    def test_unknown_credential(self):
        with self.assertRaises(UnknownCredential):
            self.credentials.get(ORIGIN, request_options(), "nonexistent-id")
        self.assertEqual(self.credentials.store[self.credential_id].sign_count, 0)

    def test_unknown_credential_without_options(self):
        with self.assertRaises(UnknownCredential):
            self.credentials.get(ORIGIN, {}, "nonexistent-id")
        self.assertEqual(self.credentials.store[self.credential_id].sign_count, 0)

    def test_missing_challenge(self):
        with self.assertRaises(ValueError):
            self.credentials.get(ORIGIN, {"rpId": RP_ID}, self.credential_id)
        self.assertEqual(self.credentials.store[self.credential_id].sign_count, 0)

    def test_public_key_wrapper(self):
        result = self.credentials.get(
            ORIGIN, {"publicKey": request_options()}, self.credential_id
        )
        self.assertEqual(result.response.authenticator_data.counter, 1)

    def test_signing_failure_keeps_counter(self):
        with mock.patch.object(
            Credential, "sign", side_effect=RuntimeError("signing failed")
        ):
            with self.assertRaisesRegex(RuntimeError, "signing failed"):
                self.credentials.get(ORIGIN, request_options(), self.credential_id)
        self.assertEqual(self.credentials.store[self.credential_id].sign_count, 1)

        result = self.credentials.get(ORIGIN, request_options(), self.credential_id)
        self.assertEqual(result.response.authenticator_data.counter, 2)

    def test_shared_store(self):
        other = MockCredentials(store=self.credentials.store)
        result = other.get(ORIGIN, request_options(), self.credential_id)
        self.assertEqual(result.response.authenticator_data.counter, 1)

        separate = MockCredentials()
        with self.assertRaises(UnknownCredential):
            separate.get(ORIGIN, request_options(), self.credential_id)

    def test_concurrent_get(self):
        counters = []
        lock = threading.Lock()

        def work():
            for _ in range(10):
                result = self.credentials.get(
                    ORIGIN, request_options(), self.credential_id
                )
                with lock:
                    counters.append(result.response.authenticator_data.counter)

        threads = [threading.Thread(target=work) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        self.assertEqual(sorted(counters), list(range(1, 41)))

    def test_json_serializable(self):
        result = self.credentials.get(ORIGIN, request_options(), self.credential_id)
        data = json.loads(json.dumps(dict(result)))
        self.assertEqual(data["type"], "public-key")
        self.assertEqual(data["response"]["userHandle"], self.user_id)
