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
Creates a new credential using the software authenticator, and authenticates it
against a python-fido2 relying party server. Requires the fido2 package.
"""

import json
import uuid

from fido2.server import Fido2Server

from soft_fido2.authenticator import MockCredentials

origin = "https://localhost:8000"

server = Fido2Server(
    {"id": "example.com", "name": "Example RP"},
    attestation="none",
    verify_origin=lambda o: o == origin,
)
credentials = MockCredentials()

user_id = str(uuid.uuid4())
user = {"id": user_id.encode(), "name": "A. User"}


# Prepare parameters for makeCredential
create_options, state = server.register_begin(user)
options = dict(create_options)["publicKey"]
options["user"]["id"] = user_id

# Create a credential
result = credentials.create(origin, options)
print("REGISTRATION RESPONSE:", json.dumps(dict(result), indent=2))

# Complete registration
auth_data = server.register_complete(state, result)
stored = [auth_data.credential_data]

print("New credential created!")
print("CREDENTIAL DATA:", auth_data.credential_data)


# Prepare parameters for getAssertion
request_options, state = server.authenticate_begin(stored)

# Authenticate the credential
result = credentials.get(origin, dict(request_options), result.id)
print("AUTHENTICATION RESPONSE:", json.dumps(dict(result), indent=2))

# Complete authenticator
server.authenticate_complete(state, stored, result)

print("Credential authenticated!")
print("SIGNATURE COUNTER:", result.response.authenticator_data.counter)
print("USER HANDLE:", dict(result)["response"]["userHandle"])
