"""
Pytest configuration and fixtures for all tests.

Mongo is replaced by mongomock-motor and passkeys are produced by a
software authenticator, so ceremonies verify end to end.
"""

import hashlib
import json
import os
import struct

import cbor2
import pytest
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from fastapi.testclient import TestClient
from mongomock_motor import AsyncMongoMockClient
from webauthn.helpers import bytes_to_base64url

from livepoll.core.broadcaster import broadcaster
from livepoll.core.config import settings
from livepoll.db import client as db_client


class SoftAuthenticator:
    """A P-256 passkey that answers registration and login options."""

    def __init__(self, rp_id=None, origin=None):
        self.rp_id = rp_id or settings.RP_ID
        self.origin = origin or settings.origins[0]
        self.private_key = ec.generate_private_key(ec.SECP256R1())
        self.credential_id = os.urandom(16)
        self.sign_count = 0

    @property
    def credential_id_b64(self):
        return bytes_to_base64url(self.credential_id)

    def _cose_public_key(self):
        numbers = self.private_key.public_key().public_numbers()
        return cbor2.dumps(
            {
                1: 2,  # kty: EC2
                3: -7,  # alg: ES256
                -1: 1,  # crv: P-256
                -2: numbers.x.to_bytes(32, "big"),
                -3: numbers.y.to_bytes(32, "big"),
            }
        )

    def _client_data(self, ceremony, challenge, origin):
        return json.dumps(
            {
                "type": ceremony,
                "challenge": challenge,
                "origin": origin or self.origin,
                "crossOrigin": False,
            }
        ).encode()

    def _rp_id_hash(self):
        return hashlib.sha256(self.rp_id.encode()).digest()

    def create(self, options, origin=None, challenge=None):
        """Answer `publicKey` creation options like navigator.credentials.create()."""
        public_key = options["publicKey"]
        client_data = self._client_data("webauthn.create", challenge or public_key["challenge"], origin)
        auth_data = (
            self._rp_id_hash()
            + bytes([0x45])  # UP | UV | AT
            + struct.pack(">I", self.sign_count)
            + bytes(16)  # aaguid
            + struct.pack(">H", len(self.credential_id))
            + self.credential_id
            + self._cose_public_key()
        )
        attestation = cbor2.dumps({"fmt": "none", "attStmt": {}, "authData": auth_data})
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "attestationObject": bytes_to_base64url(attestation),
            },
        }

    def get(self, options, origin=None, sign_count=None):
        """Answer request options like navigator.credentials.get()."""
        if sign_count is None:
            self.sign_count += 1
            sign_count = self.sign_count
        client_data = self._client_data("webauthn.get", options["publicKey"]["challenge"], origin)
        auth_data = self._rp_id_hash() + bytes([0x05]) + struct.pack(">I", sign_count)
        signature = self.private_key.sign(
            auth_data + hashlib.sha256(client_data).digest(), ec.ECDSA(hashes.SHA256())
        )
        return {
            "id": self.credential_id_b64,
            "rawId": self.credential_id_b64,
            "type": "public-key",
            "response": {
                "clientDataJSON": bytes_to_base64url(client_data),
                "authenticatorData": bytes_to_base64url(auth_data),
                "signature": bytes_to_base64url(signature),
                "userHandle": None,
            },
        }


@pytest.fixture(autouse=True)
def mongo(monkeypatch):
    """Point the app at a fresh in-memory Mongo for every test."""
    mock_client = AsyncMongoMockClient()
    monkeypatch.setattr(db_client, "client", mock_client)
    return mock_client[settings.MONGO_DB]


@pytest.fixture(autouse=True)
def hub():
    """The process-wide broadcaster, emptied after each test."""
    yield broadcaster
    broadcaster.close_all()


@pytest.fixture
def authenticator():
    return SoftAuthenticator()


@pytest.fixture
def make_authenticator():
    return SoftAuthenticator


@pytest.fixture
def app():
    from livepoll.main import app

    return app


@pytest.fixture
def make_client(app):
    def _make(**kwargs):
        return TestClient(app, **kwargs)

    return _make


@pytest.fixture
def client(make_client):
    return make_client()


@pytest.fixture
def sign_in():
    """
    Register and log in ``username`` through the HTTP API.

    Returns the user id; the session cookie stays on ``http_client``.
    """

    def _sign_in(http_client, username, authenticator=None):
        authenticator = authenticator or SoftAuthenticator()
        options = http_client.post(
            "/api/auth/register/start", json={"username": username, "display_name": username.title()}
        ).json()
        registered = http_client.post(
            "/api/auth/register/finish",
            json={"username": username, "credential": authenticator.create(options)},
        )
        assert registered.status_code == 200, registered.text
        options = http_client.post("/api/auth/login/start", json={"username": username}).json()
        logged_in = http_client.post(
            "/api/auth/login/finish",
            json={"username": username, "credential": authenticator.get(options)},
        )
        assert logged_in.status_code == 200, logged_in.text
        return logged_in.json()["user_id"]

    return _sign_in
