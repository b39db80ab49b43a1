"""Shared fixtures: secp256k1 keys, DID documents, credentials and signers."""

import base64
import json

import jwt
import pytest
import respx
from httpx import Response

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.asymmetric.utils import (
    Prehashed,
    decode_dss_signature,
)

from vc_auth import DIDResolver, JWTCodec, TokenService


HOLDER_DID = "did:nda:testnet:0x2af7e8ebfec14f5e39469d2ce8442a5eef9f3fa4"
HOLDER_ADDRESS = "0x2af7e8ebfec14f5e39469d2ce8442a5eef9f3fa4"
ISSUER_DID = "did:nda:testnet:0x16c5130def6496f5de93f9076a5ceb05ce59e4b0"
DID_URL = "https://resolver.example/api/v1/did"
VAULT_URL = "http://vault:8200"
VAULT_TOKEN = "test-vault-token"


def sign_digest(private_key, digest: bytes) -> bytes:
    """Sign a SHA-256 digest and return the raw r || s signature."""
    der = private_key.sign(digest, ec.ECDSA(Prehashed(hashes.SHA256())))
    r, s = decode_dss_signature(der)
    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def public_key_jwk(public_key) -> dict:
    """Get a secp256k1 public key as JWK."""
    numbers = public_key.public_numbers()
    return {
        "kty": "EC",
        "crv": "secp256k1",
        "x": base64.urlsafe_b64encode(numbers.x.to_bytes(32, "big")).decode().rstrip("="),
        "y": base64.urlsafe_b64encode(numbers.y.to_bytes(32, "big")).decode().rstrip("="),
    }


def did_document(did: str, public_key) -> dict:
    """Create a DID Document with a single secp256k1 key."""
    return {
        "@context": ["https://www.w3.org/ns/did/v1"],
        "id": did,
        "verificationMethod": [
            {
                "id": f"{did}#key-1",
                "type": "JsonWebKey2020",
                "controller": did,
                "publicKeyJwk": public_key_jwk(public_key),
            }
        ],
        "authentication": [f"{did}#key-1"],
        "assertionMethod": [f"{did}#key-1"],
    }


class LocalKeyProvider:
    """Signing provider holding a key in memory; records every call."""

    def __init__(self, private_key) -> None:
        self.private_key = private_key
        self.calls = []

    async def sign(self, payload, options=None):
        self.calls.append((payload, options))
        return sign_digest(self.private_key, payload)


@pytest.fixture
def holder_key():
    """Holder secp256k1 key pair."""
    return ec.generate_private_key(ec.SECP256K1())


@pytest.fixture
def issuer_key():
    """Issuer secp256k1 key pair."""
    return ec.generate_private_key(ec.SECP256K1())


@pytest.fixture
def did_resolver_mock(holder_key, issuer_key):
    """Serve the holder and issuer DID Documents from the resolver endpoint."""
    with respx.mock(assert_all_called=False) as router:
        for did, key in ((HOLDER_DID, holder_key), (ISSUER_DID, issuer_key)):
            router.get(f"{DID_URL}/{did}").mock(
                return_value=Response(200, json=did_document(did, key.public_key()))
            )
        yield router


@pytest.fixture
def issue_vc(issuer_key):
    """Factory issuing ES256K credential JWTs."""

    def issue(credential_subject: dict, issuer=ISSUER_DID, key=None, drop=(), **fields) -> str:
        payload = {
            "@context": ["https://www.w3.org/ns/credentials/v2"],
            "type": ["VerifiableCredential"],
            "issuer": issuer,
            "credentialSubject": credential_subject,
            "validFrom": "2025-01-01T00:00:00Z",
        }
        payload.update(fields)
        for name in drop:
            payload.pop(name)
        issuer_id = issuer["id"] if isinstance(issuer, dict) else issuer
        return jwt.encode(
            payload,
            key or issuer_key,
            algorithm="ES256K",
            headers={"kid": f"{issuer_id}#key-1"},
        )

    return issue


@pytest.fixture
def vault_signer(holder_key):
    """respx side effect emulating the Vault signRaw endpoint with the holder key.

    The signature carries a trailing recovery byte like the real service.
    """

    def sign(request):
        payload = json.loads(request.content)["payload"]
        signature = sign_digest(holder_key, bytes.fromhex(payload[2:])) + b"\x1b"
        return Response(200, json={"data": {"signature": "0x" + signature.hex()}})

    return sign


@pytest.fixture
def codec():
    return JWTCodec(DIDResolver(DID_URL))


@pytest.fixture
def provider(holder_key):
    return LocalKeyProvider(holder_key)


@pytest.fixture
def service(provider, codec):
    return TokenService(provider, codec)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records delays without waiting."""

    def __init__(self) -> None:
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()
