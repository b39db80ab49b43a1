"""
DID resolution through an HTTP resolver endpoint.

Any DID method is resolved by ``GET {base_url}/{did}``; the endpoint may
answer with the bare DID Document or a resolution result wrapping it in
``didDocument``. Only secp256k1 ``publicKeyJwk`` keys are usable for ES256K.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DID_PREFIX = "did:"


class DIDResolutionError(Exception):
    """Raised when a DID or one of its keys cannot be resolved."""


def split_reference(reference: str) -> tuple[str, str | None]:
    """Split ``did#fragment`` into the DID and the fragment (or None)."""
    did, sep, fragment = reference.partition("#")
    return did, (fragment if sep else None)


@dataclass
class PublicKeyJWK:
    """An elliptic curve public key as published in ``publicKeyJwk``."""

    kty: str
    crv: str
    x: str
    y: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PublicKeyJWK:
        return cls(**{name: str(data.get(name, "")) for name in ("kty", "crv", "x", "y")})

    def is_valid_secp256k1(self) -> bool:
        return self.kty == "EC" and self.crv == "secp256k1" and bool(self.x and self.y)


@dataclass
class VerificationMethod:
    """A key entry of a DID Document. ``id`` is absolute."""

    id: str
    type: str
    controller: str
    public_key_jwk: PublicKeyJWK | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], did: str) -> VerificationMethod:
        """Read a verification method, expanding a relative ``#key`` id against ``did``."""
        method_id = str(data.get("id", ""))
        if method_id.startswith("#"):
            method_id = did + method_id
        jwk = data.get("publicKeyJwk")
        return cls(
            id=method_id,
            type=str(data.get("type", "")),
            controller=str(data.get("controller", did)),
            public_key_jwk=PublicKeyJWK.from_dict(jwk) if isinstance(jwk, dict) else None,
        )


def _references(items: Any) -> list[str]:
    """Verification relationships list ids, or embed whole methods."""
    if not isinstance(items, list):
        return []
    refs = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("id")
        if isinstance(item, str):
            refs.append(item)
    return refs


@dataclass
class DIDDocument:
    """The parts of a W3C DID Document needed to verify signatures."""

    id: str
    verification_methods: list[VerificationMethod] = field(default_factory=list)
    authentication: list[str] = field(default_factory=list)
    assertion_method: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DIDDocument:
        did = str(data.get("id", ""))
        methods = data.get("verificationMethod")
        return cls(
            id=did,
            verification_methods=[
                VerificationMethod.from_dict(m, did)
                for m in (methods if isinstance(methods, list) else [])
                if isinstance(m, dict)
            ],
            authentication=_references(data.get("authentication")),
            assertion_method=_references(data.get("assertionMethod")),
        )

    def get_verification_method(self, method_id: str) -> VerificationMethod | None:
        """Look up a method by absolute id, or by ``#fragment`` relative to this document."""
        if method_id.startswith("#"):
            method_id = self.id + method_id
        method_id = method_id.lower()
        return next((m for m in self.verification_methods if m.id.lower() == method_id), None)

    def signing_key(self, reference: str) -> PublicKeyJWK:
        """Return the secp256k1 key named by ``reference``.

        A reference without a fragment selects the first method that has
        a JWK.

        Raises:
            DIDResolutionError: If the method is missing or its key is not
                secp256k1.
        """
        _, fragment = split_reference(reference)
        if fragment is not None:
            method = self.get_verification_method(reference)
            if method is None:
                raise DIDResolutionError(f"Verification method {reference} not found in {self.id}")
        else:
            method = next((m for m in self.verification_methods if m.public_key_jwk), None)
            if method is None:
                raise DIDResolutionError(f"{self.id} publishes no publicKeyJwk")

        jwk = method.public_key_jwk
        if jwk is None:
            raise DIDResolutionError(f"Verification method {method.id} has no publicKeyJwk")
        if not jwk.is_valid_secp256k1():
            raise DIDResolutionError(
                f"Verification method {method.id} key is not secp256k1 (kty={jwk.kty}, crv={jwk.crv})"
            )
        return jwk


class DIDResolver:
    """Client for a universal-resolver style endpoint."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        verify_ssl: bool = True,
    ) -> None:
        """Initialize the DID resolver.

        Args:
            base_url: Resolution endpoint; the DID is appended as a path segment.
            timeout: HTTP request timeout in seconds.
            verify_ssl: Whether to verify SSL certificates.
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def _did_to_url(self, reference: str) -> str:
        """Map a DID or DID URL to its resolution URL; fragments are not sent.

        did:nda:testnet:0xabc#key-1 -> {base_url}/did:nda:testnet:0xabc
        """
        did, _ = split_reference(reference)
        if not did.startswith(DID_PREFIX) or did == DID_PREFIX:
            raise DIDResolutionError(f"Not a DID: {reference!r}")
        return f"{self.base_url}/{quote(did, safe=':')}"

    async def resolve(self, did: str) -> DIDDocument:
        """Fetch the DID Document of ``did`` (a fragment is ignored).

        Raises:
            DIDResolutionError: If the endpoint fails, answers with something
                other than a JSON object, or returns a document for another
                DID.
        """
        url = self._did_to_url(did)
        base_did, _ = split_reference(did)
        logger.debug("Resolving %s via %s", base_did, url)

        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = await client.get(
                    url, headers={"Accept": "application/did+ld+json, application/json"}
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise DIDResolutionError(
                f"Resolver answered {e.response.status_code} for {base_did}"
            ) from e
        except httpx.RequestError as e:
            raise DIDResolutionError(f"Cannot reach resolver for {base_did}: {e}") from e
        except ValueError as e:
            raise DIDResolutionError(f"Resolver returned invalid JSON for {base_did}") from e

        if isinstance(data, dict) and isinstance(data.get("didDocument"), dict):
            data = data["didDocument"]
        if not isinstance(data, dict):
            raise DIDResolutionError(f"DID Document for {base_did} is not a JSON object")

        document = DIDDocument.from_dict(data)
        # DIDs with hex addresses are compared without regard to case
        if document.id.lower() != base_did.lower():
            raise DIDResolutionError(
                f"DID Document id mismatch: expected {base_did}, got {document.id}"
            )
        return document

    async def resolve_key(self, reference: str) -> PublicKeyJWK:
        """Resolve a verification method reference (or bare DID) to its key.

        Raises:
            DIDResolutionError: If resolution fails or no usable key is found.
        """
        document = await self.resolve(reference)
        return document.signing_key(reference)
