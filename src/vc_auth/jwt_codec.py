"""
JWT credential/presentation codec.

Credentials and presentations are compact JWS tokens signed with ES256K
(ECDSA over secp256k1 with SHA-256). Payloads follow the W3C VC Data
Model v2 with the document fields at the top level; VC-JWT 1.1 payloads
that nest them under ``vc``/``vp`` are read as well.

Supported:
- Algorithm: ES256K, 64-byte r || s signatures
- Key discovery: DID resolution over HTTP (publicKeyJwk)
- Status: StatusList2021 and Bitstring Status List
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric import ec
from jwt.utils import base64url_decode, base64url_encode

from vc_auth.codec import CodecError
from vc_auth.did_resolver import DIDResolutionError, DIDResolver, PublicKeyJWK
from vc_auth.models import PRESENTATION_TYPE, PresentationContents, Proof
from vc_auth.statuslist import CredentialStatus, StatusListChecker, StatusListError

logger = logging.getLogger(__name__)

ALGORITHM = "ES256K"
SIGNATURE_LENGTH = 64
CREDENTIAL_TYPE = "VerifiableCredential"
KEY_FRAGMENT = "#key-1"

# JWT claims that frame a document rather than belong to it
REGISTERED_CLAIMS = {"iss", "sub", "aud", "exp", "nbf", "iat", "jti", "nonce"}


def _json_segment(data: dict[str, Any]) -> bytes:
    return base64url_encode(json.dumps(data, separators=(",", ":")).encode("utf-8"))


def _did_of(reference: str) -> str:
    return reference.split("#")[0].lower()


def _parse_datetime(value: str) -> datetime:
    """Parse an XML Schema dateTime as used by validFrom/validUntil."""
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _decode_unverified(token: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Split a compact JWT into header and payload without checking its signature.

    Raises:
        CodecError: If the token is not a JWT with JSON object segments.
    """
    try:
        header = jwt.get_unverified_header(token)
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError as e:
        raise CodecError(f"Malformed JWT: {e}") from e
    if not isinstance(payload, dict):
        raise CodecError("JWT payload is not a JSON object")
    return header, payload


def _document_contents(payload: dict[str, Any], nested_claim: str) -> dict[str, Any]:
    """Return the document fields of a JWT payload."""
    nested = payload.get(nested_claim)
    if isinstance(nested, dict):
        contents = dict(nested)
        if nested_claim == "vc" and "issuer" not in contents and "iss" in payload:
            contents["issuer"] = payload["iss"]
        if nested_claim == "vp" and "holder" not in contents and "iss" in payload:
            contents["holder"] = payload["iss"]
        return contents
    return {k: v for k, v in payload.items() if k not in REGISTERED_CLAIMS}


def jwk_to_public_key(jwk: PublicKeyJWK) -> ec.EllipticCurvePublicKey:
    """Convert a secp256k1 JWK to an EC public key object."""
    x = int.from_bytes(base64url_decode(jwk.x), byteorder="big")
    y = int.from_bytes(base64url_decode(jwk.y), byteorder="big")
    return ec.EllipticCurvePublicNumbers(x, y, ec.SECP256K1()).public_key()


class JWTCredential:
    """A credential in compact JWT form."""

    def __init__(self, token: str, header: dict[str, Any], payload: dict[str, Any]) -> None:
        self.token = token
        self.header = header
        self.payload = payload

    def contents(self) -> dict[str, Any]:
        return _document_contents(self.payload, "vc")

    def serialize(self) -> str:
        return self.token

    @property
    def issuer(self) -> str | None:
        """Issuer DID, whether given as a string or an object with an id."""
        issuer = self.contents().get("issuer")
        if isinstance(issuer, dict):
            issuer = issuer.get("id")
        return issuer if isinstance(issuer, str) else None


class JWTPresentation:
    """A presentation in JWT form, signed once a proof is attached."""

    def __init__(
        self,
        header: dict[str, Any],
        payload: dict[str, Any],
        signature: bytes | None = None,
        signing_input: bytes | None = None,
    ) -> None:
        self.header = header
        self.payload = payload
        self._signature = signature
        # Parsed tokens keep their original segments so re-serialization is exact
        self._signing_input = signing_input

    @property
    def holder(self) -> str | None:
        holder = self.contents().get("holder")
        return holder if isinstance(holder, str) else None

    @property
    def signature(self) -> bytes | None:
        return self._signature

    def contents(self) -> dict[str, Any]:
        return _document_contents(self.payload, "vp")

    def signing_input(self) -> bytes:
        """Return ``b64url(header) "." b64url(payload)``."""
        if self._signing_input is not None:
            return self._signing_input
        try:
            return _json_segment(self.header) + b"." + _json_segment(self.payload)
        except (TypeError, ValueError) as e:
            raise CodecError(f"Presentation is not JSON serializable: {e}") from e

    def add_proof(self, proof: Proof) -> None:
        if self._signature is not None:
            raise CodecError("Presentation already carries a proof")
        if len(proof.signature) != SIGNATURE_LENGTH:
            raise CodecError(
                f"{ALGORITHM} proof must be {SIGNATURE_LENGTH} bytes, got {len(proof.signature)}"
            )
        self._signing_input = self.signing_input()
        self._signature = proof.signature

    def serialize(self) -> str:
        """Return the compact JWT."""
        if self._signature is None:
            raise CodecError("Presentation has no proof")
        return (self.signing_input() + b"." + base64url_encode(self._signature)).decode("ascii")


class JWTCodec:
    """Codec for ES256K JWT credentials and presentations.

    Public keys are looked up through a DID resolver, so each codec instance
    carries its own resolver configuration.
    """

    credentials_field = "verifiableCredential"
    subject_field = "credentialSubject"

    def __init__(
        self,
        did_resolver: DIDResolver,
        statuslist_checker: StatusListChecker | None = None,
        verify_status: bool = True,
        leeway: float = 0,
    ) -> None:
        """Initialize the codec.

        Args:
            did_resolver: Resolver used to find holder and issuer keys.
            statuslist_checker: Custom status list checker. Created if not
                provided.
            verify_status: Whether to check embedded credentials' status lists.
            leeway: Clock skew tolerated for exp/nbf/iat, in seconds.
        """
        self.did_resolver = did_resolver
        self.statuslist_checker = statuslist_checker or StatusListChecker()
        self.verify_status = verify_status
        self.leeway = leeway

    @classmethod
    def from_did_url(cls, did_url: str, **kwargs: Any) -> JWTCodec:
        """Create a codec resolving DIDs through ``did_url``."""
        return cls(DIDResolver(did_url), **kwargs)

    def parse_credential(self, wire: str) -> JWTCredential:
        """Decode a credential JWT without verifying it."""
        if not isinstance(wire, str) or not wire:
            raise CodecError("Credential must be a non-empty JWT string")
        header, payload = _decode_unverified(wire)
        return JWTCredential(wire, header, payload)

    def new_presentation(self, contents: PresentationContents) -> JWTPresentation:
        """Build an unsigned presentation.

        Raises:
            CodecError: If the holder, types or context are unusable.
        """
        if not contents.holder:
            raise CodecError("Presentation holder is required")
        if PRESENTATION_TYPE not in contents.types:
            raise CodecError(f"Presentation type must include {PRESENTATION_TYPE!r}")
        if not contents.context:
            raise CodecError("Presentation context is required")

        wires = []
        for credential in contents.credentials:
            wire = credential.serialize()
            if not isinstance(wire, str):
                raise CodecError("Embedded credentials must serialize to JWT strings")
            wires.append(wire)

        header = {"alg": ALGORITHM, "kid": contents.holder + KEY_FRAGMENT, "typ": "JWT"}
        payload = {
            "@context": list(contents.context),
            "type": list(contents.types),
            "holder": contents.holder,
            self.credentials_field: wires,
            "iss": contents.holder,
            "iat": int(time.time()),
        }
        return JWTPresentation(header, payload)

    async def parse_presentation(
        self,
        token: str,
        verify_proof: bool = True,
        validate_credentials: bool = True,
    ) -> JWTPresentation:
        """Parse a presentation token and optionally verify it.

        Args:
            token: Compact JWT, bare or JSON-quoted.
            verify_proof: Check the holder's signature and time claims.
            validate_credentials: Check every embedded credential's
                signature, validity window and status.

        Returns:
            The parsed presentation.

        Raises:
            CodecError: If parsing or any requested check fails.
        """
        token = token.strip()
        if token.startswith('"'):
            try:
                token = json.loads(token)
            except ValueError as e:
                raise CodecError(f"Malformed quoted token: {e}") from e
            if not isinstance(token, str):
                raise CodecError("Quoted token is not a string")

        header, payload = _decode_unverified(token)
        if header.get("alg") != ALGORITHM:
            raise CodecError(f"Unsupported algorithm: {header.get('alg')}")

        signing_input, _, signature_segment = token.rpartition(".")
        presentation = JWTPresentation(
            header,
            payload,
            signature=base64url_decode(signature_segment),
            signing_input=signing_input.encode("ascii"),
        )

        types = presentation.contents().get("type", [])
        if PRESENTATION_TYPE not in (types if isinstance(types, list) else [types]):
            raise CodecError(f"Token type does not include {PRESENTATION_TYPE!r}")

        if verify_proof:
            await self._verify_presentation_proof(token, presentation)

        if validate_credentials:
            credentials = presentation.contents().get(self.credentials_field)
            if isinstance(credentials, list):
                for index, wire in enumerate(credentials):
                    await self._validate_credential(index, wire)

        return presentation

    async def _verify_presentation_proof(self, token: str, presentation: JWTPresentation) -> None:
        holder = presentation.holder
        if not holder:
            raise CodecError("Presentation has no holder")

        kid = presentation.header.get("kid") or holder
        if _did_of(kid) != _did_of(holder):
            raise CodecError(f"Proof key {kid} does not belong to holder {holder}")

        await self._verify_jwt(token, kid, what="presentation")
        logger.debug("Verified presentation proof of %s", holder)

    async def _validate_credential(self, index: int, wire: Any) -> None:
        if not isinstance(wire, str):
            raise CodecError(f"Credential {index} is not a JWT string")

        credential = self.parse_credential(wire)
        contents = credential.contents()
        issuer = credential.issuer
        if not issuer:
            raise CodecError(f"Credential {index} has no issuer")

        kid = credential.header.get("kid") or issuer
        if _did_of(kid) != _did_of(issuer):
            raise CodecError(f"Credential {index} key {kid} does not belong to issuer {issuer}")

        await self._verify_jwt(wire, kid, what=f"credential {index}")

        types = contents.get("type", [])
        if CREDENTIAL_TYPE not in (types if isinstance(types, list) else [types]):
            raise CodecError(f"Credential {index} type must include {CREDENTIAL_TYPE!r}")

        self._check_validity_period(index, contents)

        if self.verify_status:
            try:
                results = await self.statuslist_checker.check_status(contents)
            except StatusListError as e:
                raise CodecError(f"Credential {index} status check failed: {e}") from e
            for result in results:
                if result.status == CredentialStatus.REVOKED:
                    raise CodecError(f"Credential {index}: {result.message}")
                if result.status == CredentialStatus.SUSPENDED:
                    logger.warning("Credential %d: %s", index, result.message)

    async def _verify_jwt(self, token: str, kid: str, what: str) -> None:
        try:
            jwk = await self.did_resolver.resolve_key(kid)
        except DIDResolutionError as e:
            raise CodecError(f"Cannot resolve key for {what}: {e}") from e

        try:
            jwt.decode(
                token,
                key=jwk_to_public_key(jwk),
                algorithms=[ALGORITHM],
                options={"verify_aud": False},
                leeway=self.leeway,
            )
        except jwt.InvalidTokenError as e:
            raise CodecError(f"Invalid {what} signature or claims: {e}") from e
        except ValueError as e:
            raise CodecError(f"Unusable public key for {what}: {e}") from e

    def _check_validity_period(self, index: int, contents: dict[str, Any]) -> None:
        now = datetime.now(timezone.utc)
        try:
            valid_from = contents.get("validFrom")
            if isinstance(valid_from, str) and _parse_datetime(valid_from) > now:
                raise CodecError(f"Credential {index} is not valid before {valid_from}")
            valid_until = contents.get("validUntil")
            if isinstance(valid_until, str) and _parse_datetime(valid_until) < now:
                raise CodecError(f"Credential {index} expired at {valid_until}")
        except ValueError as e:
            raise CodecError(f"Credential {index} has a malformed validity date: {e}") from e
