"""
Presentation token service.

Creates presentation tokens that bundle credential JWTs under a holder DID,
signed through a pluggable provider, and verifies such tokens back into
per-credential claims.
"""

from __future__ import annotations

import hashlib
import json
import logging
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from vc_auth.codec import CodecError, Credential, PresentationCodec
from vc_auth.errors import (
    ClaimExtractionError,
    CredentialParseError,
    InvalidArgumentError,
    MalformedPresentationError,
    PresentationBuildError,
    ProofAttachError,
    SerializationError,
    SigningInputError,
    TokenVerificationError,
)
from vc_auth.jwt_codec import JWTCodec
from vc_auth.models import (
    PRESENTATION_CONTEXT,
    PRESENTATION_TYPE,
    PresentationContents,
    Proof,
    ProviderOption,
    VcClaims,
    extract_address_from_did,
)
from vc_auth.provider import SigningProvider, VaultProvider
from vc_auth.vault import DEFAULT_MAX_RETRIES

logger = logging.getLogger(__name__)


class TokenService:
    """Creates and verifies presentation tokens.

    Holds no per-call state; one instance can serve concurrent tasks.
    """

    def __init__(self, provider: SigningProvider, codec: PresentationCodec) -> None:
        """Initialize the service.

        Args:
            provider: Signs presentation digests on behalf of holders.
            codec: Parses credentials and builds/verifies presentations.
        """
        self.provider = provider
        self.codec = codec

    @classmethod
    def with_vault_provider(
        cls,
        vault_address: str,
        vault_token: str,
        did_url: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> TokenService:
        """Create a service signing through Vault and resolving DIDs via ``did_url``.

        Example:
            async with TokenService.with_vault_provider(
                "http://vault:8200", vault_token, "https://resolver.example/api/v1/did"
            ) as service:
                token = await service.create_token(credentials, holder_did)
        """
        provider = VaultProvider.from_settings(vault_address, vault_token, max_retries=max_retries)
        return cls(provider, JWTCodec.from_did_url(did_url))

    async def aclose(self) -> None:
        """Release the provider's transport, if it holds one."""
        aclose = getattr(self.provider, "aclose", None)
        if aclose is not None:
            await aclose()

    async def __aenter__(self) -> TokenService:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def create_token(
        self,
        credentials: Sequence[str],
        holder_did: str,
        options: ProviderOption | None = None,
    ) -> str:
        """Create a presentation token from credential JWTs.

        Example:
            token = await service.create_token(
                [vc_jwt_1, vc_jwt_2],
                "did:nda:testnet:0x8b3b1dee8e00cb95f8b2a1d1a9a7cb8fe7d490ce",
            )

        Args:
            credentials: Credential wire forms, in presentation order. May be
                empty.
            holder_did: DID of the holder; its last segment is the signer
                address.
            options: Extra provider settings. The signer address is always
                derived from ``holder_did``.

        Returns:
            The serialized presentation, JSON-marshaled. A JWT presentation
            comes back as a quoted JSON string.

        Raises:
            InvalidArgumentError: If ``holder_did`` is empty.
            CredentialParseError: If a credential cannot be parsed.
            PresentationBuildError: If the presentation cannot be built.
            SigningInputError: If the presentation has no signing input.
            SigningError: If the provider fails.
            ProofAttachError: If the signature cannot be attached.
            SerializationError: If the signed presentation cannot be encoded.
        """
        if not holder_did:
            raise InvalidArgumentError("holder DID is required")

        parsed: list[Credential] = []
        for index, wire in enumerate(credentials):
            try:
                parsed.append(self.codec.parse_credential(wire))
            except CodecError as e:
                raise CredentialParseError(index, str(e)) from e

        contents = PresentationContents(
            holder=holder_did,
            credentials=parsed,
            types=[PRESENTATION_TYPE],
            context=list(PRESENTATION_CONTEXT),
        )

        try:
            presentation = self.codec.new_presentation(contents)
        except CodecError as e:
            raise PresentationBuildError(f"failed to build presentation: {e}") from e

        try:
            signing_input = presentation.signing_input()
        except CodecError as e:
            raise SigningInputError(f"failed to get signing input: {e}") from e

        digest = hashlib.sha256(signing_input).digest()

        signer_options = replace(
            options or ProviderOption(),
            signer_address=extract_address_from_did(holder_did),
        )
        logger.debug(
            "Signing presentation of %d credential(s) for %s",
            len(parsed), signer_options.signer_address,
        )
        signature = await self.provider.sign(digest, signer_options)

        try:
            presentation.add_proof(Proof(signature=signature))
        except CodecError as e:
            logger.warning("Signature computed for %s but token not delivered", holder_did)
            raise ProofAttachError(f"failed to attach proof: {e}") from e

        try:
            return self._marshal(presentation.serialize())
        except (CodecError, TypeError, ValueError) as e:
            logger.warning("Signature computed for %s but token not delivered", holder_did)
            raise SerializationError(f"failed to serialize presentation: {e}") from e

    async def verify_token(self, token: str) -> list[VcClaims]:
        """Verify a presentation token and return the claims of its credentials.

        Example:
            for claims in await service.verify_token(token):
                print(claims.issuer, claims.subject)

        Args:
            token: A token produced by ``create_token``.

        Returns:
            One VcClaims per embedded credential, in presentation order.

        Raises:
            TokenVerificationError: If the proof or a credential is invalid.
            MalformedPresentationError: If the credential list is missing.
            CredentialParseError: If an embedded credential cannot be parsed.
            ClaimExtractionError: If a credential lacks issuer or subject.
        """
        try:
            presentation = await self.codec.parse_presentation(
                token, verify_proof=True, validate_credentials=True
            )
        except CodecError as e:
            raise TokenVerificationError(f"token verification failed: {e}") from e

        try:
            contents = presentation.contents()
        except CodecError as e:
            raise MalformedPresentationError(f"failed to read presentation: {e}") from e

        field = self.codec.credentials_field
        if field not in contents:
            raise MalformedPresentationError(f"no {field} found in presentation")
        items = contents[field]
        if not isinstance(items, list):
            raise MalformedPresentationError(f"{field} is not an array")

        claims: list[VcClaims] = []
        for index, item in enumerate(items):
            if not isinstance(item, str):
                raise CredentialParseError(index, "credential is not a string")
            try:
                credential = self.codec.parse_credential(item)
            except CodecError as e:
                raise CredentialParseError(index, str(e)) from e
            claims.append(self._extract_claims(index, credential))

        logger.debug("Verified token with %d credential(s)", len(claims))
        return claims

    def _extract_claims(self, index: int, credential: Credential) -> VcClaims:
        try:
            contents = credential.contents()
        except CodecError as e:
            raise ClaimExtractionError(f"credential {index}: {e}") from e

        issuer = contents.get("issuer")
        if not isinstance(issuer, str):
            raise ClaimExtractionError(f"credential {index}: issuer is not a string")

        subject_field = self.codec.subject_field
        subject = contents.get(subject_field)
        if not isinstance(subject, dict):
            raise ClaimExtractionError(
                f"credential {index}: {subject_field} is not an object"
            )

        return VcClaims(issuer=issuer, subject=subject)

    @staticmethod
    def _marshal(document: Any) -> str:
        return json.dumps(document, separators=(",", ":"))
