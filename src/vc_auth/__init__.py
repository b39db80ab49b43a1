"""
vc-auth - Verifiable Presentation token library.

Supports:
- Presentation tokens bundling credential JWTs under a holder DID
- Remote signing through a Vault secp256k1 signer with 429/503 retries
- ES256K JWT credentials and presentations
- DID resolution over an HTTP resolver endpoint
- StatusList2021 / Bitstring Status List revocation checking
"""

from vc_auth.codec import CodecError, PresentationCodec
from vc_auth.did_resolver import DIDResolutionError, DIDResolver
from vc_auth.errors import (
    ClaimExtractionError,
    CredentialParseError,
    InvalidArgumentError,
    MalformedPresentationError,
    PresentationBuildError,
    ProofAttachError,
    RemoteSigningError,
    RetryExhaustedError,
    SerializationError,
    SigningError,
    SigningInputError,
    TokenVerificationError,
    VCAuthError,
)
from vc_auth.jwt_codec import JWTCodec
from vc_auth.models import ProviderOption, VcClaims, extract_address_from_did
from vc_auth.provider import SigningProvider, VaultProvider
from vc_auth.service import TokenService
from vc_auth.statuslist import CredentialStatus, StatusListChecker
from vc_auth.vault import VaultClient

__version__ = "0.1.0"

__all__ = [
    "TokenService",
    "SigningProvider",
    "VaultProvider",
    "VaultClient",
    "ProviderOption",
    "VcClaims",
    "extract_address_from_did",
    "PresentationCodec",
    "CodecError",
    "JWTCodec",
    "DIDResolver",
    "DIDResolutionError",
    "StatusListChecker",
    "CredentialStatus",
    "VCAuthError",
    "InvalidArgumentError",
    "CredentialParseError",
    "PresentationBuildError",
    "SigningInputError",
    "ProofAttachError",
    "SerializationError",
    "SigningError",
    "RemoteSigningError",
    "RetryExhaustedError",
    "TokenVerificationError",
    "MalformedPresentationError",
    "ClaimExtractionError",
]
