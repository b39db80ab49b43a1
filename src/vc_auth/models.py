"""
Call-scoped data passed between the token service, codec and signers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from vc_auth.codec import Credential


PRESENTATION_TYPE = "VerifiablePresentation"

PRESENTATION_CONTEXT = (
    "https://www.w3.org/ns/credentials/v2",
    "https://www.w3.org/ns/credentials/examples/v2",
)


def extract_address_from_did(did: str) -> str:
    """Extract the signer address from a DID string.

    Returns the substring after the last colon, or the input unchanged if it
    has no colon.

    Example:
        "did:nda:testnet:0x8b3b1dee8e00cb95f8b2a1d1a9a7cb8fe7d490ce"
        -> "0x8b3b1dee8e00cb95f8b2a1d1a9a7cb8fe7d490ce"
    """
    _, sep, tail = did.rpartition(":")
    if not sep:
        return did
    return tail


@dataclass
class PresentationContents:
    """Fields used to build an unsigned presentation."""

    holder: str
    credentials: list[Credential] = field(default_factory=list)
    types: list[str] = field(default_factory=lambda: [PRESENTATION_TYPE])
    context: list[str] = field(default_factory=lambda: list(PRESENTATION_CONTEXT))


@dataclass(frozen=True)
class Proof:
    """Signature attached to a presentation before serialization."""

    signature: bytes


@dataclass
class ProviderOption:
    """Signer selection parameters for a single signing call.

    Attributes:
        signer_address: Account the signer should sign with.
        extra: Provider-specific settings. Each provider documents the keys
            it reads.
    """

    signer_address: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)


@dataclass
class VcClaims:
    """Claims of one credential found in a verified presentation."""

    issuer: str
    subject: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"issuer": self.issuer, "subject": self.subject}
