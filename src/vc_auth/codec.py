"""
Contract between the token service and a credential/presentation codec.

The token service never looks inside credential documents or the wire
framing of presentations; it only calls the operations declared here.
"""

from __future__ import annotations

from typing import Any, Protocol

from vc_auth.models import PresentationContents, Proof


class CodecError(Exception):
    """Raised by a codec when a parse, build or verification step fails."""


class Credential(Protocol):
    """A parsed credential document."""

    def contents(self) -> dict[str, Any]:
        """Return the credential's claims as a JSON object."""
        ...

    def serialize(self) -> str:
        """Return the credential's wire form."""
        ...


class Presentation(Protocol):
    """A presentation, signed or not."""

    def contents(self) -> dict[str, Any]: ...

    def signing_input(self) -> bytes:
        """Return the canonical bytes a proof must sign."""
        ...

    def add_proof(self, proof: Proof) -> None: ...

    def serialize(self) -> Any:
        """Return the wire document (a string or a JSON-compatible structure)."""
        ...


class PresentationCodec(Protocol):
    """Parses credentials and builds, serializes and verifies presentations."""

    # Key of the credential list inside Presentation.contents()
    credentials_field: str
    # Key of the subject map inside Credential.contents()
    subject_field: str

    def parse_credential(self, wire: str) -> Credential: ...

    def new_presentation(self, contents: PresentationContents) -> Presentation: ...

    async def parse_presentation(
        self,
        token: str,
        verify_proof: bool = True,
        validate_credentials: bool = True,
    ) -> Presentation: ...
