"""
Error taxonomy for token creation, verification and remote signing.

Every wrapped failure keeps its origin as ``__cause__``.
"""

from __future__ import annotations


class VCAuthError(Exception):
    """Base class for all vc-auth errors."""


class InvalidArgumentError(VCAuthError, ValueError):
    """Raised when a precondition is violated before any I/O happens."""


# Codec boundary (token creation)


class CredentialParseError(VCAuthError):
    """Raised when a credential wire form cannot be parsed."""

    def __init__(self, index: int, message: str) -> None:
        super().__init__(f"Credential at position {index}: {message}")
        self.index = index


class PresentationBuildError(VCAuthError):
    """Raised when an unsigned presentation cannot be built."""


class SigningInputError(VCAuthError):
    """Raised when a presentation cannot produce its signing input."""


class ProofAttachError(VCAuthError):
    """Raised when a proof cannot be attached to a presentation."""


class SerializationError(VCAuthError):
    """Raised when a signed presentation cannot be serialized."""


# Signer boundary


class SigningError(VCAuthError):
    """Raised when a signing provider fails to produce a signature."""


class RemoteSigningError(SigningError):
    """Raised when the remote signer answers with a terminal status."""

    def __init__(self, status_code: int, body: str, message: str | None = None) -> None:
        detail = message or "unexpected status code"
        super().__init__(f"{detail}: {status_code}, response body: {body}")
        self.status_code = status_code
        self.body = body


class RetryExhaustedError(SigningError):
    """Raised when every attempt was rejected as rate-limited or unavailable."""

    def __init__(self, attempts: int, status_code: int, body: str) -> None:
        super().__init__(
            f"Max retries exceeded after {attempts} attempts "
            f"(last status {status_code}, response body: {body})"
        )
        self.attempts = attempts
        self.status_code = status_code
        self.body = body


# Verification path


class TokenVerificationError(VCAuthError):
    """Raised when a token's proof or embedded credentials fail verification."""


class MalformedPresentationError(VCAuthError):
    """Raised when a verified presentation lacks its credential list."""


class ClaimExtractionError(VCAuthError):
    """Raised when a credential lacks a string issuer or a subject map."""
