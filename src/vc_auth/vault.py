"""
Vault signing client.

Talks to a key-custody service that keeps secp256k1 accounts under
``/v1/secp/accounts`` and signs raw digests on their behalf. Requests
rejected with 429 (rate limited) or 503 (unavailable) are retried with an
attempt-indexed backoff.
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from vc_auth.errors import (
    InvalidArgumentError,
    RemoteSigningError,
    RetryExhaustedError,
    SigningError,
)

logger = logging.getLogger(__name__)

CONTENT_TYPE_JSON = "application/json"
ACCEPT_HEADER = "*/*"
DEFAULT_TIMEOUT = 10.0
DEFAULT_MAX_RETRIES = 3

DIGEST_LENGTH = 32
SIGNATURE_LENGTH = 64
RETRYABLE_STATUS_CODES = frozenset({429, 503})

_ADDRESS_PATTERN = re.compile(r"^0x[0-9a-fA-F]{40}$")


def backoff_delay(attempt: int) -> float:
    """Seconds to wait after the rejected attempt with the given 0-based index."""
    return float(attempt + 1)


def is_valid_address(address: str | None) -> bool:
    """Check for a ``0x``-prefixed, 42-character hex account address."""
    return bool(address) and _ADDRESS_PATTERN.match(address) is not None


@dataclass
class SignMessageRequest:
    """Body of a signRaw request."""

    payload: str

    @classmethod
    def for_digest(cls, digest: bytes) -> SignMessageRequest:
        return cls(payload="0x" + digest.hex())

    def to_dict(self) -> dict[str, Any]:
        return {"payload": self.payload}


@dataclass
class SignMessageResponse:
    """Decoded body of a successful signRaw response."""

    signature: bytes

    @classmethod
    def from_dict(cls, data: Any) -> SignMessageResponse:
        """Parse ``{"data": {"signature": "0x..."}}``.

        Raises:
            ValueError: If the body does not have the expected shape.
        """
        try:
            signed = data["data"]["signature"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Missing data.signature: {e}") from e
        if not isinstance(signed, str):
            raise ValueError("data.signature is not a string")
        if signed[:2].lower() == "0x":
            signed = signed[2:]
        return cls(signature=bytes.fromhex(signed))


@dataclass
class StorePrivateKeyRequest:
    """Body of an account creation request."""

    private_key: str

    def to_dict(self) -> dict[str, Any]:
        return {"privateKey": self.private_key}


@dataclass
class StorePrivateKeyResponse:
    """Decoded body of a successful account creation response."""

    address: str
    request_id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> StorePrivateKeyResponse:
        try:
            address = data["data"]["address"]
        except (KeyError, TypeError) as e:
            raise ValueError(f"Missing data.address: {e}") from e
        if not isinstance(address, str) or not address:
            raise ValueError("data.address is not a non-empty string")
        return cls(address=address, request_id=data.get("request_id"))


class VaultClient:
    """HTTP client for the remote key-custody service.

    Holds only immutable configuration and a reusable ``httpx.AsyncClient``,
    so one instance can be shared by concurrent tasks.
    """

    def __init__(
        self,
        address: str,
        token: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = DEFAULT_TIMEOUT,
        retry_on_network_error: bool = False,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            address: Base URL of the service (e.g. http://vault:8200).
            token: Authentication token sent as ``X-Vault-Token``.
            max_retries: Retries after a 429/503 answer. Negative values fall
                back to the default.
            timeout: Per-request timeout in seconds.
            retry_on_network_error: Also retry connection failures and
                timeouts on the same schedule.
            http_client: Transport to reuse. Created if not provided; a
                transport passed in is left open by ``aclose``.
            sleep: Awaitable used for backoff waits. Defaults to
                ``asyncio.sleep``.
        """
        self.address = address.rstrip("/")
        self.token = token
        self.max_retries = max_retries if max_retries >= 0 else DEFAULT_MAX_RETRIES
        self.timeout = timeout
        self.retry_on_network_error = retry_on_network_error
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep or asyncio.sleep

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> VaultClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def store_private_key(self, private_key: str) -> str:
        """Store a private key and return the address of the new account.

        Args:
            private_key: Hex-encoded secp256k1 private key.

        Returns:
            The account address to sign with.

        Raises:
            InvalidArgumentError: If the key is empty.
            SigningError: If the service rejects the request.
        """
        if not private_key:
            raise InvalidArgumentError("private key is required")

        url = f"{self.address}/v1/secp/accounts"
        body = StorePrivateKeyRequest(private_key=private_key).to_dict()
        response = await self._post_with_retry(url, body)

        try:
            parsed = StorePrivateKeyResponse.from_dict(response.json())
        except ValueError as e:
            raise RemoteSigningError(
                response.status_code, response.text, f"failed to decode response: {e}"
            ) from e

        logger.info("Stored private key for account %s", parsed.address)
        return parsed.address

    async def sign_message(self, payload: bytes, address: str) -> bytes:
        """Sign a 32-byte digest with the given account.

        Args:
            payload: SHA-256 digest of the message.
            address: ``0x``-prefixed hex address of the signing account.

        Returns:
            The 64-byte signature (r || s). Extra trailing bytes returned by
            the service are dropped.

        Raises:
            InvalidArgumentError: If the payload or address is malformed.
            RemoteSigningError: If the service answers with a terminal status
                or an unreadable body.
            RetryExhaustedError: If every attempt was rejected with 429/503.
            SigningError: If the request could not be sent.
        """
        if len(payload) != DIGEST_LENGTH:
            raise InvalidArgumentError(
                f"payload must be {DIGEST_LENGTH} bytes, got {len(payload)}"
            )
        if not is_valid_address(address):
            raise InvalidArgumentError(
                f"address must be a 0x-prefixed 42 character hex string: {address!r}"
            )

        url = f"{self.address}/v1/secp/accounts/{address}/signRaw"
        body = SignMessageRequest.for_digest(payload).to_dict()
        response = await self._post_with_retry(url, body)

        try:
            parsed = SignMessageResponse.from_dict(response.json())
        except ValueError as e:
            raise RemoteSigningError(
                response.status_code, response.text, f"failed to decode response: {e}"
            ) from e

        if len(parsed.signature) < SIGNATURE_LENGTH:
            raise RemoteSigningError(
                response.status_code,
                response.text,
                f"signature shorter than {SIGNATURE_LENGTH} bytes",
            )
        return parsed.signature[:SIGNATURE_LENGTH]

    async def _post_with_retry(self, url: str, body: dict[str, Any]) -> httpx.Response:
        """POST ``body`` and return the first 200 response.

        Cancellation of the calling task interrupts both the pending request
        and the backoff wait.
        """
        headers = {
            "Content-Type": CONTENT_TYPE_JSON,
            "Accept": ACCEPT_HEADER,
            "X-Vault-Token": self.token,
        }
        attempts = self.max_retries + 1
        last_response: httpx.Response | None = None

        for attempt in range(attempts):
            try:
                response = await self._client.post(
                    url, json=body, headers=headers, timeout=self.timeout
                )
            except httpx.TransportError as e:
                if self.retry_on_network_error and attempt < self.max_retries:
                    delay = backoff_delay(attempt)
                    logger.warning(
                        "Request to %s failed (%s), retrying in %.0fs (attempt %d/%d)",
                        url, e, delay, attempt + 1, attempts,
                    )
                    await self._sleep(delay)
                    continue
                raise SigningError(f"failed to send request to {url}: {e}") from e

            if response.status_code == httpx.codes.OK:
                return response

            if response.status_code not in RETRYABLE_STATUS_CODES:
                raise RemoteSigningError(response.status_code, response.text)

            last_response = response
            if attempt < self.max_retries:
                delay = backoff_delay(attempt)
                logger.warning(
                    "%s answered %d, retrying in %.0fs (attempt %d/%d)",
                    url, response.status_code, delay, attempt + 1, attempts,
                )
                await self._sleep(delay)

        # The final attempt either returned, raised or left a 429/503 here
        raise RetryExhaustedError(attempts, last_response.status_code, last_response.text)
