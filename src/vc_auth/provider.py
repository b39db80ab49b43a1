"""
Signing providers.

A provider turns a byte payload into a signature. Each concrete provider
reads the ``ProviderOption`` fields it needs and rejects calls that lack
them.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vc_auth.errors import InvalidArgumentError
from vc_auth.models import ProviderOption
from vc_auth.vault import DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT, VaultClient


@runtime_checkable
class SigningProvider(Protocol):
    """Signing capability used by the token service."""

    async def sign(self, payload: bytes, options: ProviderOption | None = None) -> bytes:
        """Sign ``payload`` and return the raw signature bytes."""
        ...


class VaultProvider:
    """Provider that signs through a remote Vault key-custody service.

    Requires ``options.signer_address``.
    """

    def __init__(self, vault: VaultClient) -> None:
        self.vault = vault

    @classmethod
    def from_settings(
        cls,
        address: str,
        token: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        timeout: float = DEFAULT_TIMEOUT,
        retry_on_network_error: bool = False,
    ) -> VaultProvider:
        """Create a provider connected to the Vault at ``address``."""
        return cls(
            VaultClient(
                address,
                token,
                max_retries=max_retries,
                timeout=timeout,
                retry_on_network_error=retry_on_network_error,
            )
        )

    async def sign(self, payload: bytes, options: ProviderOption | None = None) -> bytes:
        if options is None or not options.signer_address:
            raise InvalidArgumentError("signer address is required")
        return await self.vault.sign_message(payload, options.signer_address)

    async def store_private_key(self, private_key: str) -> str:
        """Provision an account; see ``VaultClient.store_private_key``."""
        return await self.vault.store_private_key(private_key)

    async def aclose(self) -> None:
        await self.vault.aclose()
