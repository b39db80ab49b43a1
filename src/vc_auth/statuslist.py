"""
Revocation and suspension checks for embedded credentials.

A credential points at a published status list credential through
``credentialStatus``; the list's ``encodedList`` is a gzipped bitstring in
which a set bit means the status named by ``statusPurpose`` applies.

Entry types: StatusList2021Entry, BitstringStatusListEntry
https://www.w3.org/TR/vc-bitstring-status-list/
"""

from __future__ import annotations

import base64
import gzip
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

logger = logging.getLogger(__name__)

STATUS_ENTRY_TYPES = frozenset({"StatusList2021Entry", "BitstringStatusListEntry"})

# Bitstring Status List values are multibase encoded; "u" is base64url
MULTIBASE_BASE64URL = "u"


class StatusListError(Exception):
    """Raised when a status list cannot be read or an entry is malformed."""


class CredentialStatus(Enum):
    """Outcome of one status entry."""

    VALID = "valid"
    REVOKED = "revoked"
    SUSPENDED = "suspended"
    UNKNOWN = "unknown"

    @classmethod
    def for_purpose(cls, purpose: str, is_set: bool) -> CredentialStatus:
        if not is_set:
            return cls.VALID
        if purpose == "revocation":
            return cls.REVOKED
        if purpose == "suspension":
            return cls.SUSPENDED
        return cls.UNKNOWN


@dataclass
class StatusListEntry:
    """One ``credentialStatus`` item pointing into a status list."""

    list_url: str
    index: int
    purpose: str
    type: str
    id: str | None = None

    @classmethod
    def from_dict(cls, item: dict[str, Any]) -> StatusListEntry:
        """Read an entry of a supported type.

        Raises:
            StatusListError: If a required field is missing or the index
                is not a non-negative integer.
        """
        try:
            entry = cls(
                list_url=item["statusListCredential"],
                index=int(item["statusListIndex"]),
                purpose=item["statusPurpose"],
                type=item["type"],
                id=item.get("id"),
            )
        except KeyError as e:
            raise StatusListError(f"credentialStatus entry lacks {e}") from e
        except (TypeError, ValueError) as e:
            raise StatusListError(f"credentialStatus index is not an integer: {e}") from e
        if entry.index < 0:
            raise StatusListError(f"credentialStatus index is negative: {entry.index}")
        return entry


@dataclass(frozen=True)
class StatusList:
    """A decoded status bitstring; bit 0 is the most significant bit of byte 0."""

    bits: bytes

    @classmethod
    def decode(cls, encoded_list: str) -> StatusList:
        """Decode an ``encodedList`` value.

        Multibase ``u`` values are base64url without padding (Bitstring
        Status List); anything else is read as plain base64 (StatusList2021).

        Raises:
            StatusListError: If the value is not gzipped base64.
        """
        try:
            if encoded_list.startswith(MULTIBASE_BASE64URL):
                data = encoded_list[1:]
                compressed = base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))
            else:
                compressed = base64.b64decode(encoded_list)
            return cls(gzip.decompress(compressed))
        except (ValueError, OSError, EOFError) as e:
            raise StatusListError(f"encodedList is not gzipped base64: {e}") from e

    def __len__(self) -> int:
        return len(self.bits) * 8

    def is_set(self, index: int) -> bool:
        """Return the bit at ``index``.

        Raises:
            StatusListError: If ``index`` falls outside the list.
        """
        if not 0 <= index < len(self):
            raise StatusListError(f"status index {index} outside list of {len(self)} entries")
        byte, offset = divmod(index, 8)
        return bool(self.bits[byte] & (0x80 >> offset))


@dataclass
class StatusCheckResult:
    """Status of a credential according to one entry."""

    status: CredentialStatus
    purpose: str
    index: int
    message: str


class StatusListChecker:
    """Fetches status lists over HTTP and evaluates credential entries."""

    def __init__(self, timeout: float = 30.0, verify_ssl: bool = True) -> None:
        self.timeout = timeout
        self.verify_ssl = verify_ssl

    def entries(self, credential: dict[str, Any]) -> list[StatusListEntry]:
        """Return the supported status entries of a credential.

        ``credentialStatus`` may be one object or a list; entries of other
        types are skipped.
        """
        status = credential.get("credentialStatus")
        if not status:
            return []
        items = status if isinstance(status, list) else [status]
        return [
            StatusListEntry.from_dict(item)
            for item in items
            if isinstance(item, dict) and item.get("type") in STATUS_ENTRY_TYPES
        ]

    async def check_status(self, credential: dict[str, Any]) -> list[StatusCheckResult]:
        """Evaluate every status entry of ``credential``.

        Lists referenced by several entries are downloaded once per call.

        Returns:
            One result per supported entry; empty if the credential has none.

        Raises:
            StatusListError: If an entry is malformed or a list cannot be
                fetched or decoded.
        """
        entries = self.entries(credential)
        lists: dict[str, StatusList] = {}
        results: list[StatusCheckResult] = []

        for entry in entries:
            if entry.list_url not in lists:
                lists[entry.list_url] = await self.fetch(entry.list_url)
            status = CredentialStatus.for_purpose(
                entry.purpose, lists[entry.list_url].is_set(entry.index)
            )
            if status is CredentialStatus.UNKNOWN:
                message = f"Unknown status purpose {entry.purpose!r} is set at index {entry.index}"
            else:
                message = f"{entry.purpose} status at index {entry.index}: {status.value}"
            results.append(StatusCheckResult(status, entry.purpose, entry.index, message))

        return results

    async def fetch(self, url: str) -> StatusList:
        """Download a status list credential and decode its bitstring.

        Raises:
            StatusListError: On HTTP failure or a credential without
                ``credentialSubject.encodedList``.
        """
        logger.debug("Fetching status list %s", url)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, verify=self.verify_ssl) as client:
                response = await client.get(
                    url, headers={"Accept": "application/vc+ld+json, application/json"}
                )
                response.raise_for_status()
                document = response.json()
        except httpx.HTTPStatusError as e:
            raise StatusListError(
                f"status list {url} answered {e.response.status_code}"
            ) from e
        except httpx.RequestError as e:
            raise StatusListError(f"cannot reach status list {url}: {e}") from e
        except ValueError as e:
            raise StatusListError(f"status list {url} is not JSON") from e

        subject = document.get("credentialSubject") if isinstance(document, dict) else None
        encoded = subject.get("encodedList") if isinstance(subject, dict) else None
        if not isinstance(encoded, str) or not encoded:
            raise StatusListError(f"status list {url} has no encodedList")
        return StatusList.decode(encoded)
