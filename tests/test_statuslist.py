"""Tests for status list checking."""

import base64
import gzip

import pytest
import respx
from httpx import Response

from vc_auth import CredentialStatus, StatusListChecker
from vc_auth.statuslist import StatusList, StatusListEntry, StatusListError

STATUS_URL = "https://example.com/.well-known/vc/status/revocation"
SUSPENSION_URL = "https://example.com/.well-known/vc/status/suspension"


def bitstring(set_indices=(), length: int = 131072) -> bytes:
    ba = bytearray(length // 8)
    for index in set_indices:
        ba[index // 8] |= 0x80 >> (index % 8)
    return gzip.compress(bytes(ba))


def encoded_list(set_indices=(), length: int = 131072) -> str:
    """Plain base64, as published for StatusList2021."""
    return base64.b64encode(bitstring(set_indices, length)).decode()


def multibase_list(set_indices=(), length: int = 131072) -> str:
    """Multibase base64url, as published for Bitstring Status List."""
    return "u" + base64.urlsafe_b64encode(bitstring(set_indices, length)).decode().rstrip("=")


def status_entry(url=STATUS_URL, index=42, purpose="revocation", entry_type="StatusList2021Entry"):
    return {
        "type": entry_type,
        "statusListCredential": url,
        "statusListIndex": str(index),
        "statusPurpose": purpose,
    }


def list_credential(encoded: str) -> dict:
    return {"type": ["VerifiableCredential"], "credentialSubject": {"encodedList": encoded}}


class TestStatusList:
    """Tests for bitstring decoding."""

    def test_decode_base64(self):
        """Test decoding a plain base64 list."""
        status_list = StatusList.decode(encoded_list(length=1024))
        assert len(status_list) == 1024

    def test_decode_multibase(self):
        """Test decoding a u-prefixed base64url list."""
        status_list = StatusList.decode(multibase_list([3], length=1024))
        assert status_list.is_set(3) is True
        assert status_list.is_set(4) is False

    def test_decode_garbage(self):
        """Test that undecodable lists raise StatusListError."""
        with pytest.raises(StatusListError):
            StatusList.decode("not base64 gzip")

    def test_most_significant_bit_first(self):
        """Test that index 0 is the high bit of the first byte."""
        status_list = StatusList(bytes([0b10000000, 0b00000001]))
        assert status_list.is_set(0) is True
        assert status_list.is_set(7) is False
        assert status_list.is_set(15) is True

    def test_index_out_of_range(self):
        """Test that indices past the list end are rejected."""
        with pytest.raises(StatusListError, match="outside"):
            StatusList(bytes(1)).is_set(8)


class TestStatusListEntry:
    """Tests for credentialStatus parsing."""

    def test_from_dict(self):
        """Test reading a complete entry."""
        entry = StatusListEntry.from_dict(status_entry(index=7))
        assert entry.list_url == STATUS_URL
        assert entry.index == 7
        assert entry.purpose == "revocation"

    def test_missing_index(self):
        """Test that an entry without an index is rejected."""
        item = status_entry()
        del item["statusListIndex"]
        with pytest.raises(StatusListError, match="statusListIndex"):
            StatusListEntry.from_dict(item)

    @pytest.mark.parametrize("index", ["abc", "-1"])
    def test_bad_index(self, index):
        """Test that non-integer and negative indices are rejected."""
        with pytest.raises(StatusListError):
            StatusListEntry.from_dict(status_entry(index=index))

    def test_other_types_skipped(self):
        """Test that unknown status entry types are ignored."""
        credential = {"credentialStatus": [{"type": "RevocationList2020Status"}, status_entry()]}
        assert [e.index for e in StatusListChecker().entries(credential)] == [42]

    def test_purpose_mapping(self):
        """Test the status reported for each purpose."""
        assert CredentialStatus.for_purpose("revocation", False) == CredentialStatus.VALID
        assert CredentialStatus.for_purpose("revocation", True) == CredentialStatus.REVOKED
        assert CredentialStatus.for_purpose("suspension", True) == CredentialStatus.SUSPENDED
        assert CredentialStatus.for_purpose("message", True) == CredentialStatus.UNKNOWN


class TestStatusListChecker:
    """Tests for status checks over HTTP."""

    @pytest.mark.asyncio
    async def test_no_status(self):
        """Test that credentials without status have no results."""
        assert await StatusListChecker().check_status({}) == []

    @pytest.mark.asyncio
    @respx.mock
    async def test_valid(self):
        """Test a credential whose bit is clear."""
        respx.get(STATUS_URL).mock(return_value=Response(200, json=list_credential(encoded_list())))

        results = await StatusListChecker().check_status({"credentialStatus": status_entry()})

        assert [r.status for r in results] == [CredentialStatus.VALID]

    @pytest.mark.asyncio
    @respx.mock
    async def test_revoked(self):
        """Test a credential whose revocation bit is set."""
        respx.get(STATUS_URL).mock(
            return_value=Response(200, json=list_credential(encoded_list([42])))
        )

        results = await StatusListChecker().check_status({"credentialStatus": status_entry()})

        assert results[0].status == CredentialStatus.REVOKED
        assert results[0].index == 42

    @pytest.mark.asyncio
    @respx.mock
    async def test_bitstring_entry(self):
        """Test a BitstringStatusListEntry with a multibase list."""
        respx.get(STATUS_URL).mock(
            return_value=Response(200, json=list_credential(multibase_list([42])))
        )

        results = await StatusListChecker().check_status(
            {"credentialStatus": status_entry(entry_type="BitstringStatusListEntry")}
        )

        assert results[0].status == CredentialStatus.REVOKED

    @pytest.mark.asyncio
    @respx.mock
    async def test_shared_list_fetched_once(self):
        """Test that entries pointing at the same list download it once."""
        route = respx.get(STATUS_URL).mock(
            return_value=Response(200, json=list_credential(encoded_list([5])))
        )
        credential = {"credentialStatus": [status_entry(index=5), status_entry(index=6)]}

        results = await StatusListChecker().check_status(credential)

        assert [r.status for r in results] == [CredentialStatus.REVOKED, CredentialStatus.VALID]
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_suspension_and_revocation(self):
        """Test entries for both purposes on separate lists."""
        respx.get(STATUS_URL).mock(return_value=Response(200, json=list_credential(encoded_list())))
        respx.get(SUSPENSION_URL).mock(
            return_value=Response(200, json=list_credential(encoded_list([42])))
        )
        credential = {
            "credentialStatus": [
                status_entry(),
                status_entry(url=SUSPENSION_URL, purpose="suspension"),
            ]
        }

        results = await StatusListChecker().check_status(credential)

        assert [r.status for r in results] == [CredentialStatus.VALID, CredentialStatus.SUSPENDED]

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_encoded_list(self):
        """Test that a list without encodedList is rejected."""
        respx.get(STATUS_URL).mock(return_value=Response(200, json={"credentialSubject": {}}))

        with pytest.raises(StatusListError, match="encodedList"):
            await StatusListChecker().check_status({"credentialStatus": status_entry()})

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error(self):
        """Test that an unavailable list is an error."""
        respx.get(STATUS_URL).mock(return_value=Response(404))

        with pytest.raises(StatusListError, match="404"):
            await StatusListChecker().check_status({"credentialStatus": status_entry()})
