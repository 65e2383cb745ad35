#!/usr/bin/env python3
"""Unit tests for imported device identity operations."""

import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

sys.path.insert(0, str(__file__).rsplit("/tests", 1)[0])
from src.autopilot.api.device_identities import DeviceIdentityManager
from src.autopilot.api.exceptions import MalformedResponseError, ValidationError


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.post = AsyncMock()
    client.get = AsyncMock()
    client.fetch_all = AsyncMock()
    return client


# ============================================
# Create Tests
# ============================================

class TestCreateIdentity:
    """Test DeviceIdentityManager.create_identity."""

    @pytest.mark.asyncio
    async def test_posts_pending_identity(self, mock_client):
        mock_client.post.return_value = {"id": "abc"}
        manager = DeviceIdentityManager(mock_client)

        result = await manager.create_identity("SN001", "HASH", group_tag="Sales")

        assert result == {"id": "abc"}
        endpoint = mock_client.post.call_args[0][0]
        payload = mock_client.post.call_args[1]["json_body"]
        assert endpoint == "/importedDeviceIdentities"
        assert payload["serialNumber"] == "SN001"
        assert payload["hardwareIdentifier"] == "HASH"
        assert payload["groupTag"] == "Sales"
        assert payload["state"]["deviceImportStatus"] == "pending"
        assert payload["state"]["deviceErrorCode"] == 0

    @pytest.mark.asyncio
    async def test_omits_empty_group_tag(self, mock_client):
        mock_client.post.return_value = {}
        manager = DeviceIdentityManager(mock_client)

        await manager.create_identity("SN001", "HASH")

        assert "groupTag" not in mock_client.post.call_args[1]["json_body"]

    @pytest.mark.asyncio
    async def test_rejects_empty_input(self, mock_client):
        manager = DeviceIdentityManager(mock_client)

        with pytest.raises(ValidationError):
            await manager.create_identity("SN001", "")

        mock_client.post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_object_response(self, mock_client):
        mock_client.post.return_value = ["unexpected"]
        manager = DeviceIdentityManager(mock_client)

        with pytest.raises(MalformedResponseError):
            await manager.create_identity("SN001", "HASH")


# ============================================
# Read Tests
# ============================================

class TestReadIdentity:
    """Test get_identity and find_identity."""

    @pytest.mark.asyncio
    async def test_get_identity(self, mock_client):
        mock_client.get.return_value = {"id": "abc"}
        manager = DeviceIdentityManager(mock_client)

        assert await manager.get_identity("abc") == {"id": "abc"}
        mock_client.get.assert_awaited_once_with("/importedDeviceIdentities/abc")

    @pytest.mark.asyncio
    async def test_find_matches_serial_case_insensitive(self, mock_client):
        mock_client.fetch_all.return_value = [
            {"id": "1", "serialNumber": "OTHER"},
            {"id": "2", "serialNumber": "sn001"},
        ]
        manager = DeviceIdentityManager(mock_client)

        match = await manager.find_identity("SN001")

        assert match["id"] == "2"

    @pytest.mark.asyncio
    async def test_find_requires_matching_hash(self, mock_client):
        mock_client.fetch_all.return_value = [
            {"id": "1", "serialNumber": "SN001", "hardwareIdentifier": "OLD"},
            {"id": "2", "serialNumber": "SN001", "hardwareIdentifier": "NEW"},
            {"id": "3", "serialNumber": "SN001", "hardwareIdentifier": "OLD"},
        ]
        manager = DeviceIdentityManager(mock_client)

        match = await manager.find_identity("SN001", "NEW")

        assert match["id"] == "2"

    @pytest.mark.asyncio
    async def test_find_returns_latest_match(self, mock_client):
        mock_client.fetch_all.return_value = [
            {"id": "1", "serialNumber": "SN001"},
            {"id": "2", "serialNumber": "SN001"},
        ]
        manager = DeviceIdentityManager(mock_client)

        assert (await manager.find_identity("SN001"))["id"] == "2"

    @pytest.mark.asyncio
    async def test_find_no_match(self, mock_client):
        mock_client.fetch_all.return_value = [{"id": "1", "serialNumber": "OTHER"}]
        manager = DeviceIdentityManager(mock_client)

        assert await manager.find_identity("SN001") is None

    @pytest.mark.asyncio
    async def test_find_malformed_entry(self, mock_client):
        mock_client.fetch_all.return_value = ["not-a-dict"]
        manager = DeviceIdentityManager(mock_client)

        with pytest.raises(MalformedResponseError):
            await manager.find_identity("SN001")
