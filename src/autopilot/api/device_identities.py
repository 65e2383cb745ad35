#!/usr/bin/env python3
"""Imported Device Identity operations.

This module provides the DeviceIdentityManager class for the two calls the
import engine makes against the device-management API.

API Details:
    - Create:  POST /importedDeviceIdentities
    - Read:    GET  /importedDeviceIdentities/{id}
    - Search:  GET  /importedDeviceIdentities (collection, filtered client-side)
    - The service processes a created identity asynchronously; its
      ``state.deviceImportStatus`` moves from "pending" to "complete" or
      "error" some time later.

Example:
    async with GraphClient(token_manager) as client:
        manager = DeviceIdentityManager(client)
        created = await manager.create_identity("SN12345", hardware_hash)
        identity = await manager.get_identity(created["id"])
"""
import logging
from typing import Optional

from .client import GraphClient
from .exceptions import MalformedResponseError, ValidationError

logger = logging.getLogger(__name__)


class DeviceIdentityManager:
    """Create and read imported device identities.

    Attributes:
        client: GraphClient instance for API communication
    """

    ENDPOINT = "/importedDeviceIdentities"

    def __init__(self, client: GraphClient):
        self.client = client

    async def create_identity(
        self,
        serial_number: str,
        hardware_identifier: str,
        *,
        group_tag: Optional[str] = None,
    ) -> dict:
        """Submit a device identity for import.

        Args:
            serial_number: Device serial number
            hardware_identifier: Base64 hardware hash of the device
            group_tag: Optional group tag (order identifier)

        Returns:
            The created resource. It may or may not carry an ``id``.

        Raises:
            ValidationError: If serial number or identifier is empty
            MalformedResponseError: If the response is not a JSON object
        """
        if not serial_number or not hardware_identifier:
            raise ValidationError(
                "serial_number and hardware_identifier are required",
                details={
                    "field": "serial_number" if not serial_number else "hardware_identifier"
                },
            )

        payload: dict = {
            "serialNumber": serial_number,
            "hardwareIdentifier": hardware_identifier,
            "state": {
                "deviceImportStatus": "pending",
                "deviceRegistrationId": "",
                "deviceErrorCode": 0,
                "deviceErrorName": "",
            },
        }
        if group_tag:
            payload["groupTag"] = group_tag

        logger.info(f"Submitting device identity: {serial_number}")

        response = await self.client.post(self.ENDPOINT, json_body=payload)
        if not isinstance(response, dict):
            raise MalformedResponseError(
                f"Expected a JSON object from create, got {type(response).__name__}",
                details={"endpoint": self.ENDPOINT},
            )
        return response

    async def get_identity(self, identity_id: str) -> dict:
        """Read one imported device identity by id."""
        endpoint = f"{self.ENDPOINT}/{identity_id}"
        response = await self.client.get(endpoint)
        if not isinstance(response, dict):
            raise MalformedResponseError(
                f"Expected a JSON object, got {type(response).__name__}",
                details={"endpoint": endpoint},
            )
        return response

    async def find_identity(
        self,
        serial_number: str,
        hardware_identifier: Optional[str] = None,
    ) -> Optional[dict]:
        """Search the collection for the identity matching a device.

        Matching is on serial number (case-insensitive). When an entry also
        exposes its hardware identifier, it must match too.

        Returns:
            The most recently listed matching entry, or None
        """
        items = await self.client.fetch_all(self.ENDPOINT)
        match: Optional[dict] = None
        wanted = serial_number.strip().upper()

        for item in items:
            if not isinstance(item, dict):
                raise MalformedResponseError(
                    "Collection entry is not a JSON object",
                    details={"endpoint": self.ENDPOINT},
                )
            if str(item.get("serialNumber", "")).strip().upper() != wanted:
                continue
            item_hash = item.get("hardwareIdentifier")
            if item_hash and hardware_identifier and item_hash != hardware_identifier:
                continue
            match = item

        logger.debug(
            f"Collection search for {serial_number}: "
            f"{'found ' + str(match.get('id')) if match else 'no match'}"
        )
        return match
