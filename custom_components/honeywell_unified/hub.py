"""Accounts, devices and normalized state across both Honeywell clouds."""
from __future__ import annotations

from collections.abc import Mapping
import functools
import logging
from typing import Any

from .api import (
    ControlChanges,
    CredentialPayload,
    Device,
    DeviceKey,
    DeviceNotFound,
    NormalizedThermostatState,
    VendorAdapter,
    VendorKind,
)
from .credentials import CredentialStore
from .retry import RetryCoordinator

_LOGGER = logging.getLogger(__name__)


class ThermostatHub:
    """Single entry point for listing, refreshing and controlling thermostats."""

    def __init__(
        self,
        store: CredentialStore,
        adapters: Mapping[VendorKind, VendorAdapter],
        retry: RetryCoordinator | None = None,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.retry = retry or RetryCoordinator(store, adapters)
        self._devices: dict[DeviceKey, Device] = {}

    # Accounts

    async def async_add_account(self, credentials: Any) -> str:
        """Authenticate with credential material and discover its devices."""
        account_id = await self.async_login(credentials)
        await self.async_discover(account_id)
        return account_id

    async def async_login(self, credentials: Any) -> str:
        """Authenticate and store the resulting payload."""
        payload = await self.adapters[credentials.kind].authenticate(credentials)
        return await self.async_add_payload(payload)

    async def async_add_payload(self, payload: CredentialPayload) -> str:
        """Register an already authenticated payload."""
        account_id = payload.account_id
        await self.store.async_put(account_id, payload)
        _LOGGER.info("Added %s account %s", payload.kind.value.upper(), account_id)
        return account_id

    async def async_remove_account(
        self, account_id: str, forget_credentials: bool = True
    ) -> None:
        """Drop an account's devices and, unless told otherwise, its credentials."""
        for key in [k for k, d in self._devices.items() if d.account_id == account_id]:
            del self._devices[key]
        if forget_credentials:
            await self.store.async_remove(account_id)
            self.retry.forget(account_id)
        _LOGGER.info("Removed account %s", account_id)

    def account_kind(self, account_id: str) -> VendorKind:
        return self.store.get(account_id).kind

    # Devices

    async def async_discover(self, account_id: str) -> list[Device]:
        """Enumerate thermostats; already known devices are left alone."""
        adapter = self.adapters[self.account_kind(account_id)]
        descriptors = await self.retry.execute(account_id, adapter.list_devices)
        found = []
        for descriptor in descriptors:
            device = self._devices.get(descriptor.key)
            if device is None:
                _LOGGER.info("Found new device: %s (%s)", descriptor.name, descriptor.key)
                device = Device(descriptor, account_id)
                self._devices[descriptor.key] = device
            found.append(device)
        return found

    def devices(self, account_id: str | None = None) -> list[Device]:
        return [
            device
            for device in self._devices.values()
            if account_id is None or device.account_id == account_id
        ]

    def has_device(self, key: DeviceKey) -> bool:
        return key in self._devices

    def get_device(self, key: DeviceKey) -> Device:
        try:
            return self._devices[key]
        except KeyError:
            raise DeviceNotFound(f"Unknown device {key}") from None

    def list_states(self) -> dict[DeviceKey, NormalizedThermostatState]:
        """Last known state of every device that has been refreshed."""
        return {
            key: device.state
            for key, device in self._devices.items()
            if device.state is not None
        }

    # State and control

    async def async_refresh_device(self, key: DeviceKey) -> NormalizedThermostatState:
        """Fetch a device's state and replace the stored one."""
        device = self.get_device(key)
        adapter = self.adapters[key.kind]
        state = await self.retry.execute(
            device.account_id,
            functools.partial(_fetch_state, adapter, device),
        )
        if self._devices.get(key) is not device:
            raise DeviceNotFound(f"{device.name} was removed during refresh")
        device.state = state
        return state

    async def async_set_control(self, key: DeviceKey, changes: ControlChanges) -> None:
        """Push a partial control change to a device."""
        device = self.get_device(key)
        adapter = self.adapters[key.kind]
        _LOGGER.debug("Setting %s: %s", device.name, changes.as_dict())
        await self.retry.execute(
            device.account_id,
            functools.partial(_push_control, adapter, device, changes),
        )
        _LOGGER.info("Successfully set %s", device.name)


async def _fetch_state(
    adapter: VendorAdapter, device: Device, payload: CredentialPayload
) -> NormalizedThermostatState:
    return await adapter.fetch_state(payload, device.descriptor)


async def _push_control(
    adapter: VendorAdapter,
    device: Device,
    changes: ControlChanges,
    payload: CredentialPayload,
) -> None:
    await adapter.push_control(payload, device.descriptor, changes)
