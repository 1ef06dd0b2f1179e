"""Capability interface implemented by each Honeywell vendor client."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import aiohttp

from .models import (
    ControlChanges,
    CredentialPayload,
    DeviceDescriptor,
    NormalizedThermostatState,
    VendorKind,
)


class VendorAdapter(ABC):
    """Authenticate, enumerate, read and control thermostats for one vendor.

    Every operation raises ``AuthError`` when the vendor rejects the
    credentials, so callers can decide whether renewing and retrying applies.
    Adapters hold no credential state of their own: the payload is passed in
    on every call.
    """

    kind: VendorKind

    def __init__(self, session: aiohttp.ClientSession, timeout: int = 30) -> None:
        self._session = session
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    @abstractmethod
    async def authenticate(self, credentials: Any) -> CredentialPayload:
        """Log in with user supplied credential material."""

    @abstractmethod
    async def list_devices(
        self, payload: CredentialPayload
    ) -> list[DeviceDescriptor]:
        """Enumerate the thermostats on the account."""

    @abstractmethod
    async def fetch_state(
        self, payload: CredentialPayload, device: DeviceDescriptor
    ) -> NormalizedThermostatState:
        """Fetch and normalize the current state of one thermostat."""

    @abstractmethod
    async def push_control(
        self,
        payload: CredentialPayload,
        device: DeviceDescriptor,
        changes: ControlChanges,
    ) -> None:
        """Apply a partial control change."""

    @abstractmethod
    async def refresh(self, payload: CredentialPayload) -> CredentialPayload:
        """Return a renewed credential payload."""
