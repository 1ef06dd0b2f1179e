"""Fakes shared by the test modules."""
from __future__ import annotations

import datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from custom_components.honeywell_unified.api import (
    DeviceDescriptor,
    DeviceKey,
    NormalizedThermostatState,
    OAuthCredentials,
    SessionCredentials,
    VendorKind,
)


def make_response(
    status: int = 200,
    json_data: Any = None,
    cookies: list[str] | None = None,
    history: tuple = (),
) -> MagicMock:
    """A stand-in for an aiohttp ClientResponse."""
    resp = MagicMock()
    resp.status = status
    resp.history = history
    resp.json = AsyncMock(return_value=json_data)
    resp.headers.getall = MagicMock(
        side_effect=lambda name, default=None: list(cookies or default or [])
    )
    return resp


def make_session(get=None, post=None) -> MagicMock:
    session = MagicMock()
    session.get = AsyncMock(return_value=get)
    session.post = AsyncMock(return_value=post)
    return session


class FakeStore:
    """In-memory replacement for homeassistant.helpers.storage.Store."""

    def __init__(self, data: dict | None = None) -> None:
        self.data = data
        self.saves = 0

    async def async_load(self) -> dict | None:
        return self.data

    async def async_save(self, data: dict) -> None:
        self.data = data
        self.saves += 1


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def session_credentials(cookie: str = ".ASPXAUTH_TRUEHOME=abc") -> SessionCredentials:
    return SessionCredentials(
        username="user@example.com", password="secret", cookie=cookie, user_id=42
    )


def oauth_credentials(
    access_token: str = "access-1",
    expires_in: datetime.timedelta = datetime.timedelta(minutes=30),
) -> OAuthCredentials:
    return OAuthCredentials(
        consumer_key="consumerkey123",
        consumer_secret="consumersecret",
        access_token=access_token,
        refresh_token="refresh-1",
        expires_at=utcnow() + expires_in,
    )


def descriptor(
    kind: VendorKind = VendorKind.TCC, location: str = "1", device: str = "2", name: str = "Hall"
) -> DeviceDescriptor:
    return DeviceDescriptor(key=DeviceKey(kind, location, device), name=name)


def thermostat_state(mode: str = "cool", temperature: float = 74.0) -> NormalizedThermostatState:
    return NormalizedThermostatState(
        temperature=temperature,
        humidity=40,
        heating_setpoint=68.0,
        cooling_setpoint=74.0,
        mode=mode,
        fan_mode="auto",
        operating_state="idle",
        unit="F",
    )


def make_adapter(kind: VendorKind) -> MagicMock:
    """A vendor adapter whose operations are all AsyncMocks."""
    adapter = MagicMock()
    adapter.kind = kind
    adapter.authenticate = AsyncMock()
    adapter.refresh = AsyncMock()
    adapter.list_devices = AsyncMock(return_value=[])
    adapter.fetch_state = AsyncMock()
    adapter.push_control = AsyncMock()
    return adapter
