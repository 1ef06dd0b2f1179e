"""Vendor-agnostic types for Honeywell thermostats."""

from __future__ import annotations

from dataclasses import dataclass
import datetime
from enum import Enum
from typing import Any, Union

from .errors import ConfigError, ParseError

MODES = ("off", "heat", "cool", "auto")
FAN_MODES = ("auto", "on", "circulate")
OPERATING_STATES = ("idle", "heating", "cooling", "fan only", "unknown")
CHANGE_FIELDS = ("mode", "heating_setpoint", "cooling_setpoint", "fan_mode")

OPERATING_STATE_MAP = {
    "EquipmentOff": "idle",
    "Heat": "heating",
    "Cool": "cooling",
    "Fan": "fan only",
}


class VendorKind(str, Enum):
    """Which Honeywell cloud an account lives in."""

    LCC = "lcc"  # Resideo OAuth API
    TCC = "tcc"  # Total Connect Comfort portal


def parse_operating_state(status: str | None) -> str:
    """Map a vendor equipment status to the normalized operating state."""
    return OPERATING_STATE_MAP.get(status, "unknown")


def parse_unit(units: str | None) -> str:
    return "F" if units == "Fahrenheit" else "C"


@dataclass(frozen=True)
class OAuthCredentials:
    """Token payload for an LCC account."""

    consumer_key: str
    consumer_secret: str
    access_token: str
    refresh_token: str
    expires_at: datetime.datetime

    kind = VendorKind.LCC

    @property
    def account_id(self) -> str:
        return f"{self.kind.value}_{self.consumer_key[:8]}"

    def is_expiring(
        self, margin: datetime.timedelta, now: datetime.datetime | None = None
    ) -> bool:
        """Return whether the access token is inside the renewal window."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        return self.expires_at - margin <= now

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "consumer_key": self.consumer_key,
            "consumer_secret": self.consumer_secret,
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OAuthCredentials:
        return cls(
            consumer_key=data["consumer_key"],
            consumer_secret=data["consumer_secret"],
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=datetime.datetime.fromisoformat(data["expires_at"]),
        )


@dataclass(frozen=True)
class SessionCredentials:
    """Cookie payload for a TCC account."""

    username: str
    password: str
    cookie: str
    user_id: int

    kind = VendorKind.TCC

    @property
    def account_id(self) -> str:
        return f"{self.kind.value}_{self.username.lower()}"

    def as_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "username": self.username,
            "password": self.password,
            "cookie": self.cookie,
            "user_id": self.user_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SessionCredentials:
        return cls(
            username=data["username"],
            password=data["password"],
            cookie=data["cookie"],
            user_id=data["user_id"],
        )


CredentialPayload = Union[OAuthCredentials, SessionCredentials]

PAYLOAD_TYPES = {
    VendorKind.LCC: OAuthCredentials,
    VendorKind.TCC: SessionCredentials,
}


def payload_from_dict(data: dict[str, Any]) -> CredentialPayload:
    """Rebuild a persisted credential payload."""
    try:
        kind = VendorKind(data["kind"])
        return PAYLOAD_TYPES[kind].from_dict(data)
    except (KeyError, ValueError) as ex:
        raise ParseError(f"Invalid stored credentials: {ex}") from ex


@dataclass(frozen=True)
class OAuthGrant:
    """Authorization code handed back by the LCC authorize redirect."""

    consumer_key: str
    consumer_secret: str
    code: str
    redirect_uri: str

    kind = VendorKind.LCC


@dataclass(frozen=True)
class SessionLogin:
    """Username and password for the TCC portal."""

    username: str
    password: str

    kind = VendorKind.TCC


@dataclass(frozen=True)
class DeviceKey:
    """Identity of a thermostat: vendor, location and device id."""

    kind: VendorKind
    location_id: str
    device_id: str

    def __str__(self) -> str:
        return f"{self.kind.value.upper()}|{self.location_id}|{self.device_id}"

    @classmethod
    def parse(cls, value: str) -> DeviceKey:
        try:
            kind, location_id, device_id = value.split("|")
            return cls(VendorKind(kind.lower()), location_id, device_id)
        except ValueError as ex:
            raise ConfigError(f"Invalid device reference {value!r}") from ex


@dataclass(frozen=True)
class DeviceDescriptor:
    """A thermostat as reported by vendor enumeration."""

    key: DeviceKey
    name: str
    supported_modes: tuple[str, ...] = MODES
    supported_fan_modes: tuple[str, ...] = FAN_MODES


@dataclass(frozen=True)
class NormalizedThermostatState:
    """The single state shape every vendor client produces."""

    temperature: float | None
    humidity: float | None
    heating_setpoint: float | None
    cooling_setpoint: float | None
    mode: str
    fan_mode: str
    operating_state: str
    unit: str
    supported_modes: tuple[str, ...] = MODES
    supported_fan_modes: tuple[str, ...] = FAN_MODES


@dataclass
class Device:
    """Registry record for a discovered thermostat."""

    descriptor: DeviceDescriptor
    account_id: str
    state: NormalizedThermostatState | None = None

    @property
    def key(self) -> DeviceKey:
        return self.descriptor.key

    @property
    def name(self) -> str:
        return self.descriptor.name


@dataclass(frozen=True)
class ControlChanges:
    """A partial control change; unset fields stay untouched."""

    mode: str | None = None
    heating_setpoint: float | None = None
    cooling_setpoint: float | None = None
    fan_mode: str | None = None

    def __post_init__(self) -> None:
        if self.mode is not None and self.mode not in MODES:
            raise ConfigError(f"Unsupported mode {self.mode!r}")
        if self.fan_mode is not None and self.fan_mode not in FAN_MODES:
            raise ConfigError(f"Unsupported fan mode {self.fan_mode!r}")
        if not self.as_dict():
            raise ConfigError("No control change requested")

    def as_dict(self) -> dict[str, Any]:
        """Return only the fields that are set."""
        return {
            name: getattr(self, name)
            for name in CHANGE_FIELDS
            if getattr(self, name) is not None
        }

    @property
    def sets_hold(self) -> bool:
        """Whether the change touches mode or a setpoint."""
        return any(
            value is not None
            for value in (self.mode, self.heating_setpoint, self.cooling_setpoint)
        )
