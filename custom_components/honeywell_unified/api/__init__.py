"""
Async clients for the two Honeywell thermostat clouds.

- LCC: the Resideo OAuth2 API used by T-series and Lyric thermostats
- TCC: the legacy Total Connect Comfort portal, session cookie based

Both produce the same NormalizedThermostatState and raise the same errors.
"""

from .base import VendorAdapter
from .errors import (
    AccountNotFound,
    AuthError,
    CommandRejected,
    ConfigError,
    DeviceNotFound,
    HoneywellError,
    NetworkError,
    ParseError,
    RateLimited,
    ServiceUnavailable,
)
from .lcc import LccAdapter
from .models import (
    ControlChanges,
    CredentialPayload,
    Device,
    DeviceDescriptor,
    DeviceKey,
    NormalizedThermostatState,
    OAuthCredentials,
    OAuthGrant,
    SessionCredentials,
    SessionLogin,
    VendorKind,
)
from .tcc import TccAdapter

__all__ = [
    "AccountNotFound",
    "AuthError",
    "CommandRejected",
    "ConfigError",
    "ControlChanges",
    "CredentialPayload",
    "Device",
    "DeviceDescriptor",
    "DeviceKey",
    "DeviceNotFound",
    "HoneywellError",
    "LccAdapter",
    "NetworkError",
    "NormalizedThermostatState",
    "OAuthCredentials",
    "OAuthGrant",
    "ParseError",
    "RateLimited",
    "ServiceUnavailable",
    "SessionCredentials",
    "SessionLogin",
    "TccAdapter",
    "VendorAdapter",
    "VendorKind",
]
