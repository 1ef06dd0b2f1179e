"""Client for the Resideo (LCC) OAuth2 API."""

from __future__ import annotations

import datetime
import logging
from typing import Any

import aiohttp
from yarl import URL

from .base import VendorAdapter
from .errors import AuthError, ParseError, convert_errors, raise_for_status
from .models import (
    FAN_MODES,
    MODES,
    ControlChanges,
    DeviceDescriptor,
    DeviceKey,
    NormalizedThermostatState,
    OAuthCredentials,
    OAuthGrant,
    VendorKind,
    parse_operating_state,
    parse_unit,
)

_LOGGER = logging.getLogger(__name__)

RESIDEO_API_URL = "https://api.honeywell.com"
OAUTH_REDIRECT_URL = "https://my.home-assistant.io/redirect/oauth"

# Vendor spellings that do not lower-case into our vocabulary
MODE_ALIASES = {"emergencyheat": "heat"}


def _parse_mode(value: str) -> str:
    mode = value.lower()
    mode = MODE_ALIASES.get(mode, mode)
    if mode not in MODES:
        raise ParseError(f"Unknown thermostat mode {value!r}")
    return mode


def _parse_fan_mode(value: str) -> str:
    fan_mode = value.lower()
    if fan_mode not in FAN_MODES:
        raise ParseError(f"Unknown fan mode {value!r}")
    return fan_mode


def _allowed(values: list[str] | None, vocabulary: tuple[str, ...], default):
    """Lower-case a vendor allow-list, keeping only values we model."""
    if not values:
        return default
    allowed = []
    for value in values:
        mode = MODE_ALIASES.get(value.lower(), value.lower())
        if mode in vocabulary and mode not in allowed:
            allowed.append(mode)
    return tuple(allowed)


def normalize_thermostat(data: dict[str, Any]) -> NormalizedThermostatState:
    """Map a /v2/devices/thermostats response onto the normalized state."""
    try:
        values = data["changeableValues"]
        fan = (data.get("settings") or {}).get("fan") or {}
        fan_mode = (fan.get("changeableValues") or {}).get("mode") or "Auto"
        return NormalizedThermostatState(
            temperature=data["indoorTemperature"],
            humidity=data.get("indoorHumidity"),
            heating_setpoint=values.get("heatSetpoint"),
            cooling_setpoint=values.get("coolSetpoint"),
            mode=_parse_mode(values["mode"]),
            fan_mode=_parse_fan_mode(fan_mode),
            operating_state=parse_operating_state(data["operationStatus"]["mode"]),
            unit=parse_unit(data.get("units")),
            supported_modes=_allowed(data.get("allowedModes"), MODES, MODES),
            supported_fan_modes=_allowed(
                fan.get("allowedModes"), FAN_MODES, ("auto", "on")
            ),
        )
    except (KeyError, TypeError, AttributeError) as ex:
        raise ParseError(f"Unexpected thermostat payload: missing {ex}") from ex


class LccAdapter(VendorAdapter):
    """Resideo OAuth client."""

    kind = VendorKind.LCC

    def __init__(
        self, session, timeout: int = 30, baseurl: str = RESIDEO_API_URL
    ) -> None:
        super().__init__(session, timeout)
        self._baseurl = baseurl

    def authorize_url(
        self, consumer_key: str, redirect_uri: str = OAUTH_REDIRECT_URL, state: str = ""
    ) -> str:
        """Return the URL the user visits to grant access."""
        url = URL(f"{self._baseurl}/oauth2/authorize").with_query(
            response_type="code",
            redirect_uri=redirect_uri,
            client_id=consumer_key,
            state=state,
        )
        return str(url)

    @convert_errors
    async def _token_request(
        self, consumer_key: str, consumer_secret: str, form: dict[str, str]
    ) -> dict[str, Any]:
        headers = {
            "Authorization": aiohttp.BasicAuth(consumer_key, consumer_secret).encode(),
            "Accept": "application/json",
        }
        resp = await self._session.post(
            f"{self._baseurl}/oauth2/token",
            data=form,
            headers=headers,
            timeout=self._timeout,
        )
        if resp.status in (400, 401):
            # Invalid grants come back as 400
            _LOGGER.error("Token request (%s) rejected: %s", form["grant_type"], resp.status)
            raise AuthError(f"Token request ({form['grant_type']}) rejected")
        raise_for_status(resp.status, "oauth2/token")
        try:
            data = await resp.json(content_type=None)
        except ValueError as ex:
            raise ParseError("Token response was not JSON") from ex
        if not isinstance(data, dict) or "access_token" not in data:
            raise ParseError("Token response is missing access_token")
        return data

    @staticmethod
    def _credentials(
        consumer_key: str,
        consumer_secret: str,
        data: dict[str, Any],
        previous_refresh_token: str | None = None,
    ) -> OAuthCredentials:
        try:
            expires_in = int(data.get("expires_in", 1799))
        except (TypeError, ValueError) as ex:
            raise ParseError("Unexpected token expiry") from ex
        refresh_token = data.get("refresh_token") or previous_refresh_token
        if not refresh_token:
            raise ParseError("Token response is missing refresh_token")
        return OAuthCredentials(
            consumer_key=consumer_key,
            consumer_secret=consumer_secret,
            access_token=data["access_token"],
            refresh_token=refresh_token,
            expires_at=datetime.datetime.now(datetime.timezone.utc)
            + datetime.timedelta(seconds=expires_in),
        )

    async def authenticate(self, credentials: OAuthGrant) -> OAuthCredentials:
        """Exchange an authorization code for tokens."""
        _LOGGER.debug("Exchanging authorization code for tokens")
        data = await self._token_request(
            credentials.consumer_key,
            credentials.consumer_secret,
            {
                "grant_type": "authorization_code",
                "code": credentials.code,
                "redirect_uri": credentials.redirect_uri,
            },
        )
        _LOGGER.info("Successfully obtained Resideo tokens")
        return self._credentials(
            credentials.consumer_key, credentials.consumer_secret, data
        )

    async def refresh(self, payload: OAuthCredentials) -> OAuthCredentials:
        """Exchange the refresh token for a new token pair."""
        _LOGGER.info("Refreshing Resideo access token for %s", payload.account_id)
        data = await self._token_request(
            payload.consumer_key,
            payload.consumer_secret,
            {"grant_type": "refresh_token", "refresh_token": payload.refresh_token},
        )
        return self._credentials(
            payload.consumer_key, payload.consumer_secret, data, payload.refresh_token
        )

    @convert_errors
    async def _request_json(
        self, method: str, url: URL, payload: OAuthCredentials, **kwargs
    ) -> Any:
        """Make a Bearer authenticated API request."""
        headers = {"Authorization": f"Bearer {payload.access_token}"}
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"
        resp = await getattr(self._session, method)(
            url, headers=headers, timeout=self._timeout, **kwargs
        )
        req = url.path
        if resp.status == 401:
            _LOGGER.warning("401 Unauthorized from %s - token likely expired", req)
        raise_for_status(resp.status, req)
        if method == "post":
            return None
        try:
            return await resp.json(content_type=None)
        except ValueError as ex:
            raise ParseError(f"Response from {req} was not JSON") from ex

    def _thermostat_url(
        self, payload: OAuthCredentials, device: DeviceDescriptor, suffix: str = ""
    ) -> URL:
        return URL(
            f"{self._baseurl}/v2/devices/thermostats/{device.key.device_id}{suffix}"
        ).with_query(apikey=payload.consumer_key, locationId=device.key.location_id)

    async def list_devices(self, payload: OAuthCredentials) -> list[DeviceDescriptor]:
        """Enumerate thermostats across all locations."""
        url = URL(f"{self._baseurl}/v2/locations").with_query(apikey=payload.consumer_key)
        locations = await self._request_json("get", url, payload)
        if not isinstance(locations, list):
            raise ParseError("Locations response is not a list")

        devices = []
        for location in locations:
            try:
                location_id = str(location["locationID"])
                for dev in location.get("devices", []):
                    if dev.get("deviceClass") != "Thermostat":
                        continue
                    fan = (dev.get("settings") or {}).get("fan") or {}
                    devices.append(
                        DeviceDescriptor(
                            key=DeviceKey(self.kind, location_id, str(dev["deviceID"])),
                            name=dev.get("userDefinedDeviceName") or str(dev["deviceID"]),
                            supported_modes=_allowed(dev.get("allowedModes"), MODES, MODES),
                            supported_fan_modes=_allowed(
                                fan.get("allowedModes"), FAN_MODES, ("auto", "on")
                            ),
                        )
                    )
            except KeyError as ex:
                _LOGGER.exception(
                    "Failed to process location `%s`: missing %s element",
                    location.get("locationID", "unknown"),
                    ex.args[0],
                )
        return devices

    async def fetch_state(
        self, payload: OAuthCredentials, device: DeviceDescriptor
    ) -> NormalizedThermostatState:
        """Fetch and normalize one thermostat."""
        data = await self._request_json(
            "get", self._thermostat_url(payload, device), payload
        )
        if not isinstance(data, dict):
            raise ParseError("Thermostat response is not an object")
        return normalize_thermostat(data)

    async def push_control(
        self,
        payload: OAuthCredentials,
        device: DeviceDescriptor,
        changes: ControlChanges,
    ) -> None:
        """Post only the fields that change."""
        body: dict[str, Any] = {}
        if changes.mode is not None:
            body["mode"] = changes.mode.capitalize()
        if changes.heating_setpoint is not None:
            body["heatSetpoint"] = changes.heating_setpoint
        if changes.cooling_setpoint is not None:
            body["coolSetpoint"] = changes.cooling_setpoint

        _LOGGER.debug("Setting %s with %s", device.name, changes.as_dict())
        if body:
            await self._request_json(
                "post", self._thermostat_url(payload, device), payload, json=body
            )
        if changes.fan_mode is not None:
            await self._request_json(
                "post",
                self._thermostat_url(payload, device, "/fan"),
                payload,
                json={"mode": changes.fan_mode.capitalize()},
            )
