"""
Client for the legacy Total Connect Comfort portal.

The portal has no tokens: a login form hands back an ``.ASPXAUTH`` session
cookie which must accompany every request. Renewal therefore means logging
in again from scratch.

Repeated failed logins lock the account out on the vendor side, so after
MAX_LOGIN_ATTEMPTS consecutive failures further logins for that username are
refused locally for MIN_LOGIN_TIME.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
from typing import Any

from yarl import URL

from .base import VendorAdapter
from .errors import (
    AuthError,
    CommandRejected,
    DeviceNotFound,
    ParseError,
    RateLimited,
    ServiceUnavailable,
    convert_errors,
    raise_for_status,
)
from .models import (
    ControlChanges,
    DeviceDescriptor,
    DeviceKey,
    NormalizedThermostatState,
    SessionCredentials,
    SessionLogin,
    VendorKind,
    parse_operating_state,
    parse_unit,
)

_LOGGER = logging.getLogger(__name__)

TCC_API_URL = "https://mytotalconnectcomfort.com/portal"
AUTH_COOKIE_PREFIX = ".ASPXAUTH"
MIN_LOGIN_TIME = datetime.timedelta(minutes=10)
MAX_LOGIN_ATTEMPTS = 3
DEFAULT_RETRY_COUNT = 3
RETRY_BACKOFF_BASE = 2  # seconds

MODE_CODES = {1: "heat", 2: "cool", 3: "off", 4: "auto"}
SYSTEM_SWITCH = {mode: code for code, mode in MODE_CODES.items()}
FAN_CODES = {0: "auto", 1: "on", 2: "circulate"}
FAN_SWITCH = {mode: code for code, mode in FAN_CODES.items()}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def find_auth_cookie(set_cookie_headers: list[str]) -> str | None:
    """Return the ``name=value`` pair of the portal auth cookie, if any."""
    for header in set_cookie_headers:
        if header.startswith(AUTH_COOKIE_PREFIX):
            return header.split(";", 1)[0].strip()
    return None


def normalize_thermostat(thermo: dict[str, Any]) -> NormalizedThermostatState:
    """Map a GetLocations thermostat entry onto the normalized state."""
    try:
        values = thermo["changeableValues"]
        fan_values = thermo.get("fan", {}).get("changeableValues", {})
        return NormalizedThermostatState(
            temperature=thermo["indoorTemperature"],
            humidity=thermo.get("indoorHumidity"),
            heating_setpoint=values.get("heatSetpoint"),
            cooling_setpoint=values.get("coolSetpoint"),
            mode=MODE_CODES.get(values["mode"], "off"),
            fan_mode=FAN_CODES.get(fan_values.get("mode"), "auto"),
            operating_state=parse_operating_state(thermo["operationStatus"]["mode"]),
            unit=parse_unit(thermo.get("units")),
        )
    except (KeyError, TypeError, AttributeError) as ex:
        raise ParseError(f"Unexpected thermostat payload: missing {ex}") from ex


class TccAdapter(VendorAdapter):
    """Total Connect Comfort client."""

    kind = VendorKind.TCC

    def __init__(
        self,
        session,
        timeout: int = 30,
        baseurl: str = TCC_API_URL,
        retry_count: int = DEFAULT_RETRY_COUNT,
    ) -> None:
        super().__init__(session, timeout)
        self._baseurl = baseurl
        self._retry_count = retry_count
        self._headers = {
            "X-Requested-With": "XMLHttpRequest",
            "Accept": "application/json",
            "Accept-Encoding": "gzip, deflate",
        }
        self._null_cookie_count: dict[str, int] = {}
        self._next_login: dict[str, datetime.datetime] = {}

    def next_login(self, username: str) -> datetime.datetime | None:
        """Return the next allowed login time for a locked out username."""
        return self._next_login.get(username.lower())

    def _set_null_count(self, username: str) -> None:
        """Count a failed login and lock the username out when needed."""
        username = username.lower()
        count = self._null_cookie_count.get(username, 0) + 1
        self._null_cookie_count[username] = count
        if count >= MAX_LOGIN_ATTEMPTS:
            self._next_login[username] = _utcnow() + MIN_LOGIN_TIME
            _LOGGER.warning(
                "Rate limited after %d failed logins, waiting until %s",
                count,
                self._next_login[username],
            )

    def _reset_null_count(self, username: str) -> None:
        self._null_cookie_count.pop(username.lower(), None)
        self._next_login.pop(username.lower(), None)

    @convert_errors
    async def authenticate(self, credentials: SessionLogin) -> SessionCredentials:
        """Log in to the portal and capture the session cookie."""
        username = credentials.username
        next_login = self.next_login(username)
        if next_login is not None and next_login > _utcnow():
            raise RateLimited(f"Rate limit on login: waiting {next_login - _utcnow()}")

        _LOGGER.debug("Attempting login for %s", username)
        resp = await self._session.post(
            self._baseurl,
            data={
                "UserName": username,
                "Password": credentials.password,
                "RememberMe": "true",
            },
            headers={
                **self._headers,
                "Content-Type": "application/x-www-form-urlencoded",
            },
            timeout=self._timeout,
        )

        if resp.status == 401:
            _LOGGER.error("Login as %s failed (401)", username)
            self._set_null_count(username)
            raise AuthError(f"Login as {username} failed")
        raise_for_status(resp.status, "login")

        cookie = find_auth_cookie(resp.headers.getall("Set-Cookie", []))
        if cookie is None or cookie.endswith("="):
            _LOGGER.error("Login returned no session cookie - site may be down")
            self._set_null_count(username)
            raise AuthError("Login returned no session cookie")

        try:
            data = await resp.json(content_type=None)
        except ValueError as ex:
            raise ParseError("Login response was not JSON") from ex
        if not isinstance(data, dict) or not data.get("success"):
            self._set_null_count(username)
            raise AuthError(f"Login as {username} was rejected")
        if "userId" not in data:
            raise ParseError("Login response is missing userId")

        self._reset_null_count(username)
        _LOGGER.info("Successfully logged in as %s", username)
        return SessionCredentials(
            username=username,
            password=credentials.password,
            cookie=cookie,
            user_id=data["userId"],
        )

    async def refresh(self, payload: SessionCredentials) -> SessionCredentials:
        """Cookies cannot be renewed, so log in again."""
        _LOGGER.info("Re-logging in to Total Connect Comfort as %s", payload.username)
        return await self.authenticate(SessionLogin(payload.username, payload.password))

    @convert_errors
    async def _request_json(
        self, method: str, url: URL | str, payload: SessionCredentials, **kwargs
    ) -> Any:
        """Make a JSON API request with the session cookie."""
        headers = {**self._headers, "Cookie": payload.cookie}
        if "json" in kwargs:
            headers["Content-Type"] = "application/json"
        resp = await getattr(self._session, method)(
            url, headers=headers, timeout=self._timeout, **kwargs
        )

        req = str(url).replace(self._baseurl, "")
        if resp.status == 200 and len(resp.history) > 0:
            # Expired sessions are bounced to the login page
            _LOGGER.warning("Redirected to login from %s - session expired", req)
            raise AuthError(f"Session expired ({req})")
        if resp.status != 200:
            _LOGGER.warning("Unexpected API response %s from %s", resp.status, req)
        raise_for_status(resp.status, req)

        try:
            return await resp.json(content_type=None)
        except ValueError as ex:
            raise ParseError(f"Response from {req} was not JSON") from ex

    async def _request_json_with_retry(
        self, method: str, url: URL | str, payload: SessionCredentials, **kwargs
    ) -> Any:
        """Retry server-side failures with exponential backoff."""
        for attempt in range(1, self._retry_count + 1):
            try:
                return await self._request_json(method, url, payload, **kwargs)
            except ServiceUnavailable as ex:
                if attempt == self._retry_count:
                    _LOGGER.error("All %d attempts failed: %s", attempt, ex)
                    raise
                backoff = RETRY_BACKOFF_BASE ** (attempt - 1)
                _LOGGER.warning(
                    "Service unavailable on attempt %d/%d, retrying in %ds: %s",
                    attempt,
                    self._retry_count,
                    backoff,
                    ex,
                )
                await asyncio.sleep(backoff)

    async def _get_locations(self, payload: SessionCredentials) -> list[dict[str, Any]]:
        url = URL(f"{self._baseurl}/GetLocations").with_query(
            userId=str(payload.user_id), allData="True"
        )
        data = await self._request_json_with_retry("get", url, payload)
        try:
            return list(data["locations"])
        except (KeyError, TypeError) as ex:
            raise ParseError("GetLocations response has no locations") from ex

    async def list_devices(self, payload: SessionCredentials) -> list[DeviceDescriptor]:
        """Enumerate the thermostats on the account."""
        devices = []
        for location in await self._get_locations(payload):
            try:
                location_id = str(location["locationID"])
                for thermo in location.get("thermostats", []):
                    devices.append(
                        DeviceDescriptor(
                            key=DeviceKey(
                                self.kind, location_id, str(thermo["deviceID"])
                            ),
                            name=thermo.get("userDefinedDeviceName")
                            or str(thermo["deviceID"]),
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
        self, payload: SessionCredentials, device: DeviceDescriptor
    ) -> NormalizedThermostatState:
        """Fetch one thermostat out of the full location listing."""
        for location in await self._get_locations(payload):
            if str(location.get("locationID")) != device.key.location_id:
                continue
            for thermo in location.get("thermostats", []):
                if str(thermo.get("deviceID")) == device.key.device_id:
                    return normalize_thermostat(thermo)
        raise DeviceNotFound(f"{device.name} ({device.key}) not found in GetLocations")

    async def push_control(
        self,
        payload: SessionCredentials,
        device: DeviceDescriptor,
        changes: ControlChanges,
    ) -> None:
        """Submit control screen changes, holding any new setpoint."""
        data = {
            "DeviceId": int(device.key.device_id),
            "SystemSwitch": None,
            "HeatSetpoint": None,
            "CoolSetpoint": None,
            "StatusHeat": None,
            "StatusCool": None,
            "FanMode": None,
        }
        if changes.mode is not None:
            data["SystemSwitch"] = SYSTEM_SWITCH[changes.mode]
        if changes.heating_setpoint is not None:
            data["HeatSetpoint"] = changes.heating_setpoint
        if changes.cooling_setpoint is not None:
            data["CoolSetpoint"] = changes.cooling_setpoint
        if changes.fan_mode is not None:
            data["FanMode"] = FAN_SWITCH[changes.fan_mode]
        if changes.sets_hold:
            # Without a hold the thermostat falls back to its schedule
            data["StatusHeat"] = 1
            data["StatusCool"] = 1

        _LOGGER.debug("Setting %s with %s", device.name, changes.as_dict())
        url = f"{self._baseurl}/Device/SubmitControlScreenChanges"
        result = await self._request_json_with_retry("post", url, payload, json=data)
        if not isinstance(result, dict) or result.get("success") != 1:
            raise CommandRejected(f"API rejected thermostat settings for {device.name}")
