"""Config flow for Honeywell Unified integration."""
from __future__ import annotations

import logging
from typing import Any

import aiohttp
import voluptuous as vol

from homeassistant import config_entries
from homeassistant.const import CONF_PASSWORD, CONF_USERNAME
from homeassistant.core import callback
from homeassistant.data_entry_flow import FlowResult
from homeassistant.helpers import selector

from .api import (
    AuthError,
    ConfigError,
    HoneywellError,
    LccAdapter,
    NetworkError,
    OAuthCredentials,
    OAuthGrant,
    RateLimited,
    SessionLogin,
    TccAdapter,
    VendorKind,
)
from .api.lcc import OAUTH_REDIRECT_URL
from .const import (
    CONF_AUTH_CODE,
    CONF_CONSUMER_KEY,
    CONF_CONSUMER_SECRET,
    CONF_CONTROL_OFFSET,
    CONF_DESIRED_SETPOINT,
    CONF_OCCUPANCY_SENSORS,
    CONF_PRIMARY_THERMOSTAT,
    CONF_REFRESH_INTERVAL,
    CONF_SENSOR_LINKS,
    CONF_SMART_CONTROL,
    CONF_TEMPERATURE_SENSORS,
    CONF_TOKEN,
    CONF_VENDOR,
    DEFAULT_CONTROL_OFFSET,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    REFRESH_INTERVAL_CHOICES,
)
from .smart_control import SmartControlConfig, parse_sensor_links

_LOGGER = logging.getLogger(__name__)

STEP_TCC_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_USERNAME): str,
        vol.Required(CONF_PASSWORD): str,
    }
)

STEP_LCC_DATA_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_CONSUMER_KEY): str,
        vol.Required(CONF_CONSUMER_SECRET): str,
    }
)

STEP_LCC_CODE_SCHEMA = vol.Schema({vol.Required(CONF_AUTH_CODE): str})

# Wide enough for both Celsius and Fahrenheit thermostats
DESIRED_SETPOINT_SELECTOR = selector.NumberSelector(
    selector.NumberSelectorConfig(
        min=5, max=95, step=0.5, mode=selector.NumberSelectorMode.BOX
    )
)


def _new_session() -> aiohttp.ClientSession:
    return aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())


async def validate_tcc(username: str, password: str):
    """Log in and make sure the account has thermostats."""
    async with _new_session() as session:
        adapter = TccAdapter(session)
        payload = await adapter.authenticate(SessionLogin(username, password))
        if not await adapter.list_devices(payload):
            raise ConfigError("No thermostats on this account")
    return payload


async def validate_lcc(grant: OAuthGrant) -> OAuthCredentials:
    """Exchange the pasted code and make sure the account has thermostats."""
    async with _new_session() as session:
        adapter = LccAdapter(session)
        payload = await adapter.authenticate(grant)
        if not await adapter.list_devices(payload):
            raise ConfigError("No thermostats on this account")
    return payload


def _error_key(ex: HoneywellError) -> str:
    if isinstance(ex, AuthError):
        return "invalid_auth"
    if isinstance(ex, RateLimited):
        return "rate_limited"
    if isinstance(ex, NetworkError):
        return "cannot_connect"
    if isinstance(ex, ConfigError):
        return "no_devices"
    return "unknown"


class HoneywellUnifiedConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    """Handle a config flow for Honeywell Unified."""

    VERSION = 1

    def __init__(self) -> None:
        self._consumer_key: str | None = None
        self._consumer_secret: str | None = None

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Get the options flow for this handler."""
        return HoneywellUnifiedOptionsFlow()

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Let the user pick which Honeywell cloud the account lives on."""
        return self.async_show_menu(
            step_id="user",
            menu_options=[VendorKind.TCC.value, VendorKind.LCC.value],
        )

    async def async_step_tcc(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Total Connect Comfort username and password."""
        errors: dict[str, str] = {}

        if user_input is not None:
            try:
                payload = await validate_tcc(
                    user_input[CONF_USERNAME], user_input[CONF_PASSWORD]
                )
            except HoneywellError as ex:
                _LOGGER.warning("Total Connect Comfort login failed: %s", ex)
                errors["base"] = _error_key(ex)
            else:
                await self.async_set_unique_id(payload.account_id)
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Honeywell TCC ({user_input[CONF_USERNAME]})",
                    data={CONF_VENDOR: VendorKind.TCC.value, **user_input},
                )

        return self.async_show_form(
            step_id="tcc",
            data_schema=STEP_TCC_DATA_SCHEMA,
            errors=errors,
        )

    async def async_step_lcc(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Resideo developer app consumer key and secret."""
        if user_input is not None:
            self._consumer_key = user_input[CONF_CONSUMER_KEY].strip()
            self._consumer_secret = user_input[CONF_CONSUMER_SECRET].strip()
            return await self.async_step_lcc_code()

        return self.async_show_form(step_id="lcc", data_schema=STEP_LCC_DATA_SCHEMA)

    def _authorize_url(self) -> str:
        return LccAdapter(None).authorize_url(self._consumer_key, OAUTH_REDIRECT_URL)

    async def _async_exchange_code(
        self, code: str, errors: dict[str, str]
    ) -> OAuthCredentials | None:
        grant = OAuthGrant(
            consumer_key=self._consumer_key,
            consumer_secret=self._consumer_secret,
            code=code.strip(),
            redirect_uri=OAUTH_REDIRECT_URL,
        )
        try:
            return await validate_lcc(grant)
        except HoneywellError as ex:
            _LOGGER.warning("Resideo authorization failed: %s", ex)
            errors["base"] = _error_key(ex)
        return None

    async def async_step_lcc_code(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Paste the code returned by the Resideo authorize page."""
        errors: dict[str, str] = {}

        if user_input is not None:
            payload = await self._async_exchange_code(user_input[CONF_AUTH_CODE], errors)
            if payload is not None:
                await self.async_set_unique_id(payload.account_id)
                self._abort_if_unique_id_configured()

                return self.async_create_entry(
                    title=f"Honeywell Resideo ({self._consumer_key[:8]})",
                    data={
                        CONF_VENDOR: VendorKind.LCC.value,
                        CONF_CONSUMER_KEY: self._consumer_key,
                        CONF_CONSUMER_SECRET: self._consumer_secret,
                        CONF_TOKEN: payload.as_dict(),
                    },
                )

        return self.async_show_form(
            step_id="lcc_code",
            data_schema=STEP_LCC_CODE_SCHEMA,
            description_placeholders={"url": self._authorize_url()},
            errors=errors,
        )

    async def async_step_reauth(
        self, entry_data: dict[str, Any]
    ) -> FlowResult:
        """Handle reauthorization."""
        if entry_data[CONF_VENDOR] == VendorKind.LCC.value:
            self._consumer_key = entry_data[CONF_CONSUMER_KEY]
            self._consumer_secret = entry_data[CONF_CONSUMER_SECRET]
        return await self.async_step_reauth_confirm()

    async def async_step_reauth_confirm(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Confirm reauthorization with a new password or authorization code."""
        errors: dict[str, str] = {}
        entry = self.hass.config_entries.async_get_entry(self.context["entry_id"])
        is_lcc = entry.data[CONF_VENDOR] == VendorKind.LCC.value

        if user_input is not None:
            new_data: dict[str, Any] | None = None
            if is_lcc:
                payload = await self._async_exchange_code(user_input[CONF_AUTH_CODE], errors)
                if payload is not None:
                    new_data = {**entry.data, CONF_TOKEN: payload.as_dict()}
            else:
                try:
                    await validate_tcc(entry.data[CONF_USERNAME], user_input[CONF_PASSWORD])
                except HoneywellError as ex:
                    errors["base"] = _error_key(ex)
                else:
                    new_data = {**entry.data, CONF_PASSWORD: user_input[CONF_PASSWORD]}

            if new_data is not None:
                self.hass.config_entries.async_update_entry(entry, data=new_data)
                await self.hass.config_entries.async_reload(entry.entry_id)
                return self.async_abort(reason="reauth_successful")

        if is_lcc:
            return self.async_show_form(
                step_id="reauth_confirm",
                data_schema=STEP_LCC_CODE_SCHEMA,
                description_placeholders={"url": self._authorize_url()},
                errors=errors,
            )
        return self.async_show_form(
            step_id="reauth_confirm",
            data_schema=vol.Schema({vol.Required(CONF_PASSWORD): str}),
            description_placeholders={"url": ""},
            errors=errors,
        )


class HoneywellUnifiedOptionsFlow(config_entries.OptionsFlow):
    """Polling interval and smart control options."""

    def _thermostats(self) -> dict[str, str]:
        data = self.hass.data.get(DOMAIN, {}).get(self.config_entry.entry_id)
        if not data:
            return {}
        return {
            str(device.key): device.name
            for device in data["hub"].devices(data["account_id"])
        }

    def _schema(self) -> vol.Schema:
        thermostats = self._thermostats()
        return vol.Schema(
            {
                vol.Required(
                    CONF_REFRESH_INTERVAL, default=DEFAULT_REFRESH_INTERVAL
                ): vol.In(
                    {
                        minutes: f"{minutes} min" if minutes else "Disabled"
                        for minutes in REFRESH_INTERVAL_CHOICES
                    }
                ),
                vol.Required(CONF_SMART_CONTROL, default=False): bool,
                vol.Optional(CONF_PRIMARY_THERMOSTAT): (
                    vol.In(thermostats) if thermostats else str
                ),
                vol.Optional(CONF_TEMPERATURE_SENSORS): selector.EntitySelector(
                    selector.EntitySelectorConfig(
                        domain="sensor", device_class="temperature", multiple=True
                    )
                ),
                vol.Optional(CONF_OCCUPANCY_SENSORS): selector.EntitySelector(
                    selector.EntitySelectorConfig(domain="binary_sensor", multiple=True)
                ),
                vol.Optional(CONF_SENSOR_LINKS): selector.TextSelector(
                    selector.TextSelectorConfig(multiline=True)
                ),
                vol.Optional(CONF_DESIRED_SETPOINT): DESIRED_SETPOINT_SELECTOR,
                vol.Required(
                    CONF_CONTROL_OFFSET, default=DEFAULT_CONTROL_OFFSET
                ): selector.NumberSelector(
                    selector.NumberSelectorConfig(
                        min=0, max=5, step=0.5, mode=selector.NumberSelectorMode.BOX
                    )
                ),
            }
        )

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> FlowResult:
        """Manage the options."""
        errors: dict[str, str] = {}

        if user_input is not None:
            try:
                parse_sensor_links(user_input.get(CONF_SENSOR_LINKS))
            except ConfigError:
                errors[CONF_SENSOR_LINKS] = "invalid_sensor_links"
            else:
                if user_input[CONF_SMART_CONTROL]:
                    try:
                        SmartControlConfig.from_options(user_input)
                    except ConfigError as ex:
                        _LOGGER.debug("Rejected smart control options: %s", ex)
                        errors["base"] = "invalid_smart_control"
            if not errors:
                return self.async_create_entry(title="", data=user_input)

        return self.async_show_form(
            step_id="init",
            data_schema=self.add_suggested_values_to_schema(
                self._schema(), user_input or self.config_entry.options
            ),
            errors=errors,
        )
