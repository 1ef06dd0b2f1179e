"""
Honeywell Unified - Home Assistant integration for Honeywell thermostats.

Supports both Honeywell clouds behind one thermostat model:
- Resideo (LCC) accounts via OAuth2 consumer key/secret
- Total Connect Comfort (TCC) accounts via username/password
- Automatic renew-and-retry when a token or session expires
- Smart control of a thermostat from averaged remote sensors
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import timedelta
import functools
import logging
from typing import Any

import aiohttp

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import (
    CONF_PASSWORD,
    CONF_USERNAME,
    STATE_ON,
    STATE_UNAVAILABLE,
    STATE_UNKNOWN,
    Platform,
)
from homeassistant.core import Event, HomeAssistant, ServiceCall
from homeassistant.exceptions import ConfigEntryAuthFailed, ConfigEntryNotReady
from homeassistant.helpers.event import (
    async_call_later,
    async_track_state_change_event,
)
from homeassistant.helpers.storage import Store

from .api import (
    AuthError,
    ConfigError,
    HoneywellError,
    LccAdapter,
    OAuthCredentials,
    RateLimited,
    SessionLogin,
    TccAdapter,
    VendorKind,
)
from .const import (
    CONF_REFRESH_INTERVAL,
    CONF_SMART_CONTROL,
    CONF_TOKEN,
    CONF_VENDOR,
    CONTROL_REFRESH_DELAY,
    DEFAULT_REFRESH_INTERVAL,
    DOMAIN,
    SERVICE_REFRESH_TOKEN,
    SMART_CONTROL_STARTUP_DELAY,
    STORAGE_KEY,
    STORAGE_VERSION,
)
from .coordinator import HoneywellCoordinator
from .credentials import CredentialStore
from .hub import ThermostatHub
from .scheduler import RefreshScheduler, TokenRenewalScheduler
from .smart_control import SmartControlConfig, SmartControlEngine

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.CLIMATE, Platform.SENSOR]


@dataclass
class HoneywellRuntime:
    """Objects shared by every account of the integration."""

    session: aiohttp.ClientSession
    store: CredentialStore
    hub: ThermostatHub
    refresh: RefreshScheduler
    renewals: TokenRenewalScheduler


class HassSensorReader:
    """Read smart control sensors from the Home Assistant state machine."""

    def __init__(self, hass: HomeAssistant) -> None:
        self._hass = hass

    def temperature(self, sensor_id: str) -> float | None:
        state = self._hass.states.get(sensor_id)
        if state is None or state.state in (STATE_UNAVAILABLE, STATE_UNKNOWN):
            return None
        try:
            return float(state.state)
        except ValueError:
            return None

    def is_active(self, sensor_id: str) -> bool:
        state = self._hass.states.get(sensor_id)
        return state is not None and state.state == STATE_ON


def account_id_for_entry(entry: ConfigEntry) -> str:
    """Account id the entry's credential material maps to."""
    if entry.data[CONF_VENDOR] == VendorKind.LCC.value:
        return OAuthCredentials.from_dict(entry.data[CONF_TOKEN]).account_id
    return f"{VendorKind.TCC.value}_{entry.data[CONF_USERNAME].lower()}"


async def _async_get_runtime(hass: HomeAssistant) -> HoneywellRuntime:
    """Create the shared hub on first use."""
    domain_data = hass.data.setdefault(DOMAIN, {})
    async with domain_data.setdefault("lock", asyncio.Lock()):
        if (runtime := domain_data.get("runtime")) is not None:
            return runtime

        # Cookies travel in explicit headers; never let the jar mix accounts
        session = aiohttp.ClientSession(cookie_jar=aiohttp.DummyCookieJar())
        store = CredentialStore(Store(hass, STORAGE_VERSION, STORAGE_KEY))
        await store.async_load()
        hub = ThermostatHub(
            store,
            {
                VendorKind.LCC: LccAdapter(session),
                VendorKind.TCC: TccAdapter(session),
            },
        )
        runtime = HoneywellRuntime(
            session=session,
            store=store,
            hub=hub,
            refresh=RefreshScheduler(hub),
            renewals=TokenRenewalScheduler(
                hub.retry, store, functools.partial(async_call_later, hass)
            ),
        )
        domain_data["runtime"] = runtime
        _async_register_services(hass, runtime)
        return runtime


async def _async_add_account(runtime: HoneywellRuntime, entry: ConfigEntry) -> str:
    """Make sure the entry's account has live credentials in the store."""
    hub = runtime.hub
    account_id = account_id_for_entry(entry)

    stored = runtime.store.get(account_id) if runtime.store.exists(account_id) else None

    if entry.data[CONF_VENDOR] == VendorKind.LCC.value:
        # Renewals only reach the store; the entry token is newer after reauth
        seeded = OAuthCredentials.from_dict(entry.data[CONF_TOKEN])
        if stored is None or seeded.expires_at > stored.expires_at:
            await hub.async_add_payload(seeded)
        return account_id

    if stored is None or stored.password != entry.data[CONF_PASSWORD]:
        return await hub.async_login(
            SessionLogin(entry.data[CONF_USERNAME], entry.data[CONF_PASSWORD])
        )
    return account_id


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Set up Honeywell Unified from a config entry."""
    runtime = await _async_get_runtime(hass)
    hub = runtime.hub

    try:
        account_id = await _async_add_account(runtime, entry)
        await hub.async_discover(account_id)
    except AuthError as ex:
        raise ConfigEntryAuthFailed(f"Authentication failed: {ex}") from ex
    except RateLimited as ex:
        raise ConfigEntryNotReady(f"Rate limited: {ex}") from ex
    except HoneywellError as ex:
        raise ConfigEntryNotReady(f"Connection failed: {ex}") from ex

    devices = hub.devices(account_id)
    if not devices:
        raise ConfigEntryNotReady("No devices found")

    _LOGGER.info("Found %d Honeywell device(s) for %s", len(devices), account_id)

    interval = int(entry.options.get(CONF_REFRESH_INTERVAL, DEFAULT_REFRESH_INTERVAL))
    coordinator = HoneywellCoordinator(
        hass,
        entry,
        hub,
        runtime.refresh,
        account_id,
        timedelta(minutes=interval) if interval else None,
    )

    await coordinator.async_config_entry_first_refresh()

    hass.data[DOMAIN][entry.entry_id] = {
        "account_id": account_id,
        "coordinator": coordinator,
        "hub": hub,
    }
    runtime.renewals.schedule(account_id)

    if entry.options.get(CONF_SMART_CONTROL):
        _async_setup_smart_control(hass, entry, hub, coordinator)

    entry.async_on_unload(entry.add_update_listener(_async_update_listener))
    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)

    return True


def _async_setup_smart_control(
    hass: HomeAssistant,
    entry: ConfigEntry,
    hub: ThermostatHub,
    coordinator: HoneywellCoordinator,
) -> None:
    """Evaluate smart control on sensor changes and once after startup."""
    try:
        config = SmartControlConfig.from_options(entry.options)
    except ConfigError as ex:
        _LOGGER.error("Smart Control disabled: %s", ex)
        return

    engine = SmartControlEngine(hub, config, HassSensorReader(hass))
    hass.data[DOMAIN][entry.entry_id]["smart_control"] = engine

    cancel_refresh: Callable[[], None] | None = None

    def _cancel_refresh() -> None:
        nonlocal cancel_refresh
        if cancel_refresh is not None:
            cancel_refresh()
            cancel_refresh = None

    async def _async_evaluate(*_: Any) -> None:
        nonlocal cancel_refresh
        try:
            changes = await engine.async_evaluate()
        except HoneywellError as ex:
            _LOGGER.warning("Smart Control update failed: %s", ex)
            return
        if changes is not None:
            _cancel_refresh()
            cancel_refresh = async_call_later(
                hass, CONTROL_REFRESH_DELAY, _async_request_refresh(coordinator)
            )

    entry.async_on_unload(_cancel_refresh)

    async def _async_sensor_changed(event: Event) -> None:
        _LOGGER.debug(
            "Smart Control trigger from %s. Value: %s",
            event.data.get("entity_id"),
            getattr(event.data.get("new_state"), "state", None),
        )
        await _async_evaluate()

    _LOGGER.info("Scheduling Smart Control updates")
    entry.async_on_unload(
        async_track_state_change_event(hass, list(config.sensors), _async_sensor_changed)
    )
    entry.async_on_unload(
        async_call_later(hass, SMART_CONTROL_STARTUP_DELAY, _async_evaluate)
    )


def _async_request_refresh(coordinator: HoneywellCoordinator):
    async def _refresh(_now: Any) -> None:
        await coordinator.async_request_refresh()

    return _refresh


def _async_register_services(hass: HomeAssistant, runtime: HoneywellRuntime) -> None:
    async def _async_refresh_token(call: ServiceCall) -> None:
        """Force a token renewal for every Resideo account."""
        for account_id in runtime.store.account_ids():
            if runtime.hub.account_kind(account_id) is not VendorKind.LCC:
                continue
            try:
                await runtime.hub.retry.async_renew(account_id)
            except HoneywellError as ex:
                _LOGGER.error("Forced token refresh for %s failed: %s", account_id, ex)

    hass.services.async_register(DOMAIN, SERVICE_REFRESH_TOKEN, _async_refresh_token)


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Reload on options change."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    """Unload a config entry."""
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)

    if unload_ok:
        domain_data = hass.data[DOMAIN]
        data = domain_data.pop(entry.entry_id)
        runtime: HoneywellRuntime = domain_data["runtime"]
        runtime.renewals.cancel(data["account_id"])
        # Credentials stay stored so a reload does not need a fresh login
        await runtime.hub.async_remove_account(data["account_id"], forget_credentials=False)

        if not any(key not in ("lock", "runtime") for key in domain_data):
            runtime.renewals.stop()
            hass.services.async_remove(DOMAIN, SERVICE_REFRESH_TOKEN)
            await runtime.session.close()
            domain_data.pop("runtime")

    return unload_ok


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Forget stored credentials when the account is deleted."""
    store = CredentialStore(Store(hass, STORAGE_VERSION, STORAGE_KEY))
    runtime: HoneywellRuntime | None = hass.data.get(DOMAIN, {}).get("runtime")
    if runtime is not None:
        store = runtime.store
    else:
        await store.async_load()
    await store.async_remove(account_id_for_entry(entry))
