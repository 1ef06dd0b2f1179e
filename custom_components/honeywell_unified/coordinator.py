"""Polling coordinator for one Honeywell account."""
from __future__ import annotations

from datetime import timedelta
import logging

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import ConfigEntryAuthFailed
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator, UpdateFailed

from .api import DeviceKey, NormalizedThermostatState
from .const import DOMAIN, MAX_CONSECUTIVE_ERRORS
from .hub import ThermostatHub
from .scheduler import RefreshScheduler

_LOGGER = logging.getLogger(__name__)


class HoneywellCoordinator(DataUpdateCoordinator[dict[DeviceKey, NormalizedThermostatState]]):
    """
    Poll every device of an account through the shared refresh scheduler.

    Devices that fail keep their last known state; the coordinator only
    gives up after MAX_CONSECUTIVE_ERRORS passes in which nothing could be
    refreshed. A terminal auth failure starts the reauth flow.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        entry: ConfigEntry,
        hub: ThermostatHub,
        scheduler: RefreshScheduler,
        account_id: str,
        update_interval: timedelta | None,
    ) -> None:
        """Initialize the coordinator."""
        super().__init__(
            hass,
            _LOGGER,
            config_entry=entry,
            name=f"{DOMAIN}_{account_id}",
            update_interval=update_interval,
        )
        self.hub = hub
        self.account_id = account_id
        self._scheduler = scheduler
        self._consecutive_errors = 0

    async def _async_update_data(self) -> dict[DeviceKey, NormalizedThermostatState]:
        keys = [device.key for device in self.hub.devices(self.account_id)]
        result = await self._scheduler.async_refresh(keys)

        if result.auth_failed:
            raise ConfigEntryAuthFailed(
                f"Credentials for {self.account_id} were rejected after renewal"
            )

        if keys and len(result.failures) == len(keys):
            self._consecutive_errors += 1
            _LOGGER.warning(
                "No device could be refreshed (error %d/%d)",
                self._consecutive_errors,
                MAX_CONSECUTIVE_ERRORS,
            )
            if self._consecutive_errors >= MAX_CONSECUTIVE_ERRORS:
                raise UpdateFailed(
                    f"Refresh failed {self._consecutive_errors} times in a row: "
                    f"{next(iter(result.failures.values()))}"
                )
        else:
            self._consecutive_errors = 0

        return result.states

    def is_available(self, key: DeviceKey) -> bool:
        """Stale state still counts: a device is available once it has one."""
        return self.last_update_success and bool(self.data) and key in self.data
