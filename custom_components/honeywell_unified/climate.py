"""Climate platform for Honeywell Unified integration."""
from __future__ import annotations

from collections.abc import Callable
import logging
from typing import Any

from homeassistant.components.climate import (
    ATTR_TARGET_TEMP_HIGH,
    ATTR_TARGET_TEMP_LOW,
    FAN_AUTO,
    FAN_DIFFUSE,
    FAN_ON,
    ClimateEntity,
    ClimateEntityFeature,
    HVACAction,
    HVACMode,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import ATTR_TEMPERATURE, UnitOfTemperature
from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.event import async_call_later
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .api import (
    ControlChanges,
    Device,
    HoneywellError,
    NormalizedThermostatState,
    VendorKind,
)
from .const import CONTROL_REFRESH_DELAY, DOMAIN
from .coordinator import HoneywellCoordinator
from .hub import ThermostatHub

_LOGGER = logging.getLogger(__name__)

# Mapping from normalized modes to HA modes
HVAC_MODE_MAP = {
    "heat": HVACMode.HEAT,
    "cool": HVACMode.COOL,
    "auto": HVACMode.HEAT_COOL,
    "off": HVACMode.OFF,
}

# Reverse mapping
HA_MODE_TO_HONEYWELL = {ha_mode: mode for mode, ha_mode in HVAC_MODE_MAP.items()}

FAN_MODE_MAP = {
    "auto": FAN_AUTO,
    "on": FAN_ON,
    "circulate": FAN_DIFFUSE,
}

HA_FAN_TO_HONEYWELL = {ha_fan: fan for fan, ha_fan in FAN_MODE_MAP.items()}

HVAC_ACTION_MAP = {
    "idle": HVACAction.IDLE,
    "fan only": HVACAction.FAN,
    "heating": HVACAction.HEATING,
    "cooling": HVACAction.COOLING,
}

MODEL_NAMES = {
    VendorKind.LCC: "Resideo (LCC)",
    VendorKind.TCC: "Total Connect Comfort",
}


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up climate entities."""
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: HoneywellCoordinator = data["coordinator"]
    hub: ThermostatHub = data["hub"]

    async_add_entities(
        HoneywellClimate(coordinator, hub, device)
        for device in hub.devices(data["account_id"])
    )


def device_info(device: Device) -> dict[str, Any]:
    return {
        "identifiers": {(DOMAIN, str(device.key))},
        "name": device.name,
        "manufacturer": "Honeywell",
        "model": MODEL_NAMES[device.key.kind],
    }


class HoneywellClimate(CoordinatorEntity[HoneywellCoordinator], ClimateEntity):
    """Representation of a Honeywell thermostat."""

    _attr_has_entity_name = True
    _attr_name = None
    _attr_target_temperature_step = 0.5

    def __init__(
        self,
        coordinator: HoneywellCoordinator,
        hub: ThermostatHub,
        device: Device,
    ) -> None:
        """Initialize the thermostat."""
        super().__init__(coordinator)
        self._hub = hub
        self._device = device
        self._key = device.key

        self._attr_unique_id = f"{device.key}_climate"
        self._attr_device_info = device_info(device)
        self._confirm_unsub: Callable[[], None] | None = None

    @property
    def _state(self) -> NormalizedThermostatState | None:
        if self.coordinator.data:
            return self.coordinator.data.get(self._key)
        return None

    @property
    def available(self) -> bool:
        """Return if entity is available."""
        return self.coordinator.is_available(self._key)

    @property
    def supported_features(self) -> ClimateEntityFeature:
        """Build supported features from the reported capabilities."""
        features = (
            ClimateEntityFeature.TARGET_TEMPERATURE
            | ClimateEntityFeature.TURN_OFF
            | ClimateEntityFeature.TURN_ON
        )
        state = self._state
        if state is None:
            return features
        # Dual setpoint support for auto mode
        if "auto" in state.supported_modes:
            features |= ClimateEntityFeature.TARGET_TEMPERATURE_RANGE
        if state.supported_fan_modes:
            features |= ClimateEntityFeature.FAN_MODE
        return features

    @property
    def temperature_unit(self) -> str:
        """Return the unit of measurement."""
        if self._state is not None and self._state.unit == "C":
            return UnitOfTemperature.CELSIUS
        return UnitOfTemperature.FAHRENHEIT

    @property
    def current_temperature(self) -> float | None:
        """Return the current temperature."""
        return self._state.temperature if self._state else None

    @property
    def current_humidity(self) -> float | None:
        """Return the current humidity."""
        return self._state.humidity if self._state else None

    @property
    def hvac_mode(self) -> HVACMode:
        """Return current HVAC mode."""
        if self._state is None:
            return HVACMode.OFF
        return HVAC_MODE_MAP.get(self._state.mode, HVACMode.OFF)

    @property
    def hvac_modes(self) -> list[HVACMode]:
        """Return available HVAC modes."""
        supported = self._state.supported_modes if self._state else ("off",)
        modes = [HVACMode.OFF]
        modes.extend(
            HVAC_MODE_MAP[mode] for mode in supported if mode in HVAC_MODE_MAP and mode != "off"
        )
        return modes

    @property
    def hvac_action(self) -> HVACAction | None:
        """Return current HVAC action."""
        if self._state is None:
            return None
        return HVAC_ACTION_MAP.get(self._state.operating_state)

    @property
    def target_temperature(self) -> float | None:
        """Return the target temperature."""
        if self._state is None:
            return None
        mode = self.hvac_mode
        if mode == HVACMode.COOL:
            return self._state.cooling_setpoint
        if mode == HVACMode.HEAT:
            return self._state.heating_setpoint
        return None

    @property
    def target_temperature_high(self) -> float | None:
        """Return the high target temperature (for auto mode)."""
        if self._state is not None and self.hvac_mode == HVACMode.HEAT_COOL:
            return self._state.cooling_setpoint
        return None

    @property
    def target_temperature_low(self) -> float | None:
        """Return the low target temperature (for auto mode)."""
        if self._state is not None and self.hvac_mode == HVACMode.HEAT_COOL:
            return self._state.heating_setpoint
        return None

    @property
    def fan_mode(self) -> str | None:
        """Return current fan mode."""
        if self._state is None:
            return None
        return FAN_MODE_MAP.get(self._state.fan_mode)

    @property
    def fan_modes(self) -> list[str]:
        """Return available fan modes."""
        if self._state is None:
            return []
        return [FAN_MODE_MAP[f] for f in self._state.supported_fan_modes if f in FAN_MODE_MAP]

    async def _async_set(self, changes: ControlChanges) -> None:
        """Push a change and confirm it with a refresh shortly after."""
        try:
            await self._hub.async_set_control(self._key, changes)
        except HoneywellError as ex:
            _LOGGER.error("Failed to set %s on %s: %s", changes.as_dict(), self._device.name, ex)
            raise HomeAssistantError(f"Failed to update {self._device.name}: {ex}") from ex

        self._cancel_confirm()
        self._confirm_unsub = async_call_later(
            self.hass, CONTROL_REFRESH_DELAY, self._async_confirm
        )

    def _cancel_confirm(self) -> None:
        if self._confirm_unsub is not None:
            self._confirm_unsub()
            self._confirm_unsub = None

    async def _async_confirm(self, _now: Any) -> None:
        self._confirm_unsub = None
        await self.coordinator.async_request_refresh()

    async def async_will_remove_from_hass(self) -> None:
        """Drop a pending confirmation refresh."""
        self._cancel_confirm()
        await super().async_will_remove_from_hass()

    async def async_set_temperature(self, **kwargs: Any) -> None:
        """Set new target temperature(s)."""
        heat = kwargs.get(ATTR_TARGET_TEMP_LOW)
        cool = kwargs.get(ATTR_TARGET_TEMP_HIGH)
        if (temp := kwargs.get(ATTR_TEMPERATURE)) is not None:
            if self.hvac_mode == HVACMode.COOL:
                cool = temp
            else:
                heat = temp
        if heat is None and cool is None:
            return
        await self._async_set(ControlChanges(heating_setpoint=heat, cooling_setpoint=cool))

    async def async_set_hvac_mode(self, hvac_mode: HVACMode) -> None:
        """Set new HVAC mode."""
        honeywell_mode = HA_MODE_TO_HONEYWELL.get(hvac_mode)
        if not honeywell_mode:
            _LOGGER.error("Unsupported HVAC mode: %s", hvac_mode)
            return
        await self._async_set(ControlChanges(mode=honeywell_mode))

    async def async_set_fan_mode(self, fan_mode: str) -> None:
        """Set new fan mode."""
        honeywell_fan = HA_FAN_TO_HONEYWELL.get(fan_mode)
        if not honeywell_fan:
            _LOGGER.error("Unsupported fan mode: %s", fan_mode)
            return
        await self._async_set(ControlChanges(fan_mode=honeywell_fan))

    async def async_turn_on(self) -> None:
        """Turn on the thermostat."""
        await self.async_set_hvac_mode(HVACMode.HEAT)

    async def async_turn_off(self) -> None:
        """Turn off the thermostat."""
        await self.async_set_hvac_mode(HVACMode.OFF)
