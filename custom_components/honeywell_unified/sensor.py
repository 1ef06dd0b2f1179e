"""Sensor platform for Honeywell Unified integration."""
from __future__ import annotations

import logging

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import PERCENTAGE
from homeassistant.core import HomeAssistant
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .api import Device
from .climate import device_info
from .const import DOMAIN
from .coordinator import HoneywellCoordinator

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    """Set up sensor entities."""
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: HoneywellCoordinator = data["coordinator"]

    entities = []
    for device in data["hub"].devices(data["account_id"]):
        state = coordinator.data.get(device.key) if coordinator.data else None
        # Not every thermostat has a humidity sensor
        if state is not None and state.humidity is not None:
            entities.append(HoneywellHumiditySensor(coordinator, device))
        else:
            _LOGGER.debug("%s reports no humidity, skipping sensor", device.name)

    async_add_entities(entities)


class HoneywellHumiditySensor(CoordinatorEntity[HoneywellCoordinator], SensorEntity):
    """Indoor humidity reported by the thermostat."""

    _attr_has_entity_name = True
    _attr_name = "Indoor humidity"
    _attr_device_class = SensorDeviceClass.HUMIDITY
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = PERCENTAGE

    def __init__(self, coordinator: HoneywellCoordinator, device: Device) -> None:
        super().__init__(coordinator)
        self._key = device.key
        self._attr_unique_id = f"{device.key}_indoor_humidity"
        self._attr_device_info = device_info(device)

    @property
    def available(self) -> bool:
        return self.coordinator.is_available(self._key)

    @property
    def native_value(self) -> float | None:
        """Return the humidity."""
        if not self.coordinator.data or self._key not in self.coordinator.data:
            return None
        return self.coordinator.data[self._key].humidity
