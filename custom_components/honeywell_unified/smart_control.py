"""
Smart control: steer a thermostat from the average of remote sensors.

Each evaluation averages the temperature sensors in occupied rooms (or all of
them when no occupancy sensors are configured) and, when the rooms are on the
wrong side of the desired setpoint for the thermostat's current mode, pushes
the thermostat setpoint past the target by a fixed offset.

Only heat and cool modes are acted on. The engine never changes the mode and
leaves auto mode alone.
"""
from __future__ import annotations

import asyncio
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
import logging
from typing import Any, Protocol

from .api import ConfigError, ControlChanges, DeviceKey
from .const import (
    CONF_CONTROL_OFFSET,
    CONF_DESIRED_SETPOINT,
    CONF_OCCUPANCY_SENSORS,
    CONF_PRIMARY_THERMOSTAT,
    CONF_SENSOR_LINKS,
    CONF_TEMPERATURE_SENSORS,
    DEFAULT_CONTROL_OFFSET,
)
from .hub import ThermostatHub

_LOGGER = logging.getLogger(__name__)


class SensorReader(Protocol):
    """Live readings of the configured sensors."""

    def temperature(self, sensor_id: str) -> float | None:
        """Current temperature, or None when unavailable."""

    def is_active(self, sensor_id: str) -> bool:
        """Whether an occupancy sensor currently reports presence."""


@dataclass(frozen=True)
class SmartControlConfig:
    """What to control and from which sensors."""

    primary: DeviceKey | None
    temperature_sensors: tuple[str, ...]
    desired_setpoint: float
    offset: float = DEFAULT_CONTROL_OFFSET
    occupancy_sensors: tuple[str, ...] = ()
    # occupancy sensor id -> temperature sensor ids in the same room
    sensor_links: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.primary is None:
            raise ConfigError("Smart control needs a primary thermostat")
        if not self.temperature_sensors:
            raise ConfigError("Smart control needs at least one temperature sensor")
        if self.offset < 0:
            raise ConfigError("Control offset must not be negative")
        if self.desired_setpoint is None:
            raise ConfigError("Smart control needs a desired setpoint")

    @property
    def sensors(self) -> tuple[str, ...]:
        """Every sensor whose changes should trigger an evaluation."""
        return self.temperature_sensors + self.occupancy_sensors

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> SmartControlConfig:
        """Build the config from config entry options."""
        primary = options.get(CONF_PRIMARY_THERMOSTAT)
        return cls(
            primary=DeviceKey.parse(primary) if primary else None,
            temperature_sensors=tuple(options.get(CONF_TEMPERATURE_SENSORS) or ()),
            occupancy_sensors=tuple(options.get(CONF_OCCUPANCY_SENSORS) or ()),
            sensor_links=parse_sensor_links(options.get(CONF_SENSOR_LINKS)),
            desired_setpoint=options.get(CONF_DESIRED_SETPOINT),
            offset=float(options.get(CONF_CONTROL_OFFSET, DEFAULT_CONTROL_OFFSET)),
        )


def parse_sensor_links(text: str | None) -> dict[str, tuple[str, ...]]:
    """
    Parse room links from the options form.

    One link per line: ``binary_sensor.kitchen_motion = sensor.kitchen_temp,
    sensor.pantry_temp``. Blank lines and lines starting with ``#`` are
    ignored.
    """
    links: dict[str, tuple[str, ...]] = {}
    for number, raw_line in enumerate((text or "").splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        occupancy, sep, temperatures = line.partition("=")
        sensors = tuple(s.strip() for s in temperatures.split(",") if s.strip())
        if not sep or not occupancy.strip() or not sensors:
            raise ConfigError(f"Invalid sensor link on line {number}: {raw_line!r}")
        links[occupancy.strip()] = links.get(occupancy.strip(), ()) + sensors
    return links


def format_sensor_links(links: Mapping[str, tuple[str, ...]]) -> str:
    return "\n".join(
        f"{occupancy} = {', '.join(temperatures)}"
        for occupancy, temperatures in links.items()
    )


def _round(value: float) -> float:
    """Round half up to one decimal."""
    return float(Decimal(str(value)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def compute_adjustment(
    mode: str, mean: float, desired: float, offset: float
) -> ControlChanges | None:
    """Decide the setpoint change for one evaluation, if any."""
    if mode == "cool" and mean > desired:
        return ControlChanges(cooling_setpoint=_round(desired - offset))
    if mode == "heat" and mean < desired:
        return ControlChanges(heating_setpoint=_round(desired + offset))
    return None


class SmartControlEngine:
    """Evaluate the averaging policy and command the primary thermostat."""

    def __init__(
        self,
        hub: ThermostatHub,
        config: SmartControlConfig,
        reader: SensorReader,
    ) -> None:
        self._hub = hub
        self._config = config
        self._reader = reader
        self._lock = asyncio.Lock()

    @property
    def config(self) -> SmartControlConfig:
        return self._config

    def eligible_sensors(self) -> list[str] | None:
        """
        Return the temperature sensors to average.

        None means the cycle must be skipped because occupancy sensors are
        configured and none of them is active.
        """
        config = self._config
        if not config.occupancy_sensors:
            return list(config.temperature_sensors)

        active = [s for s in config.occupancy_sensors if self._reader.is_active(s)]
        if not active:
            return None
        eligible: list[str] = []
        for occupancy in active:
            for sensor in config.sensor_links.get(occupancy, ()):
                if sensor in config.temperature_sensors and sensor not in eligible:
                    eligible.append(sensor)
        return eligible

    def eligible_temperatures(self) -> list[float] | None:
        sensors = self.eligible_sensors()
        if sensors is None:
            return None
        readings = []
        for sensor in sensors:
            value = self._reader.temperature(sensor)
            if value is None:
                _LOGGER.debug("Smart Control: %s has no reading, skipping it", sensor)
                continue
            readings.append(value)
        return readings

    async def _async_primary_mode(self) -> str:
        device = self._hub.get_device(self._config.primary)
        state = device.state
        if state is None:
            state = await self._hub.async_refresh_device(device.key)
        return state.mode

    async def async_evaluate(self) -> ControlChanges | None:
        """Run one evaluation cycle; returns the change issued, if any."""
        async with self._lock:
            readings = self.eligible_temperatures()
            if readings is None:
                _LOGGER.info("Smart Control: No motion detected, not adjusting setpoint")
                return None
            if not readings:
                _LOGGER.info("Smart Control: No active temperature sensors found")
                return None

            mean = sum(readings) / len(readings)
            mode = await self._async_primary_mode()
            desired = self._config.desired_setpoint
            _LOGGER.debug(
                "Smart Control: Avg temp of %d rooms is %s. Desired: %s. Mode: %s",
                len(readings),
                mean,
                desired,
                mode,
            )

            changes = compute_adjustment(mode, mean, desired, self._config.offset)
            if changes is None:
                _LOGGER.info("Smart Control: Rooms are comfortable. No change needed")
                return None

            _LOGGER.info(
                "Smart Control: Setting %s to %s",
                self._config.primary,
                changes.as_dict(),
            )
            await self._hub.async_set_control(self._config.primary, changes)
            return changes
