"""Tests for the climate entity."""
from unittest.mock import AsyncMock, MagicMock, patch

from homeassistant.components.climate import FAN_ON, HVACMode
from homeassistant.exceptions import HomeAssistantError
import pytest

from custom_components.honeywell_unified.api import (
    CommandRejected,
    ControlChanges,
    Device,
)
from custom_components.honeywell_unified.climate import HoneywellClimate
from custom_components.honeywell_unified.const import CONTROL_REFRESH_DELAY

from .common import descriptor, thermostat_state

CLIMATE = "custom_components.honeywell_unified.climate"


@pytest.fixture
def entity():
    device = Device(descriptor(), "tcc_user", thermostat_state())
    coordinator = MagicMock()
    coordinator.data = {device.key: device.state}
    coordinator.async_request_refresh = AsyncMock()
    hub = MagicMock()
    hub.async_set_control = AsyncMock()
    climate = HoneywellClimate(coordinator, hub, device)
    climate.hass = MagicMock()
    return climate


async def test_command_pushes_change_and_confirms(entity):
    with patch(f"{CLIMATE}.async_call_later") as call_later:
        await entity.async_set_hvac_mode(HVACMode.HEAT)

    entity._hub.async_set_control.assert_awaited_once_with(
        entity._key, ControlChanges(mode="heat")
    )
    assert call_later.call_args.args[1] == CONTROL_REFRESH_DELAY

    await call_later.call_args.args[2](None)
    entity.coordinator.async_request_refresh.assert_awaited_once()


async def test_new_command_replaces_pending_confirmation(entity):
    cancels = [MagicMock(), MagicMock()]
    with patch(f"{CLIMATE}.async_call_later", side_effect=cancels):
        await entity.async_set_hvac_mode(HVACMode.COOL)
        await entity.async_set_fan_mode(FAN_ON)

    cancels[0].assert_called_once()
    cancels[1].assert_not_called()

    await entity.async_will_remove_from_hass()
    cancels[1].assert_called_once()


async def test_rejected_command_is_surfaced(entity):
    entity._hub.async_set_control.side_effect = CommandRejected("nope")

    with patch(f"{CLIMATE}.async_call_later") as call_later, pytest.raises(
        HomeAssistantError
    ):
        await entity.async_set_fan_mode(FAN_ON)

    call_later.assert_not_called()
