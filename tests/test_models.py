"""Tests for the shared data model."""
import datetime

import pytest

from custom_components.honeywell_unified.api import (
    ConfigError,
    ControlChanges,
    DeviceKey,
    OAuthCredentials,
    ParseError,
    VendorKind,
)
from custom_components.honeywell_unified.api.models import payload_from_dict

from .common import oauth_credentials, session_credentials


def test_device_key_round_trips_through_text():
    key = DeviceKey(VendorKind.TCC, "1", "2")

    assert str(key) == "TCC|1|2"
    assert DeviceKey.parse("TCC|1|2") == key


@pytest.mark.parametrize("value", ["TCC|1", "CARRIER|1|2", ""])
def test_invalid_device_key(value):
    with pytest.raises(ConfigError):
        DeviceKey.parse(value)


def test_control_changes_only_reports_set_fields():
    changes = ControlChanges(cooling_setpoint=72.0)

    assert changes.as_dict() == {"cooling_setpoint": 72.0}
    assert changes.sets_hold
    assert not ControlChanges(fan_mode="on").sets_hold


def test_control_changes_validation():
    with pytest.raises(ConfigError):
        ControlChanges()
    with pytest.raises(ConfigError):
        ControlChanges(mode="dry")
    with pytest.raises(ConfigError):
        ControlChanges(fan_mode="turbo")


def test_payload_from_dict():
    payload = oauth_credentials()

    assert payload_from_dict(payload.as_dict()) == payload
    assert payload_from_dict(session_credentials().as_dict()) == session_credentials()
    with pytest.raises(ParseError):
        payload_from_dict({"kind": "lcc"})


def test_is_expiring():
    payload = oauth_credentials(expires_in=datetime.timedelta(minutes=4))

    assert isinstance(payload, OAuthCredentials)
    assert payload.is_expiring(datetime.timedelta(minutes=5))
    assert not payload.is_expiring(datetime.timedelta(minutes=1))
