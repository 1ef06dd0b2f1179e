"""Tests for the Resideo (LCC) client."""
import datetime

import aiohttp
import pytest
from yarl import URL

from custom_components.honeywell_unified.api import (
    AuthError,
    ControlChanges,
    DeviceKey,
    LccAdapter,
    OAuthGrant,
    ParseError,
    RateLimited,
    VendorKind,
)
from custom_components.honeywell_unified.api.lcc import (
    OAUTH_REDIRECT_URL,
    RESIDEO_API_URL,
    normalize_thermostat,
)

from .common import descriptor, make_response, make_session, oauth_credentials, utcnow

TOKENS = {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": "1799"}

THERMOSTAT = {
    "indoorTemperature": 70,
    "indoorHumidity": 35,
    "units": "Fahrenheit",
    "allowedModes": ["Heat", "Cool", "Off"],
    "changeableValues": {"mode": "Heat", "heatSetpoint": 68, "coolSetpoint": 76},
    "operationStatus": {"mode": "EquipmentOff"},
    "settings": {
        "fan": {
            "allowedModes": ["On", "Auto", "Circulate"],
            "changeableValues": {"mode": "Circulate"},
        }
    },
}

LOCATIONS = [
    {
        "locationID": 1234,
        "devices": [
            {"deviceID": "LCC-00D02DB89E33", "deviceClass": "Thermostat", "userDefinedDeviceName": "Upstairs"},
            {"deviceID": "WS-1", "deviceClass": "LeakDetector"},
        ],
    }
]


def lcc_descriptor():
    return descriptor(VendorKind.LCC, "1234", "LCC-00D02DB89E33", "Upstairs")


async def test_authenticate_exchanges_code():
    session = make_session(post=make_response(json_data=TOKENS))
    adapter = LccAdapter(session)

    payload = await adapter.authenticate(
        OAuthGrant("consumerkey123", "consumersecret", "the-code", OAUTH_REDIRECT_URL)
    )

    assert payload.access_token == "access-2"
    assert payload.refresh_token == "refresh-2"
    assert payload.account_id == "lcc_consumer"
    remaining = payload.expires_at - utcnow()
    assert datetime.timedelta(minutes=29) < remaining <= datetime.timedelta(seconds=1799)

    args, kwargs = session.post.call_args
    assert args[0] == f"{RESIDEO_API_URL}/oauth2/token"
    assert kwargs["headers"]["Authorization"] == aiohttp.BasicAuth(
        "consumerkey123", "consumersecret"
    ).encode()
    assert kwargs["data"] == {
        "grant_type": "authorization_code",
        "code": "the-code",
        "redirect_uri": OAUTH_REDIRECT_URL,
    }


async def test_refresh_keeps_refresh_token_when_not_rotated():
    resp = make_response(json_data={"access_token": "access-2", "expires_in": 1799})
    session = make_session(post=resp)
    adapter = LccAdapter(session)

    renewed = await adapter.refresh(oauth_credentials())

    assert renewed.access_token == "access-2"
    assert renewed.refresh_token == "refresh-1"
    assert session.post.call_args.kwargs["data"] == {
        "grant_type": "refresh_token",
        "refresh_token": "refresh-1",
    }


async def test_rejected_grant_is_auth_error():
    adapter = LccAdapter(make_session(post=make_response(status=400)))

    with pytest.raises(AuthError):
        await adapter.refresh(oauth_credentials())


async def test_token_response_without_access_token():
    adapter = LccAdapter(make_session(post=make_response(json_data={"error": "nope"})))

    with pytest.raises(ParseError):
        await adapter.refresh(oauth_credentials())


def test_authorize_url():
    url = URL(LccAdapter(None).authorize_url("consumerkey123", state="xyz"))

    assert url.path == "/oauth2/authorize"
    assert url.query["client_id"] == "consumerkey123"
    assert url.query["response_type"] == "code"
    assert url.query["redirect_uri"] == OAUTH_REDIRECT_URL


async def test_list_devices_keeps_thermostats_only():
    session = make_session(get=make_response(json_data=LOCATIONS))
    adapter = LccAdapter(session)

    devices = await adapter.list_devices(oauth_credentials())

    assert [d.key for d in devices] == [
        DeviceKey(VendorKind.LCC, "1234", "LCC-00D02DB89E33")
    ]
    assert devices[0].name == "Upstairs"
    assert session.get.call_args.args[0].query["apikey"] == "consumerkey123"


async def test_fetch_state():
    session = make_session(get=make_response(json_data=THERMOSTAT))
    adapter = LccAdapter(session)

    state = await adapter.fetch_state(oauth_credentials(), lcc_descriptor())

    assert state.mode == "heat"
    assert state.operating_state == "idle"
    assert state.fan_mode == "circulate"
    assert state.heating_setpoint == 68
    assert state.supported_modes == ("heat", "cool", "off")
    assert state.supported_fan_modes == ("on", "auto", "circulate")

    url = session.get.call_args.args[0]
    assert url.path == "/v2/devices/thermostats/LCC-00D02DB89E33"
    assert url.query["locationId"] == "1234"
    assert session.get.call_args.kwargs["headers"]["Authorization"] == "Bearer access-1"


def test_emergency_heat_reads_as_heat():
    thermo = {**THERMOSTAT, "changeableValues": {"mode": "EmergencyHeat"}}

    assert normalize_thermostat(thermo).mode == "heat"


def test_unknown_mode_is_parse_error():
    thermo = {**THERMOSTAT, "changeableValues": {"mode": "Vacation"}}

    with pytest.raises(ParseError):
        normalize_thermostat(thermo)


def test_unknown_fan_mode_is_parse_error():
    thermo = {
        **THERMOSTAT,
        "settings": {"fan": {"changeableValues": {"mode": "Turbo"}}},
    }

    with pytest.raises(ParseError):
        normalize_thermostat(thermo)


def test_missing_fan_settings_default_to_auto():
    thermo = {key: value for key, value in THERMOSTAT.items() if key != "settings"}

    state = normalize_thermostat(thermo)

    assert state.fan_mode == "auto"
    assert state.supported_fan_modes == ("auto", "on")


async def test_push_control_posts_changed_fields_only():
    session = make_session(post=make_response())
    adapter = LccAdapter(session)

    await adapter.push_control(
        oauth_credentials(),
        lcc_descriptor(),
        ControlChanges(mode="cool", cooling_setpoint=72.0),
    )

    assert session.post.await_count == 1
    args, kwargs = session.post.call_args
    assert args[0].path == "/v2/devices/thermostats/LCC-00D02DB89E33"
    assert kwargs["json"] == {"mode": "Cool", "coolSetpoint": 72.0}


async def test_push_fan_change_uses_fan_endpoint():
    session = make_session(post=make_response())
    adapter = LccAdapter(session)

    await adapter.push_control(
        oauth_credentials(), lcc_descriptor(), ControlChanges(fan_mode="on")
    )

    assert session.post.await_count == 1
    args, kwargs = session.post.call_args
    assert args[0].path == "/v2/devices/thermostats/LCC-00D02DB89E33/fan"
    assert kwargs["json"] == {"mode": "On"}


@pytest.mark.parametrize(
    ("status", "error"),
    [(401, AuthError), (403, AuthError), (429, RateLimited)],
)
async def test_api_errors(status, error):
    adapter = LccAdapter(make_session(get=make_response(status=status)))

    with pytest.raises(error):
        await adapter.fetch_state(oauth_credentials(), lcc_descriptor())
