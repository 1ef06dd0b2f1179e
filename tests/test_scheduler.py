"""Tests for the refresh and token renewal schedulers."""
import asyncio
import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from custom_components.honeywell_unified.api import (
    AuthError,
    NetworkError,
    OAuthGrant,
    SessionLogin,
    VendorKind,
)
from custom_components.honeywell_unified.retry import RetryCoordinator
from custom_components.honeywell_unified.scheduler import (
    RefreshScheduler,
    TokenRenewalScheduler,
)

from .common import (
    descriptor,
    oauth_credentials,
    session_credentials,
    thermostat_state,
)

SCHEDULER = "custom_components.honeywell_unified.scheduler"


@pytest.fixture
async def devices(hub, adapters):
    adapters[VendorKind.TCC].authenticate.return_value = session_credentials()
    adapters[VendorKind.TCC].list_devices.return_value = [
        descriptor(device="2", name="Hall"),
        descriptor(device="3", name="Office"),
    ]
    await hub.async_add_account(SessionLogin("user@example.com", "secret"))
    return [d.key for d in hub.devices()]


async def test_refresh_collects_states(hub, adapters, devices):
    state = thermostat_state()
    adapters[VendorKind.TCC].fetch_state.return_value = state

    result = await RefreshScheduler(hub, throttle=0).async_refresh(devices)

    assert result.states == {key: state for key in devices}
    assert result.failures == {}


async def test_refresh_is_throttled(hub, adapters, devices):
    adapters[VendorKind.TCC].fetch_state.return_value = thermostat_state()
    scheduler = RefreshScheduler(hub, throttle=1.0)

    with patch(f"{SCHEDULER}.time") as mock_time, patch(
        f"{SCHEDULER}.asyncio.sleep", new_callable=AsyncMock
    ) as mock_sleep:
        mock_time.monotonic.side_effect = [100.0, 100.2, 101.0]
        await scheduler.async_refresh(devices)

    mock_sleep.assert_awaited_once()
    assert mock_sleep.await_args.args[0] == pytest.approx(0.8)


async def test_failed_device_keeps_last_state(hub, adapters, devices):
    old = thermostat_state(temperature=70.0)
    adapters[VendorKind.TCC].fetch_state.return_value = old
    scheduler = RefreshScheduler(hub, throttle=0)
    await scheduler.async_refresh(devices)

    adapters[VendorKind.TCC].fetch_state.side_effect = [
        NetworkError("down"),
        thermostat_state(temperature=72.0),
    ]
    result = await scheduler.async_refresh(devices)

    assert result.states[devices[0]] is old
    assert isinstance(result.failures[devices[0]], NetworkError)
    assert result.states[devices[1]].temperature == 72.0
    assert not result.auth_failed


async def test_auth_failure_is_reported(hub, adapters, devices):
    adapters[VendorKind.TCC].fetch_state.side_effect = AuthError("revoked")
    adapters[VendorKind.TCC].refresh.side_effect = AuthError("bad password")

    result = await RefreshScheduler(hub, throttle=0).async_refresh(devices[:1])

    assert result.auth_failed
    assert result.states == {}


async def test_removed_devices_are_skipped(hub, adapters, devices):
    await hub.async_remove_account("tcc_user@example.com")

    result = await RefreshScheduler(hub, throttle=0).async_refresh(devices)

    assert result.states == {}
    assert result.failures == {}
    adapters[VendorKind.TCC].fetch_state.assert_not_awaited()


async def test_slow_vendor_does_not_block_other_vendor(hub, adapters, devices):
    release = asyncio.Event()

    async def stuck_fetch(payload, device):
        await release.wait()
        return thermostat_state()

    adapters[VendorKind.TCC].fetch_state.side_effect = stuck_fetch
    adapters[VendorKind.LCC].authenticate.return_value = oauth_credentials()
    adapters[VendorKind.LCC].list_devices.return_value = [
        descriptor(VendorKind.LCC, "1234", "LCC-1", "Upstairs")
    ]
    adapters[VendorKind.LCC].fetch_state.return_value = thermostat_state(mode="heat")
    lcc_id = await hub.async_add_account(
        OAuthGrant("consumerkey123", "consumersecret", "code", "https://example.com")
    )
    lcc_keys = [d.key for d in hub.devices(lcc_id)]
    scheduler = RefreshScheduler(hub, throttle=0)

    tcc_pass = asyncio.create_task(scheduler.async_refresh(devices))
    await asyncio.sleep(0)
    result = await asyncio.wait_for(scheduler.async_refresh(lcc_keys), 1.0)

    assert result.states[lcc_keys[0]].mode == "heat"
    assert not tcc_pass.done()
    release.set()
    tcc_result = await tcc_pass
    assert set(tcc_result.states) == set(devices)


@pytest.fixture
def call_later():
    return MagicMock(side_effect=lambda delay, action: MagicMock())


@pytest.fixture
async def lcc_account(credential_store):
    payload = oauth_credentials(expires_in=datetime.timedelta(minutes=30))
    await credential_store.async_put(payload.account_id, payload)
    return payload


async def test_renewal_armed_before_expiry(credential_store, call_later, lcc_account):
    retry = RetryCoordinator(credential_store, {})
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)

    renewals.schedule(lcc_account.account_id)

    delay = call_later.call_args.args[0]
    assert 24 * 60 - 5 < delay <= 25 * 60


async def test_expired_token_renews_immediately(credential_store, call_later):
    payload = oauth_credentials(expires_in=datetime.timedelta(minutes=-10))
    await credential_store.async_put(payload.account_id, payload)
    renewals = TokenRenewalScheduler(
        RetryCoordinator(credential_store, {}), credential_store, call_later
    )

    renewals.schedule(payload.account_id)

    assert call_later.call_args.args[0] == 0


async def test_session_accounts_are_not_scheduled(credential_store, call_later):
    payload = session_credentials()
    await credential_store.async_put(payload.account_id, payload)
    renewals = TokenRenewalScheduler(
        RetryCoordinator(credential_store, {}), credential_store, call_later
    )

    renewals.schedule(payload.account_id)

    call_later.assert_not_called()


async def test_rescheduling_cancels_previous_timer(credential_store, lcc_account):
    cancels = [MagicMock(), MagicMock()]
    call_later = MagicMock(side_effect=cancels)
    renewals = TokenRenewalScheduler(
        RetryCoordinator(credential_store, {}), credential_store, call_later
    )

    renewals.schedule(lcc_account.account_id)
    renewals.schedule(lcc_account.account_id)

    cancels[0].assert_called_once()
    cancels[1].assert_not_called()


async def test_successful_renewal_rearms_timer(
    credential_store, adapters, call_later, lcc_account
):
    renewed = oauth_credentials(
        access_token="access-2", expires_in=datetime.timedelta(minutes=60)
    )
    adapters[VendorKind.LCC].refresh.return_value = renewed
    retry = RetryCoordinator(credential_store, adapters)
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)

    await renewals._async_renew(lcc_account.account_id)

    assert credential_store.get(lcc_account.account_id) is renewed
    delay = call_later.call_args.args[0]
    assert 54 * 60 < delay <= 55 * 60


async def test_renewal_of_removed_account_is_a_no_op(
    credential_store, adapters, call_later, lcc_account
):
    retry = RetryCoordinator(credential_store, adapters)
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)
    await credential_store.async_remove(lcc_account.account_id)

    await renewals._async_renew(lcc_account.account_id)

    adapters[VendorKind.LCC].refresh.assert_not_awaited()
    call_later.assert_not_called()


async def test_rejected_renewal_is_not_rearmed(
    credential_store, adapters, call_later, lcc_account
):
    adapters[VendorKind.LCC].refresh.side_effect = AuthError("revoked")
    retry = RetryCoordinator(credential_store, adapters)
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)

    await renewals._async_renew(lcc_account.account_id)

    call_later.assert_not_called()


async def test_failed_renewal_retries_later(
    credential_store, adapters, call_later, lcc_account
):
    adapters[VendorKind.LCC].refresh.side_effect = NetworkError("down")
    retry = RetryCoordinator(credential_store, adapters)
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)

    await renewals._async_renew(lcc_account.account_id)

    assert call_later.call_args.args[0] == 60


async def test_stop_cancels_timers(credential_store, lcc_account):
    cancel = MagicMock()
    call_later = MagicMock(return_value=cancel)
    retry = RetryCoordinator(credential_store, {})
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)
    renewals.schedule(lcc_account.account_id)

    renewals.stop()

    cancel.assert_called_once()


async def test_login_during_renewal_rearms_timer(
    credential_store, adapters, call_later, lcc_account
):
    fresh = oauth_credentials(
        access_token="access-3", expires_in=datetime.timedelta(minutes=60)
    )

    async def refresh(payload):
        await credential_store.async_put(payload.account_id, fresh)
        return oauth_credentials(access_token="access-2")

    adapters[VendorKind.LCC].refresh.side_effect = refresh
    retry = RetryCoordinator(credential_store, adapters)
    renewals = TokenRenewalScheduler(retry, credential_store, call_later)

    await renewals._async_renew(lcc_account.account_id)

    assert credential_store.get(lcc_account.account_id) is fresh
    call_later.assert_called_once()
    assert 54 * 60 < call_later.call_args.args[0] <= 55 * 60
