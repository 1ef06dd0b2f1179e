"""Throttled device polling and proactive OAuth token renewal."""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
import datetime
import functools
import logging
import time

from .api import (
    AccountNotFound,
    AuthError,
    Device,
    DeviceKey,
    HoneywellError,
    NormalizedThermostatState,
    OAuthCredentials,
    VendorKind,
)
from .const import (
    DEFAULT_THROTTLE_DELAY,
    TOKEN_RENEWAL_MARGIN,
    TOKEN_RENEWAL_RETRY_DELAY,
)
from .credentials import CredentialStore
from .hub import ThermostatHub
from .retry import RetryCoordinator

_LOGGER = logging.getLogger(__name__)


@dataclass
class RefreshResult:
    """Outcome of one polling pass."""

    states: dict[DeviceKey, NormalizedThermostatState] = field(default_factory=dict)
    failures: dict[DeviceKey, HoneywellError] = field(default_factory=dict)

    @property
    def auth_failed(self) -> bool:
        return any(isinstance(ex, AuthError) for ex in self.failures.values())


class RefreshScheduler:
    """
    Refresh devices one at a time with a minimum spacing between calls.

    Vendors rate limit aggressively and the TCC portal invalidates sessions
    on bursts of concurrent requests, so calls to the same vendor are never
    issued closer than ``throttle`` seconds apart. Each vendor has its own
    lock and clock; a slow vendor does not hold up the other one. A failing
    device keeps its last known state.
    """

    def __init__(self, hub: ThermostatHub, throttle: float = DEFAULT_THROTTLE_DELAY) -> None:
        self._hub = hub
        self._throttle = throttle
        self._last_call: dict[VendorKind, float] = {}
        self._locks: dict[VendorKind, asyncio.Lock] = {}

    def _lock(self, kind: VendorKind) -> asyncio.Lock:
        return self._locks.setdefault(kind, asyncio.Lock())

    async def _async_wait_turn(self, kind: VendorKind) -> None:
        if (last_call := self._last_call.get(kind)) is not None:
            remaining = self._throttle - (time.monotonic() - last_call)
            if remaining > 0:
                await asyncio.sleep(remaining)
        self._last_call[kind] = time.monotonic()

    async def _async_refresh_one(
        self, device: Device, result: RefreshResult
    ) -> None:
        key = device.key
        async with self._lock(key.kind):
            await self._async_wait_turn(key.kind)
            try:
                state = await self._hub.async_refresh_device(key)
            except HoneywellError as ex:
                if not self._hub.has_device(key) or isinstance(ex, AccountNotFound):
                    _LOGGER.debug("Device %s went away during refresh", key)
                    return
                _LOGGER.warning("Failed to refresh %s: %s", device.name, ex)
                result.failures[key] = ex
                state = device.state
            else:
                _LOGGER.debug(
                    "Refreshed %s: temp=%s, mode=%s",
                    device.name,
                    state.temperature,
                    state.mode,
                )
        if state is not None:
            result.states[key] = state

    async def async_refresh(self, keys: Iterable[DeviceKey]) -> RefreshResult:
        """Refresh the given devices, collecting states and failures."""
        result = RefreshResult()
        for key in keys:
            if not self._hub.has_device(key):
                _LOGGER.debug("Skipping refresh of removed device %s", key)
                continue
            await self._async_refresh_one(self._hub.get_device(key), result)
        return result


class TokenRenewalScheduler:
    """
    Renew OAuth tokens shortly before they expire.

    ``call_later(delay_seconds, action)`` must return a cancel callable;
    in Home Assistant this is ``async_call_later`` bound to ``hass``.
    """

    def __init__(
        self,
        retry: RetryCoordinator,
        store: CredentialStore,
        call_later: Callable[[float, Callable], Callable[[], None]],
        margin: datetime.timedelta = TOKEN_RENEWAL_MARGIN,
    ) -> None:
        self._retry = retry
        self._store = store
        self._call_later = call_later
        self._margin = margin
        self._unsubs: dict[str, Callable[[], None]] = {}
        self._remove_listener = retry.add_renewal_listener(self.schedule)

    def _arm(self, account_id: str, delay: float) -> None:
        self.cancel(account_id)
        self._unsubs[account_id] = self._call_later(
            delay, functools.partial(self._async_renew, account_id)
        )

    def schedule(self, account_id: str) -> None:
        """Arm the renewal timer for an account's current token."""
        if not self._store.exists(account_id):
            self.cancel(account_id)
            return
        payload = self._store.get(account_id)
        if not isinstance(payload, OAuthCredentials):
            return
        now = datetime.datetime.now(datetime.timezone.utc)
        delay = max(0.0, (payload.expires_at - self._margin - now).total_seconds())
        _LOGGER.info(
            "Scheduling token refresh for account %s in %d seconds", account_id, delay
        )
        self._arm(account_id, delay)

    async def _async_renew(self, account_id: str, _now=None) -> None:
        self._unsubs.pop(account_id, None)
        if not self._store.exists(account_id):
            _LOGGER.debug("Skipping token refresh for removed account %s", account_id)
            return
        try:
            # A successful renewal re-arms the timer through the listener
            await self._retry.async_renew(account_id)
        except AccountNotFound:
            _LOGGER.debug("Account %s removed during token refresh", account_id)
        except AuthError as ex:
            _LOGGER.error(
                "Token refresh for %s rejected, re-authentication required: %s",
                account_id,
                ex,
            )
        except HoneywellError as ex:
            _LOGGER.warning(
                "Token refresh for %s failed, retrying in %s: %s",
                account_id,
                TOKEN_RENEWAL_RETRY_DELAY,
                ex,
            )
            self._arm(account_id, TOKEN_RENEWAL_RETRY_DELAY.total_seconds())

    def cancel(self, account_id: str) -> None:
        if (unsub := self._unsubs.pop(account_id, None)) is not None:
            unsub()

    def stop(self) -> None:
        """Cancel every timer and stop following renewals."""
        for account_id in list(self._unsubs):
            self.cancel(account_id)
        self._remove_listener()
