"""Renew-once-and-retry wrapper around vendor calls."""
from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Mapping
import logging
from typing import TypeVar

from .api import AccountNotFound, AuthError, CredentialPayload, VendorAdapter, VendorKind
from .credentials import CredentialStore

_LOGGER = logging.getLogger(__name__)

_T = TypeVar("_T")


class RetryCoordinator:
    """
    Run adapter calls with the current credentials of an account.

    An ``AuthError`` triggers exactly one renewal and exactly one retry with
    the renewed payload. A second ``AuthError`` is surfaced to the caller,
    so a vendor that is down or has revoked access is never hammered.
    Any other error is surfaced immediately.

    Renewal is serialized per account. A task that failed under a payload
    which another task has already replaced reuses the replacement instead
    of renewing again.
    """

    def __init__(
        self,
        store: CredentialStore,
        adapters: Mapping[VendorKind, VendorAdapter],
    ) -> None:
        self._store = store
        self._adapters = adapters
        self._locks: dict[str, asyncio.Lock] = {}
        self._listeners: list[Callable[[str], None]] = []

    def add_renewal_listener(self, listener: Callable[[str], None]) -> Callable[[], None]:
        """Call ``listener(account_id)`` whenever a renewal leaves new credentials stored."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _lock(self, account_id: str) -> asyncio.Lock:
        return self._locks.setdefault(account_id, asyncio.Lock())

    async def execute(
        self,
        account_id: str,
        operation: Callable[[CredentialPayload], Awaitable[_T]],
    ) -> _T:
        """Run ``operation(payload)``, renewing once on an auth failure."""
        payload = self._store.get(account_id)
        try:
            return await operation(payload)
        except AuthError as ex:
            _LOGGER.warning("Auth error for %s, renewing credentials: %s", account_id, ex)

        renewed = await self.async_renew(account_id, stale=payload)
        try:
            return await operation(renewed)
        except AuthError as ex:
            _LOGGER.error("Auth error for %s persists after renewal: %s", account_id, ex)
            raise

    async def async_renew(
        self, account_id: str, stale: CredentialPayload | None = None
    ) -> CredentialPayload:
        """
        Renew the credentials of an account and store the result.

        When ``stale`` is given and the stored payload has already moved on,
        the stored payload is returned without contacting the vendor.
        """
        async with self._lock(account_id):
            current = self._store.get(account_id)
            if stale is not None and current is not stale:
                _LOGGER.debug("Credentials for %s already renewed", account_id)
                return current

            renewed = await self._adapters[current.kind].refresh(current)

            if await self._store.async_compare_and_swap(account_id, current, renewed):
                _LOGGER.info("Renewed credentials for %s", account_id)
            elif not self._store.exists(account_id):
                raise AccountNotFound(f"{account_id} was removed during renewal")
            else:
                # A fresh login landed while we were renewing; it wins
                _LOGGER.debug("Kept newer credentials stored for %s", account_id)
                renewed = self._store.get(account_id)

        for listener in list(self._listeners):
            listener(account_id)
        return renewed

    def forget(self, account_id: str) -> None:
        """Drop per-account bookkeeping after removal."""
        self._locks.pop(account_id, None)
