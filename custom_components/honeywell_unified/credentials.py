"""Persistent per-account credential state."""
from __future__ import annotations

import logging
from typing import Any

from .api import AccountNotFound, CredentialPayload, HoneywellError
from .api.models import payload_from_dict

_LOGGER = logging.getLogger(__name__)


class CredentialStore:
    """
    Holds exactly one credential payload per account.

    Payloads are immutable, so replacing one is a single reference swap:
    a reader sees either the old payload or the new one, never a mix.
    Every write is persisted through ``store`` (a Home Assistant ``Store``
    or anything with ``async_load``/``async_save``) so restarts do not force
    a fresh login.
    """

    def __init__(self, store) -> None:
        self._store = store
        self._payloads: dict[str, CredentialPayload] = {}

    async def async_load(self) -> None:
        """Load persisted payloads."""
        data = await self._store.async_load() or {}
        for account_id, raw in data.get("accounts", {}).items():
            try:
                self._payloads[account_id] = payload_from_dict(raw)
            except HoneywellError as ex:
                _LOGGER.warning("Dropping stored credentials for %s: %s", account_id, ex)
        _LOGGER.debug("Loaded credentials for %d account(s)", len(self._payloads))

    async def _async_save(self) -> None:
        await self._store.async_save(self._as_dict())

    def _as_dict(self) -> dict[str, Any]:
        return {
            "accounts": {
                account_id: payload.as_dict()
                for account_id, payload in self._payloads.items()
            }
        }

    def get(self, account_id: str) -> CredentialPayload:
        """Return the live payload for an account."""
        try:
            return self._payloads[account_id]
        except KeyError:
            raise AccountNotFound(f"No credentials for {account_id}") from None

    def exists(self, account_id: str) -> bool:
        return account_id in self._payloads

    def account_ids(self) -> list[str]:
        return list(self._payloads)

    async def async_put(self, account_id: str, payload: CredentialPayload) -> None:
        """Replace the payload for an account."""
        self._payloads[account_id] = payload
        await self._async_save()

    async def async_compare_and_swap(
        self,
        account_id: str,
        expected: CredentialPayload,
        payload: CredentialPayload,
    ) -> bool:
        """Replace the payload only if it is still ``expected``."""
        if self._payloads.get(account_id) is not expected:
            return False
        self._payloads[account_id] = payload
        await self._async_save()
        return True

    async def async_remove(self, account_id: str) -> None:
        """Forget an account; unknown ids are ignored."""
        if self._payloads.pop(account_id, None) is not None:
            await self._async_save()
