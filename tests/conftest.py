"""Fixtures for Honeywell Unified tests."""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from custom_components.honeywell_unified.api import VendorKind
from custom_components.honeywell_unified.credentials import CredentialStore
from custom_components.honeywell_unified.hub import ThermostatHub

from .common import FakeStore, make_adapter


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def credential_store(fake_store) -> CredentialStore:
    return CredentialStore(fake_store)


@pytest.fixture
def adapters() -> dict[VendorKind, MagicMock]:
    return {
        VendorKind.LCC: make_adapter(VendorKind.LCC),
        VendorKind.TCC: make_adapter(VendorKind.TCC),
    }


@pytest.fixture
def hub(credential_store, adapters) -> ThermostatHub:
    return ThermostatHub(credential_store, adapters)
