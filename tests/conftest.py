# tests/conftest.py
from datetime import datetime, timezone

import pytest

from models.app_data import PricingType
from services.storage import MemoryStorage
from services.store import DomainStore


FIXED_NOW = datetime(2024, 3, 15, 12, 30, tzinfo=timezone.utc)


@pytest.fixture
def storage():
	return MemoryStorage()


@pytest.fixture
def store(storage):
	return DomainStore(storage, clock=lambda: FIXED_NOW)


@pytest.fixture
def acm(store):
	return store.add_material("ACM", 100, PricingType.PER_AREA)


@pytest.fixture
def parafuso(store):
	return store.add_material("Parafuso", 2.5, PricingType.PER_UNIT)
