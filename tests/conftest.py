"""
Pytest configuration and fixtures.
"""

from datetime import datetime

import pytest

from voxmation.automation import AutomationService
from voxmation.config import AutomationConfig
from voxmation.core import Collection, InMemoryDocumentStore

# Monday, mid-morning
FIXED_NOW = datetime(2026, 3, 2, 10, 0, 0)


@pytest.fixture
def now():
    return FIXED_NOW


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def config():
    return AutomationConfig()


@pytest.fixture
def service(store, config, now):
    return AutomationService(store, clock=lambda: now, config=config)


@pytest.fixture
def changes(store):
    """Store notifications received during the test."""
    received = []
    store.subscribe(received.append)
    return received


@pytest.fixture
def acme(store):
    return store.insert(Collection.ACCOUNTS, {
        "id": "acc-acme",
        "name": "Acme",
        "domain": "acme.com",
        "lifecycle": "Qualified",
        "status": "Prospect",
        "healthScore": 90,
        "mrr": 500,
        "salesOwner": "usr-2",
    })
