"""
Shared fixtures for the ledger tests.
"""

import itertools

import pytest

from bicho_rp.lottery.auth import NewUserSpec
from bicho_rp.lottery.engine import LotteryEngine
from bicho_rp.lottery.ledger import LedgerStore
from bicho_rp.lottery.registry import AnimalRegistry

FIXED_NOW = 1_700_000_000_000


def fixed_clock():
    return FIXED_NOW


def fixed_number(number):
    """Random source that always draws ``number``."""
    return lambda low, high: number


class SequenceRng:
    """Random source replaying a fixed list of numbers."""

    def __init__(self, *numbers):
        self._numbers = itertools.cycle(numbers)

    def __call__(self, low, high):
        return next(self._numbers)


@pytest.fixture
def registry():
    return AnimalRegistry()


@pytest.fixture
def saved():
    """Collects every snapshot the store persists."""
    return []


@pytest.fixture
def rng():
    return SequenceRng(34)


@pytest.fixture
def store(registry, saved, rng):
    engine = LotteryEngine(registry, rng=rng, clock=fixed_clock)
    return LedgerStore(registry, save=saved.append, engine=engine, clock=fixed_clock)


@pytest.fixture
def admin_store(store):
    store.login("admin", "admin")
    return store


@pytest.fixture
def player(admin_store):
    """A player with 1000 credits; the admin session stays active."""
    return admin_store.create_user(
        NewUserSpec(username="marcos_silva", rp_name="Dr. Marcos", password="segredo", balance=1000)
    )
