"""
Shared fixtures: deterministic accounts, a manual clock and a fresh registry.
"""

import pytest
from eth_account import Account

from credledger.clock import FixedClock
from credledger.registry import CredentialRegistry

OWNER_KEY = "0x" + "11" * 32
ISSUER_KEY = "0x" + "22" * 32
OTHER_ISSUER_KEY = "0x" + "33" * 32
SUBJECT_KEY = "0x" + "44" * 32
STRANGER_KEY = "0x" + "55" * 32


@pytest.fixture
def owner() -> str:
    return Account.from_key(OWNER_KEY).address


@pytest.fixture
def issuer() -> str:
    return Account.from_key(ISSUER_KEY).address


@pytest.fixture
def other_issuer() -> str:
    return Account.from_key(OTHER_ISSUER_KEY).address


@pytest.fixture
def subject() -> str:
    return Account.from_key(SUBJECT_KEY).address


@pytest.fixture
def stranger() -> str:
    return Account.from_key(STRANGER_KEY).address


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(1_700_000_000)


@pytest.fixture
def registry(owner: str, clock: FixedClock) -> CredentialRegistry:
    return CredentialRegistry.create(owner, clock)


@pytest.fixture
def issuing_registry(registry: CredentialRegistry, owner: str, issuer: str) -> CredentialRegistry:
    """Registry where `issuer` is already authorized."""
    registry.add_issuer(owner, issuer)
    return registry
