"""
Pytest configuration and shared fixtures for Pumpflow tests.
"""

import pytest
import itertools

from pumpflow.models import TokenRecord
from pumpflow.token_store import TokenStore, reset_token_store


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


@pytest.fixture
def clock():
    """Controllable millisecond clock."""
    return FakeClock()


@pytest.fixture
def store(clock):
    """Fresh token store driven by the fake clock."""
    return TokenStore(capacity=200, clock=clock)


@pytest.fixture(autouse=True)
def fresh_global_store():
    """Reset the process-wide store around every test."""
    reset_token_store()
    yield
    reset_token_store()


_mint_counter = itertools.count()


def make_record(market_cap=0, created_at=1_700_000_000_000, **overrides) -> TokenRecord:
    """Build a TokenRecord with a unique mint."""
    n = next(_mint_counter)
    fields = {
        "mint": f"Mint{n}pump",
        "name": f"Token {n}",
        "symbol": f"TK{n}",
        "marketCap": market_cap,
        "createdAt": created_at,
    }
    fields.update(overrides)
    return TokenRecord(**fields)


@pytest.fixture
def new_token_payload():
    """A full new token event as emitted by PumpPortal."""
    return {
        "signature": "5xYzSig",
        "mint": "7GCihgDB8fe6KNjn2MYtkzZcRjQy3t9GHdC8uHYmW2hr",
        "traderPublicKey": "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM",
        "txType": "create",
        "initialBuy": 61224489.8,
        "solAmount": 1.5,
        "bondingCurveKey": "CurveKey111",
        "vTokensInBondingCurve": 1011775510.2,
        "vSolInBondingCurve": 31.5,
        "marketCap": 31.13,
        "name": "Doge Moon",
        "symbol": "DMOON",
        "uri": "https://ipfs.io/ipfs/QmDoge",
        "pool": "pump",
    }


@pytest.fixture
def record_factory():
    """Factory for TokenRecords with unique mints."""
    return make_record
