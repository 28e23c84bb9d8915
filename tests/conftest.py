"""
Pytest Configuration and Fixtures
"""

import math
import sys
import threading
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from causal_sim.models import CandidateRelationship, Market, PricePoint


BASE_TIMESTAMP = 1_700_000_000
SERIES_LENGTH = 12

# Two zero-mean, mutually orthogonal patterns of equal norm (length 12).
# target = r·X + sqrt(1 − r²)·Z has Pearson correlation exactly r with X.
PATTERN_X = [1.0, -1.0] * 6
PATTERN_Z = [1.0, 1.0, -1.0, -1.0] * 3


class FakePriceProvider:
    """Price history keyed by token; tokens in `failing` raise TimeoutError."""

    def __init__(self, histories=None, failing=None):
        self.histories = dict(histories or {})
        self.failing = set(failing or [])
        self.calls = []
        self._lock = threading.Lock()

    def get_price_history(self, token_id, interval="1w", fidelity=None):
        with self._lock:
            self.calls.append(token_id)
        if token_id in self.failing:
            raise TimeoutError(f"timed out fetching {token_id}")
        return list(self.histories.get(token_id, []))


def _series(values, start=BASE_TIMESTAMP, step=3600):
    return [PricePoint(timestamp=start + step * i, price=v) for i, v in enumerate(values)]


def _market(market_id, price=0.5, outcomes=None, prices=None, token="auto",
            volume=500_000.0, question=None, category=None):
    outcomes = outcomes or ["Yes", "No"]
    prices = prices or [price, round(1 - price, 4)]
    tokens = [] if token is None else [f"tok-{market_id}" if token == "auto" else token]
    return Market(
        market_id=market_id,
        question=question or f"Will {market_id} happen?",
        outcomes=outcomes,
        outcome_prices=prices,
        volume=volume,
        category=category,
        clob_token_ids=tokens
    )


@pytest.fixture
def make_market():
    """Factory: make_market(id, price=0.5, ...) → Market with token tok-<id>."""
    return _market


@pytest.fixture
def make_series():
    """Factory: make_series(values, start, step) → hourly PricePoints."""
    return _series


@pytest.fixture
def trigger_values():
    return [0.5 + 0.05 * x for x in PATTERN_X]


@pytest.fixture
def correlated_values():
    """Factory: values whose correlation with the trigger series is exactly r."""
    def _make(r, base=0.4):
        s = math.sqrt(max(0.0, 1 - r * r))
        return [base + 0.05 * (r * x + s * z) for x, z in zip(PATTERN_X, PATTERN_Z)]
    return _make


@pytest.fixture
def make_candidate():
    """Factory: make_candidate(target_id, strength=0.6, direction='increase')."""
    def _make(target_id, strength=0.6, direction="increase", time_lag="days", reasoning="Related"):
        return CandidateRelationship(
            target_market_id=target_id,
            reasoning=reasoning,
            time_lag=time_lag,
            strength=strength,
            impact_direction=direction
        )
    return _make


@pytest.fixture
def price_provider():
    """Factory: price_provider(histories, failing) → FakePriceProvider."""
    return FakePriceProvider


@pytest.fixture(autouse=True)
def _clear_sim_env(monkeypatch):
    for key in ("CAUSAL_SIM_MAX_DEPTH", "CAUSAL_SIM_MAX_WORKERS", "CAUSAL_SIM_LOG_DIR"):
        monkeypatch.delenv(key, raising=False)
