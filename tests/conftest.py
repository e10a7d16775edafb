"""
Shared fixtures for the adaptive AMM optimizer tests
"""

import pytest

from adaptive_amm.core.parameter_set import ParameterSet, ParameterBounds
from adaptive_amm.utils.config import OptimizerConfig


def make_analysis(volatility=0.02, trend='BULLISH', bullish_assets=2, risk_score=0.3, confidence=0.8):
    """MarketAnalysis snapshot over four assets"""
    assets = {
        symbol: {'volatility': volatility, 'trend': trend, 'volume': 1_000_000}
        for symbol in ('ETH', 'BTC', 'USDC', 'DAI')
    }
    return {
        'assets': assets,
        'marketOverview': {
            'avgVolatility': volatility,
            'trend': trend,
            'bullishAssets': bullish_assets
        },
        'riskMetrics': {'riskScore': risk_score},
        'confidence': confidence
    }


@pytest.fixture
def analysis_factory():
    return make_analysis


@pytest.fixture
def calm_analysis():
    return make_analysis(volatility=0.02)


@pytest.fixture
def volatile_analysis():
    return make_analysis(volatility=0.2, trend='BEARISH', bullish_assets=0, risk_score=0.9)


@pytest.fixture
def config():
    """Deterministic, greedy and small enough for fast refinement"""
    return OptimizerConfig(
        exploration_rate=0.0,
        random_seed=42,
        population_size=12,
        generations=4
    )


@pytest.fixture
def bounds():
    return ParameterBounds()


@pytest.fixture
def default_parameters():
    return ParameterSet()
