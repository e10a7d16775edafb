"""
market_state_encoder.py
Normalizes market analysis snapshots into fixed-length feature vectors

Author: Adaptive AMM Optimizer
Date: 2024
"""

# Standard library imports
import math
import logging
from typing import Dict, List, Optional, Any, Tuple
from dataclasses import dataclass
from enum import Enum
import numpy as np
import pandas as pd

# Local imports
from adaptive_amm.core.parameter_set import ParameterSet, ParameterBounds, clamp
from adaptive_amm.utils.validators import MarketAnalysisValidator

# Setup logger
logger = logging.getLogger(__name__)


# Constants
NEUTRAL_VALUE = 0.5
VOLATILITY_CAP = 0.1  # 10% volatility maps to 1.0
STATE_FIELDS = ('volatility', 'trend', 'bullish_ratio', 'risk_score', 'confidence')
TREND_ENCODING = {
    'BULLISH': 1.0,
    'NEUTRAL': 0.5,
    'BEARISH': 0.0
}


class FeeDirection(Enum):
    """Heuristic fee recommendation"""
    INCREASE_FEES = "INCREASE_FEES"
    DECREASE_FEES = "DECREASE_FEES"


@dataclass(frozen=True)
class MarketState:
    """Normalized market features, every field in [0, 1]"""
    volatility: float = NEUTRAL_VALUE
    trend: float = NEUTRAL_VALUE
    bullish_ratio: float = NEUTRAL_VALUE
    risk_score: float = NEUTRAL_VALUE
    confidence: float = NEUTRAL_VALUE
    missing_fields: int = 0

    def as_vector(self) -> np.ndarray:
        return np.array([getattr(self, name) for name in STATE_FIELDS], dtype=float)

    def key(self) -> str:
        """Discretized table key.

        Each field is rounded to 2 decimals, so states closer than 0.005 per
        field share a key.
        """
        return ','.join(f"{round(getattr(self, name), 2):.2f}" for name in STATE_FIELDS)


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        result = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def estimate_realized_volatility(prices: List[float]) -> Optional[float]:
    """Standard deviation of simple returns over a price history"""
    if prices is None or len(prices) < 3:
        return None
    series = pd.Series(prices, dtype=float)
    returns = series.pct_change().replace([np.inf, -np.inf], np.nan).dropna()
    if len(returns) < 2:
        return None
    return float(returns.std())


def aggregate_volatility(analysis: Any) -> float:
    """Raw aggregate volatility of a market analysis snapshot.

    Preference order: the overview average, the mean of per-asset values,
    the realized volatility of per-asset price histories, then 0.
    """
    if not isinstance(analysis, dict):
        return 0.0

    overview = analysis.get('marketOverview') or {}
    avg = _as_float(overview.get('avgVolatility')) if isinstance(overview, dict) else None
    if avg is not None:
        return max(0.0, avg)

    assets = analysis.get('assets') or {}
    if not isinstance(assets, dict) or not assets:
        return 0.0

    per_asset = [_as_float(data.get('volatility')) for data in assets.values() if isinstance(data, dict)]
    per_asset = [v for v in per_asset if v is not None]
    if per_asset:
        return max(0.0, float(np.mean(per_asset)))

    realized = [
        estimate_realized_volatility(data.get('history'))
        for data in assets.values() if isinstance(data, dict)
    ]
    realized = [v for v in realized if v is not None]
    if realized:
        return float(np.mean(realized))

    return 0.0


class MarketStateEncoder:
    """Encodes MarketAnalysis snapshots into MarketState vectors"""

    def __init__(self):
        self.validator = MarketAnalysisValidator()
        self.last_errors: List[str] = []

    def encode(self, analysis: Any) -> MarketState:
        """Never raises; missing fields fall back to the neutral midpoint"""
        validation = self.validator.validate(analysis)
        self.last_errors = list(validation.errors)
        if not validation:
            logger.warning(f"Market analysis incomplete, using neutral defaults: {validation.errors}")

        if not isinstance(analysis, dict):
            return MarketState(missing_fields=len(STATE_FIELDS))

        missing = 0
        overview = analysis.get('marketOverview')
        overview = overview if isinstance(overview, dict) else {}
        risk = analysis.get('riskMetrics')
        risk = risk if isinstance(risk, dict) else {}

        # Volatility
        raw_volatility = _as_float(overview.get('avgVolatility'))
        if raw_volatility is None:
            fallback = aggregate_volatility(analysis)
            if fallback > 0:
                volatility = min(fallback / VOLATILITY_CAP, 1.0)
            else:
                volatility = NEUTRAL_VALUE
                missing += 1
        else:
            volatility = min(max(raw_volatility, 0.0) / VOLATILITY_CAP, 1.0)

        # Trend
        trend_label = overview.get('trend')
        if trend_label in TREND_ENCODING:
            trend = TREND_ENCODING[trend_label]
        else:
            trend = NEUTRAL_VALUE
            missing += 1

        # Bullish ratio
        bullish = _as_float(overview.get('bullishAssets'))
        assets = analysis.get('assets')
        asset_count = len(assets) if isinstance(assets, dict) else 0
        if bullish is None:
            bullish_ratio = NEUTRAL_VALUE
            missing += 1
        else:
            bullish_ratio = bullish / max(asset_count, 1)

        # Risk score
        risk_score = _as_float(risk.get('riskScore'))
        if risk_score is None:
            risk_score = NEUTRAL_VALUE
            missing += 1

        # Confidence
        confidence = _as_float(analysis.get('confidence'))
        if confidence is None:
            confidence = NEUTRAL_VALUE
            missing += 1

        return MarketState(
            volatility=clamp(volatility, 0.0, 1.0),
            trend=clamp(trend, 0.0, 1.0),
            bullish_ratio=clamp(bullish_ratio, 0.0, 1.0),
            risk_score=clamp(risk_score, 0.0, 1.0),
            confidence=clamp(confidence, 0.0, 1.0),
            missing_fields=missing
        )


class FeeDirectionAdvisor:
    """Volatility-threshold heuristic for the direction of fee changes"""

    def __init__(self, volatility_threshold: float = 0.05, bounds: Optional[ParameterBounds] = None):
        self.volatility_threshold = volatility_threshold
        self.bounds = bounds or ParameterBounds()

    def recommend(self, volatility: float) -> Tuple[FeeDirection, float]:
        """Return the recommended direction and its confidence"""
        if volatility > self.volatility_threshold:
            return FeeDirection.INCREASE_FEES, min(volatility * 10, 1.0)
        return FeeDirection.DECREASE_FEES, max(0.3, 1.0 - volatility * 5)

    def apply(self, params: ParameterSet, volatility: float) -> ParameterSet:
        """Move the fee one step in the recommended direction"""
        direction, _ = self.recommend(volatility)
        adjusted = params.copy()

        if direction == FeeDirection.INCREASE_FEES:
            step = int(math.floor(volatility * 0.5 * 10000))
            adjusted.fee_rate = min(params.fee_rate + step, self.bounds.max_fee_rate)
        else:
            step = int(math.floor((self.volatility_threshold - volatility) * 0.3 * 10000))
            adjusted.fee_rate = max(params.fee_rate - step, self.bounds.min_fee_rate)

        return adjusted
