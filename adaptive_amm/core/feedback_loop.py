"""
feedback_loop.py
Turns observed pool performance into rewards for the Q-learning policy

Author: Adaptive AMM Optimizer
Date: 2024
"""

# Standard library imports
import math
import time
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from collections import deque

import numpy as np
import pandas as pd

# Local imports
from adaptive_amm.core.errors import InputDataError
from adaptive_amm.core.parameter_set import ParameterSet, clamp

# Setup logger
logger = logging.getLogger(__name__)


# Constants
HISTORY_SIZE = 100
METRIC_FIELDS = ('profitability', 'volume_change', 'capital_efficiency')
BASELINE_METRICS = {
    'profitability': 0.05,
    'volume_change': 0.02,
    'capital_efficiency': 1.0
}
# Accepted spellings coming from external readers
METRIC_ALIASES = {
    'profitability': ('profitability',),
    'volume_change': ('volume_change', 'volumeChange'),
    'capital_efficiency': ('capital_efficiency', 'capitalEfficiency')
}


@dataclass
class PerformanceRecord:
    """Observed outcome of one deployed parameter set"""
    timestamp: float
    deployed_parameters: ParameterSet
    profitability: Optional[float] = None
    volume_change: Optional[float] = None
    capital_efficiency: Optional[float] = None
    reward: Optional[float] = None
    state_key: Optional[str] = None
    action: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'timestamp': self.timestamp,
            'deployed_parameters': self.deployed_parameters.to_dict(),
            'profitability': self.profitability,
            'volume_change': self.volume_change,
            'capital_efficiency': self.capital_efficiency,
            'reward': self.reward,
            'state_key': self.state_key,
            'action': self.action,
            'error': self.error
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PerformanceRecord':
        return cls(
            timestamp=float(data['timestamp']),
            deployed_parameters=ParameterSet.from_dict(data.get('deployed_parameters', {})),
            profitability=data.get('profitability'),
            volume_change=data.get('volume_change'),
            capital_efficiency=data.get('capital_efficiency'),
            reward=data.get('reward'),
            state_key=data.get('state_key'),
            action=data.get('action'),
            error=data.get('error')
        )


def normalize_metrics(metrics: Optional[Dict[str, Any]]) -> Dict[str, float]:
    """Extract the three reward inputs as floats.

    Raises InputDataError naming the first missing or non-numeric metric.
    """
    if not isinstance(metrics, dict):
        raise InputDataError("performance metrics unavailable", stage='feedback')

    normalized = {}
    for name in METRIC_FIELDS:
        value = None
        for alias in METRIC_ALIASES[name]:
            if alias in metrics:
                value = metrics[alias]
                break

        if value is None:
            raise InputDataError(f"missing metric: {name}", stage='feedback')
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise InputDataError(f"non-numeric metric {name}: {value!r}", stage='feedback')
        if math.isnan(value) or math.isinf(value):
            raise InputDataError(f"non-finite metric {name}: {value}", stage='feedback')

        normalized[name] = float(value)

    return normalized


def compute_reward(metrics: Dict[str, Any]) -> float:
    """Scalar reward in [-1, 1] from post-deployment metrics"""
    values = normalize_metrics(metrics)

    reward = values['profitability'] * 0.5

    if values['volume_change'] > 0:
        reward += 0.2
    elif values['volume_change'] < -0.1:
        reward -= 0.3

    if values['capital_efficiency'] > 1.0:
        reward += 0.3

    return clamp(reward, -1.0, 1.0)


class PerformanceFeedbackLoop:
    """Records deployment outcomes and feeds rewards back into the policy"""

    def __init__(self, policy, history_size: int = HISTORY_SIZE):
        self.policy = policy
        self.history = deque(maxlen=history_size)
        self.skipped_updates = 0

    def record_feedback(
        self,
        state_key: Optional[str],
        action: Optional[int],
        deployed_parameters: ParameterSet,
        metrics: Optional[Dict[str, Any]],
        timestamp: Optional[float] = None
    ) -> PerformanceRecord:
        """Store the outcome and, when the reward is computable, update the policy"""
        record = PerformanceRecord(
            timestamp=timestamp if timestamp is not None else time.time(),
            deployed_parameters=deployed_parameters.copy(),
            state_key=state_key,
            action=action
        )

        try:
            values = normalize_metrics(metrics)
            record.profitability = values['profitability']
            record.volume_change = values['volume_change']
            record.capital_efficiency = values['capital_efficiency']
            record.reward = compute_reward(values)
        except InputDataError as e:
            record.error = str(e)
            self.skipped_updates += 1
            self.history.append(record)
            logger.warning(f"Reward not computable, skipping Q-update: {e}")
            return record

        if state_key is not None and action is not None:
            self.policy.update(state_key, action, record.reward)

        self.history.append(record)
        logger.info(f"Feedback recorded: reward={record.reward:.3f}, action={action}")
        return record

    def recent_metrics(self, n: int = 10) -> Dict[str, float]:
        """Average of the last ``n`` valid records, baseline when none"""
        valid = [r for r in self.history if r.error is None][-n:]
        if not valid:
            return dict(BASELINE_METRICS)

        return {
            name: float(np.mean([getattr(r, name) for r in valid]))
            for name in METRIC_FIELDS
        }

    def get_performance_summary(self) -> Dict[str, Any]:
        """Aggregate statistics over the stored history"""
        if not self.history:
            return {
                'records': 0,
                'valid_records': 0,
                'skipped_updates': self.skipped_updates
            }

        df = pd.DataFrame([
            {
                'timestamp': r.timestamp,
                'reward': r.reward,
                'profitability': r.profitability,
                'volume_change': r.volume_change,
                'capital_efficiency': r.capital_efficiency,
                'fee_rate': r.deployed_parameters.fee_rate,
                'spread_multiplier': r.deployed_parameters.spread_multiplier
            }
            for r in self.history
        ])
        valid = df.dropna(subset=['reward'])

        summary = {
            'records': len(df),
            'valid_records': len(valid),
            'skipped_updates': self.skipped_updates
        }

        if not valid.empty:
            summary.update({
                'avg_reward': float(valid['reward'].mean()),
                'min_reward': float(valid['reward'].min()),
                'max_reward': float(valid['reward'].max()),
                'positive_ratio': float((valid['reward'] > 0).mean()),
                'avg_profitability': float(valid['profitability'].mean()),
                'avg_fee_rate': float(valid['fee_rate'].mean()),
                'avg_spread_multiplier': float(valid['spread_multiplier'].mean())
            })

        return summary

    def get_history(self) -> List[Dict[str, Any]]:
        return [r.to_dict() for r in self.history]

    def load_history(self, records: List[Dict[str, Any]]) -> None:
        self.history.clear()
        for item in records:
            self.history.append(PerformanceRecord.from_dict(item))

    @property
    def history_size(self) -> int:
        return len(self.history)
