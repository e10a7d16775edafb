"""
q_learning_policy.py
Tabular Q-learning over discrete fee/spread adjustment actions

Author: Adaptive AMM Optimizer
Date: 2024
"""

# Standard library imports
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from collections import OrderedDict
from enum import IntEnum
import numpy as np

# Local imports
from adaptive_amm.core.market_state_encoder import MarketState
from adaptive_amm.core.parameter_set import ParameterSet, ParameterBounds, clamp

# Setup logger
logger = logging.getLogger(__name__)


# Constants
EXPLORATION_CONFIDENCE = 0.1
EXPLOITATION_CONFIDENCE = 0.8
INITIAL_Q_SCALE = 0.1  # new states start with values in [0, 0.1)


class AdjustmentAction(IntEnum):
    """Discrete parameter moves, indexed 0..8"""
    HOLD = 0
    INCREASE_FEE = 1
    DECREASE_FEE = 2
    INCREASE_SPREAD = 3
    DECREASE_SPREAD = 4
    INCREASE_BOTH = 5
    DECREASE_BOTH = 6
    STRONG_INCREASE_FEE = 7
    STRONG_DECREASE_FEE = 8


# (fee delta in bps, spread delta); weights are never changed by an action
ACTION_DELTAS = {
    AdjustmentAction.HOLD: (0, 0),
    AdjustmentAction.INCREASE_FEE: (10, 0),
    AdjustmentAction.DECREASE_FEE: (-10, 0),
    AdjustmentAction.INCREASE_SPREAD: (0, 100),
    AdjustmentAction.DECREASE_SPREAD: (0, -100),
    AdjustmentAction.INCREASE_BOTH: (10, 100),
    AdjustmentAction.DECREASE_BOTH: (-10, -100),
    AdjustmentAction.STRONG_INCREASE_FEE: (20, 0),
    AdjustmentAction.STRONG_DECREASE_FEE: (-20, 0),
}
NUM_ACTIONS = len(ACTION_DELTAS)


@dataclass
class PolicyAction:
    """Action chosen for a state together with the resulting parameters"""
    action: AdjustmentAction
    parameters: ParameterSet
    confidence: float
    reasoning: List[str] = field(default_factory=list)
    expected_improvement: float = 0.0
    state_key: str = ''


class QLearningPolicy:
    """Epsilon-greedy tabular policy with a bounded Q-table"""

    def __init__(self, config, bounds: Optional[ParameterBounds] = None,
                 rng: Optional[np.random.RandomState] = None):
        self.learning_rate = config.learning_rate
        self.min_learning_rate = config.min_learning_rate
        self.max_learning_rate = config.max_learning_rate
        self.discount_factor = config.discount_factor
        self.exploration_rate = config.exploration_rate
        self.max_table_size = config.max_q_table_size
        self.bounds = bounds or ParameterBounds.from_config(config)
        self.rng = rng if rng is not None else np.random.RandomState(config.random_seed)

        # state key -> action index -> value, ordered by last visit
        self.q_table: 'OrderedDict[str, Dict[int, float]]' = OrderedDict()
        self.update_count = 0
        self.evictions = 0

    # ------------------------------------------------------------------
    # Table access
    # ------------------------------------------------------------------

    def _initial_values(self) -> Dict[int, float]:
        return {i: float(self.rng.random_sample() * INITIAL_Q_SCALE) for i in range(NUM_ACTIONS)}

    def _values_for(self, state_key: str) -> Dict[int, float]:
        """Fetch or lazily create the values of a state, marking it visited"""
        if state_key in self.q_table:
            self.q_table.move_to_end(state_key)
            return self.q_table[state_key]

        values = self._initial_values()
        self.q_table[state_key] = values

        while len(self.q_table) > self.max_table_size:
            evicted, _ = self.q_table.popitem(last=False)
            self.evictions += 1
            logger.debug(f"Evicted least recently visited state {evicted}")

        return values

    def get_q_values(self, state_key: str) -> Optional[Dict[int, float]]:
        """Copy of a state's values, or None if unvisited"""
        values = self.q_table.get(state_key)
        return dict(values) if values is not None else None

    def set_q_values(self, state_key: str, values: Dict[int, float]) -> None:
        stored = self._values_for(state_key)
        for index, value in values.items():
            stored[int(index)] = float(value)

    @property
    def table_size(self) -> int:
        return len(self.q_table)

    # ------------------------------------------------------------------
    # Action selection
    # ------------------------------------------------------------------

    @staticmethod
    def best_action(values: Dict[int, float]) -> int:
        """Argmax over action values, ties broken by the lowest index"""
        best_index = 0
        best_value = -np.inf
        for index in range(NUM_ACTIONS):
            value = values.get(index, 0.0)
            if value > best_value:
                best_index, best_value = index, value
        return best_index

    def apply_action(self, action: AdjustmentAction, current: ParameterSet) -> ParameterSet:
        fee_delta, spread_delta = ACTION_DELTAS[action]
        return ParameterSet(
            fee_rate=int(clamp(current.fee_rate + fee_delta,
                               self.bounds.min_fee_rate, self.bounds.max_fee_rate)),
            spread_multiplier=int(clamp(current.spread_multiplier + spread_delta,
                                        self.bounds.min_spread_multiplier,
                                        self.bounds.max_spread_multiplier)),
            weights=list(current.weights),
            is_active=True
        )

    def select_optimal_action(self, state: MarketState, current: ParameterSet) -> PolicyAction:
        """Epsilon-greedy selection for ``state`` starting from ``current``"""
        state_key = state.key()
        values = self._values_for(state_key)

        if self.rng.random_sample() < self.exploration_rate:
            action = AdjustmentAction(int(self.rng.randint(NUM_ACTIONS)))
            confidence = EXPLORATION_CONFIDENCE
            reasoning = [f"exploration: random action {action.name}"]
        else:
            action = AdjustmentAction(self.best_action(values))
            confidence = EXPLOITATION_CONFIDENCE
            reasoning = [f"exploitation: best known action {action.name}"]

        return PolicyAction(
            action=action,
            parameters=self.apply_action(action, current),
            confidence=confidence,
            reasoning=reasoning,
            expected_improvement=float(values[int(action)]),
            state_key=state_key
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def update(self, state_key: str, action: int, reward: float) -> float:
        """Q(s,a) <- Q(s,a) + alpha * (r + gamma * max_a' Q(s,a') - Q(s,a))"""
        values = self._values_for(state_key)
        action = int(action)
        current_q = values.get(action, 0.0)
        max_future_q = max(values.values())

        new_q = current_q + self.learning_rate * (
            reward + self.discount_factor * max_future_q - current_q
        )
        values[action] = new_q
        self.update_count += 1

        logger.debug(f"Q[{state_key}][{action}] {current_q:.4f} -> {new_q:.4f} (reward {reward:.3f})")
        return new_q

    def tune_learning_rate(self, roi_confidence: Optional[float]) -> float:
        """Adjust the learning rate from the ROI module's confidence"""
        if roi_confidence is None:
            return self.learning_rate

        previous = self.learning_rate
        if roi_confidence > 0.8:
            self.learning_rate = min(self.max_learning_rate, self.learning_rate * 1.05)
        elif roi_confidence < 0.5:
            self.learning_rate = max(self.min_learning_rate, self.learning_rate * 0.95)

        if self.learning_rate != previous:
            logger.debug(f"Learning rate {previous:.5f} -> {self.learning_rate:.5f}")
        return self.learning_rate

    # ------------------------------------------------------------------
    # State snapshot
    # ------------------------------------------------------------------

    def get_state(self) -> Dict[str, Any]:
        return {
            'q_table': {key: dict(values) for key, values in self.q_table.items()},
            'learning_rate': self.learning_rate,
            'update_count': self.update_count
        }

    def load_state(self, state: Dict[str, Any]) -> None:
        self.q_table = OrderedDict(
            (key, {int(i): float(v) for i, v in values.items()})
            for key, values in state.get('q_table', {}).items()
        )
        while len(self.q_table) > self.max_table_size:
            self.q_table.popitem(last=False)
        self.learning_rate = float(state.get('learning_rate', self.learning_rate))
        self.update_count = int(state.get('update_count', 0))
