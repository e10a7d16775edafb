"""
emergency_mode_controller.py
Two-state volatility circuit breaker with hysteresis

Author: Adaptive AMM Optimizer
Date: 2024
"""

# Standard library imports
import time
import logging
from typing import Dict, List, Optional, Any
from dataclasses import dataclass
from collections import deque
from enum import Enum

# Local imports
from adaptive_amm.core.parameter_set import (
    ParameterSet, ParameterBounds, DEFAULT_ASSET_COUNT, clamp, equal_weights
)

# Setup logger
logger = logging.getLogger(__name__)


# Constants
EMERGENCY_MAX_FEE = 500
EMERGENCY_BASE_SPREAD = 1500
EMERGENCY_MAX_SPREAD = 3000
TRANSITION_LOG_SIZE = 100


class EmergencyModeState(Enum):
    """Operating mode of the optimizer"""
    NORMAL = "NORMAL"
    EMERGENCY = "EMERGENCY"


@dataclass
class EmergencyTransition:
    """Result of a volatility check that changed the mode"""
    from_state: EmergencyModeState
    to_state: EmergencyModeState
    volatility: float
    timestamp: float
    epoch: int
    parameters: Optional[ParameterSet] = None

    @property
    def requires_deployment(self) -> bool:
        return self.parameters is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from_state': self.from_state.value,
            'to_state': self.to_state.value,
            'volatility': self.volatility,
            'timestamp': self.timestamp,
            'epoch': self.epoch,
            'parameters': self.parameters.to_dict() if self.parameters else None
        }


class EmergencyModeController:
    """NORMAL <-> EMERGENCY state machine.

    Enters EMERGENCY when volatility exceeds ``emergency_threshold`` and leaves
    it once volatility falls below ``emergency_exit_ratio`` times the
    threshold. Volatility inside the band keeps the current state.
    """

    def __init__(self, config, bounds: Optional[ParameterBounds] = None,
                 asset_count: int = DEFAULT_ASSET_COUNT):
        self.threshold = config.emergency_threshold
        self.exit_ratio = config.emergency_exit_ratio
        self.bounds = bounds or ParameterBounds.from_config(config)
        self.asset_count = asset_count

        self.state = EmergencyModeState.NORMAL
        self.epoch = 0
        self.entered_at: Optional[float] = None
        self.transitions = deque(maxlen=TRANSITION_LOG_SIZE)

    @property
    def is_active(self) -> bool:
        return self.state == EmergencyModeState.EMERGENCY

    @property
    def exit_threshold(self) -> float:
        return self.threshold * self.exit_ratio

    def build_emergency_parameters(self, volatility: float) -> ParameterSet:
        """Conservative set deployed on entry"""
        fee = min(EMERGENCY_MAX_FEE, int(round(volatility * 1000)))
        spread = min(EMERGENCY_MAX_SPREAD, int(round(EMERGENCY_BASE_SPREAD + volatility * 2000)))
        return ParameterSet(
            fee_rate=int(clamp(fee, self.bounds.min_fee_rate, self.bounds.max_fee_rate)),
            spread_multiplier=int(clamp(spread, self.bounds.min_spread_multiplier,
                                        self.bounds.max_spread_multiplier)),
            weights=equal_weights(self.asset_count),
            is_active=True
        )

    def check_volatility(self, volatility: float, now: Optional[float] = None) -> Optional[EmergencyTransition]:
        """Evaluate the current volatility; returns the transition, if any"""
        now = now if now is not None else time.time()

        if self.state == EmergencyModeState.NORMAL and volatility > self.threshold:
            self.state = EmergencyModeState.EMERGENCY
            self.epoch += 1
            self.entered_at = now
            transition = EmergencyTransition(
                from_state=EmergencyModeState.NORMAL,
                to_state=EmergencyModeState.EMERGENCY,
                volatility=volatility,
                timestamp=now,
                epoch=self.epoch,
                parameters=self.build_emergency_parameters(volatility)
            )
            logger.critical(
                f"EMERGENCY MODE ACTIVATED: volatility {volatility:.2%} > {self.threshold:.2%}"
            )

        elif self.state == EmergencyModeState.EMERGENCY and volatility < self.exit_threshold:
            self.state = EmergencyModeState.NORMAL
            self.entered_at = None
            transition = EmergencyTransition(
                from_state=EmergencyModeState.EMERGENCY,
                to_state=EmergencyModeState.NORMAL,
                volatility=volatility,
                timestamp=now,
                epoch=self.epoch
            )
            logger.info(f"Emergency mode deactivated: volatility {volatility:.2%}")

        else:
            return None

        self.transitions.append(transition)
        return transition

    def get_transitions(self) -> List[Dict[str, Any]]:
        return [t.to_dict() for t in self.transitions]

    def get_state(self) -> Dict[str, Any]:
        return {
            'state': self.state.value,
            'epoch': self.epoch,
            'entered_at': self.entered_at,
            'transitions': self.get_transitions()
        }

    def load_state(self, state: Dict[str, Any]) -> None:
        self.state = EmergencyModeState(state.get('state', EmergencyModeState.NORMAL.value))
        self.epoch = int(state.get('epoch', 0))
        self.entered_at = state.get('entered_at')
        self.transitions.clear()
        for item in state.get('transitions', []):
            params = item.get('parameters')
            self.transitions.append(EmergencyTransition(
                from_state=EmergencyModeState(item['from_state']),
                to_state=EmergencyModeState(item['to_state']),
                volatility=float(item['volatility']),
                timestamp=float(item['timestamp']),
                epoch=int(item['epoch']),
                parameters=ParameterSet.from_dict(params) if params else None
            ))
