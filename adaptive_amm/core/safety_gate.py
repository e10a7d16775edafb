"""
safety_gate.py
Final approve/reject decision for candidate parameter sets

Author: Adaptive AMM Optimizer
Date: 2024
"""

import logging
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from enum import Enum

from adaptive_amm.core.parameter_set import ParameterSet

logger = logging.getLogger(__name__)


class RejectionReason(Enum):
    """Why a candidate was not deployed"""
    CONFIDENCE_TOO_LOW = "confidence too low"
    EMERGENCY_FLOOR_VIOLATED = "emergency floor violated"
    CHANGE_TOO_LARGE = "parameter change too large"
    INTERVAL_NOT_ELAPSED = "update interval not elapsed"
    PREEMPTED_BY_EMERGENCY = "preempted by emergency"


@dataclass
class GateResult:
    """Outcome of the gate; a rejection is a value, not an exception"""
    approved: bool
    reason: Optional[RejectionReason] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def reason_text(self) -> Optional[str]:
        return self.reason.value if self.reason else None

    def __bool__(self):
        return self.approved


def change_ratio(previous: float, proposed: float) -> float:
    """Relative change, infinite when the previous value is zero"""
    if previous == 0:
        return 0.0 if proposed == 0 else float('inf')
    return abs(proposed - previous) / abs(previous)


class SafetyGate:
    """Ordered checks over a candidate; the first failure wins.

    1. combined confidence >= confidence_threshold
    2. emergency floors on fee and spread while in EMERGENCY
    3. relative fee/spread change <= max_parameter_change vs last deployed
    4. optimization_interval elapsed since the last deployment
    """

    def __init__(self, config):
        self.confidence_threshold = config.confidence_threshold
        self.max_parameter_change = config.max_parameter_change
        self.optimization_interval = config.optimization_interval
        self.emergency_fee_floor = config.emergency_fee_floor
        self.emergency_spread_floor = config.emergency_spread_floor

    def evaluate(
        self,
        candidate: ParameterSet,
        confidence: float,
        last_deployed: Optional[ParameterSet],
        last_deploy_time: Optional[float],
        emergency_active: bool,
        now: float
    ) -> GateResult:
        """Decide whether ``candidate`` may be deployed. No side effects."""
        # 1. Confidence
        if confidence < self.confidence_threshold:
            return GateResult(False, RejectionReason.CONFIDENCE_TOO_LOW, {
                'confidence': confidence,
                'threshold': self.confidence_threshold
            })

        # 2. Emergency floors
        if emergency_active and (candidate.fee_rate < self.emergency_fee_floor
                                 or candidate.spread_multiplier < self.emergency_spread_floor):
            return GateResult(False, RejectionReason.EMERGENCY_FLOOR_VIOLATED, {
                'fee_rate': candidate.fee_rate,
                'spread_multiplier': candidate.spread_multiplier,
                'fee_floor': self.emergency_fee_floor,
                'spread_floor': self.emergency_spread_floor
            })

        # 3. Change magnitude
        if last_deployed is not None:
            fee_change = change_ratio(last_deployed.fee_rate, candidate.fee_rate)
            spread_change = change_ratio(last_deployed.spread_multiplier, candidate.spread_multiplier)
            if fee_change > self.max_parameter_change or spread_change > self.max_parameter_change:
                return GateResult(False, RejectionReason.CHANGE_TOO_LARGE, {
                    'fee_change': fee_change,
                    'spread_change': spread_change,
                    'max_change': self.max_parameter_change
                })

        # 4. Interval
        if last_deploy_time is not None and now - last_deploy_time < self.optimization_interval:
            return GateResult(False, RejectionReason.INTERVAL_NOT_ELAPSED, {
                'elapsed': now - last_deploy_time,
                'interval': self.optimization_interval
            })

        return GateResult(True)
