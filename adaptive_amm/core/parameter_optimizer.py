"""
parameter_optimizer.py
One optimization cycle: encode, select, refine, blend, validate

Author: Adaptive AMM Optimizer
Date: 2024
"""

# Standard library imports
import logging
import math
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
import numpy as np

# Local imports
from adaptive_amm.core.errors import OptimizationError, InputDataError
from adaptive_amm.core.feedback_loop import PerformanceFeedbackLoop
from adaptive_amm.core.genetic_refiner import GeneticRefiner
from adaptive_amm.core.market_state_encoder import (
    MarketStateEncoder, FeeDirectionAdvisor, STATE_FIELDS, aggregate_volatility
)
from adaptive_amm.core.parameter_set import (
    ParameterSet, ParameterBounds, OptimizationDecision, ROIRecommendation,
    DEFAULT_ASSET_COUNT, conservative_defaults, validate_parameters
)
from adaptive_amm.core.q_learning_policy import QLearningPolicy
from adaptive_amm.core.roi_consensus_blender import ROIConsensusBlender

# Setup logger
logger = logging.getLogger(__name__)


# Constants
MISSING_FIELD_PENALTY = 0.5


def step_toward(previous: int, target: int, max_change: float) -> int:
    """Move from ``previous`` toward ``target`` by at most ``max_change`` of ``previous``"""
    if previous <= 0:
        return target
    max_step = int(math.floor(previous * max_change))
    return previous + int(max(-max_step, min(max_step, target - previous)))


@dataclass
class CycleResult:
    """Ungated decision of one cycle plus the stage errors it absorbed"""
    decision: OptimizationDecision
    errors: List[OptimizationError] = field(default_factory=list)
    volatility: float = 0.0

    @property
    def degraded(self) -> bool:
        return bool(self.errors)


class ParameterOptimizer:
    """Owns the learning components and runs the per-cycle pipeline"""

    def __init__(self, config, rng: Optional[np.random.RandomState] = None):
        self.config = config
        self.bounds = ParameterBounds.from_config(config)
        self.rng = rng if rng is not None else np.random.RandomState(config.random_seed)

        self.encoder = MarketStateEncoder()
        self.policy = QLearningPolicy(config, self.bounds, self.rng)
        self.refiner = GeneticRefiner(config, self.bounds, self.rng)
        self.blender = ROIConsensusBlender(self.bounds)
        self.advisor = FeeDirectionAdvisor(config.volatility_threshold, self.bounds)
        self.feedback = PerformanceFeedbackLoop(self.policy, config.history_size)

    def optimize(
        self,
        market_analysis: Dict[str, Any],
        current: ParameterSet,
        roi: Optional[ROIRecommendation] = None,
        performance_metrics: Optional[Dict[str, float]] = None
    ) -> CycleResult:
        """Produce the cycle's candidate. Stage failures degrade, never raise."""
        errors: List[OptimizationError] = []

        # 1. Encode
        state = self.encoder.encode(market_analysis)
        if state.missing_fields == len(STATE_FIELDS):
            errors.append(InputDataError("market analysis carried no usable fields", stage='encode'))

        volatility = aggregate_volatility(market_analysis)

        # 2. ROI-driven learning rate
        if roi is not None:
            self.policy.tune_learning_rate(roi.confidence)

        # 3. Policy action
        action = self.policy.select_optimal_action(state, current)
        ml_confidence = max(
            0.0,
            action.confidence - state.missing_fields / len(STATE_FIELDS) * MISSING_FIELD_PENALTY
        )
        reasoning = list(action.reasoning)
        if state.missing_fields:
            reasoning.append(f"{state.missing_fields} market fields defaulted to neutral")

        # 4. Genetic refinement, fallback to the policy's candidate
        metrics = performance_metrics or self.feedback.recent_metrics()
        refined = self.refiner.refine(action.parameters, market_analysis, metrics, roi)
        if not refined.ok:
            errors.append(refined.error)
            reasoning.append(f"refinement skipped: {refined.error}")
        else:
            reasoning.append(f"genetic refinement fitness {refined.value.fitness:.3f}")

        # 5. Consensus
        blended = self.blender.blend(
            refined.value.parameters, ml_confidence, reasoning,
            action.expected_improvement, roi
        )
        if not blended.ok:
            errors.append(blended.error)
        candidate = blended.value

        # 6. Advisory note and final validation
        direction, direction_confidence = self.advisor.recommend(volatility)
        candidate.reasoning.append(
            f"fee advisor: {direction.value} (confidence {direction_confidence:.2f})"
        )

        decision = OptimizationDecision(
            parameters=validate_parameters(candidate.parameters, self.bounds),
            confidence=candidate.confidence,
            reasoning=candidate.reasoning,
            expected_improvement=candidate.expected_improvement,
            action_index=int(action.action),
            state_key=action.state_key
        )

        logger.info(
            f"Cycle candidate: action={action.action.name}, fee={decision.parameters.fee_rate}, "
            f"spread={decision.parameters.spread_multiplier}, confidence={decision.confidence:.2f}"
        )
        for error in errors:
            logger.error(f"Stage {error.stage} degraded: {error}")

        return CycleResult(decision=decision, errors=errors, volatility=volatility)

    def conservative_decision(self, current: ParameterSet, volatility: float, failures: int,
                              last_deployed: Optional[ParameterSet] = None) -> OptimizationDecision:
        """Mid-range defaults nudged by the fee advisor.

        With a previous deployment the fee and spread move toward the defaults
        by at most ``max_parameter_change`` per call, so the safety gate's
        change limit never blocks the fallback.
        """
        defaults = conservative_defaults(self.bounds, len(current.weights) or DEFAULT_ASSET_COUNT)
        target = validate_parameters(self.advisor.apply(defaults, volatility), self.bounds)
        direction, confidence = self.advisor.recommend(volatility)

        reasoning = [f"conservative defaults after {failures} consecutive failed cycles"]
        params = target
        if last_deployed is not None:
            params = validate_parameters(ParameterSet(
                fee_rate=step_toward(last_deployed.fee_rate, target.fee_rate,
                                     self.config.max_parameter_change),
                spread_multiplier=step_toward(last_deployed.spread_multiplier, target.spread_multiplier,
                                              self.config.max_parameter_change),
                weights=target.weights
            ), self.bounds)
            reasoning.append(
                f"stepping toward fee={target.fee_rate}, spread={target.spread_multiplier} "
                f"from fee={last_deployed.fee_rate}, spread={last_deployed.spread_multiplier}"
            )
        reasoning.append(f"fee advisor: {direction.value} (confidence {confidence:.2f})")

        return OptimizationDecision(
            parameters=params,
            confidence=confidence,
            reasoning=reasoning
        )

    def get_state(self) -> Dict[str, Any]:
        return {
            'policy': self.policy.get_state(),
            'history': self.feedback.get_history()
        }

    def load_state(self, state: Dict[str, Any]) -> None:
        if 'policy' in state:
            self.policy.load_state(state['policy'])
        if 'history' in state:
            self.feedback.load_history(state['history'])
