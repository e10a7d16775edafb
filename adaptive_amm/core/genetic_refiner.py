"""
genetic_refiner.py
Population-based local search that fine-tunes the policy's parameters

Author: Adaptive AMM Optimizer
Date: 2024
"""

import logging
from typing import Dict, Optional, Any, List
from dataclasses import dataclass, field
import numpy as np

from adaptive_amm.core.errors import ComputationError, StageResult
from adaptive_amm.core.market_state_encoder import aggregate_volatility
from adaptive_amm.core.parameter_set import (
    ParameterSet, ParameterBounds, ROIRecommendation, clamp, normalize_weights
)

logger = logging.getLogger(__name__)

# Mutation strengths per field
SEED_FEE_STRENGTH = 0.2
SEED_SPREAD_STRENGTH = 0.2
SEED_WEIGHT_STRENGTH = 0.1
FEE_STRENGTH = 0.1
SPREAD_STRENGTH = 0.1
WEIGHT_STRENGTH = 0.05

# Fitness blend when an ROI target is present
BASE_FITNESS_SHARE = 0.7
ROI_FITNESS_SHARE = 0.3
HIGH_RISK_SCORE = 0.7


@dataclass
class Individual:
    """Population member"""
    parameters: ParameterSet
    fitness: float = 0.0


@dataclass
class FitnessContext:
    """Market inputs the fitness function depends on, fixed for one refinement"""
    volatility: float
    risk_score: float
    profitability: Optional[float] = None
    roi: Optional[ROIRecommendation] = None


@dataclass
class RefinementResult:
    """Refined candidate with its search history"""
    parameters: ParameterSet
    fitness: float
    generation_best: List[float] = field(default_factory=list)
    generations_run: int = 0


class GeneticRefiner:
    """Elitist genetic search over fee, spread and weights"""

    def __init__(self, config, bounds: Optional[ParameterBounds] = None,
                 rng: Optional[np.random.RandomState] = None):
        self.population_size = config.population_size
        self.generations = config.generations
        self.elite_fraction = config.elite_fraction
        self.selection_fraction = config.selection_fraction
        self.mutation_rate = config.mutation_rate
        self.bounds = bounds or ParameterBounds.from_config(config)
        self.rng = rng if rng is not None else np.random.RandomState(config.random_seed)

    def refine(
        self,
        base: ParameterSet,
        market_analysis: Dict[str, Any],
        performance_metrics: Optional[Dict[str, float]] = None,
        roi: Optional[ROIRecommendation] = None
    ) -> StageResult:
        """Run the fixed number of generations around ``base``.

        Failures return the unmodified base as the stage fallback.
        """
        try:
            if not base.weights or sum(base.weights) <= 0:
                raise ComputationError("zero-sum weight vector", stage='genetic_refiner')

            context = self._build_context(market_analysis, performance_metrics, roi)
            population = self.create_initial_population(base)
            generation_best: List[float] = []

            for generation in range(self.generations):
                self._evaluate(population, context)
                generation_best.append(max(ind.fitness for ind in population))
                population = self.create_next_generation(population)

            self._evaluate(population, context)
            generation_best.append(max(ind.fitness for ind in population))

            best = self._select_best(population)
            logger.info(
                f"Genetic refinement complete: fitness={best.fitness:.4f}, "
                f"fee={best.parameters.fee_rate}bps, spread={best.parameters.spread_multiplier}"
            )

            return StageResult.success(RefinementResult(
                parameters=best.parameters,
                fitness=best.fitness,
                generation_best=generation_best,
                generations_run=self.generations
            ))

        except ComputationError as e:
            logger.error(f"Genetic refinement failed: {e}")
            return StageResult.failure(e, fallback=RefinementResult(parameters=base.copy(), fitness=0.0))
        except (ArithmeticError, ValueError, TypeError, KeyError) as e:
            logger.error(f"Genetic refinement failed: {e}")
            error = ComputationError(str(e), stage='genetic_refiner')
            return StageResult.failure(error, fallback=RefinementResult(parameters=base.copy(), fitness=0.0))

    # ------------------------------------------------------------------
    # Fitness
    # ------------------------------------------------------------------

    def _build_context(
        self,
        market_analysis: Dict[str, Any],
        performance_metrics: Optional[Dict[str, float]],
        roi: Optional[ROIRecommendation]
    ) -> FitnessContext:
        risk_metrics = (market_analysis or {}).get('riskMetrics') or {}
        risk_score = risk_metrics.get('riskScore', 0.0) if isinstance(risk_metrics, dict) else 0.0

        profitability = None
        if performance_metrics:
            profitability = performance_metrics.get('profitability')

        return FitnessContext(
            volatility=aggregate_volatility(market_analysis),
            risk_score=float(risk_score or 0.0),
            profitability=profitability,
            roi=roi
        )

    def optimal_fee_rate(self, volatility: float) -> float:
        return clamp(30 + volatility * 500, self.bounds.min_fee_rate, self.bounds.max_fee_rate)

    def optimal_spread(self, volatility: float) -> float:
        return clamp(1000 + volatility * 2000,
                     self.bounds.min_spread_multiplier, self.bounds.max_spread_multiplier)

    def calculate_fitness(self, params: ParameterSet, context: FitnessContext) -> float:
        """Market-fit score in [0, 1], blended with ROI alignment when available"""
        fitness = 0.5

        optimal_fee = self.optimal_fee_rate(context.volatility)
        fee_deviation = abs(params.fee_rate - optimal_fee) / optimal_fee
        fitness += max(0.0, 0.3 - fee_deviation)

        optimal_spread = self.optimal_spread(context.volatility)
        spread_deviation = abs(params.spread_multiplier - optimal_spread) / optimal_spread
        fitness += max(0.0, 0.2 - spread_deviation)

        if context.profitability is not None and context.profitability > 0:
            fitness += context.profitability * 0.1

        if context.risk_score > HIGH_RISK_SCORE:
            fitness -= 0.1

        fitness = clamp(fitness, 0.0, 1.0)

        if context.roi is not None:
            roi_fitness = self.calculate_roi_fitness(params, context.roi)
            fitness = fitness * BASE_FITNESS_SHARE + roi_fitness * ROI_FITNESS_SHARE

        return fitness

    def calculate_roi_fitness(self, params: ParameterSet, roi: ROIRecommendation) -> float:
        """Alignment of a candidate with the ROI module's recommendation"""
        fitness = 0.0

        target_fee = roi.recommended_parameters.fee_rate
        if target_fee > 0:
            fee_deviation = abs(params.fee_rate - target_fee) / target_fee
            fitness += max(0.0, 0.4 - fee_deviation)

        if roi.meets_target:
            fitness += 0.3

        confidence = roi.confidence if roi.confidence is not None else 0.5
        fitness += confidence * 0.2

        fitness += self.regime_fitness_bonus(params, roi.market_regime) * 0.1

        return clamp(fitness, 0.0, 1.0)

    @staticmethod
    def regime_fitness_bonus(params: ParameterSet, regime: str) -> float:
        regime = regime or ''
        if 'HIGH_VOLATILITY' in regime and params.fee_rate > 30:
            return 0.3
        if 'LOW_VOLATILITY' in regime and params.fee_rate < 15:
            return 0.3
        return 0.0

    def _evaluate(self, population: List[Individual], context: FitnessContext) -> None:
        for individual in population:
            individual.fitness = self.calculate_fitness(individual.parameters, context)

    @staticmethod
    def _rank(population: List[Individual]) -> List[Individual]:
        # sorted() is stable: equal fitness keeps population order
        return sorted(population, key=lambda ind: ind.fitness, reverse=True)

    @staticmethod
    def _select_best(population: List[Individual]) -> Individual:
        best = population[0]
        for individual in population[1:]:
            if individual.fitness > best.fitness:
                best = individual
        return best

    # ------------------------------------------------------------------
    # Genetic operators
    # ------------------------------------------------------------------

    def mutate_value(self, value: float, strength: float, lower: float, upper: float) -> int:
        """value +/- value * strength * U(-1, 1), rounded and clamped"""
        perturbation = self.rng.uniform(-1.0, 1.0) * strength * value
        return int(clamp(int(round(value + perturbation)), lower, upper))

    def create_initial_population(self, base: ParameterSet) -> List[Individual]:
        population = []
        for _ in range(self.population_size):
            weights = [
                self.mutate_value(w, SEED_WEIGHT_STRENGTH, self.bounds.min_weight, self.bounds.max_weight)
                for w in base.weights
            ]
            params = ParameterSet(
                fee_rate=self.mutate_value(base.fee_rate, SEED_FEE_STRENGTH,
                                           self.bounds.min_fee_rate, self.bounds.max_fee_rate),
                spread_multiplier=self.mutate_value(base.spread_multiplier, SEED_SPREAD_STRENGTH,
                                                    self.bounds.min_spread_multiplier,
                                                    self.bounds.max_spread_multiplier),
                weights=normalize_weights(weights),
                is_active=True
            )
            population.append(Individual(parameters=params))
        return population

    def crossover(self, parent1: ParameterSet, parent2: ParameterSet) -> ParameterSet:
        """One coin for both scalar fields, an independent coin per weight"""
        from_first = self.rng.random_sample() < 0.5
        scalar_parent = parent1 if from_first else parent2

        weights = [
            w1 if self.rng.random_sample() < 0.5 else w2
            for w1, w2 in zip(parent1.weights, parent2.weights)
        ]

        return ParameterSet(
            fee_rate=scalar_parent.fee_rate,
            spread_multiplier=scalar_parent.spread_multiplier,
            weights=weights,
            is_active=True
        )

    def mutate(self, params: ParameterSet) -> ParameterSet:
        mutated = params.copy()

        if self.rng.random_sample() < self.mutation_rate:
            mutated.fee_rate = self.mutate_value(params.fee_rate, FEE_STRENGTH,
                                                 self.bounds.min_fee_rate, self.bounds.max_fee_rate)

        if self.rng.random_sample() < self.mutation_rate:
            mutated.spread_multiplier = self.mutate_value(params.spread_multiplier, SPREAD_STRENGTH,
                                                          self.bounds.min_spread_multiplier,
                                                          self.bounds.max_spread_multiplier)

        mutated.weights = [
            self.mutate_value(w, WEIGHT_STRENGTH, self.bounds.min_weight, self.bounds.max_weight)
            if self.rng.random_sample() < self.mutation_rate else w
            for w in params.weights
        ]
        mutated.weights = normalize_weights(mutated.weights)

        return mutated

    def create_next_generation(self, population: List[Individual]) -> List[Individual]:
        """Elites carried unchanged, remainder bred from the ranked survivors"""
        ranked = self._rank(population)

        elite_count = max(1, int(self.population_size * self.elite_fraction))
        survivor_count = max(2, int(self.population_size * self.selection_fraction))
        survivors = ranked[:survivor_count]

        next_generation = [
            Individual(parameters=ind.parameters.copy(), fitness=ind.fitness)
            for ind in ranked[:elite_count]
        ]

        while len(next_generation) < self.population_size:
            parent1 = survivors[self.rng.randint(len(survivors))]
            parent2 = survivors[self.rng.randint(len(survivors))]
            child = self.crossover(parent1.parameters, parent2.parameters)
            next_generation.append(Individual(parameters=self.mutate(child)))

        return next_generation
