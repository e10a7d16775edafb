"""
config.py
Explicit configuration record for the optimization engine

Author: Adaptive AMM Optimizer
Date: 2024
"""

import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict, fields

import yaml

logger = logging.getLogger(__name__)

# YAML sections flattened into OptimizerConfig
CONFIG_SECTIONS = ('optimizer', 'safety', 'emergency', 'scheduling', 'bounds', 'persistence')


@dataclass
class OptimizerConfig:
    """Every recognized option of the engine and its default"""
    # Q-learning
    learning_rate: float = 0.01
    min_learning_rate: float = 0.005
    max_learning_rate: float = 0.02
    discount_factor: float = 0.9
    exploration_rate: float = 0.1
    max_q_table_size: int = 10000

    # Genetic refinement
    population_size: int = 50
    generations: int = 10
    elite_fraction: float = 0.2
    selection_fraction: float = 0.5
    mutation_rate: float = 0.1

    # Absolute bounds
    min_fee_rate: int = 5
    max_fee_rate: int = 1000
    min_spread_multiplier: int = 1000
    max_spread_multiplier: int = 5000
    min_weight: int = 1000
    max_weight: int = 6000

    # Safety gate
    confidence_threshold: float = 0.6
    max_parameter_change: float = 0.2

    # Emergency mode
    emergency_threshold: float = 0.15
    emergency_exit_ratio: float = 0.7
    emergency_fee_floor: int = 100
    emergency_spread_floor: int = 1200
    volatility_threshold: float = 0.05

    # Scheduling (seconds)
    optimization_interval: float = 30.0
    health_check_interval: float = 60.0
    emergency_check_interval: float = 10.0

    # History and resilience
    history_size: int = 100
    max_consecutive_failures: int = 3
    random_seed: Optional[int] = None
    checkpoint_dir: Optional[str] = None

    def __post_init__(self):
        self._validate()

    def _validate(self) -> None:
        if not 0 < self.learning_rate <= 1:
            raise ValueError(f"learning_rate must be in (0, 1], got {self.learning_rate}")
        if not 0 < self.min_learning_rate <= self.max_learning_rate:
            raise ValueError("min_learning_rate must be positive and <= max_learning_rate")
        if not 0 <= self.discount_factor <= 1:
            raise ValueError(f"discount_factor must be in [0, 1], got {self.discount_factor}")
        if not 0 <= self.exploration_rate <= 1:
            raise ValueError(f"exploration_rate must be in [0, 1], got {self.exploration_rate}")
        if self.max_q_table_size < 1:
            raise ValueError(f"max_q_table_size must be >= 1, got {self.max_q_table_size}")
        if self.population_size < 2:
            raise ValueError(f"population_size must be >= 2, got {self.population_size}")
        if self.generations < 1:
            raise ValueError(f"generations must be >= 1, got {self.generations}")
        if not 0 <= self.elite_fraction < 1:
            raise ValueError(f"elite_fraction must be in [0, 1), got {self.elite_fraction}")
        if not 0 < self.selection_fraction <= 1:
            raise ValueError(f"selection_fraction must be in (0, 1], got {self.selection_fraction}")
        if not 0 <= self.mutation_rate <= 1:
            raise ValueError(f"mutation_rate must be in [0, 1], got {self.mutation_rate}")
        if not 0 < self.min_fee_rate <= self.max_fee_rate:
            raise ValueError("min_fee_rate must be positive and <= max_fee_rate")
        if not 0 < self.min_spread_multiplier <= self.max_spread_multiplier:
            raise ValueError("min_spread_multiplier must be positive and <= max_spread_multiplier")
        if not 0 <= self.min_weight <= self.max_weight:
            raise ValueError("min_weight must be non-negative and <= max_weight")
        if not 0 <= self.confidence_threshold <= 1:
            raise ValueError(f"confidence_threshold must be in [0, 1], got {self.confidence_threshold}")
        if self.max_parameter_change <= 0:
            raise ValueError(f"max_parameter_change must be positive, got {self.max_parameter_change}")
        if self.emergency_threshold <= 0:
            raise ValueError(f"emergency_threshold must be positive, got {self.emergency_threshold}")
        if not 0 < self.emergency_exit_ratio <= 1:
            raise ValueError(f"emergency_exit_ratio must be in (0, 1], got {self.emergency_exit_ratio}")
        for name in ('optimization_interval', 'health_check_interval', 'emergency_check_interval'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.history_size < 1:
            raise ValueError(f"history_size must be >= 1, got {self.history_size}")
        if self.max_consecutive_failures < 1:
            raise ValueError("max_consecutive_failures must be >= 1")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'OptimizerConfig':
        """Build from a flat or sectioned mapping, ignoring unknown keys"""
        data = data or {}
        flat: Dict[str, Any] = {}

        for key, value in data.items():
            if key in CONFIG_SECTIONS and isinstance(value, dict):
                flat.update(value)
            else:
                flat[key] = value

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(flat) - known)
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {unknown}")

        return cls(**{k: v for k, v in flat.items() if k in known})


def load_config(path: str) -> OptimizerConfig:
    """Load configuration from YAML file"""
    config_path = Path(path)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {path}")
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(config_path, 'r') as f:
        return OptimizerConfig.from_dict(yaml.safe_load(f))
