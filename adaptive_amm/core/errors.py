"""
Error taxonomy and per-stage result values for the optimization pipeline
"""

from typing import Any, Generic, Optional, TypeVar
from dataclasses import dataclass

T = TypeVar('T')


class OptimizationError(Exception):
    """Base class for failures contained within one optimization cycle"""

    stage = 'unknown'

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class InputDataError(OptimizationError):
    """Missing or malformed market analysis fields"""
    stage = 'input'


class ComputationError(OptimizationError):
    """Failure inside refinement or blending"""
    stage = 'computation'


class ExternalServiceError(OptimizationError):
    """ROI module or data source unavailable"""
    stage = 'external'


@dataclass
class StageResult(Generic[T]):
    """Outcome of one pipeline stage.

    A failed stage still carries a usable ``value`` (the stage's fallback) so
    the cycle driver can continue after logging ``error``.
    """
    ok: bool
    value: Optional[T] = None
    error: Optional[OptimizationError] = None

    @classmethod
    def success(cls, value: Any) -> 'StageResult':
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: OptimizationError, fallback: Any = None) -> 'StageResult':
        return cls(ok=False, value=fallback, error=error)

    def __bool__(self):
        return self.ok
