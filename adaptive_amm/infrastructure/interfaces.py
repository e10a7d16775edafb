"""
Boundaries to the collaborators the controller depends on
"""

from typing import Any, Dict, Optional
from typing import Protocol, runtime_checkable

from adaptive_amm.core.parameter_set import ParameterSet, ROIRecommendation


@runtime_checkable
class MarketAnalysisSource(Protocol):
    """Supplies MarketAnalysis snapshots"""

    async def fetch_market_analysis(self) -> Dict[str, Any]:
        ...


@runtime_checkable
class ParameterReader(Protocol):
    """Reads the pool's live parameters and post-deployment metrics"""

    async def read_current_parameters(self) -> ParameterSet:
        ...

    async def read_performance_metrics(self) -> Optional[Dict[str, float]]:
        ...


@runtime_checkable
class ROISource(Protocol):
    """External ROI strategy module; may return None when it has no opinion"""

    async def fetch_recommendation(self, market_analysis: Dict[str, Any],
                                   current: ParameterSet) -> Optional[ROIRecommendation]:
        ...


@runtime_checkable
class Deployer(Protocol):
    """Applies approved parameters; True once the change is confirmed"""

    async def deploy(self, parameters: ParameterSet) -> bool:
        ...
