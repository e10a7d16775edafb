"""
Local collaborators for running the controller without a live pool
"""

import json
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional

from adaptive_amm.core.parameter_set import ParameterSet, ROIRecommendation

logger = logging.getLogger(__name__)


class FileMarketAnalysisSource:
    """Re-reads a MarketAnalysis JSON document on every fetch"""

    def __init__(self, path: str):
        self.path = Path(path)

    async def fetch_market_analysis(self) -> Dict[str, Any]:
        with open(self.path, 'r') as f:
            return json.load(f)


class FileROISource:
    """Serves an ROI recommendation stored as JSON, or None if the file is absent"""

    def __init__(self, path: str):
        self.path = Path(path)

    async def fetch_recommendation(self, market_analysis: Dict[str, Any],
                                   current: ParameterSet) -> Optional[ROIRecommendation]:
        if not self.path.exists():
            return None
        with open(self.path, 'r') as f:
            return ROIRecommendation.from_dict(json.load(f))


class InMemoryPool:
    """Parameter reader and deployer backed by process memory.

    Performance metrics come from ``metrics`` when set, otherwise from the
    JSON file at ``metrics_path``, re-read on every call. Without either the
    reader reports no metrics and the policy is not updated.
    """

    def __init__(self, initial: Optional[ParameterSet] = None, metrics_path: Optional[str] = None):
        self.parameters = initial.copy() if initial else ParameterSet()
        self.metrics: Optional[Dict[str, float]] = None
        self.metrics_path = Path(metrics_path) if metrics_path else None
        self.deployments: List[ParameterSet] = []

    async def read_current_parameters(self) -> ParameterSet:
        return self.parameters.copy()

    async def read_performance_metrics(self) -> Optional[Dict[str, float]]:
        if self.metrics is not None:
            return dict(self.metrics)
        if self.metrics_path is None or not self.metrics_path.exists():
            return None
        with open(self.metrics_path, 'r') as f:
            return json.load(f)

    async def deploy(self, parameters: ParameterSet) -> bool:
        self.parameters = parameters.copy()
        self.deployments.append(parameters.copy())
        logger.info(f"Pool parameters updated: fee={parameters.fee_rate}bps, "
                    f"spread={parameters.spread_multiplier}")
        return True
