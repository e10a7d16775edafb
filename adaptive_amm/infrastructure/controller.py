# controller.py
"""
Closed-loop controller for pool parameter optimization
Owns all mutable optimizer state and schedules the periodic tasks

Author: Adaptive AMM Optimizer
Date: 2024
"""

import asyncio
import time
import logging
from typing import Dict, Any, Optional, Callable, List, Tuple
from dataclasses import dataclass, asdict

from adaptive_amm.core.emergency_mode_controller import EmergencyModeController, EmergencyTransition
from adaptive_amm.core.errors import ExternalServiceError
from adaptive_amm.core.market_state_encoder import aggregate_volatility
from adaptive_amm.core.parameter_optimizer import ParameterOptimizer
from adaptive_amm.core.parameter_set import ParameterSet, OptimizationDecision, ROIRecommendation
from adaptive_amm.core.safety_gate import SafetyGate, GateResult, RejectionReason
from adaptive_amm.event_bus import EventBus, Events
from adaptive_amm.infrastructure.periodic_task import PeriodicTask
from adaptive_amm.infrastructure.resource_monitor import check_resource_limits

logger = logging.getLogger(__name__)


@dataclass
class StatusSnapshot:
    """Read-only view of the controller state"""
    emergency_mode: bool
    last_optimization_time: Optional[float]
    q_table_size: int
    history_size: int
    last_rejection_reason: Optional[str]
    cycle_count: int
    consecutive_failures: int
    learning_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class OptimizationController:
    """Runs the optimization, health and emergency tasks on one event loop.

    Every mutation of shared state and every gate decision happens under
    ``_lock``. A cycle that observes an emergency entry after it started, or
    an emergency set the deployer has not confirmed yet, discards its
    candidate. The unconfirmed emergency set is re-issued once per cycle and
    once per emergency check until it lands or the emergency ends.
    """

    def __init__(self, config, market_source, parameter_reader, deployer,
                 roi_source=None, event_bus: Optional[EventBus] = None,
                 checkpoint_manager=None, optimizer: Optional[ParameterOptimizer] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.market_source = market_source
        self.parameter_reader = parameter_reader
        self.deployer = deployer
        self.roi_source = roi_source
        self.event_bus = event_bus
        self.checkpoint_manager = checkpoint_manager
        self.clock = clock

        self.optimizer = optimizer or ParameterOptimizer(config)
        self.gate = SafetyGate(config)
        self.emergency = EmergencyModeController(config, self.optimizer.bounds)

        # Shared state
        self.last_deployed: Optional[ParameterSet] = None
        self.last_deploy_time: Optional[float] = None
        self.last_optimization_time: Optional[float] = None
        self.last_rejection_reason: Optional[str] = None
        self.last_decision: Optional[OptimizationDecision] = None
        self.cycle_count = 0
        self.consecutive_failures = 0
        self.deployment_failures = 0
        # (state key, action index, deployed parameters) awaiting next cycle's metrics
        self._pending_feedback: Optional[Tuple[Optional[str], Optional[int], ParameterSet]] = None
        # Emergency set not yet confirmed by the deployer
        self._pending_emergency: Optional[ParameterSet] = None

        self._lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._periodic: List[PeriodicTask] = []
        self._tasks: List[asyncio.Task] = []
        self._running = False

    # ------------------------------------------------------------------
    # Optimization cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> OptimizationDecision:
        """One full cycle: fetch, optimize, gate, deploy, publish"""
        async with self._lock:
            start_epoch = self.emergency.epoch

        analysis = await self._fetch_market_analysis()
        current = await self._read_current_parameters()
        metrics = await self._read_performance_metrics()
        roi = await self._fetch_roi(analysis, current) if analysis is not None else None

        async with self._lock:
            self.cycle_count += 1
            self.last_optimization_time = self.clock()
            self._apply_pending_feedback(metrics)

            if analysis is not None:
                await self._check_emergency(aggregate_volatility(analysis))
            else:
                await self._retry_emergency_deployment()

            result = self.optimizer.optimize(analysis or {}, current, roi)

            if analysis is None or result.degraded:
                self.consecutive_failures += 1
            else:
                self.consecutive_failures = 0

            decision = result.decision
            if self.consecutive_failures >= self.config.max_consecutive_failures:
                logger.warning(
                    f"{self.consecutive_failures} consecutive failed cycles, proposing conservative defaults"
                )
                decision = self.optimizer.conservative_decision(
                    current, result.volatility, self.consecutive_failures, self.last_deployed
                )

            if self.emergency.epoch != start_epoch or self._pending_emergency is not None:
                gate_result = GateResult(False, RejectionReason.PREEMPTED_BY_EMERGENCY, {
                    'start_epoch': start_epoch,
                    'epoch': self.emergency.epoch,
                    'emergency_deployment_pending': self._pending_emergency is not None
                })
            else:
                gate_result = self.gate.evaluate(
                    decision.parameters,
                    decision.confidence,
                    self.last_deployed,
                    self.last_deploy_time,
                    self.emergency.is_active,
                    self.clock()
                )

            decision.approved = gate_result.approved
            decision.rejection_reason = gate_result.reason_text

            if gate_result.approved:
                self.last_rejection_reason = None
                if await self._deploy(decision.parameters):
                    self._pending_feedback = (
                        decision.state_key, decision.action_index, self.last_deployed.copy()
                    )
            else:
                self.last_rejection_reason = gate_result.reason_text
                logger.warning(f"Candidate rejected: {gate_result.reason_text} {gate_result.details}")

            self.last_decision = decision

        await self._publish(Events.OPTIMIZATION_DECISION, decision.to_dict())
        return decision

    def _apply_pending_feedback(self, metrics: Optional[Dict[str, Any]]) -> None:
        if self._pending_feedback is None:
            return
        state_key, action, params = self._pending_feedback
        self._pending_feedback = None
        self.optimizer.feedback.record_feedback(state_key, action, params, metrics, self.clock())

    # ------------------------------------------------------------------
    # Emergency handling
    # ------------------------------------------------------------------

    async def check_emergency(self) -> Optional[EmergencyTransition]:
        """Volatility check run by the emergency task"""
        analysis = await self._fetch_market_analysis()

        async with self._lock:
            if analysis is None:
                await self._retry_emergency_deployment()
                return None
            return await self._check_emergency(aggregate_volatility(analysis))

    async def _check_emergency(self, volatility: float) -> Optional[EmergencyTransition]:
        # Caller holds the lock
        transition = self.emergency.check_volatility(volatility, self.clock())
        if transition is None:
            await self._retry_emergency_deployment()
            return None

        if transition.requires_deployment:
            self._pending_feedback = None
            self._pending_emergency = transition.parameters.copy()
            await self._retry_emergency_deployment()
        else:
            if self._pending_emergency is not None:
                logger.info("Emergency mode left before its parameters were deployed")
            self._pending_emergency = None

        await self._publish(Events.EMERGENCY_TRANSITION, transition.to_dict())
        return transition

    async def _retry_emergency_deployment(self) -> bool:
        """Deploy the pending emergency set; one attempt per call.

        Caller holds the lock. Returns True when nothing is left pending.
        """
        if self._pending_emergency is None:
            return True
        if not self.emergency.is_active:
            self._pending_emergency = None
            return True

        if await self._deploy(self._pending_emergency):
            self._pending_emergency = None
            return True

        logger.error("Emergency parameters not deployed, retrying on the next check")
        return False

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def health_check(self) -> Dict[str, Any]:
        """Read-only status report, published as a status update"""
        status = self.get_status()
        report = {
            'status': status.to_dict(),
            'resources': check_resource_limits(),
            'performance': self.optimizer.feedback.get_performance_summary(),
            'deployment_failures': self.deployment_failures,
            'emergency_deployment_pending': self._pending_emergency is not None,
            'tasks': [task.get_stats() for task in self._periodic]
        }

        if status.consecutive_failures:
            logger.warning(f"Health: {status.consecutive_failures} consecutive failed cycles")
        logger.info(
            f"Health: emergency={status.emergency_mode}, cycles={status.cycle_count}, "
            f"q_table={status.q_table_size}, history={status.history_size}"
        )

        await self._publish(Events.STATUS_UPDATE, report)
        return report

    def get_status(self) -> StatusSnapshot:
        return StatusSnapshot(
            emergency_mode=self.emergency.is_active,
            last_optimization_time=self.last_optimization_time,
            q_table_size=self.optimizer.policy.table_size,
            history_size=self.optimizer.feedback.history_size,
            last_rejection_reason=self.last_rejection_reason,
            cycle_count=self.cycle_count,
            consecutive_failures=self.consecutive_failures,
            learning_rate=self.optimizer.policy.learning_rate
        )

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Copy of all learned and operational state"""
        state = self.optimizer.get_state()
        state.update({
            'emergency': self.emergency.get_state(),
            'last_deployed': self.last_deployed.to_dict() if self.last_deployed else None,
            'last_deploy_time': self.last_deploy_time,
            'pending_emergency': self._pending_emergency.to_dict() if self._pending_emergency else None,
            'cycle_count': self.cycle_count,
            'consecutive_failures': self.consecutive_failures,
            'timestamp': self.clock()
        })
        return state

    def restore(self, snapshot: Dict[str, Any]) -> None:
        self.optimizer.load_state(snapshot)
        if 'emergency' in snapshot:
            self.emergency.load_state(snapshot['emergency'])
        last_deployed = snapshot.get('last_deployed')
        self.last_deployed = ParameterSet.from_dict(last_deployed) if last_deployed else None
        self.last_deploy_time = snapshot.get('last_deploy_time')
        pending = snapshot.get('pending_emergency')
        self._pending_emergency = ParameterSet.from_dict(pending) if pending else None
        self.cycle_count = int(snapshot.get('cycle_count', 0))
        self.consecutive_failures = int(snapshot.get('consecutive_failures', 0))
        logger.info(f"Restored controller state (cycles={self.cycle_count})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Launch the three periodic tasks"""
        if self._running:
            return

        self._stop_event.clear()
        self._periodic = [
            PeriodicTask('optimization_cycle', self.config.optimization_interval,
                         self.run_cycle, self._stop_event),
            PeriodicTask('health_check', self.config.health_check_interval,
                         self.health_check, self._stop_event),
            PeriodicTask('emergency_check', self.config.emergency_check_interval,
                         self.check_emergency, self._stop_event)
        ]
        self._tasks = [asyncio.create_task(task.run()) for task in self._periodic]
        self._running = True
        logger.info("Optimization controller started")

    def request_stop(self):
        self._stop_event.set()

    async def wait_stopped(self):
        await self._stop_event.wait()

    async def stop(self) -> Dict[str, Any]:
        """Stop the tasks after their in-flight iteration and return the final snapshot"""
        self._stop_event.set()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        self._running = False

        async with self._lock:
            snapshot = self.snapshot()

        if self.checkpoint_manager is not None:
            try:
                await self.checkpoint_manager.save(snapshot)
            except OSError as e:
                logger.error(f"Failed to write final checkpoint: {e}")

        logger.info("Optimization controller stopped")
        return snapshot

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Collaborator calls
    # ------------------------------------------------------------------

    async def _fetch_market_analysis(self) -> Optional[Dict[str, Any]]:
        try:
            analysis = await self.market_source.fetch_market_analysis()
        except Exception as e:
            logger.error(f"Market analysis unavailable: {e}")
            return None
        if not isinstance(analysis, dict):
            logger.error(f"Market analysis has unexpected type {type(analysis).__name__}")
            return None
        return analysis

    async def _read_current_parameters(self) -> ParameterSet:
        try:
            return await self.parameter_reader.read_current_parameters()
        except Exception as e:
            logger.error(f"Failed to read current parameters: {e}")
            return self.last_deployed.copy() if self.last_deployed else ParameterSet()

    async def _read_performance_metrics(self) -> Optional[Dict[str, Any]]:
        try:
            return await self.parameter_reader.read_performance_metrics()
        except Exception as e:
            logger.warning(f"Performance metrics unavailable: {e}")
            return None

    async def _fetch_roi(self, analysis: Dict[str, Any], current: ParameterSet) -> Optional[ROIRecommendation]:
        if self.roi_source is None:
            return None
        try:
            roi = await self.roi_source.fetch_recommendation(analysis, current)
            if roi is None or isinstance(roi, ROIRecommendation):
                return roi
            return ROIRecommendation.from_dict(roi)
        except Exception as e:
            error = ExternalServiceError(f"ROI recommendation unavailable: {e}", stage='roi_source')
            logger.warning(f"Stage {error.stage} degraded: {error}")
            return None

    async def _deploy(self, parameters: ParameterSet) -> bool:
        # Caller holds the lock
        now = self.clock()
        try:
            confirmed = await self.deployer.deploy(parameters.copy())
        except Exception as e:
            logger.error(f"Deployment failed: {e}")
            confirmed = False

        if not confirmed:
            self.deployment_failures += 1
            logger.error(f"Deployment not confirmed: fee={parameters.fee_rate}, "
                         f"spread={parameters.spread_multiplier}")
            return False

        deployed = parameters.copy()
        deployed.last_update = int(now)
        deployed.is_active = True
        self.last_deployed = deployed
        self.last_deploy_time = now
        logger.info(f"Deployed parameters: fee={deployed.fee_rate}bps, "
                    f"spread={deployed.spread_multiplier}, weights={deployed.weights}")
        return True

    async def _publish(self, topic: str, data: Dict[str, Any]):
        if self.event_bus is not None:
            await self.event_bus.publish(topic, data)
