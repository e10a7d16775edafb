# main.py
"""
Command line entry point for the adaptive AMM parameter optimizer
Wires the controller to file-backed collaborators and runs it until interrupted

Author: Adaptive AMM Optimizer
Date: 2024
"""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Optional

from adaptive_amm.event_bus import EventBus, Events
from adaptive_amm.infrastructure.adapters import FileMarketAnalysisSource, FileROISource, InMemoryPool
from adaptive_amm.infrastructure.controller import OptimizationController
from adaptive_amm.utils.checkpoint_manager import CheckpointManager
from adaptive_amm.utils.config import OptimizerConfig, load_config

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False, log_dir: str = 'logs'):
    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(str(Path(log_dir) / 'adaptive_amm.log')),
            logging.StreamHandler()
        ]
    )


def build_controller(config: OptimizerConfig, market_file: str, roi_file: Optional[str] = None,
                     event_bus: Optional[EventBus] = None,
                     metrics_file: Optional[str] = None) -> OptimizationController:
    pool = InMemoryPool(metrics_path=metrics_file)
    checkpoint_manager = CheckpointManager(config.checkpoint_dir) if config.checkpoint_dir else None

    return OptimizationController(
        config,
        market_source=FileMarketAnalysisSource(market_file),
        parameter_reader=pool,
        deployer=pool,
        roi_source=FileROISource(roi_file) if roi_file else None,
        event_bus=event_bus,
        checkpoint_manager=checkpoint_manager
    )


async def run(config: OptimizerConfig, market_file: str, roi_file: Optional[str] = None,
              restore: bool = False, once: bool = False, metrics_file: Optional[str] = None):
    """Run the controller until SIGINT/SIGTERM, or a single cycle with ``once``"""
    event_bus = EventBus()
    controller = build_controller(config, market_file, roi_file, event_bus, metrics_file)

    if restore and controller.checkpoint_manager is not None:
        snapshot = await controller.checkpoint_manager.load()
        if snapshot:
            controller.restore(snapshot)

    if once:
        decision = await controller.run_cycle()
        print(json.dumps(decision.to_dict(), indent=2, default=str))
        return decision

    event_bus.subscribe(
        Events.OPTIMIZATION_DECISION,
        lambda data: logger.info(f"Decision: approved={data['approved']}, "
                                 f"reason={data['rejection_reason']}")
    )
    await event_bus.start()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, controller.request_stop)
        except NotImplementedError:
            pass

    await controller.start()
    logger.info("Adaptive AMM optimizer running")

    await controller.wait_stopped()
    snapshot = await controller.stop()
    await event_bus.stop()

    logger.info(f"Shutdown complete: {len(snapshot['policy']['q_table'])} states learned")
    return snapshot


def main():
    """Main entry point"""
    import argparse

    parser = argparse.ArgumentParser(description='Adaptive AMM Parameter Optimizer')
    parser.add_argument(
        '--config',
        default='config/config.yaml',
        help='Path to configuration file'
    )
    parser.add_argument(
        '--market-file',
        required=True,
        help='JSON file holding the latest market analysis'
    )
    parser.add_argument(
        '--roi-file',
        default=None,
        help='JSON file holding the ROI module recommendation'
    )
    parser.add_argument(
        '--metrics-file',
        default=None,
        help='JSON file holding the pool performance metrics used as feedback'
    )
    parser.add_argument(
        '--restore',
        action='store_true',
        help='Restore state from the latest checkpoint'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Run a single optimization cycle and print the decision'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging'
    )

    args = parser.parse_args()
    setup_logging(args.debug)

    try:
        config = load_config(args.config)
        asyncio.run(run(config, args.market_file, args.roi_file, args.restore, args.once,
                        args.metrics_file))

    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
    except (FileNotFoundError, ValueError) as e:
        logger.critical(f"Startup failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
