"""
periodic_task.py
Fixed-interval async ticker that stops on a shared event

Author: Adaptive AMM Optimizer
Date: 2024
"""

import asyncio
import time
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


class PeriodicTask:
    """Runs ``func`` every ``interval`` seconds until ``stop_event`` is set.

    The first run happens immediately. An exception raised by ``func`` is
    logged and counted and never ends the loop. Setting the stop event wakes
    the inter-run wait at once; an in-flight run is allowed to finish.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], Awaitable],
                 stop_event: asyncio.Event):
        self.name = name
        self.interval = interval
        self.func = func
        self.stop_event = stop_event

        self.run_count = 0
        self.error_count = 0
        self.last_run: Optional[float] = None
        self.last_error: Optional[str] = None

    async def run(self):
        logger.info(f"Started periodic task {self.name} (every {self.interval}s)")

        while not self.stop_event.is_set():
            try:
                await self.func()
                self.run_count += 1
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.error_count += 1
                self.last_error = str(e)
                logger.error(f"Error in periodic task {self.name}: {e}")
            finally:
                self.last_run = time.time()

            try:
                await asyncio.wait_for(self.stop_event.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

        logger.info(f"Stopped periodic task {self.name}")

    def get_stats(self):
        return {
            'name': self.name,
            'run_count': self.run_count,
            'error_count': self.error_count,
            'last_run': self.last_run,
            'last_error': self.last_error
        }
