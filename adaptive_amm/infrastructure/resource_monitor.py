import logging
from typing import Dict, Any

import psutil

logger = logging.getLogger(__name__)

MEMORY_WARNING_PERCENT = 80
THREAD_WARNING_COUNT = 50


def monitor_resource_usage() -> Dict[str, Any]:
    """Monitor current resource usage"""
    process = psutil.Process()

    return {
        'memory_mb': process.memory_info().rss / 1024 / 1024,
        'memory_percent': process.memory_percent(),
        'cpu_percent': process.cpu_percent(),
        'num_threads': process.num_threads()
    }


def check_resource_limits() -> Dict[str, Any]:
    """Check if resource usage is within limits"""
    usage = monitor_resource_usage()

    warnings = []

    if usage['memory_percent'] > MEMORY_WARNING_PERCENT:
        warnings.append(f"High memory usage: {usage['memory_percent']:.1f}%")

    if usage['num_threads'] > THREAD_WARNING_COUNT:
        warnings.append(f"High thread count: {usage['num_threads']}")

    for warning in warnings:
        logger.warning(f"Resource warning: {warning}")

    return {
        'usage': usage,
        'warnings': warnings,
        'healthy': len(warnings) == 0
    }
