"""
Controller infrastructure - scheduling, collaborators and health checks
"""

__all__ = [
    'controller',
    'periodic_task',
    'interfaces',
    'adapters',
    'resource_monitor',
]
