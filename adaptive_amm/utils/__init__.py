"""
Utilities - configuration, validation and checkpointing
"""

__all__ = [
    'config',
    'validators',
    'checkpoint_manager',
]
