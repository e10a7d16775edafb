"""
Core optimization components - state encoding, learning, refinement and safety
"""

__all__ = [
    'parameter_set',
    'errors',
    'market_state_encoder',
    'q_learning_policy',
    'genetic_refiner',
    'roi_consensus_blender',
    'safety_gate',
    'emergency_mode_controller',
    'feedback_loop',
    'parameter_optimizer',
]
