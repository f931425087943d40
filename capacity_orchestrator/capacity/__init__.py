"""
Capacity backends.

Backends translate capacity targets into calls against the platform that
owns a compute pool:
- SimulatedCapacityBackend for local runs, demos and tests
- LambdaCapacityBackend (capacity_orchestrator.capacity.aws_lambda, needs
  the `aws` extra) for Lambda functions on managed instances
"""

from .base import BaseCapacityBackend
from .simulated import SimulatedCapacityBackend

__all__ = [
    'BaseCapacityBackend',
    'SimulatedCapacityBackend'
]
