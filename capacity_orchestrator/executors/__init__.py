"""
Job executors.

Executors run the opaque job once capacity is ready:
- BaseJobExecutor defines the interface
- LocalJobExecutor runs named stages in a thread pool
"""

from .base import BaseJobExecutor
from .local_executor import LocalJobExecutor, media_stages

__all__ = [
    'BaseJobExecutor',
    'LocalJobExecutor',
    'media_stages'
]
