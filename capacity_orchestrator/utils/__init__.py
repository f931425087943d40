"""
Utilities package for Capacity Orchestrator

Contains utility modules for job storage and logging.
"""

from .database import JobStore, InMemoryJobStore, DatabaseManager
from .logger import setup_logger, get_logger, set_log_context, LoggerContext

__all__ = [
    "JobStore",
    "InMemoryJobStore",
    "DatabaseManager",
    "setup_logger",
    "get_logger",
    "set_log_context",
    "LoggerContext"
]
