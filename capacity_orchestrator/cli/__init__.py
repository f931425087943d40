"""
CLI package for Capacity Orchestrator

Provides command-line interface for submitting and processing jobs,
inspecting capacity and monitoring.
"""

from .main import main, cli

__all__ = ["main", "cli"]
