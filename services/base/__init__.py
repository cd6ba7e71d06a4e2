"""
Base infrastructure for bridge daemons.

- BaseDaemon: Base class with CLI, signals, and lifecycle management
- SingleInstance: Lock file management for single-instance enforcement
"""

from services.base.daemon import BaseDaemon, SingleInstance

__all__ = [
    "BaseDaemon",
    "SingleInstance",
]
