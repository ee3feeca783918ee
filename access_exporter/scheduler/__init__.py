"""
Scheduler module initialization.
"""

from .scheduler import PollScheduler

__all__ = [
    'PollScheduler'
]
