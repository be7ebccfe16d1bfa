"""
Background Tasks Module
For scheduled and background processing tasks
"""

from lawnroute.tasks.progress_tasks import ProgressBroadcaster

__all__ = ["ProgressBroadcaster"]
