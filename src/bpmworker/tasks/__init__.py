"""BPM worker background tasks."""

from bpmworker.tasks.dispatch import start_dispatch, stop_dispatch

__all__ = ["start_dispatch", "stop_dispatch"]
