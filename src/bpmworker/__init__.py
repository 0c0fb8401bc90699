"""BPM worker - lease-based external task execution for workflow engines."""

__version__ = "0.1.0"
