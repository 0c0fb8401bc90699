"""Observability helpers for the worker."""

from bpmworker.observability.metrics import metrics

__all__ = ["metrics"]
