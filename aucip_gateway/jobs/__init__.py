"""Asynchronous job state machine and execution driver."""

from .manager import JobManager

__all__ = ["JobManager"]
