"""Multi-operation batches under best-effort or all-or-nothing atomicity."""

from .coordinator import BatchCoordinator

__all__ = ["BatchCoordinator"]
