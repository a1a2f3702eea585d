"""In-process periodic task infrastructure (reconciler sweeps)."""
from .scheduler import PeriodicRunner, start_reconciler

__all__ = ["PeriodicRunner", "start_reconciler"]
