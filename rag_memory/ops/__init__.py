"""Background operations kept off the request path."""

from .distill_worker import DistillJob, DistillationRunner

__all__ = ["DistillJob", "DistillationRunner"]
