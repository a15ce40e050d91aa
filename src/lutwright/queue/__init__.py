"""Active work queue and processed-image history."""

from .work_queue import ProcessedHistory, WorkQueue

__all__ = [
    "WorkQueue",
    "ProcessedHistory",
]
