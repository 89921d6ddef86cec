"""
Acquisition Service - polling schedule and the batch loop
"""

from .scheduler import PollingScheduler, PollingTask
from .service import AcquisitionLoop, BatchReport, PollResult

__all__ = [
    "PollingScheduler",
    "PollingTask",
    "AcquisitionLoop",
    "BatchReport",
    "PollResult",
]
