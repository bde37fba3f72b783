"""Line-item staging"""

from .store import StagingStore, StagingSnapshot, StagedRow

__all__ = [
    "StagingStore",
    "StagingSnapshot",
    "StagedRow",
]
