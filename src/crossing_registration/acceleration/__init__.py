"""
Acceleration Module

Thread-per-chunk parallel execution for crossing batches.
"""

from .parallel_executor import ChunkParallelExecutor, partition

__all__ = [
    "ChunkParallelExecutor",
    "partition",
]
