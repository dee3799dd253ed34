"""
Parallel execution infrastructure for crossing batches.

Provides `partition` to split work into contiguous chunks and
`ChunkParallelExecutor` to run one OS thread per chunk. Each thread owns its
chunk exclusively and processes it in order; the only synchronisation
between threads is the final join.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

from ..utils.config import MAX_WORKERS

logger = logging.getLogger(__name__)

T = TypeVar("T")


def partition(items: Sequence[T], n_workers: int) -> List[List[T]]:
    """
    Split items into up to min(n_workers, len(items)) contiguous chunks.

    Chunk sizes differ by at most one; when len(items) % n_chunks = r != 0
    the first r chunks receive the extra element.

    Examples:
        >>> [len(c) for c in partition(list(range(10)), 3)]
        [4, 3, 3]
        >>> partition([], 4)
        []
    """
    n = len(items)
    if n == 0:
        return []
    n_chunks = max(1, min(int(n_workers), n))
    base, extra = divmod(n, n_chunks)
    chunks = []
    start = 0
    for i in range(n_chunks):
        size = base + (1 if i < extra else 0)
        chunks.append(list(items[start:start + size]))
        start += size
    return chunks


def _chunk_wrapper(
    idx: int,
    chunk: List[Any],
    worker_fn: Callable[[int, List[Any]], Any],
    slots: List[Optional[Tuple[Any, Optional[str]]]],
) -> None:
    """
    Thread body: run the worker on one chunk and store (result, error_message).
    """
    try:
        slots[idx] = (worker_fn(idx, chunk), None)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        logger.error(f"Worker error on chunk {idx}: {error_msg}", exc_info=True)
        slots[idx] = (None, error_msg)


class ChunkParallelExecutor:
    """
    Thread-per-chunk executor.

    Example:
        executor = ChunkParallelExecutor(n_workers=4)
        results = executor.map_chunks(
            items=crossings,
            worker_fn=process_chunk,   # worker_fn(chunk_index, chunk) -> result
        )
    """

    def __init__(self, n_workers: Optional[int] = None):
        """
        Initialize parallel executor.

        Args:
            n_workers: Number of worker threads, capped at MAX_WORKERS.
                None uses a single worker. Minimum is 1.
        """
        requested = 1 if n_workers is None else max(1, int(n_workers))
        self.n_workers = min(requested, MAX_WORKERS)
        if requested > MAX_WORKERS:
            logger.info(f"Requested {requested} workers; capped at {MAX_WORKERS}")

    def map_chunks(
        self,
        items: Sequence[Any],
        worker_fn: Callable[[int, List[Any]], Any],
    ) -> List[Any]:
        """
        Partition items and run worker_fn on every chunk concurrently.

        Args:
            items: Work items, partitioned with `partition`.
            worker_fn: Called as worker_fn(chunk_index, chunk) in the worker
                thread. It should handle per-item errors itself.

        Returns:
            List of worker_fn return values in chunk order.

        Raises:
            RuntimeError: If a worker raised instead of returning.
        """
        chunks = partition(items, self.n_workers)
        if not chunks:
            logger.warning("No items to process")
            return []

        logger.info(
            f"Processing {len(items)} items in {len(chunks)} chunk(s) "
            f"(sizes {[len(c) for c in chunks]})"
        )
        start_time = time.time()

        slots: List[Optional[Tuple[Any, Optional[str]]]] = [None] * len(chunks)

        # A single chunk needs no extra thread
        if len(chunks) == 1:
            _chunk_wrapper(0, chunks[0], worker_fn, slots)
        else:
            threads = [
                threading.Thread(
                    target=_chunk_wrapper,
                    args=(i, chunk, worker_fn, slots),
                    name=f"crossing-worker-{i}",
                )
                for i, chunk in enumerate(chunks)
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        total_time = time.time() - start_time
        logger.info(f"All {len(chunks)} worker(s) finished in {total_time:.1f}s")

        errors = [(i, slot[1]) for i, slot in enumerate(slots) if slot is not None and slot[1]]
        if errors:
            for idx, error in errors:
                logger.error(f"  Chunk {idx}: {error}")
            raise RuntimeError(f"{len(errors)} worker(s) failed out of {len(chunks)}")

        return [slot[0] for slot in slots]
