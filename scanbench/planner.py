"""Split ``1..total_rows`` into contiguous id ranges, one per scan task."""

from __future__ import annotations

from typing import List

from scanbench.errors import ConfigError
from scanbench.models import Partition


def plan_partitions(total_rows: int, worker_count: int) -> List[Partition]:
    """Return partitions of ``total_rows // worker_count`` ids starting at 1.

    The last partition is clamped so its end is ``total_rows + 1``: the
    ranges never overrun the table and never leave a tail uncovered.
    ``ceil(total_rows / size)`` partitions come back, so an uneven split
    yields one short extra partition.
    """
    if total_rows < 1:
        raise ConfigError(f"rows must be >= 1 (got {total_rows})")
    if worker_count < 1:
        raise ConfigError(f"threads must be >= 1 (got {worker_count})")
    if worker_count > total_rows:
        raise ConfigError(f"threads ({worker_count}) cannot exceed rows ({total_rows})")

    size = total_rows // worker_count
    limit = total_rows + 1
    partitions: List[Partition] = []
    start_id = 1
    while start_id < limit:
        partitions.append(Partition(start_id=start_id, size=min(size, limit - start_id)))
        start_id += size
    return partitions
