"""Data shapes shared by the planner, scanner and coordinator."""

from __future__ import annotations

import enum
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple


class TypeTag(enum.Enum):
    STRING = "string"
    BINARY = "binary"
    NUMERIC = "numeric"
    INTEGER = "integer"
    TEMPORAL = "temporal"
    ROW_ID = "row_id"
    UNSUPPORTED = "unsupported"


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    type_name: str
    type_tag: TypeTag
    position: int

    @property
    def label(self) -> str:
        return f"{self.name}#{self.position}"


@dataclass(frozen=True)
class Partition:
    start_id: int
    size: int

    @property
    def end_id(self) -> int:
        return self.start_id + self.size

    @property
    def label(self) -> str:
        return f"{self.start_id}-{self.end_id}"


@dataclass
class ScanOutcome:
    partition: Partition
    rows: int = 0
    cells: int = 0
    nulls: int = 0
    decode_failures: Counter = field(default_factory=Counter)
    unhandled: Counter = field(default_factory=Counter)
    fatal: Optional[str] = None
    elapsed: float = 0.0
    worker: str = ""

    @property
    def failed(self) -> bool:
        return self.fatal is not None

    @property
    def rows_per_sec(self) -> float:
        if not self.elapsed:
            return 0.0
        return self.rows / self.elapsed


@dataclass
class RunSummary:
    columns: Tuple[ColumnDescriptor, ...]
    outcomes: List[ScanOutcome] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def rows(self) -> int:
        return sum(outcome.rows for outcome in self.outcomes)

    @property
    def cells(self) -> int:
        return sum(outcome.cells for outcome in self.outcomes)

    @property
    def decode_failures(self) -> Dict[str, int]:
        merged: Counter = Counter()
        for outcome in self.outcomes:
            merged.update(outcome.decode_failures)
        return dict(merged)

    @property
    def unhandled(self) -> Dict[str, int]:
        merged: Counter = Counter()
        for outcome in self.outcomes:
            merged.update(outcome.unhandled)
        return dict(merged)

    @property
    def fatal_partitions(self) -> List[ScanOutcome]:
        return [outcome for outcome in self.outcomes if outcome.failed]

    @property
    def ok(self) -> bool:
        return not self.fatal_partitions

    @property
    def rows_per_sec(self) -> float:
        if not self.elapsed:
            return 0.0
        return self.rows / self.elapsed
