"""Partitioned table-scan throughput harness for MySQL."""

from scanbench.coordinator import RunCoordinator
from scanbench.dispatch import ColumnTypeDispatcher, type_tag_for
from scanbench.errors import (
    ConfigError,
    FatalSetupError,
    MetadataError,
    RecoverableDecodeError,
    ScanBenchError,
    UnhandledTypeWarning,
)
from scanbench.models import ColumnDescriptor, Partition, RunSummary, ScanOutcome, TypeTag
from scanbench.planner import plan_partitions
from scanbench.pool import ConnectionPool
from scanbench.scanner import PartitionScanner

__version__ = "0.1.0"

__all__ = [
    "ColumnDescriptor",
    "ColumnTypeDispatcher",
    "ConfigError",
    "ConnectionPool",
    "FatalSetupError",
    "MetadataError",
    "Partition",
    "PartitionScanner",
    "RecoverableDecodeError",
    "RunCoordinator",
    "RunSummary",
    "ScanBenchError",
    "ScanOutcome",
    "TypeTag",
    "UnhandledTypeWarning",
    "plan_partitions",
    "type_tag_for",
]
