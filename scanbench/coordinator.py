"""Fan partition scans out over a bounded worker pool and gather the results."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Any, Dict, List, Optional, Tuple

import pymysql
from pymysql.cursors import DictCursor

from scanbench.dispatch import ColumnTypeDispatcher, type_tag_for
from scanbench.errors import FatalSetupError, MetadataError
from scanbench.models import ColumnDescriptor, Partition, RunSummary, ScanOutcome
from scanbench.planner import plan_partitions
from scanbench.pool import ConnectionPool
from scanbench.scanner import DEFAULT_FETCH_BATCH_SIZE, PartitionScanner

logger = logging.getLogger(__name__)

COLUMNS_SQL = (
    "SELECT column_name AS column_name, data_type AS data_type, column_key AS column_key "
    "FROM information_schema.columns "
    "WHERE table_schema = %s AND table_name = %s "
    "ORDER BY ordinal_position"
)


def columns_from_catalog(rows: List[Dict[str, Any]]) -> Tuple[ColumnDescriptor, ...]:
    """Build descriptors from ``(column_name, data_type, column_key)`` rows.

    Only a single-column primary key is treated as the row identifier.
    """
    keys = [row for row in rows if (row.get("column_key") or "") == "PRI"]
    key_name = keys[0]["column_name"] if len(keys) == 1 else None
    return tuple(
        ColumnDescriptor(
            name=row["column_name"],
            type_name=row["data_type"],
            type_tag=type_tag_for(row["data_type"], is_key=row["column_name"] == key_name),
            position=position,
        )
        for position, row in enumerate(rows, start=1)
    )


def fetch_columns(conn: Any, schema: str, table: str) -> Tuple[ColumnDescriptor, ...]:
    try:
        with conn.cursor(DictCursor) as cur:
            cur.execute(COLUMNS_SQL, (schema, table))
            rows = list(cur.fetchall())
    except pymysql.MySQLError as exc:
        raise MetadataError(f"Unable to read columns of `{schema}`.`{table}`: {exc}") from exc
    if not rows:
        raise MetadataError(f"Table `{schema}`.`{table}` has no columns (does it exist?)")
    return columns_from_catalog(rows)


class RunCoordinator:
    def __init__(
        self,
        pool: ConnectionPool,
        schema: str,
        table: str,
        *,
        id_column: str = "id",
        fetch_batch_size: int = DEFAULT_FETCH_BATCH_SIZE,
        dispatcher: Optional[ColumnTypeDispatcher] = None,
    ) -> None:
        self.pool = pool
        self.schema = schema
        self.table = table
        self.id_column = id_column
        self.fetch_batch_size = fetch_batch_size
        self.dispatcher = dispatcher or ColumnTypeDispatcher()

    def load_columns(self, metadata_conn: Any = None) -> Tuple[ColumnDescriptor, ...]:
        if metadata_conn is not None:
            return fetch_columns(metadata_conn, self.schema, self.table)
        try:
            with self.pool.connection() as conn:
                return fetch_columns(conn, self.schema, self.table)
        except MetadataError:
            raise
        except FatalSetupError as exc:
            raise MetadataError(f"No connection for the metadata query: {exc}") from exc

    def run(self, total_rows: int, worker_count: int, metadata_conn: Any = None) -> RunSummary:
        """Scan ``1..total_rows`` with ``worker_count`` concurrent partitions.

        Partition failures are recorded in the summary; only configuration
        errors and metadata failures raise.
        """
        partitions = plan_partitions(total_rows, worker_count)
        if self.pool.max_size < worker_count + 1:
            logger.warning(
                "[run] Pool holds %d connection(s) for %d worker(s); workers will queue for connections",
                self.pool.max_size,
                worker_count,
            )
        columns = self.load_columns(metadata_conn)
        logger.info(
            "[run] `%s`.`%s`: %d column(s), %s row(s) in %d partition(s) of %s, %d worker(s), fetch batch %d",
            self.schema,
            self.table,
            len(columns),
            f"{total_rows:,}",
            len(partitions),
            f"{partitions[0].size:,}",
            worker_count,
            self.fetch_batch_size,
        )
        scanner = PartitionScanner(
            columns,
            self.table,
            schema=self.schema,
            id_column=self.id_column,
            fetch_batch_size=self.fetch_batch_size,
            dispatcher=self.dispatcher,
        )

        summary = RunSummary(columns=columns)
        start = time.perf_counter()
        results: Dict[Partition, ScanOutcome] = {}
        futures: Dict[Future[ScanOutcome], Partition] = {}
        with ThreadPoolExecutor(max_workers=worker_count, thread_name_prefix="processor") as executor:
            for partition in partitions:
                futures[executor.submit(self._scan_partition, scanner, partition)] = partition
            for future in as_completed(futures):
                results[futures[future]] = future.result()
        summary.elapsed = time.perf_counter() - start
        summary.outcomes = [results[partition] for partition in partitions]
        return summary

    def _scan_partition(self, scanner: PartitionScanner, partition: Partition) -> ScanOutcome:
        """Run one scan task; an exception escaping the scanner becomes a fatal outcome.

        A crashed outcome keeps ``worker`` and ``elapsed``; its row and cell
        counters are zero because the scanner's partial counts are lost.
        """
        worker = threading.current_thread().name
        start = time.perf_counter()
        try:
            return scanner.scan(self.pool, partition)
        except Exception as exc:
            logger.exception("[run][partition %s] crashed", partition.label)
            return ScanOutcome(
                partition=partition,
                fatal=f"crashed: {exc!r}",
                elapsed=time.perf_counter() - start,
                worker=worker,
            )
