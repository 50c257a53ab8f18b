"""Scan one id-range partition and decode every fetched cell."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional, Sequence, Set, Tuple

import pymysql
from pymysql.cursors import SSCursor

from scanbench.db import quote_ident
from scanbench.dispatch import EXTRACTED_TYPES, ColumnTypeDispatcher
from scanbench.errors import FatalSetupError, RecoverableDecodeError, UnhandledTypeWarning
from scanbench.models import ColumnDescriptor, Partition, ScanOutcome, TypeTag
from scanbench.pool import ConnectionPool

logger = logging.getLogger(__name__)

DEFAULT_FETCH_BATCH_SIZE = 200


def build_projection_sql(
    table: str,
    columns: Sequence[ColumnDescriptor],
    *,
    schema: Optional[str] = None,
    id_column: str = "id",
) -> str:
    """SELECT every column in declared order, bounded by a half-open id range."""
    if not columns:
        raise ValueError("Projection needs at least one column")
    projections = []
    for column in columns:
        ref = f"t.{quote_ident(column.name)}"
        template = EXTRACTED_TYPES.get(column.type_name.lower())
        expression = template.format(ref=ref) if template else ref
        projections.append(f"{expression} AS {quote_ident(column.name)}")
    source = quote_ident(table)
    if schema:
        source = f"{quote_ident(schema)}.{source}"
    key = f"t.{quote_ident(id_column)}"
    return (
        f"SELECT {', '.join(projections)} FROM {source} t "
        f"WHERE {key} >= %s AND {key} < %s"
    )


class PartitionScanner:
    """Shared, read-only scan settings; :meth:`scan` runs once per partition."""

    def __init__(
        self,
        columns: Sequence[ColumnDescriptor],
        table: str,
        *,
        schema: Optional[str] = None,
        id_column: str = "id",
        fetch_batch_size: int = DEFAULT_FETCH_BATCH_SIZE,
        dispatcher: Optional[ColumnTypeDispatcher] = None,
    ) -> None:
        if fetch_batch_size < 1:
            raise ValueError(f"fetch_batch_size must be >= 1 (got {fetch_batch_size})")
        self.columns: Tuple[ColumnDescriptor, ...] = tuple(columns)
        self.fetch_batch_size = fetch_batch_size
        self.dispatcher = dispatcher or ColumnTypeDispatcher()
        self.sql = build_projection_sql(table, self.columns, schema=schema, id_column=id_column)
        self._key_index = next(
            (idx for idx, col in enumerate(self.columns) if col.type_tag is TypeTag.ROW_ID),
            None,
        )

    def scan(self, pool: ConnectionPool, partition: Partition) -> ScanOutcome:
        outcome = ScanOutcome(partition=partition, worker=threading.current_thread().name)
        prefix = f"[run][partition {partition.label}]"
        logger.info("%s starting on %s", prefix, outcome.worker)
        start = time.perf_counter()
        try:
            with pool.connection() as conn:
                self._stream(conn, partition, outcome, prefix)
        except FatalSetupError as exc:
            outcome.fatal = str(exc)
            logger.error("%s failed after %s row(s): %s", prefix, f"{outcome.rows:,}", exc)
        outcome.elapsed = time.perf_counter() - start
        if not outcome.failed:
            logger.info(
                "%s finished rows=%s cells=%s nulls=%s decode_failures=%s elapsed=%.2fs (%s rows/s)",
                prefix,
                f"{outcome.rows:,}",
                f"{outcome.cells:,}",
                f"{outcome.nulls:,}",
                sum(outcome.decode_failures.values()),
                outcome.elapsed,
                f"{outcome.rows_per_sec:,.1f}",
            )
        return outcome

    def _stream(self, conn: Any, partition: Partition, outcome: ScanOutcome, prefix: str) -> None:
        warned: Set[str] = set()
        try:
            with conn.cursor(SSCursor) as cur:
                cur.execute(self.sql, (partition.start_id, partition.end_id))
                while True:
                    rows = cur.fetchmany(self.fetch_batch_size)
                    if not rows:
                        break
                    for row in rows:
                        self._decode_row(row, outcome, warned, prefix)
                        outcome.rows += 1
        except pymysql.MySQLError as exc:
            raise FatalSetupError(f"query failed: {exc}") from exc

    def _decode_row(
        self,
        row: Sequence[Any],
        outcome: ScanOutcome,
        warned: Set[str],
        prefix: str,
    ) -> None:
        row_label = None
        if self._key_index is not None and row[self._key_index] is not None:
            key = self.columns[self._key_index]
            try:
                row_label = self.dispatcher.decode(
                    TypeTag.ROW_ID, row[self._key_index], type_name=key.type_name, position=key.position
                )
            except RecoverableDecodeError as exc:
                outcome.decode_failures[key.name] += 1
                logger.warning("%s Error %s reading row identifier %s", prefix, exc, key.label)

        for index, column in enumerate(self.columns):
            if index == self._key_index:
                continue
            raw = row[index]
            if raw is None:
                outcome.nulls += 1
                continue
            try:
                value = self.dispatcher.decode(
                    column.type_tag, raw, type_name=column.type_name, position=column.position
                )
            except RecoverableDecodeError as exc:
                outcome.decode_failures[column.name] += 1
                logger.warning(
                    "%s Error %s decoding column %s (position %d) for row %s",
                    prefix,
                    exc,
                    column.name,
                    column.position,
                    row_label if row_label is not None else "<unknown>",
                )
                continue
            if isinstance(value, UnhandledTypeWarning):
                outcome.unhandled[column.name] += 1
                if column.name not in warned:
                    warned.add(column.name)
                    logger.warning("%s %s (%s); skipping it", prefix, value, column.name)
                continue
            outcome.cells += 1
