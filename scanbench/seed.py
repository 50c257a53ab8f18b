"""One-time provisioning of the synthetic scan table."""

from __future__ import annotations

import logging
import time
from typing import Any, Iterator, List, Tuple

import pymysql

from scanbench.config import BenchConfig
from scanbench.db import quote_ident

logger = logging.getLogger(__name__)


def column_names(count: int) -> List[str]:
    return [f"col{i}" for i in range(1, count + 1)]


def build_table_ddl(schema: str, table: str, columns: int) -> str:
    body = ", ".join(f"{quote_ident(name)} TEXT" for name in column_names(columns))
    return (
        f"CREATE TABLE {quote_ident(schema)}.{quote_ident(table)} ("
        f"`id` BIGINT NOT NULL, {body}, PRIMARY KEY (`id`)"
        ") DEFAULT CHARSET=utf8mb4"
    )


def build_insert_sql(schema: str, table: str, columns: int) -> str:
    names = ["id"] + column_names(columns)
    columns_sql = ", ".join(quote_ident(name) for name in names)
    placeholders = ", ".join(["%s"] * len(names))
    return f"INSERT INTO {quote_ident(schema)}.{quote_ident(table)} ({columns_sql}) VALUES ({placeholders})"


def row_values(row_id: int, columns: int) -> Tuple[object, ...]:
    return (row_id,) + tuple(f"row{row_id}col{i}" for i in range(1, columns + 1))


def iter_batches(total_rows: int, columns: int, batch_rows: int) -> Iterator[List[Tuple[object, ...]]]:
    batch: List[Tuple[object, ...]] = []
    for row_id in range(1, total_rows + 1):
        batch.append(row_values(row_id, columns))
        if len(batch) >= batch_rows:
            yield batch
            batch = []
    if batch:
        yield batch


def table_exists(conn: Any, schema: str, table: str) -> bool:
    with conn.cursor() as cur:
        cur.execute(
            "SELECT COUNT(*) AS cnt FROM information_schema.tables "
            "WHERE table_schema=%s AND table_name=%s",
            (schema, table),
        )
        row = cur.fetchone()
    return bool(row and int(row["cnt"]))


def ensure_table(conn: Any, cfg: BenchConfig, force: bool) -> bool:
    """Create the table; return False when an existing table is kept as is."""
    with conn.cursor() as cur:
        cur.execute(
            f"CREATE DATABASE IF NOT EXISTS {quote_ident(cfg.schema)} "
            "DEFAULT CHARACTER SET utf8mb4 COLLATE utf8mb4_general_ci"
        )
    exists = table_exists(conn, cfg.schema, cfg.table)
    if exists and not force:
        logger.info(
            "[init] Table `%s`.`%s` already exists; keeping it (use --force to rebuild)",
            cfg.schema,
            cfg.table,
        )
        return False
    ddl = build_table_ddl(cfg.schema, cfg.table, cfg.columns)
    with conn.cursor() as cur:
        if exists:
            logger.info("[init] Dropping `%s`.`%s`", cfg.schema, cfg.table)
            cur.execute(f"DROP TABLE IF EXISTS {quote_ident(cfg.schema)}.{quote_ident(cfg.table)}")
        logger.debug("[init] DDL: %s", ddl)
        cur.execute(ddl)
    conn.commit()
    logger.info("[init] Created `%s`.`%s` with %d text column(s)", cfg.schema, cfg.table, cfg.columns)
    return True


def seed_rows(conn: Any, cfg: BenchConfig) -> int:
    insert_sql = build_insert_sql(cfg.schema, cfg.table, cfg.columns)
    start = time.perf_counter()
    inserted = 0
    progress_next = cfg.progress_rows
    with conn.cursor() as cur:
        for batch in iter_batches(cfg.rows, cfg.columns, cfg.insert_batch_rows):
            cur.executemany(insert_sql, batch)
            conn.commit()
            inserted += len(batch)
            while inserted >= progress_next:
                elapsed = time.perf_counter() - start
                rows_per_sec = inserted / elapsed if elapsed else 0.0
                logger.info(
                    "[init] Inserted %s/%s rows in %.1fs (%s rows/s)",
                    f"{inserted:,}",
                    f"{cfg.rows:,}",
                    elapsed,
                    f"{rows_per_sec:,.1f}",
                )
                progress_next += cfg.progress_rows
    elapsed = time.perf_counter() - start
    rows_per_sec = inserted / elapsed if elapsed else 0.0
    logger.info(
        "[init] Completed %s rows in %.1fs (rows/s: %s)",
        f"{inserted:,}",
        elapsed,
        f"{rows_per_sec:,.1f}",
    )
    return inserted


def provision_table(conn: Any, cfg: BenchConfig, force: bool = False) -> int:
    """Create and fill ``cfg.schema``.``cfg.table``; return rows inserted.

    An existing table is left untouched unless ``force`` is set.
    """
    logger.info(
        "[init] Provisioning `%s`.`%s` via %s: %s rows x %d columns",
        cfg.schema,
        cfg.table,
        cfg.db.target,
        f"{cfg.rows:,}",
        cfg.columns,
    )
    try:
        if not ensure_table(conn, cfg, force):
            return 0
        inserted = seed_rows(conn, cfg)
        with conn.cursor() as cur:
            cur.execute(f"SELECT COUNT(*) AS cnt FROM {quote_ident(cfg.schema)}.{quote_ident(cfg.table)}")
            total = int(cur.fetchone()["cnt"])
    except pymysql.MySQLError:
        conn.rollback()
        raise
    logger.info("[init] Row count check: %s (expected %s)", f"{total:,}", f"{cfg.rows:,}")
    return inserted
