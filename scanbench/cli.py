"""Command-line launcher: provision the table, then benchmark partitioned scans."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import pymysql

from scanbench.config import BenchConfig, load_json_config, resolve_config
from scanbench.coordinator import RunCoordinator
from scanbench.db import connect_mysql, make_connector
from scanbench.errors import ConfigError, MetadataError
from scanbench.models import RunSummary
from scanbench.pool import ConnectionPool
from scanbench.report import log_summary, plot_partition_throughput, write_artifacts
from scanbench.seed import provision_table

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_PARTITION_FAILURES = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--init", action="store_true", help="Create and seed the table only.")
    mode.add_argument("--run", action="store_true", help="Run the scan benchmark only.")
    parser.add_argument("--config", help="Path to JSON config (see scan_config.example.json).")
    parser.add_argument(
        "--allow-env-overrides",
        action="store_true",
        help="Allow SCAN_* environment variables to override JSON config keys (default: off).",
    )
    parser.add_argument("--host", help="MySQL host (overrides config).")
    parser.add_argument("--port", type=int, help="MySQL port (overrides config).")
    parser.add_argument("-u", "--user", help="The username to connect as.")
    parser.add_argument("-p", "--password", help="The password.")
    parser.add_argument("--socket", help="Unix socket path (overrides host/port).")
    parser.add_argument("--schema", help="Schema holding the scan table.")
    parser.add_argument("--table", help="Scan table name (default: test1).")
    parser.add_argument(
        "-r", "--rows", type=int, help="The number of table rows to test with (default 2000000)."
    )
    parser.add_argument(
        "-t",
        "--threads",
        type=int,
        help="The maximum number of table segments to process at one time (default: CPU count).",
    )
    parser.add_argument("--fetch-batch-size", type=int, help="Rows fetched per round trip (default 200).")
    parser.add_argument("--columns", type=int, help="Text columns created by --init (default 50).")
    parser.add_argument("--force", action="store_true", help="Drop and rebuild an existing table during init.")
    parser.add_argument("--artifacts-dir", help="Directory for run summaries (default: artifacts).")
    parser.add_argument("--plot", action="store_true", help="Write a per-partition throughput chart.")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Logging verbosity (default: %(default)s).",
    )
    parser.add_argument("--log-file", help="Also write the log to this file.")
    return parser.parse_args(argv)


def configure_logging(level: str, log_file: Optional[str] = None) -> None:
    """Log to stdout and, when requested, tee the stream to a log file."""
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(message)s",
        handlers=handlers,
        force=True,
    )


def print_config_summary(cfg: BenchConfig, env_overrides: Sequence[str], ignored_env: Sequence[str]) -> None:
    logger.info("[config] Loaded %s", cfg.source)
    logger.info("[config] target=%s table=`%s`.`%s`", cfg.db.target, cfg.schema, cfg.table)
    logger.info(
        "[config] rows=%s threads=%d pool=%d fetch_batch_size=%d columns=%d raw_values=%s",
        f"{cfg.rows:,}",
        cfg.threads,
        cfg.pool_size,
        cfg.fetch_batch_size,
        cfg.columns,
        cfg.raw_values,
    )
    if env_overrides:
        logger.info("[config] Environment overrides applied: %s", ", ".join(env_overrides))
    elif ignored_env:
        logger.info(
            "[config] Ignored env overrides: %s (use --allow-env-overrides to enable)",
            ", ".join(ignored_env),
        )


def run_init(cfg: BenchConfig, force: bool) -> None:
    conn = connect_mysql(cfg.db, autocommit=False, connect_timeout=cfg.connect_timeout)
    try:
        provision_table(conn, cfg, force=force)
    finally:
        conn.close()


def run_scan(cfg: BenchConfig) -> RunSummary:
    connector = make_connector(
        cfg.db.with_db(cfg.schema),
        connect_timeout=cfg.connect_timeout,
        raw_values=cfg.raw_values,
    )
    with ConnectionPool(connector, max_size=cfg.pool_size) as pool:
        coordinator = RunCoordinator(
            pool,
            cfg.schema,
            cfg.table,
            id_column=cfg.id_column,
            fetch_batch_size=cfg.fetch_batch_size,
        )
        summary = coordinator.run(cfg.rows, cfg.threads)
    log_summary(summary)
    if cfg.artifacts_dir:
        summary_path = write_artifacts(summary, cfg, cfg.artifacts_dir)
        if cfg.plot:
            plot_partition_throughput(summary, summary_path.with_suffix(".png"))
    return summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    try:
        config_path, config_data = load_json_config(args.config)
        cfg, env_overrides, ignored_env = resolve_config(args, config_data, config_path)
    except ConfigError as exc:
        logger.error("[config] %s", exc)
        return EXIT_ERROR
    print_config_summary(cfg, env_overrides, ignored_env)

    do_init = args.init or not args.run
    do_run = args.run or not args.init
    try:
        if do_init:
            run_init(cfg, args.force)
            logger.info("[init] Table configured for testing")
        if do_run:
            summary = run_scan(cfg)
            if not summary.ok:
                logger.error(
                    "[run] %d partition(s) failed; see log for details", len(summary.fatal_partitions)
                )
                return EXIT_PARTITION_FAILURES
    except (ConfigError, MetadataError) as exc:
        logger.error("%s", exc)
        return EXIT_ERROR
    except pymysql.MySQLError as exc:
        logger.error("Database error: %s", exc)
        return EXIT_ERROR
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
