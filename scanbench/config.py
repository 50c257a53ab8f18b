"""Layered configuration: CLI flag > environment (opt-in) > JSON file > defaults."""

from __future__ import annotations

import argparse
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from scanbench.db import DBConfig
from scanbench.errors import ConfigError
from scanbench.scanner import DEFAULT_FETCH_BATCH_SIZE

DEFAULT_ROWS = 2_000_000
DEFAULT_COLUMNS = 50
DEFAULT_TABLE = "test1"
DEFAULT_PORT = 3306
DEFAULT_INSERT_BATCH_ROWS = 1000
DEFAULT_PROGRESS_ROWS = 100_000
DEFAULT_ARTIFACTS_DIR = "artifacts"


def default_threads() -> int:
    return os.cpu_count() or 1


@dataclass
class BenchConfig:
    db: DBConfig
    schema: str
    table: str = DEFAULT_TABLE
    rows: int = DEFAULT_ROWS
    threads: int = field(default_factory=default_threads)
    columns: int = DEFAULT_COLUMNS
    fetch_batch_size: int = DEFAULT_FETCH_BATCH_SIZE
    id_column: str = "id"
    raw_values: bool = True
    connect_timeout: Optional[int] = 10
    insert_batch_rows: int = DEFAULT_INSERT_BATCH_ROWS
    progress_rows: int = DEFAULT_PROGRESS_ROWS
    artifacts_dir: Optional[str] = DEFAULT_ARTIFACTS_DIR
    plot: bool = False
    source: str = "<defaults>"

    @property
    def pool_size(self) -> int:
        return self.threads + 1


def load_json_config(path: Optional[str]) -> Tuple[Optional[Path], Dict[str, Any]]:
    if not path:
        return None, {}
    config_path = Path(path).expanduser()
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigError(f"Invalid JSON in {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")
    for key in ("database", "init", "run"):
        if not isinstance(data.get(key, {}), dict):
            raise ConfigError(f"Config key {key} must be an object.")
    return config_path, data


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def resolve_config(
    args: argparse.Namespace, config: Dict[str, Any], config_path: Optional[Path] = None
) -> Tuple[BenchConfig, List[str], List[str]]:
    """Merge CLI arguments, environment and file config into a BenchConfig.

    Returns the config plus the environment variables applied and the ones
    ignored because ``--allow-env-overrides`` was not given.
    """
    env_overrides: List[str] = []
    ignored_env: List[str] = []
    env_allowed = bool(getattr(args, "allow_env_overrides", False))

    def pick(
        cli_value: Optional[object],
        config_value: Optional[object],
        env_name: Optional[str] = None,
        cast: Optional[Callable[[Any], Any]] = None,
        default: Optional[object] = None,
    ) -> Optional[object]:
        if cli_value is not None:
            return cli_value
        if env_name:
            env_val = os.getenv(env_name)
            if env_val not in (None, ""):
                if env_allowed:
                    env_overrides.append(env_name)
                    try:
                        return cast(env_val) if cast else env_val
                    except ValueError as exc:
                        raise ConfigError(f"Invalid value for {env_name}: {env_val!r}") from exc
                ignored_env.append(env_name)
        if config_value is None:
            return default
        if cast:
            try:
                return cast(config_value)
            except (TypeError, ValueError) as exc:
                raise ConfigError(f"Invalid config value {config_value!r}") from exc
        return config_value

    database = config.get("database", {})
    init_cfg = config.get("init", {})
    run_cfg = config.get("run", {})

    db = DBConfig(
        host=pick(getattr(args, "host", None), database.get("host"), "SCAN_HOST"),
        port=pick(getattr(args, "port", None), database.get("port"), "SCAN_PORT", int, DEFAULT_PORT),
        user=pick(getattr(args, "user", None), database.get("user"), "SCAN_USER"),
        password=pick(getattr(args, "password", None), database.get("password"), "SCAN_PASSWORD", default=""),
        socket=pick(getattr(args, "socket", None), database.get("socket"), "SCAN_SOCKET"),
    )
    threads = pick(getattr(args, "threads", None), run_cfg.get("threads"), "SCAN_THREADS", int)
    if threads is None:
        threads = default_threads()
    cfg = BenchConfig(
        db=db,
        schema=pick(getattr(args, "schema", None), database.get("schema"), "SCAN_SCHEMA"),
        table=pick(getattr(args, "table", None), database.get("table"), "SCAN_TABLE", default=DEFAULT_TABLE),
        rows=pick(getattr(args, "rows", None), init_cfg.get("rows"), "SCAN_ROWS", int, DEFAULT_ROWS),
        threads=threads,
        columns=pick(getattr(args, "columns", None), init_cfg.get("columns"), None, int, DEFAULT_COLUMNS),
        fetch_batch_size=pick(
            getattr(args, "fetch_batch_size", None),
            run_cfg.get("fetch_batch_size"),
            "SCAN_FETCH_BATCH_SIZE",
            int,
            DEFAULT_FETCH_BATCH_SIZE,
        ),
        id_column=pick(None, run_cfg.get("id_column"), default="id"),
        raw_values=_as_bool(pick(None, run_cfg.get("raw_values"), default=True)),
        connect_timeout=pick(None, run_cfg.get("connect_timeout"), None, int, 10),
        insert_batch_rows=pick(
            None, init_cfg.get("insert_batch_rows"), None, int, DEFAULT_INSERT_BATCH_ROWS
        ),
        progress_rows=pick(None, init_cfg.get("progress_rows"), None, int, DEFAULT_PROGRESS_ROWS),
        artifacts_dir=pick(
            getattr(args, "artifacts_dir", None), run_cfg.get("artifacts_dir"), default=DEFAULT_ARTIFACTS_DIR
        ),
        plot=bool(getattr(args, "plot", False)) or _as_bool(run_cfg.get("plot", False)),
        source=str(config_path) if config_path else "<defaults>",
    )
    validate_config(cfg)
    return cfg, env_overrides, ignored_env


def validate_config(cfg: BenchConfig) -> None:
    if not cfg.schema:
        raise ConfigError("Schema must be defined (--schema or database.schema).")
    if not cfg.table:
        raise ConfigError("Table must be defined (--table or database.table).")
    if not (cfg.db.socket or cfg.db.host):
        raise ConfigError("Connection requires host or socket.")
    if not cfg.db.user:
        raise ConfigError("Connection requires a user.")
    if cfg.rows < 1:
        raise ConfigError(f"rows must be > 0 (got {cfg.rows}).")
    if cfg.threads < 1:
        raise ConfigError(f"threads must be > 0 (got {cfg.threads}).")
    if cfg.threads > cfg.rows:
        raise ConfigError(f"threads ({cfg.threads}) cannot exceed rows ({cfg.rows}).")
    if cfg.fetch_batch_size < 1:
        raise ConfigError(f"fetch_batch_size must be > 0 (got {cfg.fetch_batch_size}).")
    if cfg.columns < 1:
        raise ConfigError(f"columns must be > 0 (got {cfg.columns}).")
    if cfg.insert_batch_rows < 1:
        raise ConfigError(f"insert_batch_rows must be > 0 (got {cfg.insert_batch_rows}).")
    if cfg.progress_rows < 1:
        cfg.progress_rows = DEFAULT_PROGRESS_ROWS
