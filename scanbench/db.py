"""PyMySQL connection helpers."""

from __future__ import annotations

import functools
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Optional

import pymysql
from pymysql import converters
from pymysql.cursors import DictCursor

# Parameter encoders only: result cells come back as the server sent them
# (str for text/numbers/dates, bytes for binary) for the dispatcher to decode.
RAW_CONVERSIONS: Dict[Any, Any] = dict(converters.encoders)


@dataclass
class DBConfig:
    host: Optional[str]
    port: int
    user: str
    password: Optional[str]
    socket: Optional[str]
    db: Optional[str] = None

    def with_db(self, database: str) -> "DBConfig":
        return replace(self, db=database)

    @property
    def target(self) -> str:
        return self.socket or f"{self.host}:{self.port}"


def connect_mysql(
    cfg: DBConfig,
    autocommit: bool,
    *,
    connect_timeout: Optional[int] = None,
    raw_values: bool = False,
) -> pymysql.connections.Connection:
    params: Dict[str, object] = {
        "user": cfg.user,
        "password": cfg.password or "",
        "charset": "utf8mb4",
        "autocommit": autocommit,
        "cursorclass": DictCursor,
    }
    if connect_timeout is not None:
        params["connect_timeout"] = connect_timeout
    if raw_values:
        params["conv"] = RAW_CONVERSIONS
    if cfg.socket:
        params["unix_socket"] = cfg.socket
    else:
        params["host"] = cfg.host
        params["port"] = cfg.port
    conn = pymysql.connect(**params)
    if cfg.db:
        conn.select_db(cfg.db)
    return conn


def make_connector(
    cfg: DBConfig,
    *,
    connect_timeout: Optional[int] = None,
    raw_values: bool = True,
) -> Callable[[], pymysql.connections.Connection]:
    """Connection factory handed to the pool for scan connections."""
    return functools.partial(
        connect_mysql,
        cfg,
        True,
        connect_timeout=connect_timeout,
        raw_values=raw_values,
    )


def quote_ident(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"
