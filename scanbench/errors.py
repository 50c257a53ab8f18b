"""Error taxonomy for the scan harness."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class ScanBenchError(Exception):
    """Base class for every harness error."""


class ConfigError(ScanBenchError):
    """Invalid top-level configuration; raised before any partition runs."""


class FatalSetupError(ScanBenchError):
    """A partition could not obtain a connection or run its query."""


class MetadataError(FatalSetupError):
    """Column metadata for the target table could not be read."""


class RecoverableDecodeError(ScanBenchError):
    """One cell failed to materialize into its target representation."""

    def __init__(self, type_tag: object, cause: BaseException) -> None:
        super().__init__(f"{type_tag}: {type(cause).__name__}: {cause}")
        self.type_tag = type_tag
        self.cause = cause


@dataclass(frozen=True)
class UnhandledTypeWarning:
    """Returned (never raised) when a declared type has no decode strategy."""

    type_name: str
    position: Optional[int] = None

    def __str__(self) -> str:
        where = f"column {self.position}" if self.position is not None else "unknown column"
        return f"Unhandled column type {self.type_name!r} at {where}"
