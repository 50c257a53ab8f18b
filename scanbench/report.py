"""Run summaries: log lines, a text artifact and a per-partition throughput chart."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import seaborn as sns
from matplotlib.ticker import FuncFormatter

from scanbench.config import BenchConfig
from scanbench.models import RunSummary

logger = logging.getLogger(__name__)


def log_summary(summary: RunSummary) -> None:
    logger.info("[run] Partition summaries:")
    for outcome in summary.outcomes:
        status = f"FATAL {outcome.fatal}" if outcome.failed else "ok"
        logger.info(
            "  partition %s [%s] rows=%s cells=%s nulls=%s decode_failures=%s elapsed=%.2fs (%s rows/s) %s",
            outcome.partition.label,
            outcome.worker or "-",
            f"{outcome.rows:,}",
            f"{outcome.cells:,}",
            f"{outcome.nulls:,}",
            sum(outcome.decode_failures.values()),
            outcome.elapsed,
            f"{outcome.rows_per_sec:,.1f}",
            status,
        )
    for name, count in sorted(summary.decode_failures.items()):
        logger.warning("[run] column %s: %s decode failure(s)", name, f"{count:,}")
    for name, count in sorted(summary.unhandled.items()):
        logger.warning("[run] column %s: unhandled type, skipped %s cell(s)", name, f"{count:,}")
    logger.info(
        "[run] COMPLETE: %s rows, %s cells, %d partition(s), %d fatal in %.1fs (%s rows/s)",
        f"{summary.rows:,}",
        f"{summary.cells:,}",
        len(summary.outcomes),
        len(summary.fatal_partitions),
        summary.elapsed,
        f"{summary.rows_per_sec:,.1f}",
    )


def write_artifacts(
    summary: RunSummary,
    cfg: BenchConfig,
    directory: Union[str, Path],
    *,
    timestamp: Optional[str] = None,
) -> Path:
    out_dir = Path(directory)
    out_dir.mkdir(parents=True, exist_ok=True)
    stamp = timestamp or datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
    summary_path = out_dir / f"run_{stamp}.log"
    with summary_path.open("w", encoding="utf-8") as fh:
        fh.write(f"Table: {cfg.schema}.{cfg.table}\n")
        fh.write(f"Target: {cfg.db.target}\n")
        fh.write(f"Threads: {cfg.threads}\n")
        fh.write(f"Fetch batch size: {cfg.fetch_batch_size}\n")
        fh.write(f"Columns: {len(summary.columns)}\n")
        fh.write(f"Partitions: {len(summary.outcomes)}\n")
        fh.write(f"Rows processed: {summary.rows}\n")
        fh.write(f"Cells decoded: {summary.cells}\n")
        fh.write(f"Total runtime seconds: {summary.elapsed:.2f}\n")
        fh.write(f"Rows per second: {summary.rows_per_sec:.1f}\n")
        fh.write("Decode failures per column:\n")
        for name, count in sorted(summary.decode_failures.items()):
            fh.write(f"  {name}: {count}\n")
        fh.write("Fatal partitions:\n")
        for outcome in summary.fatal_partitions:
            fh.write(f"  {outcome.partition.label}: {outcome.fatal}\n")
    logger.info("[run] Summary written to %s", summary_path)
    return summary_path


def plot_partition_throughput(summary: RunSummary, out_path: Union[str, Path]) -> Path:
    """Bar chart of rows/s per partition; fatal partitions show as red zero bars."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    labels = [outcome.partition.label for outcome in summary.outcomes]
    rates = [0.0 if outcome.failed else outcome.rows_per_sec for outcome in summary.outcomes]
    colors = ["tab:red" if outcome.failed else "tab:blue" for outcome in summary.outcomes]

    sns.set_theme(style="whitegrid")
    width = max(8.0, 0.5 * len(labels))
    fig, ax = plt.subplots(figsize=(width, 5))
    sns.barplot(x=labels, y=rates, hue=labels, palette=colors, legend=False, ax=ax)
    ax.set_title(f"Rows/s per partition ({summary.rows:,} rows in {summary.elapsed:,.1f}s)")
    ax.set_xlabel("Partition id range")
    ax.set_ylabel("Rows/s")
    ax.yaxis.set_major_formatter(FuncFormatter(lambda value, _pos: f"{value:,.0f}"))
    ax.tick_params(axis="x", labelrotation=45)
    fig.tight_layout()
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    logger.info("[run] Throughput chart written to %s", out_path)
    return out_path
