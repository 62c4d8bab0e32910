"""
CSV and text report output for security log analysis runs.

Every output is written to ``<name>.partial`` first and moved into place with
``os.replace``, so an interrupted or terminated writer never leaves a
half-written CSV behind under its final name.
"""

import os
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from .config import MODE_ANALYZE, AnalysisConfig
from .events import ConnectionFrequencyEntry, RunSummary, format_timestamp
from .exceptions import ExportError
from .logging_config import get_logger
from .patterns import RISK_HIGH, RISK_LOW, RISK_MEDIUM

logger = get_logger(__name__)

PARTIAL_SUFFIX = ".partial"
# Rows held in memory at once while streaming a parsed file to CSV
CSV_CHUNK_ROWS = 1000
STAMP_FORMAT = "%Y%m%d_%H%M%S"

SNAPSHOT_PREFIX = ["SourceFile", "LineNumber"]
FREQUENCY_COLUMNS = [
    "IPAddress",
    "TotalAttempts",
    "FirstSeen",
    "LastSeen",
    "UniquePortsAccessed",
    "RiskLevel",
]

FAILED_CONNECTIONS_NAME = "FailedConnections"
UNUSUAL_IPS_NAME = "UnusualIPs"
CONNECTION_FREQUENCY_NAME = "ConnectionFrequency"
RUN_SUMMARY_NAME = "RunSummary"


# =============================================================================
# ATOMIC WRITERS
# =============================================================================


def remove_partial(output_path: str) -> None:
    """Delete a leftover ``.partial`` file for output_path, if any."""
    try:
        os.remove(output_path + PARTIAL_SUFFIX)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("  Could not remove partial output %s: %s", output_path + PARTIAL_SUFFIX, e)


def remove_output(output_path: str) -> None:
    """Delete output_path and its .partial file. Used when the task that wrote it failed."""
    remove_partial(output_path)
    try:
        os.remove(output_path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning("  Could not remove output %s: %s", output_path, e)


def cleanup_partials(output_dir: str) -> int:
    """Remove every ``*.partial`` file in output_dir. Returns the count removed."""
    removed = 0
    if not os.path.isdir(output_dir):
        return removed
    for path in Path(output_dir).glob(f"*{PARTIAL_SUFFIX}"):
        try:
            path.unlink()
            removed += 1
        except OSError as e:
            logger.warning("  Could not remove partial output %s: %s", path, e)
    return removed


def _atomic_write(output_path: str, write: Callable[[str], None]) -> None:
    tmp_path = output_path + PARTIAL_SUFFIX
    try:
        write(tmp_path)
        os.replace(tmp_path, output_path)
    except OSError as e:
        remove_partial(output_path)
        raise ExportError(f"Could not write output: {e}", output_path=output_path) from e
    except Exception:
        remove_partial(output_path)
        raise


def write_frame_csv(frame: pd.DataFrame, output_path: str) -> None:
    _atomic_write(output_path, lambda tmp: frame.to_csv(tmp, index=False))


def write_text(text: str, output_path: str) -> None:
    def _write(tmp: str) -> None:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)

    _atomic_write(output_path, _write)


def write_records_csv(
    rows: Iterable[Dict[str, str]],
    columns: Sequence[str],
    output_path: str,
    chunk_rows: int = CSV_CHUNK_ROWS,
) -> None:
    """
    Write one parsed file's field table: one row per record, union of columns.

    rows is consumed lazily and appended chunk_rows at a time, so memory stays
    flat however large the source file is. Fields a row lacks are left empty.
    """
    columns = list(columns)

    def _write(tmp: str) -> None:
        chunk: List[Dict[str, str]] = []
        first = True
        for row in rows:
            chunk.append(row)
            if len(chunk) >= chunk_rows:
                _append_chunk(chunk, columns, tmp, first)
                chunk = []
                first = False
        if chunk or first:
            _append_chunk(chunk, columns, tmp, first)

    _atomic_write(output_path, _write)


def _append_chunk(chunk: List[Dict[str, str]], columns: List[str], path: str, first: bool) -> None:
    frame = pd.DataFrame(chunk, columns=columns)
    frame.to_csv(path, mode="w" if first else "a", header=first, index=False)


# =============================================================================
# FRAME BUILDERS
# =============================================================================


def snapshot_frame(entries: Iterable) -> pd.DataFrame:
    """Table of captured records, ordered by source file and line."""
    ordered = sorted(entries, key=lambda e: (e.source_file, e.line_number))
    columns = dict.fromkeys(SNAPSHOT_PREFIX)
    rows = []
    for entry in ordered:
        row = {"SourceFile": entry.source_file, "LineNumber": entry.line_number}
        for name, value in entry.fields.items():
            if name not in row:
                row[name] = value
            columns.setdefault(name)
        rows.append(row)
    return pd.DataFrame(rows, columns=list(columns))


def frequency_frame(entries: Iterable[ConnectionFrequencyEntry], threshold: int) -> pd.DataFrame:
    """Connection frequency table with risk tiers, busiest sources first."""
    ordered = sorted(entries, key=lambda e: (-e.count, e.ip))
    rows = [
        {
            "IPAddress": e.ip,
            "TotalAttempts": e.count,
            "FirstSeen": format_timestamp(e.first_seen),
            "LastSeen": format_timestamp(e.last_seen),
            "UniquePortsAccessed": ",".join(e.sorted_ports()),
            "RiskLevel": e.risk_level(threshold),
        }
        for e in ordered
    ]
    return pd.DataFrame(rows, columns=FREQUENCY_COLUMNS)


def _fmt_dur(sec: float) -> str:
    if sec < 60:
        return f"{sec:.1f}s"
    elif sec < 3600:
        return f"{sec/60:.1f}m"
    return f"{sec/3600:.1f}h"


def _fmt_size(num_bytes: float) -> str:
    if num_bytes < 1024:
        return f"{num_bytes:.0f} B"
    for unit in ("KB", "MB"):
        num_bytes /= 1024
        if num_bytes < 1024:
            return f"{num_bytes:.1f} {unit}"
    return f"{num_bytes / 1024:.1f} GB"


# =============================================================================
# EXPORTER
# =============================================================================


class ResultExporter:
    """Writes a finished RunSummary to the configured output directory."""

    def __init__(self, config: AnalysisConfig, stamp: Optional[str] = None):
        self.config = config
        self.output_dir = config.output_dir
        self.stamp = stamp or datetime.now().strftime(STAMP_FORMAT)

    def output_path(self, name: str, extension: str = "csv") -> str:
        return os.path.join(self.output_dir, f"{name}_{self.stamp}.{extension}")

    def _export(self, summary: RunSummary, name: str, frame: pd.DataFrame) -> None:
        path = self.output_path(name)
        if frame.empty:
            logger.warning("  No %s found; writing empty %s", name, os.path.basename(path))
        try:
            write_frame_csv(frame, path)
        except ExportError as e:
            logger.error("  Export failed: %s", e)
            summary.export_errors.append(str(e))
            return
        summary.output_files.append(path)
        logger.info("  Wrote %s (%d rows)", os.path.basename(path), len(frame))

    def export_analysis(self, summary: RunSummary) -> None:
        """Write the three aggregate CSVs. A failed write does not stop the others."""
        self._export(
            summary, FAILED_CONNECTIONS_NAME, snapshot_frame(summary.failed_connections.values())
        )
        self._export(summary, UNUSUAL_IPS_NAME, snapshot_frame(summary.unusual_ips.values()))
        self._export(
            summary,
            CONNECTION_FREQUENCY_NAME,
            frequency_frame(
                summary.connection_frequency.values(), self.config.min_connection_threshold
            ),
        )

    def write_summary(self, summary: RunSummary) -> Optional[str]:
        path = self.output_path(RUN_SUMMARY_NAME, "txt")
        text = self.render_summary(summary)
        try:
            write_text(text, path)
        except ExportError as e:
            logger.error("  Export failed: %s", e)
            summary.export_errors.append(str(e))
            return None
        summary.output_files.append(path)
        return path

    def render_summary(self, summary: RunSummary) -> str:  # noqa: C901
        """Human-readable run report."""
        lines: List[str] = []
        rule = "=" * 80
        sub = "-" * 80

        lines.append(rule)
        lines.append("SECURITY LOG ANALYSIS RUN SUMMARY")
        lines.append(rule)
        lines.append(f"Mode:             {summary.mode}")
        lines.append(f"Started:          {format_timestamp(summary.started_at)}")
        if summary.finished_at:
            lines.append(f"Finished:         {format_timestamp(summary.finished_at)}")
            elapsed = (summary.finished_at - summary.started_at).total_seconds()
            lines.append(f"Elapsed:          {_fmt_dur(elapsed)}")
        lines.append(f"Output directory: {self.output_dir}")

        succeeded = summary.succeeded
        failed = summary.failed

        lines.append("")
        lines.append(sub)
        lines.append("TOTALS")
        lines.append(sub)
        lines.append(f"Files:             {len(summary.file_results):,}")
        lines.append(f"  Succeeded:       {len(succeeded):,}")
        lines.append(f"  Failed:          {len(failed):,}")
        lines.append(f"Lines read:        {summary.total_lines:,}")
        lines.append(f"Records processed: {summary.total_records:,}")
        lines.append(f"Lines skipped:     {summary.total_skipped:,}")
        lines.append(f"Bytes processed:   {_fmt_size(sum(r.file_size for r in succeeded))}")

        if succeeded:
            durations = np.array([r.duration for r in succeeded])
            lines.append("")
            lines.append("Processing time per file:")
            lines.append(f"  Mean:   {_fmt_dur(float(np.mean(durations)))}")
            lines.append(f"  Median: {_fmt_dur(float(np.median(durations)))}")
            lines.append(f"  P95:    {_fmt_dur(float(np.percentile(durations, 95)))}")
            lines.append(f"  Max:    {_fmt_dur(float(np.max(durations)))}")

        if summary.mode == MODE_ANALYZE:
            self._render_analysis(summary, lines, sub)
        else:
            self._render_parse(summary, lines, sub)

        lines.append("")
        lines.append(sub)
        lines.append("FAILURES")
        lines.append(sub)
        if not failed:
            lines.append("None")
        for result in failed:
            lines.append(f"{result.path}")
            lines.append(f"  Reason: {result.failure_reason}")
            lines.append(f"  Detail: {result.error}")

        if summary.export_errors:
            lines.append("")
            lines.append(sub)
            lines.append("EXPORT ERRORS")
            lines.append(sub)
            lines.extend(summary.export_errors)

        if summary.output_files:
            lines.append("")
            lines.append(sub)
            lines.append("OUTPUT FILES")
            lines.append(sub)
            lines.extend(summary.output_files)

        lines.append("")
        lines.append(rule)
        return "\n".join(lines) + "\n"

    def _render_analysis(self, summary: RunSummary, lines: List[str], sub: str) -> None:
        threshold = self.config.min_connection_threshold
        frequency = list(summary.connection_frequency.values())
        tiers = Counter(e.risk_level(threshold) for e in frequency)

        lines.append("")
        lines.append(sub)
        lines.append("SUSPICIOUS CONNECTION ANALYSIS")
        lines.append(sub)
        lines.append(f"Failed connections:  {len(summary.failed_connections):,}")
        lines.append(f"Unusual-country IPs: {len(summary.unusual_ips):,}")
        lines.append(f"Distinct remote IPs: {len(frequency):,}")
        lines.append(f"Trusted countries:   {', '.join(self.config.trusted_countries)}")
        lines.append(f"Risk threshold:      {threshold} (High at {threshold * 2})")
        for tier in (RISK_HIGH, RISK_MEDIUM, RISK_LOW):
            lines.append(f"  {tier + ':':<8} {tiers.get(tier, 0):,}")

        top = sorted(frequency, key=lambda e: (-e.count, e.ip))[: self.config.top_n]
        if top:
            lines.append("")
            lines.append(f"TOP {len(top)} SOURCES BY ATTEMPTS")
            lines.append(f"{'IP Address':<40}{'Attempts':<12}{'Ports':<8}{'Risk':<8}")
            for e in top:
                lines.append(f"{e.ip:<40}{e.count:<12,}{len(e.ports):<8}{e.risk_level(threshold):<8}")

    def _render_parse(self, summary: RunSummary, lines: List[str], sub: str) -> None:
        succeeded = summary.succeeded
        lines.append("")
        lines.append(sub)
        lines.append("PARSED FILES")
        lines.append(sub)
        if not succeeded:
            lines.append("None")
            return

        frame = pd.DataFrame(
            {
                "path": [r.path for r in succeeded],
                "file_size": [r.file_size for r in succeeded],
                "records": [r.records_processed for r in succeeded],
            }
        ).sort_values("path")
        top_n = self.config.top_n

        lines.append(f"TOP {min(top_n, len(frame))} FILES BY SIZE")
        for row in frame.nlargest(top_n, "file_size", keep="first").itertuples(index=False):
            lines.append(f"  {_fmt_size(row.file_size):>10}  {row.path}")

        lines.append("")
        lines.append(f"TOP {min(top_n, len(frame))} FILES BY RECORD COUNT")
        for row in frame.nlargest(top_n, "records", keep="first").itertuples(index=False):
            lines.append(f"  {row.records:>10,}  {row.path}")
