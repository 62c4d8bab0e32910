"""
Main SecurityLogAnalyzer class: discover input files, run the scheduler,
export results.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .aggregator import Aggregator
from .config import MODE_ANALYZE, AnalysisConfig
from .events import RunSummary
from .exceptions import NoFilesProcessedError
from .exporter import ResultExporter, cleanup_partials
from .logging_config import get_logger
from .scheduler import WorkScheduler

logger = get_logger(__name__)

PathLike = Union[str, Path]


class SecurityLogAnalyzer:
    """Runs a whole analysis (or parse-to-CSV) pass over a set of log files."""

    def __init__(self, config: Optional[AnalysisConfig] = None):
        self.config = config or AnalysisConfig()
        self.summary = None

    def discover_files(self, inputs: Iterable[PathLike]) -> List[str]:
        """Expand input files and directories into a sorted list of log files."""
        found: Dict[str, None] = {}
        for item in inputs:
            path = Path(item).expanduser()
            if path.is_dir():
                for pattern in self.config.file_patterns:
                    matches = path.rglob(pattern) if self.config.recursive else path.glob(pattern)
                    for match in matches:
                        if match.is_file():
                            found.setdefault(str(match))
            elif path.is_file():
                found.setdefault(str(path))
            else:
                logger.warning("Warning: %s not found", path)
        return sorted(found)

    def parsed_output_paths(self, files: List[str]) -> Dict[str, str]:
        """One CSV path per input file; name clashes get a numeric suffix."""
        used = set()
        paths = {}
        for file_path in files:
            stem = Path(file_path).stem
            name = f"{stem}.csv"
            n = 2
            while name.lower() in used:
                name = f"{stem}_{n}.csv"
                n += 1
            used.add(name.lower())
            paths[file_path] = os.path.join(self.config.output_dir, name)
        return paths

    def run(self, inputs: Iterable[PathLike]) -> RunSummary:
        """
        Process all inputs and write outputs.

        Raises:
            NoFilesProcessedError: No input file was found, or none could be
                processed. The run summary is written first in the latter case.
        """
        config = self.config
        started_at = datetime.now()

        files = self.discover_files(inputs)
        logger.info("Found %d log files", len(files))
        if not files:
            raise NoFilesProcessedError("No input files found", attempted=0)

        os.makedirs(config.output_dir, exist_ok=True)

        analyze = config.mode == MODE_ANALYZE
        output_paths = None if analyze else self.parsed_output_paths(files)

        aggregator = Aggregator()
        results = WorkScheduler(config).run(files, aggregator, output_paths)

        summary = RunSummary(
            mode=config.mode,
            file_results=results,
            failed_connections=aggregator.failed_connections,
            unusual_ips=aggregator.unusual_ips,
            connection_frequency=aggregator.connection_frequency,
            started_at=started_at,
        )
        self.summary = summary

        exporter = ResultExporter(config)
        if summary.succeeded:
            if analyze:
                exporter.export_analysis(summary)
            else:
                summary.output_files.extend(r.output_path for r in results if r.output_path)

        removed = cleanup_partials(config.output_dir)
        if removed:
            logger.debug("  Removed %d partial output files", removed)

        summary.finished_at = datetime.now()
        report_path = exporter.write_summary(summary)

        logger.info("\nTotal files processed: %d", len(summary.succeeded))
        logger.info("Files failed: %d", len(summary.failed))
        logger.info("Total records: %s", f"{summary.total_records:,}")
        if analyze:
            logger.info("Failed connections: %s", f"{len(summary.failed_connections):,}")
            logger.info("Unusual IPs: %s", f"{len(summary.unusual_ips):,}")
            logger.info("Distinct remote IPs: %s", f"{len(summary.connection_frequency):,}")
        if report_path:
            logger.info("Summary report: %s", report_path)

        if not summary.succeeded:
            raise NoFilesProcessedError("No input file could be processed", attempted=len(results))
        return summary
