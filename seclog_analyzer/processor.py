"""
Per-file processing: stream one log file through the LineParser and classify
every record into a task-local PartialResult.

process_file() runs inside a worker process, so it lives at module level and
everything it returns must pickle.
"""

import os
import time
from typing import Dict, Iterator, Optional, Tuple

from .config import MODE_ANALYZE, AnalysisConfig
from .events import (
    REASON_EXPORT_ERROR,
    REASON_IO_ERROR,
    FailedConnectionEntry,
    FileResult,
    LogRecord,
    PartialResult,
    UnusualIPEntry,
)
from .exceptions import ExportError, FileProcessingError
from .exporter import write_records_csv
from .logging_config import get_logger
from .parser import LineParser

logger = get_logger(__name__)

FileOutcome = Tuple[FileResult, Optional[PartialResult]]

LOG_ENCODING = "utf-8-sig"


def classify_record(
    record: LogRecord,
    partial: PartialResult,
    config: AnalysisConfig,
    source_file: str,
) -> None:
    """Fold one record into the failed, unusual-IP and frequency tables."""
    if record.is_failed_connection():
        partial.add_failed(FailedConnectionEntry(record, source_file))

    # Records without a country are neither trusted nor unusual
    country = record.src_country
    if country and not config.is_trusted(country):
        partial.add_unusual(UnusualIPEntry(record, source_file))

    if record.remote_ip:
        partial.observe_connection(record)


def iter_record_fields(path: str) -> Iterator[Dict[str, str]]:
    """
    Re-read a file and yield each record's fields, one line at a time.

    Raises:
        FileProcessingError: The file could not be read.
    """
    parser = LineParser()
    try:
        with open(path, encoding=LOG_ENCODING, errors="replace") as f:
            for line in f:
                fields = parser.parse_fields(line)
                if fields:
                    yield fields
    except OSError as e:
        raise FileProcessingError(f"{type(e).__name__}: {e}", file_path=path) from e


def process_file(
    path: str,
    config: AnalysisConfig,
    output_path: Optional[str] = None,
) -> FileOutcome:
    """
    Process a single log file.

    In analyze mode the records are classified into a PartialResult. In parse
    mode a first pass collects counts and the union of field names, and a
    second pass streams every record into output_path as one CSV. Only the
    current line (and one CSV chunk) is held in memory either way.

    Returns:
        (FileResult, PartialResult or None). I/O failures are reported through
        a failed FileResult; nothing is raised for them.
    """
    path = str(path)
    started = time.perf_counter()
    analyze = config.mode == MODE_ANALYZE

    parser = LineParser()
    partial = PartialResult() if analyze else None
    columns: Dict[str, None] = {}
    lines_read = 0
    records = 0
    file_size = 0

    def _failed(reason: str, error: str) -> FileOutcome:
        result = FileResult.failed(
            path, reason, error, file_size=file_size, duration=time.perf_counter() - started
        )
        return result, None

    try:
        file_size = os.path.getsize(path)
        with open(path, encoding=LOG_ENCODING, errors="replace") as f:
            for line_number, line in enumerate(f, 1):
                lines_read += 1
                record = parser.parse(line, line_number=line_number)
                if record is None:
                    continue
                records += 1

                if partial is not None:
                    classify_record(record, partial, config, path)
                else:
                    for name in record.fields:
                        columns.setdefault(name)
    except OSError as e:
        logger.debug("  I/O error on %s: %s", path, e)
        return _failed(REASON_IO_ERROR, f"{type(e).__name__}: {e}")

    written_path = None
    if not analyze:
        if records and output_path:
            try:
                write_records_csv(iter_record_fields(path), list(columns), output_path)
                written_path = output_path
            except FileProcessingError as e:
                logger.debug("  I/O error on %s: %s", path, e)
                return _failed(REASON_IO_ERROR, str(e))
            except ExportError as e:
                return _failed(REASON_EXPORT_ERROR, str(e))
        elif not records:
            logger.warning("  No records parsed from %s; no CSV written", os.path.basename(path))

    result = FileResult(
        path=path,
        success=True,
        records_processed=records,
        lines_read=lines_read,
        lines_skipped=parser.lines_skipped,
        tokens_skipped=parser.tokens_skipped,
        file_size=file_size,
        duration=time.perf_counter() - started,
        output_path=written_path,
    )
    return result, partial
