"""
Security Log Analysis Toolkit

A Python package for parsing key=value security logs (firewall, VPN and
authentication events) in parallel and flagging suspicious connections:
failed connections, sources from untrusted countries and high-frequency
remote IPs.
"""

__version__ = "1.0.0"

from .aggregator import Aggregator, merge_frequency
from .analyzer import SecurityLogAnalyzer
from .config import AnalysisConfig, load_config
from .events import (
    ConnectionFrequencyEntry,
    FailedConnectionEntry,
    FileResult,
    LogRecord,
    PartialResult,
    RunSummary,
    UnusualIPEntry,
    classify_risk,
)
from .exceptions import (
    ConfigurationError,
    ExportError,
    FileProcessingError,
    NoFilesProcessedError,
    SecurityAnalysisError,
    TaskTimeoutError,
)
from .exporter import ResultExporter
from .parser import LineParser, parse_line
from .processor import process_file
from .scheduler import FileTask, WorkScheduler

__all__ = [
    # Main analyzer
    "SecurityLogAnalyzer",
    "AnalysisConfig",
    "load_config",
    # Pipeline components
    "LineParser",
    "parse_line",
    "process_file",
    "WorkScheduler",
    "FileTask",
    "Aggregator",
    "merge_frequency",
    "ResultExporter",
    # Records and results
    "LogRecord",
    "FailedConnectionEntry",
    "UnusualIPEntry",
    "ConnectionFrequencyEntry",
    "PartialResult",
    "FileResult",
    "RunSummary",
    "classify_risk",
    # Exceptions
    "SecurityAnalysisError",
    "FileProcessingError",
    "TaskTimeoutError",
    "ExportError",
    "NoFilesProcessedError",
    "ConfigurationError",
]
