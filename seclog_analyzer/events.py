"""
Record, entry and result classes for security log analysis.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .patterns import (
    ACTION_FIELDS,
    DATE_FIELD,
    DEST_PORT_FIELDS,
    DISPOSITION_FIELDS,
    EPOCH_PATTERN,
    FAILURE_INDICATORS,
    HIGH_RISK_MULTIPLIER,
    RECOGNIZED_FIELDS,
    REMOTE_IP_FIELDS,
    RESULT_FIELDS,
    RISK_HIGH,
    RISK_LOW,
    RISK_MEDIUM,
    SRC_COUNTRY_FIELDS,
    STATUS_FIELDS,
    TIME_FIELD,
    TIMESTAMP_FIELDS,
    TIMESTAMP_FORMATS,
)

FailedKey = Tuple[str, str, str, int]
UnusualKey = Tuple[str, str, str, int]


def _first_value(fields: Dict[str, str], aliases: Iterable[str]) -> Optional[str]:
    for name in aliases:
        value = fields.get(name)
        if value:
            return value
    return None


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_timestamp_value(value: str) -> Optional[datetime]:
    """Parse one timestamp string (ISO-8601, epoch or common log formats)."""
    value = value.strip()
    if not value:
        return None

    if EPOCH_PATTERN.match(value):
        # 10 digits = seconds, 13 = ms, 16 = us, 19 = ns
        scale = 10 ** (len(value) - 10)
        try:
            return datetime.fromtimestamp(int(value) / scale, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None

    iso = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return _to_naive_utc(datetime.fromisoformat(iso))
    except ValueError:
        pass

    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    return None


def resolve_timestamp(fields: Dict[str, str]) -> Optional[datetime]:
    """Resolve a record timestamp from date/time pairs or single timestamp fields."""
    date_part = fields.get(DATE_FIELD)
    time_part = fields.get(TIME_FIELD)
    if date_part and time_part:
        ts = parse_timestamp_value(f"{date_part} {time_part}")
        if ts is not None:
            return ts

    for name in TIMESTAMP_FIELDS:
        value = fields.get(name)
        if value:
            ts = parse_timestamp_value(value)
            if ts is not None:
                return ts
    return None


def format_timestamp(value: Optional[datetime]) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else ""


class LogRecord:
    """A parsed log line.

    Attributes:
        fields: Every name=value pair on the line, in line order.
        line_number: 1-based line number in the source file.
        remote_ip: Remote/source IP address (remip, srcip, ...).
        dest_port: Destination port.
        status: Status field (e.g. "success", "failure").
        result: Result field (e.g. "OK", "ERROR").
        action: Firewall action (e.g. "accept", "deny").
        disposition: Disposition field (e.g. "blocked").
        src_country: Source country name.
        timestamp: Event time, if one could be resolved.
    """

    __slots__ = (
        "fields",
        "line_number",
        "remote_ip",
        "dest_port",
        "status",
        "result",
        "action",
        "disposition",
        "src_country",
        "timestamp",
    )

    fields: Dict[str, str]
    line_number: Optional[int]
    remote_ip: Optional[str]
    dest_port: Optional[str]
    status: Optional[str]
    result: Optional[str]
    action: Optional[str]
    disposition: Optional[str]
    src_country: Optional[str]
    timestamp: Optional[datetime]

    def __init__(self, fields: Dict[str, str], line_number: Optional[int] = None) -> None:
        self.fields = fields
        self.line_number = line_number
        self.remote_ip = _first_value(fields, REMOTE_IP_FIELDS)
        self.dest_port = _first_value(fields, DEST_PORT_FIELDS)
        self.status = _first_value(fields, STATUS_FIELDS)
        self.result = _first_value(fields, RESULT_FIELDS)
        self.action = _first_value(fields, ACTION_FIELDS)
        self.disposition = _first_value(fields, DISPOSITION_FIELDS)
        self.src_country = _first_value(fields, SRC_COUNTRY_FIELDS)
        self.timestamp = resolve_timestamp(fields)

    @property
    def extra(self) -> Dict[str, str]:
        """Vendor fields outside the recognized vocabulary."""
        return {k: v for k, v in self.fields.items() if k not in RECOGNIZED_FIELDS}

    def is_failed_connection(self) -> bool:
        for attr, failure_value in FAILURE_INDICATORS.items():
            value = getattr(self, attr)
            if value is not None and value.lower() == failure_value:
                return True
        return False

    def __len__(self) -> int:
        return len(self.fields)

    def __repr__(self) -> str:
        return f"LogRecord(line={self.line_number}, fields={self.fields!r})"


class FailedConnectionEntry:
    """Snapshot of a record that matched the failed-connection predicate."""

    __slots__ = (
        "remote_ip",
        "dest_port",
        "status",
        "result",
        "action",
        "disposition",
        "timestamp",
        "source_file",
        "line_number",
        "fields",
    )

    def __init__(self, record: LogRecord, source_file: str) -> None:
        self.remote_ip = record.remote_ip or ""
        self.dest_port = record.dest_port or ""
        self.status = record.status
        self.result = record.result
        self.action = record.action
        self.disposition = record.disposition
        self.timestamp = record.timestamp
        self.source_file = source_file
        self.line_number = record.line_number or 0
        self.fields = dict(record.fields)

    @property
    def key(self) -> FailedKey:
        return (self.remote_ip, self.dest_port, self.source_file, self.line_number)


class UnusualIPEntry:
    """Snapshot of a record whose source country is outside the trusted set."""

    __slots__ = ("remote_ip", "src_country", "timestamp", "source_file", "line_number", "fields")

    def __init__(self, record: LogRecord, source_file: str) -> None:
        self.remote_ip = record.remote_ip or ""
        self.src_country = record.src_country or ""
        self.timestamp = record.timestamp
        self.source_file = source_file
        self.line_number = record.line_number or 0
        self.fields = dict(record.fields)

    @property
    def key(self) -> UnusualKey:
        return (self.remote_ip, self.src_country, self.source_file, self.line_number)


def classify_risk(count: int, threshold: int) -> str:
    """Risk tier for an attempt count: >=2x threshold High, >=threshold Medium."""
    if count >= HIGH_RISK_MULTIPLIER * threshold:
        return RISK_HIGH
    if count >= threshold:
        return RISK_MEDIUM
    return RISK_LOW


def _min_ts(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return min(a, b)


def _max_ts(a: Optional[datetime], b: Optional[datetime]) -> Optional[datetime]:
    if a is None:
        return b
    if b is None:
        return a
    return max(a, b)


class ConnectionFrequencyEntry:
    """Connection attempts observed from one remote IP.

    Attributes:
        ip: The remote IP address.
        count: Number of records carrying this IP.
        first_seen: Earliest record timestamp.
        last_seen: Latest record timestamp.
        ports: Distinct destination ports contacted.
    """

    __slots__ = ("ip", "count", "first_seen", "last_seen", "ports")

    ip: str
    count: int
    first_seen: Optional[datetime]
    last_seen: Optional[datetime]
    ports: Set[str]

    def __init__(self, ip: str) -> None:
        self.ip = ip
        self.count = 0
        self.first_seen = None
        self.last_seen = None
        self.ports = set()

    def observe(self, timestamp: Optional[datetime], port: Optional[str]) -> None:
        self.count += 1
        self.first_seen = _min_ts(self.first_seen, timestamp)
        self.last_seen = _max_ts(self.last_seen, timestamp)
        if port:
            self.ports.add(port)

    def combined(self, other: "ConnectionFrequencyEntry") -> "ConnectionFrequencyEntry":
        """Return a new entry holding both entries' observations."""
        merged = ConnectionFrequencyEntry(self.ip)
        merged.count = self.count + other.count
        merged.first_seen = _min_ts(self.first_seen, other.first_seen)
        merged.last_seen = _max_ts(self.last_seen, other.last_seen)
        merged.ports = self.ports | other.ports
        return merged

    def copy(self) -> "ConnectionFrequencyEntry":
        return self.combined(ConnectionFrequencyEntry(self.ip))

    def sorted_ports(self) -> List[str]:
        return sorted(self.ports, key=lambda p: (0, int(p), p) if p.isdigit() else (1, 0, p))

    def risk_level(self, threshold: int) -> str:
        return classify_risk(self.count, threshold)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConnectionFrequencyEntry):
            return NotImplemented
        return (
            self.ip == other.ip
            and self.count == other.count
            and self.first_seen == other.first_seen
            and self.last_seen == other.last_seen
            and self.ports == other.ports
        )

    def __repr__(self) -> str:
        return f"ConnectionFrequencyEntry(ip={self.ip!r}, count={self.count}, ports={self.sorted_ports()})"


class PartialResult:
    """Task-local accumulator for one file's contribution to the aggregates."""

    __slots__ = ("failed_connections", "unusual_ips", "connection_frequency")

    failed_connections: Dict[FailedKey, FailedConnectionEntry]
    unusual_ips: Dict[UnusualKey, UnusualIPEntry]
    connection_frequency: Dict[str, ConnectionFrequencyEntry]

    def __init__(self) -> None:
        self.failed_connections = {}
        self.unusual_ips = {}
        self.connection_frequency = {}

    def add_failed(self, entry: FailedConnectionEntry) -> None:
        self.failed_connections[entry.key] = entry

    def add_unusual(self, entry: UnusualIPEntry) -> None:
        self.unusual_ips[entry.key] = entry

    def observe_connection(self, record: LogRecord) -> None:
        ip = record.remote_ip
        entry = self.connection_frequency.get(ip)
        if entry is None:
            entry = self.connection_frequency[ip] = ConnectionFrequencyEntry(ip)
        entry.observe(record.timestamp, record.dest_port)


# Failure reasons recorded on FileResult
REASON_IO_ERROR = "io_error"
REASON_TIMEOUT = "timeout"
REASON_WORKER_ERROR = "worker_error"
REASON_WORKER_EXITED = "worker_exited"
REASON_LOST = "lost"
REASON_EXPORT_ERROR = "export_error"


@dataclass(frozen=True)
class FileResult:
    """Outcome of processing one input file."""
    path: str
    success: bool
    records_processed: int = 0
    lines_read: int = 0
    lines_skipped: int = 0
    tokens_skipped: int = 0
    file_size: int = 0
    duration: float = 0.0
    error: Optional[str] = None
    failure_reason: Optional[str] = None
    output_path: Optional[str] = None

    @classmethod
    def failed(
        cls,
        path: str,
        reason: str,
        error: str,
        file_size: int = 0,
        duration: float = 0.0,
    ) -> "FileResult":
        return cls(
            path=path,
            success=False,
            file_size=file_size,
            duration=duration,
            error=error,
            failure_reason=reason,
        )


@dataclass
class RunSummary:
    """Everything a run produced, handed to the exporter once at the end."""
    mode: str
    file_results: List[FileResult]
    failed_connections: Dict[FailedKey, FailedConnectionEntry]
    unusual_ips: Dict[UnusualKey, UnusualIPEntry]
    connection_frequency: Dict[str, ConnectionFrequencyEntry]
    started_at: datetime
    finished_at: Optional[datetime] = None
    output_files: List[str] = field(default_factory=list)
    export_errors: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> List[FileResult]:
        return [r for r in self.file_results if r.success]

    @property
    def failed(self) -> List[FileResult]:
        return [r for r in self.file_results if not r.success]

    @property
    def total_records(self) -> int:
        return sum(r.records_processed for r in self.file_results if r.success)

    @property
    def total_lines(self) -> int:
        return sum(r.lines_read for r in self.file_results if r.success)

    @property
    def total_skipped(self) -> int:
        return sum(r.lines_skipped for r in self.file_results if r.success)
