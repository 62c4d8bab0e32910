"""
Order-independent merging of per-file partial results.
"""

from typing import Dict, Mapping

from .events import (
    ConnectionFrequencyEntry,
    FailedConnectionEntry,
    FailedKey,
    PartialResult,
    UnusualIPEntry,
    UnusualKey,
)


def merge_frequency(
    left: Mapping[str, ConnectionFrequencyEntry],
    right: Mapping[str, ConnectionFrequencyEntry],
) -> Dict[str, ConnectionFrequencyEntry]:
    """
    Merge two connection-frequency maps into a new map.

    Counts are summed, port sets unioned, first-seen takes the minimum and
    last-seen the maximum, so the result is the same whichever side is
    passed first. Neither input is modified.
    """
    merged: Dict[str, ConnectionFrequencyEntry] = {}
    for source in (left, right):
        for ip, entry in source.items():
            existing = merged.get(ip)
            merged[ip] = existing.combined(entry) if existing is not None else entry.copy()
    return merged


class Aggregator:
    """Running totals across every completed file.

    Only the scheduler's thread calls merge(); workers never touch these tables.
    """

    def __init__(self):
        self.failed_connections: Dict[FailedKey, FailedConnectionEntry] = {}
        self.unusual_ips: Dict[UnusualKey, UnusualIPEntry] = {}
        self.connection_frequency: Dict[str, ConnectionFrequencyEntry] = {}
        self.partials_merged = 0

    def merge(self, partial: PartialResult) -> None:
        """Fold one file's partial result into the running totals."""
        # Keys carry source file and line, so every occurrence is kept
        self.failed_connections.update(partial.failed_connections)
        self.unusual_ips.update(partial.unusual_ips)

        for ip, entry in partial.connection_frequency.items():
            existing = self.connection_frequency.get(ip)
            if existing is None:
                self.connection_frequency[ip] = entry.copy()
            else:
                self.connection_frequency[ip] = existing.combined(entry)

        self.partials_merged += 1
