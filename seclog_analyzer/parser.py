"""
Tokenizer for key=value security log lines.
"""

from typing import Dict, List, Optional

from .events import LogRecord
from .patterns import FIELD_PATTERN, SYSLOG_PRIORITY_PATTERN, TOKEN_SPLIT_PATTERN


def split_tokens(line: str) -> List[str]:
    """Split a line into name=value tokens, keeping quoted spaces intact."""
    line = SYSLOG_PRIORITY_PATTERN.sub("", line.strip())
    if not line:
        return []
    return TOKEN_SPLIT_PATTERN.split(line)


def strip_quotes(value: str) -> str:
    """Remove one pair of surrounding double quotes."""
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value[1:-1]
    return value


class LineParser:
    """Parses log lines into LogRecords and counts what it had to skip.

    Attributes:
        lines_skipped: Lines that produced no record (blank or no valid token).
        tokens_skipped: Tokens that were not of name=value shape.
    """

    def __init__(self) -> None:
        self.lines_skipped = 0
        self.tokens_skipped = 0

    def parse_fields(self, line: str) -> Dict[str, str]:
        fields: Dict[str, str] = {}
        for token in split_tokens(line):
            match = FIELD_PATTERN.match(token)
            if not match:
                self.tokens_skipped += 1
                continue
            # Later duplicates overwrite earlier ones
            fields[match.group(1)] = strip_quotes(match.group(2).strip())
        return fields

    def parse(self, line: str, line_number: Optional[int] = None) -> Optional[LogRecord]:
        """Parse one line; returns None (and counts a skip) when nothing matched."""
        fields = self.parse_fields(line)
        if not fields:
            self.lines_skipped += 1
            return None
        return LogRecord(fields, line_number=line_number)


def parse_line(line: str) -> Optional[LogRecord]:
    """Parse a single line with a throwaway parser."""
    return LineParser().parse(line)
