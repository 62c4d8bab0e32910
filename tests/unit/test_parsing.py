"""
Unit tests for log line parsing.

Tests the core parsing logic including:
- Token splitting with quoted values
- Skipped lines and tokens
- Vendor field aliases
- Timestamp resolution
"""

import pytest
from datetime import datetime

from seclog_analyzer.parser import LineParser, parse_line, split_tokens, strip_quotes


class TestTokenSplitting:
    """Tests for splitting a line into name=value tokens."""

    def test_quoted_value_keeps_spaces(self):
        record = parse_line('k1=v1 k2="v2 with spaces" k3=v3')
        assert record.fields == {"k1": "v1", "k2": "v2 with spaces", "k3": "v3"}

    @pytest.mark.parametrize(
        "line,expected",
        [
            ('a=1 b="two words" c=3', {"a": "1", "b": "two words", "c": "3"}),
            ('msg="  padded  " x=y', {"msg": "  padded  ", "x": "y"}),
            ('srccountry="United States" remip=1.2.3.4', {"srccountry": "United States", "remip": "1.2.3.4"}),
            ('devname="FW 01 (HQ)" policyid=12', {"devname": "FW 01 (HQ)", "policyid": "12"}),
        ],
    )
    def test_well_formed_lines(self, line, expected):
        record = parse_line(line)
        assert record.fields == expected

    def test_multiple_spaces_between_tokens(self):
        assert split_tokens("a=1    b=2\tc=3") == ["a=1", "b=2", "c=3"]

    def test_empty_value(self):
        record = parse_line('a= b="" c=3')
        assert record.fields == {"a": "", "b": "", "c": "3"}

    def test_only_one_pair_of_quotes_stripped(self):
        assert strip_quotes('""quoted""') == '"quoted"'
        assert strip_quotes('"open') == '"open'
        assert strip_quotes('"') == '"'

    def test_value_containing_equals(self):
        record = parse_line('url="/login?user=admin" action=deny')
        assert record.fields["url"] == "/login?user=admin"
        assert record.fields["action"] == "deny"

    def test_syslog_priority_prefix_removed(self):
        record = parse_line("<189>date=2024-01-04 time=21:06:38 remip=1.2.3.4")
        assert record.fields["date"] == "2024-01-04"
        assert record.remote_ip == "1.2.3.4"

    def test_trailing_newline_and_carriage_return(self):
        record = parse_line("a=1 b=2\r\n")
        assert record.fields == {"a": "1", "b": "2"}


class TestLineParser:
    """Tests for skip counting and duplicate handling."""

    def test_blank_lines_are_skipped(self):
        parser = LineParser()
        assert parser.parse("") is None
        assert parser.parse("   \t ") is None
        assert parser.lines_skipped == 2

    def test_line_without_fields_is_skipped(self):
        parser = LineParser()
        assert parser.parse("just some free text") is None
        assert parser.lines_skipped == 1
        assert parser.tokens_skipped == 1

    def test_malformed_tokens_skipped_but_line_kept(self):
        parser = LineParser()
        record = parser.parse("garbage remip=1.2.3.4 status=failure")
        assert record is not None
        assert record.fields == {"remip": "1.2.3.4", "status": "failure"}
        assert parser.tokens_skipped == 1
        assert parser.lines_skipped == 0

    def test_duplicate_field_last_wins(self):
        record = parse_line("status=success remip=1.2.3.4 status=failure")
        assert record.fields["status"] == "failure"
        assert record.is_failed_connection()

    def test_line_number_is_kept(self):
        record = LineParser().parse("a=1", line_number=42)
        assert record.line_number == 42


class TestLogRecordFields:
    """Tests for alias resolution on LogRecord."""

    def test_remote_ip_aliases(self):
        assert parse_line("remip=1.1.1.1").remote_ip == "1.1.1.1"
        assert parse_line("srcip=2.2.2.2").remote_ip == "2.2.2.2"
        # remip takes precedence over srcip
        assert parse_line("srcip=2.2.2.2 remip=1.1.1.1").remote_ip == "1.1.1.1"

    def test_empty_remote_ip_is_absent(self):
        assert parse_line('remip="" status=failure').remote_ip is None

    def test_extra_holds_unrecognized_fields(self):
        record = parse_line('remip=1.2.3.4 devname="FW-01" user=bob')
        assert record.extra == {"devname": "FW-01", "user": "bob"}

    def test_country_and_port(self):
        record = parse_line('srccountry="China" dstport=8443')
        assert record.src_country == "China"
        assert record.dest_port == "8443"


class TestFailurePredicate:
    """Tests for failed-connection classification."""

    @pytest.mark.parametrize(
        "line",
        [
            "status=failure",
            "result=ERROR",
            "action=deny",
            "disposition=blocked",
            "status=FAILURE",
            "result=error",
        ],
    )
    def test_failure_indicators(self, line):
        assert parse_line(line).is_failed_connection()

    @pytest.mark.parametrize(
        "line",
        ["status=success", "result=OK", "action=accept", "disposition=allowed", "msg=failure"],
    )
    def test_non_failures(self, line):
        assert not parse_line(line).is_failed_connection()


class TestTimestampResolution:
    """Tests for record timestamp extraction."""

    def test_date_and_time_fields(self):
        record = parse_line("date=2024-01-04 time=21:06:38")
        assert record.timestamp == datetime(2024, 1, 4, 21, 6, 38)

    def test_epoch_nanoseconds(self):
        record = parse_line("eventtime=1704402398000000000")
        assert record.timestamp == datetime(2024, 1, 4, 21, 6, 38)

    def test_epoch_seconds(self):
        record = parse_line("eventtime=1704402398")
        assert record.timestamp == datetime(2024, 1, 4, 21, 6, 38)

    def test_iso_with_zulu(self):
        record = parse_line("timestamp=2024-01-04T21:06:38Z")
        assert record.timestamp == datetime(2024, 1, 4, 21, 6, 38)

    def test_iso_with_offset_normalized_to_utc(self):
        record = parse_line("timestamp=2024-01-04T13:06:38-08:00")
        assert record.timestamp == datetime(2024, 1, 4, 21, 6, 38)

    def test_unparseable_timestamp(self):
        assert parse_line("timestamp=yesterday").timestamp is None
        assert parse_line("remip=1.2.3.4").timestamp is None
