"""Tests for single-file processing and record classification."""

import tracemalloc
from datetime import datetime

import pandas as pd

from seclog_analyzer.config import AnalysisConfig
from seclog_analyzer.events import PartialResult
from seclog_analyzer.parser import parse_line
from seclog_analyzer.processor import classify_record, process_file


US_AND_RESERVED = AnalysisConfig()


class TestClassifyRecord:
    """Tests for the per-record classification step."""

    def test_untrusted_country_is_unusual(self):
        partial = PartialResult()
        classify_record(parse_line('remip=5.6.7.8 srccountry="China"'), partial, US_AND_RESERVED, "a.log")
        assert len(partial.unusual_ips) == 1
        entry = next(iter(partial.unusual_ips.values()))
        assert entry.remote_ip == "5.6.7.8"
        assert entry.src_country == "China"

    def test_trusted_country_case_insensitive(self):
        partial = PartialResult()
        classify_record(parse_line('remip=1.2.3.4 srccountry="UNITED STATES"'), partial, US_AND_RESERVED, "a.log")
        assert partial.unusual_ips == {}

    def test_missing_country_is_neither_trusted_nor_unusual(self):
        partial = PartialResult()
        classify_record(parse_line("remip=1.2.3.4 status=failure"), partial, US_AND_RESERVED, "a.log")
        assert partial.unusual_ips == {}
        assert len(partial.failed_connections) == 1

    def test_frequency_requires_remote_ip(self):
        partial = PartialResult()
        classify_record(parse_line("result=ERROR"), partial, US_AND_RESERVED, "a.log")
        assert partial.connection_frequency == {}
        assert len(partial.failed_connections) == 1

    def test_frequency_tracks_ports_and_time_range(self):
        partial = PartialResult()
        lines = [
            "date=2024-01-04 time=10:00:00 remip=9.9.9.9 dstport=443",
            "date=2024-01-04 time=09:00:00 remip=9.9.9.9 dstport=22",
            "date=2024-01-04 time=11:30:00 remip=9.9.9.9 dstport=443",
        ]
        for n, line in enumerate(lines, 1):
            record = parse_line(line)
            record.line_number = n
            classify_record(record, partial, US_AND_RESERVED, "a.log")

        entry = partial.connection_frequency["9.9.9.9"]
        assert entry.count == 3
        assert entry.ports == {"22", "443"}
        assert entry.first_seen == datetime(2024, 1, 4, 9, 0, 0)
        assert entry.last_seen == datetime(2024, 1, 4, 11, 30, 0)

    def test_duplicate_failures_are_separate_occurrences(self):
        partial = PartialResult()
        for n in (1, 2):
            record = parse_line("remip=1.2.3.4 dstport=22 status=failure")
            record.line_number = n
            classify_record(record, partial, US_AND_RESERVED, "a.log")
        assert len(partial.failed_connections) == 2


class TestProcessFile:
    """Tests for process_file in analyze mode."""

    def test_scenario_file(self, scenario_file, analysis_config):
        result, partial = process_file(str(scenario_file), analysis_config)

        assert result.success
        assert result.records_processed == 3
        assert result.lines_read == 3
        assert result.lines_skipped == 0
        assert result.file_size == scenario_file.stat().st_size

        failed_ips = sorted(e.remote_ip for e in partial.failed_connections.values())
        assert failed_ips == ["1.2.3.4", "5.6.7.8"]

        unusual = list(partial.unusual_ips.values())
        assert [(e.remote_ip, e.src_country) for e in unusual] == [("5.6.7.8", "China")]

        assert {ip: e.count for ip, e in partial.connection_frequency.items()} == {
            "1.2.3.4": 2,
            "5.6.7.8": 1,
        }

    def test_sample_file_counts(self, temp_log_file, analysis_config):
        result, partial = process_file(str(temp_log_file), analysis_config)

        assert result.success
        assert result.lines_read == 8
        assert result.records_processed == 6
        assert result.lines_skipped == 2
        assert result.tokens_skipped == 1
        assert result.duration >= 0

        assert len(partial.failed_connections) == 4
        assert len(partial.unusual_ips) == 2
        assert partial.connection_frequency["198.51.100.7"].ports == {"22", "3389"}
        assert partial.connection_frequency["192.0.2.10"].count == 1

    def test_entries_remember_source_line(self, scenario_file, analysis_config):
        _, partial = process_file(str(scenario_file), analysis_config)
        lines = sorted(e.line_number for e in partial.failed_connections.values())
        assert lines == [1, 3]
        assert all(e.source_file == str(scenario_file) for e in partial.failed_connections.values())

    def test_missing_file_reports_io_error(self, tmp_path, analysis_config):
        result, partial = process_file(str(tmp_path / "missing.log"), analysis_config)
        assert not result.success
        assert result.failure_reason == "io_error"
        assert "FileNotFoundError" in result.error
        assert partial is None

    def test_directory_reports_io_error(self, tmp_path, analysis_config):
        result, partial = process_file(str(tmp_path), analysis_config)
        assert not result.success
        assert result.failure_reason == "io_error"
        assert partial is None

    def test_empty_file(self, tmp_path, analysis_config):
        empty = tmp_path / "empty.log"
        empty.write_text("")
        result, partial = process_file(str(empty), analysis_config)
        assert result.success
        assert result.records_processed == 0
        assert partial.connection_frequency == {}

    def test_utf8_bom_and_invalid_bytes(self, tmp_path, analysis_config):
        log = tmp_path / "bom.log"
        log.write_bytes(b'\xef\xbb\xbfremip=1.2.3.4 user="caf\xe9" status=failure\n')
        result, partial = process_file(str(log), analysis_config)
        assert result.success
        entry = next(iter(partial.failed_connections.values()))
        assert "remip" in entry.fields


class TestProcessFileParseMode:
    """Tests for process_file in parse-to-CSV mode."""

    def test_writes_union_of_columns(self, tmp_path, parse_config, output_dir):
        log = tmp_path / "mixed.log"
        log.write_text('a=1 b="x y"\n\nc=3 a=2\n')
        out = output_dir / "mixed.csv"

        result, partial = process_file(str(log), parse_config, str(out))

        assert result.success
        assert partial is None
        assert result.output_path == str(out)
        frame = pd.read_csv(out, dtype=str, keep_default_na=False)
        assert list(frame.columns) == ["a", "b", "c"]
        assert frame.to_dict("records") == [
            {"a": "1", "b": "x y", "c": ""},
            {"a": "2", "b": "", "c": "3"},
        ]
        assert not (output_dir / "mixed.csv.partial").exists()

    def test_no_records_writes_no_csv(self, tmp_path, parse_config, output_dir):
        log = tmp_path / "blank.log"
        log.write_text("\n\nnot a record\n")
        out = output_dir / "blank.csv"

        result, _ = process_file(str(log), parse_config, str(out))

        assert result.success
        assert result.output_path is None
        assert not out.exists()

    def test_unwritable_output_is_export_error(self, tmp_path, parse_config):
        log = tmp_path / "a.log"
        log.write_text("a=1\n")
        out = tmp_path / "no" / "such" / "dir" / "a.csv"

        result, _ = process_file(str(log), parse_config, str(out))

        assert not result.success
        assert result.failure_reason == "export_error"


    def test_large_file_streams_to_csv(self, tmp_path, parse_config, output_dir):
        warm = tmp_path / "warm.log"
        warm.write_text("a=1\n")
        process_file(str(warm), parse_config, str(output_dir / "warm.csv"))

        filler = "x" * 200
        log = tmp_path / "big.log"
        with open(log, "w") as f:
            for n in range(40000):
                f.write(
                    f'date=2024-01-04 time=10:00:{n % 60:02d} remip=10.0.{n % 250}.{n % 7} '
                    f'dstport={n % 1024} status=failure msg="{filler}"\n'
                )
        size = log.stat().st_size
        out = output_dir / "big.csv"

        tracemalloc.start()
        try:
            result, _ = process_file(str(log), parse_config, str(out))
            _, peak = tracemalloc.get_traced_memory()
        finally:
            tracemalloc.stop()

        assert result.success
        assert result.records_processed == 40000
        assert peak < size / 2
        with open(out) as f:
            assert sum(1 for _ in f) == 40001
        assert not (output_dir / "big.csv.partial").exists()
