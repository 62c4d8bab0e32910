"""
Pytest configuration and shared fixtures for security log analysis tests.
"""

import pytest
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from seclog_analyzer.config import AnalysisConfig


# =============================================================================
# SAMPLE LOG DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_log_lines():
    """FortiGate-style key=value lines covering every classification."""
    return [
        'date=2024-01-04 time=21:06:38 devname="FW-01" type="event" subtype="vpn" remip=203.0.113.5 dstport=443 status=failure srccountry="United States" msg="SSL VPN login fail"',
        'date=2024-01-04 time=21:07:15 devname="FW-01" type="event" subtype="vpn" remip=203.0.113.5 dstport=443 status=success srccountry="United States"',
        'date=2024-01-04 time=21:08:22 devname="FW-01" type="traffic" srcip=198.51.100.7 dstport=22 action=deny srccountry="Russian Federation"',
        'date=2024-01-04 time=21:09:30 devname="FW-01" type="traffic" srcip=198.51.100.7 dstport=3389 action=accept srccountry="Russian Federation"',
        'date=2024-01-04 time=21:10:45 devname="FW-01" type="utm" srcip=192.0.2.10 dstport=80 disposition=blocked srccountry="Reserved"',
        'date=2024-01-04 time=21:11:00 devname="FW-01" type="event" result=ERROR msg="auth server unreachable"',
        '',
        'this line has no fields at all',
    ]


@pytest.fixture
def scenario_lines():
    """Three-line scenario: two failures, one untrusted country, two IPs."""
    return [
        'remip=1.2.3.4 status=failure srccountry="United States"',
        'remip=1.2.3.4 status=ok srccountry="United States"',
        'remip=5.6.7.8 status=failure srccountry="China"',
    ]


# =============================================================================
# CONFIGURATION FIXTURES
# =============================================================================

@pytest.fixture
def output_dir(tmp_path):
    out = tmp_path / "output"
    out.mkdir()
    return out


@pytest.fixture
def analysis_config(output_dir):
    """Fast-polling analyze-mode configuration writing into a temp directory."""
    return AnalysisConfig(
        output_dir=str(output_dir),
        max_concurrency=2,
        task_timeout=60.0,
        poll_interval=0.05,
        reconcile_timeout=1.0,
    )


@pytest.fixture
def parse_config(analysis_config):
    return analysis_config.with_overrides(mode="parse")


# =============================================================================
# TEMPORARY FILE FIXTURES
# =============================================================================

@pytest.fixture
def temp_log_file(tmp_path, sample_log_lines):
    """Create a temporary log file for testing."""
    log_file = tmp_path / "fw01.log"
    log_file.write_text("\n".join(sample_log_lines) + "\n")
    return log_file


@pytest.fixture
def scenario_file(tmp_path, scenario_lines):
    log_file = tmp_path / "scenario.log"
    log_file.write_text("\n".join(scenario_lines) + "\n")
    return log_file


@pytest.fixture
def temp_log_directory(tmp_path):
    """Directory of five log files with overlapping remote IPs."""
    log_dir = tmp_path / "logs"
    log_dir.mkdir()

    for i in range(5):
        lines = []
        for j in range(20):
            ip = f"10.0.{j % 4}.{(i + j) % 3}"
            status = "failure" if (i + j) % 5 == 0 else "success"
            country = "China" if j % 7 == 0 else "United States"
            lines.append(
                f'date=2024-02-0{i + 1} time=10:{j:02d}:00 remip={ip} dstport={1000 + j % 6} '
                f'status={status} srccountry="{country}" user="user {j}"'
            )
        (log_dir / f"vpn_{i}.log").write_text("\n".join(lines) + "\n")

    return log_dir
