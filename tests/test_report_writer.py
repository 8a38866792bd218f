"""Tests for the discovery table and probing document writers."""

import json

from device_discovery.core.address_range import AddressRangeExpander
from device_discovery.core.data_models import (
    DeviceAttributes,
    HostRecord,
    HostStatus,
    JobOutcome,
    OutputPolicy,
    ProbingResult,
)
from device_discovery.core.result_aggregator import ResultAggregator
from device_discovery.utils.report_writer import ReportWriter


def test_discovery_table_for_slash_30(quiet_logger, tmp_path):
    """192.168.1.0/30 with all hosts reported gives two IP;STATUS rows."""
    hosts = list(AddressRangeExpander().expand("192.168.1.0/30"))
    outcomes = [
        JobOutcome(host, record=HostRecord(host, HostStatus.UP if host.endswith(".1") else HostStatus.DOWN))
        for host in hosts
    ]
    result = ResultAggregator().aggregate_discovery(outcomes, OutputPolicy.ALL_HOSTS)

    path = ReportWriter(quiet_logger).write_discovery(result, str(tmp_path / "out" / "discovery.csv"))

    with open(path, encoding="utf-8") as f:
        assert f.read() == "IP;STATUS\n192.168.1.1;Up\n192.168.1.2;Down\n"


def test_discovery_rows_sorted_numerically(quiet_logger):
    """Rows are sorted by address value, not completion order."""
    outcomes = [
        JobOutcome(h, record=HostRecord(h, HostStatus.UP))
        for h in ("10.0.0.10", "10.0.0.2", "10.0.0.1")
    ]
    result = ResultAggregator().aggregate_discovery(outcomes)
    lines = ReportWriter(quiet_logger).render_discovery(result).splitlines()
    assert lines[1:] == ["10.0.0.1;Up", "10.0.0.2;Up", "10.0.0.10;Up"]


def test_probing_document(quiet_logger, tmp_path):
    """The probing document maps addresses to all seven attributes."""
    result = ProbingResult(devices={
        "10.0.0.1": DeviceAttributes("FG60E", "FortiGate-60E", "FGT60E", "", "v6.4.9", "Fortinet", "Firewall"),
    })
    path = ReportWriter(quiet_logger).write_probing(result, str(tmp_path / "probing.json"))

    with open(path, encoding="utf-8") as f:
        document = json.load(f)
    assert document == {"10.0.0.1": {
        "model": "FG60E",
        "fullmodel": "FortiGate-60E",
        "serial": "FGT60E",
        "firmware": "",
        "software": "v6.4.9",
        "vendor": "Fortinet",
        "type": "Firewall",
    }}


def test_empty_probing_document(quiet_logger):
    """A run without devices still renders a valid document."""
    assert json.loads(ReportWriter(quiet_logger).render_probing(ProbingResult())) == {}


def test_file_collision_gets_numbered_name(tmp_path):
    """An existing file gets the first free numbered sibling."""
    taken = tmp_path / "discovery.csv"
    taken.write_text("")
    (tmp_path / "discovery_1.csv").write_text("")

    assert ReportWriter._handle_file_collision(taken) == tmp_path / "discovery_2.csv"
    assert ReportWriter._handle_file_collision(tmp_path / "free.csv") == tmp_path / "free.csv"


def test_default_output_path(quiet_logger, tmp_path):
    """Generated names carry the mode and extension."""
    path = ReportWriter(quiet_logger).default_output_path(str(tmp_path), "probing", "enc")
    assert path.startswith(str(tmp_path))
    assert "probing_" in path
    assert path.endswith(".enc")
