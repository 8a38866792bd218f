"""
End-to-end tests of discovery and probing runs with fake probes and
protocol clients.
"""

import pytest

from device_discovery.config.config_loader import ScanConfig
from device_discovery.core.data_models import OutputPolicy, TargetSpec
from device_discovery.core.device_prober import VendorNormalizerRegistry
from device_discovery.core.scanner_orchestrator import ScannerOrchestrator
from device_discovery.utils.error_handler import (
    DeviceConnectionError,
    InvalidTargetFormat,
    UnknownDeviceError,
)
from ._helpers import FakeLivenessProbe


@pytest.fixture
def make_orchestrator(quiet_logger, scripted_network):
    """Factory for orchestrators wired to fakes."""
    def make(up_hosts=()):
        return ScannerOrchestrator(
            scan_config=ScanConfig(concurrency=4),
            liveness_probe=FakeLivenessProbe(up_hosts),
            client_factory=scripted_network.client_factory,
            normalizers=VendorNormalizerRegistry(),
            logger=quiet_logger,
        )
    return make


def test_discovery_all_hosts(make_orchestrator):
    """Every expanded host is reported with its status."""
    orchestrator = make_orchestrator(up_hosts={"192.168.1.2"})
    result = orchestrator.run_discovery(TargetSpec(networks=("192.168.1.0/30",)))

    assert {h: r.status.value for h, r in result.hosts.items()} == {
        "192.168.1.1": "Down",
        "192.168.1.2": "Up",
    }
    assert result.summary.succeeded == 1
    assert result.summary.down == 1


def test_discovery_up_only(make_orchestrator):
    """The UP_ONLY policy drops unreachable hosts."""
    orchestrator = make_orchestrator(up_hosts={"10.0.0.5"})
    result = orchestrator.run_discovery(
        TargetSpec(networks=("10.0.0.0/28",)), OutputPolicy.UP_ONLY
    )
    assert list(result.hosts) == ["10.0.0.5"]
    assert result.summary.total == 14


def test_probing_run(make_orchestrator, scripted_network, device_tables, device_values):
    """Identified, unreachable, unknown and silent hosts end up in the right place."""
    scripted_network.live = {("10.0.0.1", "c2"), ("10.0.0.2", "c1")}
    scripted_network.values = {
        "10.0.0.1": device_values,
        "10.0.0.2": dict(device_values, **{"1.1": "ZZ9"}),
    }
    orchestrator = make_orchestrator(up_hosts={"10.0.0.1", "10.0.0.2", "10.0.0.3"})

    result = orchestrator.run_probing(
        TargetSpec(hosts=("10.0.0.1", "10.0.0.2", "10.0.0.3", "10.0.0.4")), device_tables
    )

    assert list(result.devices) == ["10.0.0.1"]
    assert result.devices["10.0.0.1"].type == "Firewall"
    assert isinstance(result.failures["10.0.0.2"], UnknownDeviceError)
    assert isinstance(result.failures["10.0.0.3"], DeviceConnectionError)
    assert result.down_hosts == ["10.0.0.4"]
    assert result.summary.failures == {
        "10.0.0.2": "UnknownDeviceError",
        "10.0.0.3": "ConnectionError",
    }
    assert orchestrator.error_handler.total_errors() == 2


def test_probing_without_liveness(make_orchestrator, scripted_network, device_tables, device_values):
    """skip_liveness probes hosts the ping probe would call down."""
    scripted_network.live = {("10.0.0.1", "c1")}
    scripted_network.values = {"10.0.0.1": device_values}
    orchestrator = make_orchestrator(up_hosts=())

    result = orchestrator.run_probing(
        TargetSpec(hosts=("10.0.0.1",)), device_tables, skip_liveness=True
    )

    assert list(result.devices) == ["10.0.0.1"]
    assert orchestrator.liveness_probe.calls == []


def test_cancelled_run_reports_cancelled_hosts(make_orchestrator):
    """After cancel() no new host is probed."""
    orchestrator = make_orchestrator(up_hosts={"10.0.0.1"})
    orchestrator.cancel()
    result = orchestrator.run_discovery(TargetSpec(networks=("10.0.0.0/29",)))

    assert orchestrator.cancelled
    assert result.hosts == {}
    assert set(result.summary.failures.values()) == {"Cancelled"}
    assert orchestrator.liveness_probe.calls == []


def test_invalid_target_raises_before_scanning(make_orchestrator):
    """Target errors surface before any job runs."""
    orchestrator = make_orchestrator()
    with pytest.raises(InvalidTargetFormat):
        orchestrator.run_discovery(TargetSpec(networks=("10.0.0.0/24", "10.0.0.0/40")))
    assert orchestrator.liveness_probe.calls == []


def test_overlapping_networks_pinged_once(make_orchestrator):
    """Hosts shared by overlapping networks are scanned and counted once."""
    orchestrator = make_orchestrator(up_hosts={"10.0.0.3"})
    result = orchestrator.run_discovery(
        TargetSpec(networks=("10.0.0.0/30", "10.0.0.0/29", "10.0.0.4/30"))
    )

    assert result.summary.total == 6
    assert sorted(orchestrator.liveness_probe.calls) == sorted(set(orchestrator.liveness_probe.calls))
    assert len(orchestrator.liveness_probe.calls) == 6
    assert result.hosts["10.0.0.3"].is_up


def test_resolve_hosts_is_lazy_with_exact_size(make_orchestrator):
    """A large target resolves to a lazy sequence and its exact host count."""
    orchestrator = make_orchestrator()
    hosts, total = orchestrator.resolve_hosts(TargetSpec(networks=("10.0.0.0/8", "10.0.0.0/16")))

    assert total == 2 ** 24 - 2
    assert next(hosts) == "10.0.0.1"
