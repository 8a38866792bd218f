"""
Tests for JobScheduler: bounded concurrency, failure isolation,
cancellation and the discovery/probing jobs.
"""

import threading
import time

import pytest

from device_discovery.core.data_models import (
    DeviceAttributes,
    HostRecord,
    HostStatus,
)
from device_discovery.core.device_classifier import DeviceClassifier
from device_discovery.core.device_prober import DeviceProber
from device_discovery.core.job_scheduler import (
    DISPATCH_WINDOW_FACTOR,
    HostJob,
    JobScheduler,
    LivenessJob,
    ProbeJob,
    default_concurrency,
)
from device_discovery.utils.error_handler import (
    FieldRetrievalError,
    ScanCancelledError,
    UnexpectedProbeError,
    UnknownDeviceError,
)
from ._helpers import FakeLivenessProbe


class CountingJob(HostJob):
    """Job tracking how many instances run at the same time."""

    active = 0
    peak = 0
    lock = threading.Lock()

    def __init__(self, host, fail_with=None, delay=0.02):
        self.host = host
        self.fail_with = fail_with
        self.delay = delay

    @classmethod
    def reset(cls):
        cls.active = 0
        cls.peak = 0

    def run(self):
        cls = type(self)
        with cls.lock:
            cls.active += 1
            cls.peak = max(cls.peak, cls.active)
        try:
            time.sleep(self.delay)
            if self.fail_with is not None:
                raise self.fail_with
            return HostRecord(self.host, HostStatus.UP)
        finally:
            with cls.lock:
                cls.active -= 1


@pytest.fixture
def scheduler(quiet_logger):
    """JobScheduler with a quiet logger."""
    CountingJob.reset()
    return JobScheduler(quiet_logger)


def test_one_outcome_per_job_within_bound(scheduler):
    """N jobs on K < N workers give N outcomes, never more than K at once."""
    jobs = [CountingJob(f"10.0.0.{i}") for i in range(1, 21)]
    outcomes = scheduler.run(jobs, concurrency=4)

    assert len(outcomes) == 20
    assert [o.host for o in outcomes] == [j.host for j in jobs]
    assert all(o.ok for o in outcomes)
    assert 1 <= CountingJob.peak <= 4


def test_failing_job_is_isolated(scheduler):
    """A failing job does not affect the other outcomes."""
    jobs = [
        CountingJob("10.0.0.1"),
        CountingJob("10.0.0.2", fail_with=FieldRetrievalError("10.0.0.2", "serial")),
        CountingJob("10.0.0.3", fail_with=RuntimeError("boom")),
        CountingJob("10.0.0.4"),
    ]
    outcomes = scheduler.run(jobs, concurrency=2)

    assert [o.ok for o in outcomes] == [True, False, False, True]
    assert isinstance(outcomes[1].error, FieldRetrievalError)
    assert isinstance(outcomes[2].error, UnexpectedProbeError)
    assert isinstance(outcomes[2].error.cause, RuntimeError)
    assert outcomes[1].duration > 0


def test_cancelled_scheduler_skips_jobs(scheduler):
    """Jobs not started before cancellation end as ScanCancelledError."""
    scheduler.cancel()
    outcomes = scheduler.run([CountingJob("10.0.0.1"), CountingJob("10.0.0.2")], concurrency=1)

    assert all(isinstance(o.error, ScanCancelledError) for o in outcomes)
    assert CountingJob.peak == 0

    scheduler.reset()
    assert not scheduler.cancelled


def test_cancel_mid_run_keeps_finished_outcomes(scheduler):
    """Cancelling from a progress callback stops dispatching new hosts."""
    jobs = [CountingJob(f"10.0.0.{i}", delay=0.01) for i in range(1, 11)]

    def on_complete(outcome):
        scheduler.cancel()

    outcomes = scheduler.run(jobs, concurrency=1, on_complete=on_complete)

    assert len(outcomes) == 10
    assert outcomes[0].ok
    assert any(isinstance(o.error, ScanCancelledError) for o in outcomes)


def test_on_complete_called_per_outcome(scheduler):
    """The progress callback sees every outcome once."""
    seen = []
    scheduler.run([CountingJob(f"10.0.0.{i}") for i in range(1, 6)], 3, seen.append)
    assert sorted(o.host for o in seen) == [f"10.0.0.{i}" for i in range(1, 6)]


def test_empty_job_list(scheduler):
    """No jobs, no outcomes."""
    assert scheduler.run([]) == []


def test_resolve_concurrency():
    """Concurrency defaults to the CPU count and must be positive."""
    assert JobScheduler.resolve_concurrency(None) == default_concurrency()
    assert JobScheduler.resolve_concurrency(8) == 8
    with pytest.raises(ValueError):
        JobScheduler.resolve_concurrency(0)


def test_jobs_are_pulled_lazily(scheduler):
    """A large job stream is consumed a window at a time, not up front."""
    pulled = 0
    pulled_when_first_ran = []

    class RecordingJob(CountingJob):
        def run(self):
            if not pulled_when_first_ran:
                pulled_when_first_ran.append(pulled)
            return super().run()

    def stream():
        nonlocal pulled
        for i in range(5000):
            pulled += 1
            yield RecordingJob(f"10.{i // 256}.0.{i % 256}", delay=0)

    outcomes = scheduler.run(stream(), concurrency=2)

    assert len(outcomes) == 5000
    assert outcomes[4999].host == "10.19.0.135"
    assert pulled_when_first_ran[0] <= 2 * DISPATCH_WINDOW_FACTOR


def test_iter_outcomes_yields_as_completed(scheduler):
    """iter_outcomes produces one outcome per job without building a list first."""
    outcomes = scheduler.iter_outcomes(
        (CountingJob(f"10.0.0.{i}", delay=0) for i in range(1, 8)), concurrency=3
    )
    first = next(outcomes)
    assert first.ok
    rest = list(outcomes)
    assert sorted(o.host for o in [first] + rest) == sorted(f"10.0.0.{i}" for i in range(1, 8))


def test_cancel_drains_undispatched_jobs(scheduler):
    """Jobs still in the stream when the run is cancelled end as ScanCancelledError."""
    def on_complete(outcome):
        scheduler.cancel()

    jobs = (CountingJob(f"10.0.0.{i}", delay=0) for i in range(1, 101))
    outcomes = scheduler.run(jobs, concurrency=1, on_complete=on_complete)

    assert len(outcomes) == 100
    assert sum(1 for o in outcomes if o.ok) <= DISPATCH_WINDOW_FACTOR
    assert isinstance(outcomes[-1].error, ScanCancelledError)


def test_liveness_job_reports_status():
    """LivenessJob maps the probe answer to Up/Down."""
    probe = FakeLivenessProbe(up_hosts={"10.0.0.1"})
    assert LivenessJob("10.0.0.1", probe).run().status is HostStatus.UP
    assert LivenessJob("10.0.0.2", probe).run().status is HostStatus.DOWN


def test_probe_job_down_host_is_not_probed(device_tables, scripted_network):
    """A host failing the liveness gate is reported Down without a session."""
    probe = FakeLivenessProbe()
    job = ProbeJob(
        "10.0.0.5",
        device_tables,
        DeviceProber(scripted_network.client_factory),
        DeviceClassifier(device_tables.known_devices),
        liveness=probe,
    )
    record = job.run()

    assert record.status is HostStatus.DOWN
    assert record.attributes is None
    assert scripted_network.clients == []


def test_probe_job_fingerprints_and_classifies(device_tables, scripted_network, device_values):
    """An up host is probed and its type filled in."""
    scripted_network.live = {("10.0.0.5", "c1")}
    scripted_network.values = {"10.0.0.5": device_values}
    job = ProbeJob(
        "10.0.0.5",
        device_tables,
        DeviceProber(scripted_network.client_factory),
        DeviceClassifier(device_tables.known_devices),
    )
    record = job.run()

    assert record.status is HostStatus.UP
    assert isinstance(record.attributes, DeviceAttributes)
    assert record.attributes.type == "Firewall"


def test_probe_job_unknown_model(device_tables, scripted_network, device_values):
    """Classification failures propagate as UnknownDeviceError."""
    scripted_network.live = {("10.0.0.5", "c1")}
    scripted_network.values = {"10.0.0.5": dict(device_values, **{"1.1": "ZZ9"})}
    job = ProbeJob(
        "10.0.0.5",
        device_tables,
        DeviceProber(scripted_network.client_factory),
        DeviceClassifier(device_tables.known_devices),
    )
    with pytest.raises(UnknownDeviceError):
        job.run()
