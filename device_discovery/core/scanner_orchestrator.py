"""
Scanner Orchestrator for Device Discovery Module.

This module provides the ScannerOrchestrator class that runs a complete
scan: it resolves the target into hosts, builds one job per host, runs the
jobs on the scheduler with progress reporting, aggregates the outcomes and
logs the run summary.
"""

import time
from typing import Callable, Iterable, Iterator, Optional, Tuple

from .address_range import AddressRangeExpander
from .data_models import (
    DeviceTables,
    DiscoveryResult,
    JobOutcome,
    OutputPolicy,
    ProbingResult,
    ScanMode,
    ScanSummary,
    TargetSpec,
)
from .device_classifier import DeviceClassifier
from .device_prober import DeviceProber, VendorNormalizerRegistry
from .job_scheduler import HostJob, JobScheduler, LivenessJob, ProbeJob
from .result_aggregator import ResultAggregator
from ..config.config_loader import ScanConfig
from ..scanners.ping_probe import LivenessProbe
from ..scanners.protocol_client import ProtocolClient
from ..scanners.snmp_client import SNMPClient
from ..utils.error_handler import ErrorHandler
from ..utils.logger import Logger, get_logger
from ..utils.network_utils import sort_addresses

# Progress is logged every PROGRESS_STEP percent of completed hosts
PROGRESS_STEP = 10


class ScannerOrchestrator:
    """
    Orchestrates discovery and probing runs.

    Holds the long-lived collaborators of a run. The device tables passed to
    run_probing() are shared read-only by every job.
    """

    def __init__(
        self,
        scan_config: Optional[ScanConfig] = None,
        liveness_probe: Optional[LivenessProbe] = None,
        client_factory: Optional[Callable[[], ProtocolClient]] = None,
        normalizers: Optional[VendorNormalizerRegistry] = None,
        logger: Optional[Logger] = None,
    ):
        """
        Initialize the scanner orchestrator.

        Args:
            scan_config: Tuning parameters, defaults to ScanConfig()
            liveness_probe: Reachability probe, defaults to a ping probe
            client_factory: Creates protocol clients, defaults to SNMP
            normalizers: Vendor hooks, defaults to the built-in ones
            logger: Logger instance
        """
        self.logger = logger or get_logger(__name__)
        self.scan_config = scan_config or ScanConfig()
        self.liveness_probe = liveness_probe or LivenessProbe(self.logger)
        self.client_factory = client_factory or self._snmp_client_factory
        self.normalizers = normalizers

        self.expander = AddressRangeExpander()
        self.scheduler = JobScheduler(self.logger)
        self.aggregator = ResultAggregator()
        self.error_handler = ErrorHandler(self.logger)

    def _snmp_client_factory(self) -> ProtocolClient:
        return SNMPClient(
            port=self.scan_config.snmp_port,
            version=self.scan_config.snmp_version,
            timeout=self.scan_config.snmp_timeout,
            retries=self.scan_config.snmp_retries,
            logger=self.logger,
        )

    @property
    def cancelled(self) -> bool:
        return self.scheduler.cancelled

    def cancel(self) -> None:
        """Stop the running scan after in-flight hosts finish."""
        self.scheduler.cancel()

    def resolve_hosts(self, target: TargetSpec) -> Tuple[Iterator[str], int]:
        """
        Resolve a target to a lazy host sequence and its exact size.

        Raises:
            InvalidTargetFormat: If the target is malformed
        """
        return self.expander.resolve(target), self.expander.count_hosts(target)

    def run_discovery(
        self, target: TargetSpec, policy: OutputPolicy = OutputPolicy.ALL_HOSTS
    ) -> DiscoveryResult:
        """
        Ping every host of the target.

        Args:
            target: Networks or hosts to scan
            policy: Which hosts to keep in the result

        Returns:
            DiscoveryResult keyed by host address
        """
        self.logger.section("HOST DISCOVERY")
        hosts, total = self.resolve_hosts(target)
        self.logger.target_info(target.describe(), total, ScanMode.DISCOVERY.value)

        jobs = (
            LivenessJob(
                host,
                self.liveness_probe,
                self.scan_config.ping_attempts,
                self.scan_config.ping_timeout,
            )
            for host in hosts
        )

        started = time.monotonic()
        outcomes = self._run_jobs(jobs, total, "Pinging")
        result = self.aggregator.aggregate_discovery(outcomes, policy)
        result.summary.duration = time.monotonic() - started

        self._log_summary(result.summary, ScanMode.DISCOVERY)
        return result

    def run_probing(
        self, target: TargetSpec, tables: DeviceTables, skip_liveness: bool = False
    ) -> ProbingResult:
        """
        Fingerprint and classify every host of the target.

        Args:
            target: Networks or hosts to scan
            tables: Credential, OID profile and known-device tables
            skip_liveness: Probe hosts without pinging them first

        Returns:
            ProbingResult with devices and per-host failures
        """
        self.logger.section("DEVICE PROBING")
        hosts, total = self.resolve_hosts(target)
        self.logger.target_info(target.describe(), total, ScanMode.PROBING.value)

        prober = DeviceProber(
            self.client_factory,
            canary_oid=self.scan_config.canary_oid,
            normalizers=self.normalizers,
            logger=self.logger,
        )
        classifier = DeviceClassifier(tables.known_devices)
        liveness = None if skip_liveness else self.liveness_probe

        jobs = (
            ProbeJob(
                host,
                tables,
                prober,
                classifier,
                liveness,
                self.scan_config.ping_attempts,
                self.scan_config.ping_timeout,
            )
            for host in hosts
        )

        started = time.monotonic()
        outcomes = self._run_jobs(jobs, total, "Probing")
        result = self.aggregator.aggregate_probing(outcomes)
        result.summary.duration = time.monotonic() - started

        for error in result.failures.values():
            self.error_handler.record_probe_error(error)

        self._log_summary(result.summary, ScanMode.PROBING)
        return result

    def _run_jobs(self, jobs: Iterable[HostJob], total: int, verb: str) -> Iterator[JobOutcome]:
        """Run jobs on the scheduler, yielding outcomes while logging progress."""
        if not total:
            self.logger.warning("Target resolved to no hosts")
            return

        completed = 0
        next_report = PROGRESS_STEP

        def on_complete(outcome: JobOutcome) -> None:
            nonlocal completed, next_report
            completed += 1
            percent = completed * 100 // total
            if percent >= next_report or completed == total:
                self.logger.progress_update(f"{verb} {completed}/{total} hosts ({percent}%)")
                next_report = (percent // PROGRESS_STEP + 1) * PROGRESS_STEP

        self.logger.progress_start(f"{verb} {total} hosts")
        yield from self.scheduler.iter_outcomes(jobs, self.scan_config.concurrency, on_complete)
        self.logger.progress_end(f"{verb} finished for {total} hosts")

        if self.scheduler.cancelled:
            self.logger.warning("Scan was cancelled - results are incomplete")

    def _log_summary(self, summary: ScanSummary, mode: ScanMode) -> None:
        self.logger.section("SCAN SUMMARY")
        widths = [12, 10]
        succeeded_label = "Up" if mode is ScanMode.DISCOVERY else "Identified"
        self.logger.table_header(["Hosts", "Count"], widths)
        self.logger.table_row(["Total", summary.total], widths)
        self.logger.table_row([succeeded_label, summary.succeeded], widths, highlight=True)
        self.logger.table_row(["Down", summary.down], widths)
        self.logger.table_row(["Failed", summary.failed], widths)
        self.logger.info(f"Scan duration: {summary.duration:.2f}s")

        if summary.failures:
            self.logger.warning(f"{summary.failed} hosts failed:")
            failure_widths = [16, 22]
            self.logger.table_header(["Host", "Error"], failure_widths)
            for host in sort_addresses(summary.failures):
                self.logger.table_row([host, summary.failures[host]], failure_widths)
