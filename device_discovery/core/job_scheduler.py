"""
Job scheduling for the Device Discovery Module.

One job is created per target host. The JobScheduler runs them on a bounded
thread pool and turns every job into exactly one JobOutcome: a HostRecord on
success or the ProbeError that ended the job. A failing job never affects
its siblings.
"""

import os
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, as_completed, wait
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from .data_models import DeviceTables, HostRecord, HostStatus, JobOutcome
from .device_classifier import DeviceClassifier
from .device_prober import DeviceProber
from ..scanners.ping_probe import LivenessProbe
from ..utils.error_handler import ProbeError, ScanCancelledError, UnexpectedProbeError
from ..utils.logger import Logger, get_logger

# Jobs queued ahead of the workers, as a multiple of the worker count
DISPATCH_WINDOW_FACTOR = 4


class HostJob(ABC):
    """A unit of work for one host."""

    host: str

    @abstractmethod
    def run(self) -> HostRecord:
        """
        Execute the job.

        Raises:
            ProbeError: For failures that belong to this host
        """
        pass


@dataclass(frozen=True)
class LivenessJob(HostJob):
    """Discovery job: ping the host and report Up or Down."""
    host: str
    probe: LivenessProbe
    attempts: int = 2
    timeout: float = 1.0

    def run(self) -> HostRecord:
        up = self.probe.is_up(self.host, self.attempts, self.timeout)
        return HostRecord(self.host, HostStatus.UP if up else HostStatus.DOWN)


@dataclass(frozen=True)
class ProbeJob(HostJob):
    """
    Probing job: optional liveness gate, then fingerprint and classify.

    Attributes:
        host: Address to probe
        tables: Shared read-only configuration snapshot
        prober: Device prober
        classifier: Device classifier
        liveness: Liveness probe; None probes the host without pinging it
        attempts: Ping attempts for the liveness gate
        timeout: Ping timeout per attempt
    """
    host: str
    tables: DeviceTables
    prober: DeviceProber
    classifier: DeviceClassifier
    liveness: Optional[LivenessProbe] = None
    attempts: int = 2
    timeout: float = 1.0

    def run(self) -> HostRecord:
        if self.liveness is not None and not self.liveness.is_up(
            self.host, self.attempts, self.timeout
        ):
            return HostRecord(self.host, HostStatus.DOWN)

        attributes = self.prober.probe(
            self.host, self.tables.credentials, self.tables.profiles
        )
        attributes = self.classifier.classify_attributes(attributes, self.host)
        return HostRecord(self.host, HostStatus.UP, attributes)


def default_concurrency() -> int:
    """Number of parallel execution units available to this process."""
    return os.cpu_count() or 1


class JobScheduler:
    """
    Bounded-concurrency executor for host jobs.

    The scheduler holds no per-host state. Jobs are pulled lazily and at
    most a bounded window of them is queued ahead of the workers; outcomes
    are only handled by the thread that called run().
    """

    def __init__(self, logger: Optional[Logger] = None):
        self.logger = logger or get_logger(__name__)
        self._stop_event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._stop_event.is_set()

    def cancel(self) -> None:
        """
        Stop dispatching jobs.

        Jobs that have not started yet finish immediately with a
        ScanCancelledError outcome; running jobs complete within their own
        timeouts.
        """
        if not self._stop_event.is_set():
            self.logger.warning("Cancellation requested - no new hosts will be probed")
        self._stop_event.set()

    def reset(self) -> None:
        """Clear a previous cancellation so the scheduler can run again."""
        self._stop_event.clear()

    def run(
        self,
        jobs: Iterable[HostJob],
        concurrency: Optional[int] = None,
        on_complete: Optional[Callable[[JobOutcome], None]] = None,
    ) -> List[JobOutcome]:
        """
        Run jobs with at most `concurrency` executing at once.

        Args:
            jobs: Jobs to run
            concurrency: Worker count, defaults to the CPU count
            on_complete: Called with each outcome as it completes

        Returns:
            One JobOutcome per job, in submission order
        """
        by_index: Dict[int, JobOutcome] = dict(self._dispatch(jobs, concurrency, on_complete))
        return [by_index[index] for index in range(len(by_index))]

    def iter_outcomes(
        self,
        jobs: Iterable[HostJob],
        concurrency: Optional[int] = None,
        on_complete: Optional[Callable[[JobOutcome], None]] = None,
    ) -> Iterator[JobOutcome]:
        """
        Run jobs like run(), yielding each outcome as soon as it completes.

        Jobs are pulled from the iterable only as the dispatch window drains, so
        a lazily generated job stream is never materialized.
        """
        for _, outcome in self._dispatch(jobs, concurrency, on_complete):
            yield outcome

    @staticmethod
    def resolve_concurrency(concurrency: Optional[int]) -> int:
        if concurrency is None:
            concurrency = default_concurrency()
        if concurrency < 1:
            raise ValueError(f"Concurrency must be at least 1, got {concurrency}")
        return concurrency

    def _dispatch(
        self,
        jobs: Iterable[HostJob],
        concurrency: Optional[int],
        on_complete: Optional[Callable[[JobOutcome], None]],
    ) -> Iterator[Tuple[int, JobOutcome]]:
        workers = self.resolve_concurrency(concurrency)
        window = workers * DISPATCH_WINDOW_FACTOR
        numbered = enumerate(jobs)
        pending: Dict[Future, int] = {}

        self.logger.debug(f"Running jobs on {workers} workers, at most {window} queued")
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="host-job") as executor:
            try:
                while True:
                    while len(pending) < window and not self.cancelled:
                        item = next(numbered, None)
                        if item is None:
                            break
                        index, job = item
                        pending[executor.submit(self._execute, job)] = index
                    if not pending:
                        break

                    done, _ = wait(pending, return_when=FIRST_COMPLETED)
                    for future in done:
                        index = pending.pop(future)
                        yield index, self._notify(future.result(), on_complete)
            except KeyboardInterrupt:
                self.cancel()
                for future in as_completed(list(pending)):
                    index = pending.pop(future)
                    yield index, self._notify(future.result(), on_complete)

        # Jobs never handed to a worker because the run was cancelled
        for index, job in numbered:
            outcome = JobOutcome(job.host, error=ScanCancelledError(job.host))
            yield index, self._notify(outcome, on_complete)

    def _notify(
        self, outcome: JobOutcome, on_complete: Optional[Callable[[JobOutcome], None]]
    ) -> JobOutcome:
        if on_complete is not None:
            try:
                on_complete(outcome)
            except Exception as e:
                self.logger.warning(f"Progress callback failed: {e}")
        return outcome

    def _execute(self, job: HostJob) -> JobOutcome:
        """Run one job and capture its result or error."""
        if self._stop_event.is_set():
            return JobOutcome(job.host, error=ScanCancelledError(job.host))

        started = time.monotonic()
        try:
            record = job.run()
        except ProbeError as e:
            self.logger.debug(f"{job.host}: {e.kind}: {e}")
            return JobOutcome(job.host, error=e, duration=time.monotonic() - started)
        except Exception as e:
            self.logger.error(f"Unexpected failure probing {job.host}", exception=e)
            return JobOutcome(
                job.host,
                error=UnexpectedProbeError(job.host, e),
                duration=time.monotonic() - started,
            )
        return JobOutcome(job.host, record=record, duration=time.monotonic() - started)
