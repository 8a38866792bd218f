"""
Result aggregation for the Device Discovery Module.

Merges the per-host outcomes of a run into the final dataset in a single
pass, so outcomes may be streamed straight from the scheduler. Results are
keyed by host address, so the order in which jobs completed is irrelevant.
Failed hosts never disappear silently: they are kept in the failure map and
listed in the summary with their error kind.
"""

from typing import Iterable, List

from .data_models import (
    DiscoveryResult,
    HostStatus,
    JobOutcome,
    OutputPolicy,
    ProbingResult,
    ScanSummary,
)
from ..utils.network_utils import sort_addresses


class ResultAggregator:
    """Partitions job outcomes into results and failures."""

    def aggregate_discovery(
        self, outcomes: Iterable[JobOutcome], policy: OutputPolicy = OutputPolicy.ALL_HOSTS
    ) -> DiscoveryResult:
        """
        Build the discovery dataset.

        Args:
            outcomes: Outcomes of liveness jobs
            policy: ALL_HOSTS keeps every host, UP_ONLY keeps reachable hosts

        Returns:
            DiscoveryResult with hosts keyed by address
        """
        result = DiscoveryResult(policy=policy)
        summary = ScanSummary()

        for outcome in outcomes:
            self._tally(summary, outcome)
            if not outcome.ok:
                continue
            record = outcome.record
            if policy is OutputPolicy.UP_ONLY and not record.is_up:
                continue
            result.hosts[record.address] = record

        result.summary = summary
        return result

    def aggregate_probing(self, outcomes: Iterable[JobOutcome]) -> ProbingResult:
        """
        Build the probing dataset.

        Fingerprinted hosts go to `devices`, failed hosts to `failures` and
        hosts that did not pass the liveness gate to `down_hosts`.
        """
        result = ProbingResult()
        summary = ScanSummary()
        down: List[str] = []

        for outcome in outcomes:
            self._tally(summary, outcome)
            if not outcome.ok:
                result.failures[outcome.host] = outcome.error
            elif outcome.record.attributes is not None:
                result.devices[outcome.host] = outcome.record.attributes
            else:
                down.append(outcome.host)

        result.down_hosts = sort_addresses(down)
        result.summary = summary
        return result

    def summarize(self, outcomes: Iterable[JobOutcome]) -> ScanSummary:
        """
        Count outcomes.

        A host succeeds when its job returned an Up record; Down records are
        counted separately and errors are listed by host with their kind.
        """
        summary = ScanSummary()
        for outcome in outcomes:
            self._tally(summary, outcome)
        return summary

    @staticmethod
    def _tally(summary: ScanSummary, outcome: JobOutcome) -> None:
        summary.total += 1
        if not outcome.ok:
            summary.failed += 1
            summary.failures[outcome.host] = outcome.error.kind
        elif outcome.record.status is HostStatus.UP:
            summary.succeeded += 1
        else:
            summary.down += 1
