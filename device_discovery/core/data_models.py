"""
Core data models and enums for the Device Discovery Module.

This module defines the data structures used throughout the discovery
pipeline: the immutable configuration tables shared by all probe jobs, the
per-host records and outcomes, and the aggregated scan results.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from ..utils.error_handler import InvalidTargetFormat, ProbeError
from ..utils.network_utils import int_to_address

SKIP_SENTINEL = "skip"

DEVICE_FIELDS = ("model", "fullmodel", "serial", "firmware", "software", "vendor")


class HostStatus(Enum):
    """Reachability of a host as reported in discovery output."""
    UP = "Up"
    DOWN = "Down"


class OutputPolicy(Enum):
    """Which hosts a discovery run reports."""
    ALL_HOSTS = "all"
    UP_ONLY = "up"


class ScanMode(Enum):
    """Enumeration of scan modes."""
    DISCOVERY = "discovery"
    PROBING = "probing"


@dataclass(frozen=True)
class AddressRange:
    """
    Inclusive range of IPv4 addresses held as 32-bit integers.

    A range whose start is greater than its end is empty. Iteration is lazy,
    ascending and can be restarted any number of times.

    Attributes:
        start: First address of the range
        end: Last address of the range
    """
    start: int
    end: int

    def __len__(self) -> int:
        return max(0, self.end - self.start + 1)

    def __iter__(self) -> Iterator[str]:
        current = self.start
        while current <= self.end:
            yield int_to_address(current)
            current += 1

    def __contains__(self, address: int) -> bool:
        return self.start <= address <= self.end

    @property
    def is_empty(self) -> bool:
        return self.start > self.end


@dataclass(frozen=True)
class TargetSpec:
    """
    What to scan.

    Either `networks` (CIDR or address tokens, expanded before scanning) or
    `hosts` (direct-target mode, scanned as given) is set, never both.

    Attributes:
        networks: Network tokens to expand
        hosts: Host addresses to scan without expansion
    """
    networks: Tuple[str, ...] = ()
    hosts: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.networks and self.hosts:
            raise InvalidTargetFormat(
                "A target is either a network list or a direct host list, not both"
            )
        if not self.networks and not self.hosts:
            raise InvalidTargetFormat("No scan target given")

    @property
    def is_direct(self) -> bool:
        return bool(self.hosts)

    def describe(self) -> str:
        tokens = self.hosts or self.networks
        if len(tokens) <= 3:
            return ", ".join(tokens)
        return f"{', '.join(tokens[:3])} (+{len(tokens) - 3} more)"


class CredentialTable(Mapping):
    """
    Read-only, ordered mapping of vendor name to community strings.

    Iteration order is probe priority: vendors in insertion order, and each
    vendor's communities in list order.
    """

    def __init__(self, entries: Mapping[str, Iterable[str]]):
        self._entries = MappingProxyType(
            {vendor: tuple(communities) for vendor, communities in entries.items()}
        )

    def __getitem__(self, vendor: str) -> Tuple[str, ...]:
        return self._entries[vendor]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def pairs(self) -> Iterator[Tuple[str, str]]:
        """Yield every (vendor, community) pair in probe order."""
        for vendor, communities in self._entries.items():
            for community in communities:
                yield vendor, community

    def __repr__(self) -> str:
        # Never print community strings.
        counts = {vendor: len(communities) for vendor, communities in self._entries.items()}
        return f"CredentialTable({counts})"


class OIDProfile(Mapping):
    """
    Read-only mapping of vendor name to field name to OID candidates.

    The literal "skip" candidate defines the field as empty without a query.
    """

    def __init__(self, profiles: Mapping[str, Mapping[str, Iterable[str]]]):
        self._profiles = MappingProxyType({
            vendor: MappingProxyType(
                {field_name: tuple(candidates) for field_name, candidates in fields.items()}
            )
            for vendor, fields in profiles.items()
        })

    def __getitem__(self, vendor: str) -> Mapping[str, Tuple[str, ...]]:
        return self._profiles[vendor]

    def __iter__(self) -> Iterator[str]:
        return iter(self._profiles)

    def __len__(self) -> int:
        return len(self._profiles)

    def candidates(self, vendor: str, field_name: str) -> Tuple[str, ...]:
        """Return the OID candidates for a field, empty when undefined."""
        return self._profiles.get(vendor, {}).get(field_name, ())


@dataclass(frozen=True)
class KnownDeviceTable:
    """
    Ordered (prefix, type) pairs used to classify models.

    Attributes:
        entries: Pairs in table order; the first matching prefix wins
    """
    entries: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "KnownDeviceTable":
        return cls(tuple((str(prefix), str(device_type)) for prefix, device_type in pairs))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.entries)


@dataclass(frozen=True)
class DeviceTables:
    """Configuration snapshot shared read-only by all probe jobs."""
    credentials: CredentialTable
    profiles: OIDProfile
    known_devices: KnownDeviceTable


@dataclass(frozen=True)
class DeviceAttributes:
    """
    Attributes extracted from a fingerprinted device.

    Attributes:
        model: Short model identifier used for classification
        fullmodel: Full model description
        serial: Serial number
        firmware: Firmware version
        software: Software version
        vendor: Canonical vendor name
        type: Device type from the known-device table
    """
    model: str
    fullmodel: str
    serial: str
    firmware: str
    software: str
    vendor: str
    type: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "model": self.model,
            "fullmodel": self.fullmodel,
            "serial": self.serial,
            "firmware": self.firmware,
            "software": self.software,
            "vendor": self.vendor,
            "type": self.type,
        }


@dataclass(frozen=True)
class HostRecord:
    """
    Result of one successful host job.

    Attributes:
        address: Host address in dotted-quad form
        status: Reachability of the host
        attributes: Device attributes, set only for fingerprinted hosts
    """
    address: str
    status: HostStatus
    attributes: Optional[DeviceAttributes] = None

    @property
    def is_up(self) -> bool:
        return self.status is HostStatus.UP


@dataclass(frozen=True)
class JobOutcome:
    """
    Tagged result of one job: exactly one of record and error is set.

    Attributes:
        host: Address the job was run for
        record: HostRecord on success
        error: ProbeError on failure
        duration: Wall-clock seconds the job took
    """
    host: str
    record: Optional[HostRecord] = None
    error: Optional[ProbeError] = None
    duration: float = 0.0

    def __post_init__(self):
        if (self.record is None) == (self.error is None):
            raise ValueError("JobOutcome needs exactly one of record or error")

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ScanSummary:
    """
    Counts reported at the end of a run.

    Attributes:
        total: Number of hosts scanned
        succeeded: Hosts up (discovery) or fingerprinted (probing)
        failed: Hosts whose job produced an error
        down: Hosts that did not answer the liveness probe
        failures: Host address to error kind for every failed host
        duration: Total scan duration in seconds
    """
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    down: int = 0
    failures: Dict[str, str] = field(default_factory=dict)
    duration: float = 0.0


@dataclass
class DiscoveryResult:
    """
    Result of a discovery (liveness) run.

    Attributes:
        hosts: Address to HostRecord, filtered by the output policy
        policy: Output policy that was applied
        summary: Run summary
    """
    hosts: Dict[str, HostRecord] = field(default_factory=dict)
    policy: OutputPolicy = OutputPolicy.ALL_HOSTS
    summary: ScanSummary = field(default_factory=ScanSummary)


@dataclass
class ProbingResult:
    """
    Result of a probing run.

    Attributes:
        devices: Address to attributes for every fingerprinted host
        failures: Address to the error that ended that host's job
        down_hosts: Addresses that did not answer the liveness probe
        summary: Run summary
    """
    devices: Dict[str, DeviceAttributes] = field(default_factory=dict)
    failures: Dict[str, ProbeError] = field(default_factory=dict)
    down_hosts: List[str] = field(default_factory=list)
    summary: ScanSummary = field(default_factory=ScanSummary)
