"""
Core components for device discovery functionality.
"""

from .data_models import (
    HostStatus,
    OutputPolicy,
    ScanMode,
    AddressRange,
    TargetSpec,
    CredentialTable,
    OIDProfile,
    KnownDeviceTable,
    DeviceTables,
    DeviceAttributes,
    HostRecord,
    JobOutcome,
    ScanSummary,
    DiscoveryResult,
    ProbingResult,
)
from .address_range import AddressRangeExpander
from .device_classifier import DeviceClassifier
from .device_prober import DeviceProber, ProbeAttempt, VendorNormalizerRegistry
from .job_scheduler import JobScheduler, LivenessJob, ProbeJob
from .result_aggregator import ResultAggregator

__all__ = [
    'HostStatus',
    'OutputPolicy',
    'ScanMode',
    'AddressRange',
    'TargetSpec',
    'CredentialTable',
    'OIDProfile',
    'KnownDeviceTable',
    'DeviceTables',
    'DeviceAttributes',
    'HostRecord',
    'JobOutcome',
    'ScanSummary',
    'DiscoveryResult',
    'ProbingResult',
    'AddressRangeExpander',
    'DeviceClassifier',
    'DeviceProber',
    'ProbeAttempt',
    'VendorNormalizerRegistry',
    'JobScheduler',
    'LivenessJob',
    'ProbeJob',
    'ResultAggregator',
]
