"""
Device probing for the Device Discovery Module.

The DeviceProber finds a working (vendor, community) pair for a host by
trying every pair of the credential table in order, then reads the six
device attributes using the bound vendor's OID profile and runs the
vendor's normalization hooks over the raw values.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from .data_models import (
    DEVICE_FIELDS,
    SKIP_SENTINEL,
    CredentialTable,
    DeviceAttributes,
    OIDProfile,
)
from ..scanners.protocol_client import ProtocolClient
from ..utils.error_handler import DeviceConnectionError, FieldRetrievalError
from ..utils.logger import Logger, get_logger

# sysDescr.0, answered by every SNMP agent
DEFAULT_CANARY_OID = "1.3.6.1.2.1.1.1.0"

Normalizer = Callable[[Dict[str, str]], Dict[str, str]]


class VendorNormalizerRegistry:
    """
    Per-vendor post-processing hooks.

    Hooks receive the raw attribute dict of a probed device and return the
    normalized dict. Several hooks may be registered for one vendor; they run
    in registration order. Vendor names are matched case-insensitively.
    """

    def __init__(self):
        self._hooks: Dict[str, List[Normalizer]] = {}

    def register(self, vendor: str, hook: Optional[Normalizer] = None):
        """
        Register a hook, directly or as a decorator.

        Example:
            @registry.register("acme")
            def fix_acme(attributes):
                ...
        """
        def decorator(func: Normalizer) -> Normalizer:
            self._hooks.setdefault(vendor.lower(), []).append(func)
            return func

        if hook is not None:
            return decorator(hook)
        return decorator

    def hooks_for(self, vendor: str) -> Tuple[Normalizer, ...]:
        return tuple(self._hooks.get(vendor.lower(), ()))

    def apply(self, vendor: str, attributes: Dict[str, str]) -> Dict[str, str]:
        for hook in self.hooks_for(vendor):
            attributes = hook(dict(attributes))
        return attributes


def truncate_at_delimiter(value: str, delimiter: str = ",") -> str:
    """Keep the part of value before the first delimiter."""
    return value.split(delimiter, 1)[0].strip()


# Fortinet serials start with a product family code followed by the model
# digits and an optional letter, e.g. FGT60E..., FWF61F..., FS1D24...
_FORTINET_SERIAL_PATTERN = re.compile(r"^(FGT|FG|FWF|FAP|FS|FMG|FAZ)(\d{1,4}[A-Z]?)")

_FORTINET_FAMILY_TOKENS = {
    "FGT": "FG",
    "FG": "FG",
    "FWF": "FWF",
    "FAP": "FAP",
    "FS": "FS",
    "FMG": "FMG",
    "FAZ": "FAZ",
}


def model_from_fortinet_serial(serial: str) -> str:
    """
    Derive a Fortinet model from its serial number.

    Returns:
        The model (e.g. "FG60E" for serial "FGT60E3Q16000000"), or "" when
        the serial does not follow a known pattern
    """
    match = _FORTINET_SERIAL_PATTERN.match(serial.strip().upper())
    if not match:
        return ""
    family, number = match.groups()
    return f"{_FORTINET_FAMILY_TOKENS[family]}{number}"


def normalize_fortinet(attributes: Dict[str, str]) -> Dict[str, str]:
    attributes["software"] = truncate_at_delimiter(attributes.get("software", ""))
    if not attributes.get("model"):
        attributes["model"] = model_from_fortinet_serial(attributes.get("serial", ""))
    attributes["vendor"] = "Fortinet"
    return attributes


def normalize_cisco(attributes: Dict[str, str]) -> Dict[str, str]:
    attributes["software"] = truncate_at_delimiter(attributes.get("software", ""))
    attributes["vendor"] = "Cisco"
    return attributes


def default_normalizers() -> VendorNormalizerRegistry:
    """Registry with the built-in vendor hooks."""
    registry = VendorNormalizerRegistry()
    registry.register("fortinet", normalize_fortinet)
    registry.register("cisco", normalize_cisco)
    return registry


@dataclass
class ProbeAttempt:
    """
    Diagnostics of one probe run.

    Attributes:
        host: Probed address
        tried: Every (vendor, community) pair attempted, in order
        bound: The pair that produced a live session, if any
        queries: Number of field queries issued after binding
    """
    host: str
    tried: List[Tuple[str, str]] = field(default_factory=list)
    bound: Optional[Tuple[str, str]] = None
    queries: int = 0

    @property
    def failed_attempts(self) -> int:
        return len(self.tried) - (1 if self.bound else 0)


class DeviceProber:
    """
    Vendor/credential fallback prober.

    Attributes:
        client_factory: Callable returning a fresh ProtocolClient per attempt
        canary_oid: Query used to confirm a session is live
        normalizers: Vendor post-processing hooks
    """

    def __init__(
        self,
        client_factory: Callable[[], ProtocolClient],
        canary_oid: str = DEFAULT_CANARY_OID,
        normalizers: Optional[VendorNormalizerRegistry] = None,
        logger: Optional[Logger] = None,
    ):
        self.client_factory = client_factory
        self.canary_oid = canary_oid
        self.normalizers = normalizers if normalizers is not None else default_normalizers()
        self.logger = logger or get_logger(__name__)

    def probe(
        self,
        host: str,
        credentials: CredentialTable,
        profiles: OIDProfile,
        attempt: Optional[ProbeAttempt] = None,
    ) -> DeviceAttributes:
        """
        Fingerprint a host.

        Args:
            host: Address of the device
            credentials: Vendor to community table, in probe order
            profiles: Vendor to field to OID candidates
            attempt: Optional ProbeAttempt filled with diagnostics

        Returns:
            DeviceAttributes with an empty type (set by the classifier)

        Raises:
            DeviceConnectionError: If no pair yields a live session
            FieldRetrievalError: If a field has no answering candidate
        """
        attempt = attempt if attempt is not None else ProbeAttempt(host)
        vendor, client = self._bind_session(host, credentials, attempt)

        try:
            raw = self._retrieve_fields(host, client, profiles.get(vendor, {}), attempt)
        finally:
            client.close()

        normalized = self.normalizers.apply(vendor, raw)
        return DeviceAttributes(**{name: normalized.get(name, "") for name in DEVICE_FIELDS})

    def _bind_session(
        self, host: str, credentials: CredentialTable, attempt: ProbeAttempt
    ) -> Tuple[str, ProtocolClient]:
        """Return the first (vendor, open client) whose canary query answers."""
        for vendor, community in credentials.pairs():
            attempt.tried.append((vendor, community))
            client = self.client_factory()
            live = False
            try:
                client.open(host, community)
                live = client.get(self.canary_oid) is not None
            except Exception as e:
                self.logger.debug(f"Session to {host} as {vendor} failed: {e}")
            finally:
                if not live:
                    client.close()

            if live:
                attempt.bound = (vendor, community)
                self.logger.debug(
                    f"Bound {host} to vendor {vendor} after {attempt.failed_attempts} failed attempts"
                )
                return vendor, client

        raise DeviceConnectionError(host, attempts=len(attempt.tried))

    def _retrieve_fields(
        self,
        host: str,
        client: ProtocolClient,
        profile,
        attempt: ProbeAttempt,
    ) -> Dict[str, str]:
        values: Dict[str, str] = {}
        for field_name in DEVICE_FIELDS:
            values[field_name] = self._retrieve_field(
                host, client, field_name, profile.get(field_name, ()), attempt
            )
        return values

    def _retrieve_field(
        self,
        host: str,
        client: ProtocolClient,
        field_name: str,
        candidates,
        attempt: ProbeAttempt,
    ) -> str:
        for key in candidates:
            if key == SKIP_SENTINEL:
                return ""
            attempt.queries += 1
            value = client.get(key)
            if value is not None:
                return value
        raise FieldRetrievalError(host, field_name)
