"""
Scanner modules for Device Discovery.

This package contains the protocol client interface, its SNMP
implementation and the ping-based liveness probe.
"""

from .protocol_client import ProtocolClient, ProtocolClientError
from .snmp_client import SNMPClient
from .ping_probe import LivenessProbe

__all__ = [
    'ProtocolClient',
    'ProtocolClientError',
    'SNMPClient',
    'LivenessProbe',
]
