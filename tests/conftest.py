"""
Shared pytest fixtures for the device_discovery test suite.
Provides device tables, a scripted protocol client world and a quiet logger.
"""

import pytest

from device_discovery.core.data_models import (
    CredentialTable,
    DeviceTables,
    KnownDeviceTable,
    OIDProfile,
)
from device_discovery.utils.logger import Logger, LogLevel
from ._helpers import FakeLivenessProbe, ScriptedNetwork


@pytest.fixture
def quiet_logger():
    """
    Logger that only prints errors, to keep test output readable.

    Returns:
        Logger: Instance with a minimum level of ERROR
    """
    return Logger("test", min_level=LogLevel.ERROR)


@pytest.fixture
def two_vendor_credentials():
    """
    Credential table with two vendors and two communities each.

    Returns:
        CredentialTable: A -> [c1, c2], B -> [c1, c2]
    """
    return CredentialTable({"A": ["c1", "c2"], "B": ["c1", "c2"]})


@pytest.fixture
def simple_profiles():
    """
    OID profiles where every field has a single OID.

    Returns:
        OIDProfile: Profiles for vendors A and B
    """
    fields = {
        "model": ["1.1"],
        "fullmodel": ["1.2"],
        "serial": ["1.3"],
        "firmware": ["1.4"],
        "software": ["1.5"],
        "vendor": ["1.6"],
    }
    return OIDProfile({"A": fields, "B": fields})


@pytest.fixture
def known_devices():
    """
    Known-device table used by the classification tests.

    Returns:
        KnownDeviceTable: FG -> Firewall, SG -> Switch
    """
    return KnownDeviceTable.from_pairs([("FG", "Firewall"), ("SG", "Switch")])


@pytest.fixture
def device_values():
    """
    OID answers of a device reachable as vendor B.

    Returns:
        dict: OID to value for the simple_profiles OIDs
    """
    return {
        "1.1": "FG100E",
        "1.2": "FortiGate-100E",
        "1.3": "FG100E0000000001",
        "1.4": "1.0",
        "1.5": "v7.2.5",
        "1.6": "VendorB",
    }


@pytest.fixture
def device_tables(two_vendor_credentials, simple_profiles, known_devices):
    """Configuration snapshot combining the tables above."""
    return DeviceTables(two_vendor_credentials, simple_profiles, known_devices)


@pytest.fixture
def scripted_network():
    """Empty ScriptedNetwork; tests fill in live pairs and values."""
    return ScriptedNetwork()


@pytest.fixture
def fake_liveness():
    """FakeLivenessProbe with no host up."""
    return FakeLivenessProbe()
