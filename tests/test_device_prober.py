"""
Tests for DeviceProber: vendor/credential fallback, field retrieval with
the skip sentinel and vendor normalization.
"""

import pytest

from device_discovery.core.data_models import CredentialTable, OIDProfile
from device_discovery.core.device_prober import (
    DeviceProber,
    ProbeAttempt,
    VendorNormalizerRegistry,
    default_normalizers,
    model_from_fortinet_serial,
    normalize_fortinet,
    truncate_at_delimiter,
)
from device_discovery.utils.error_handler import DeviceConnectionError, FieldRetrievalError

HOST = "10.0.0.1"


def _fields(**overrides):
    fields = {
        "model": ["1.1"],
        "fullmodel": ["1.2"],
        "serial": ["1.3"],
        "firmware": ["1.4"],
        "software": ["1.5"],
        "vendor": ["1.6"],
    }
    fields.update(overrides)
    return fields


def test_fallback_binds_last_pair(scripted_network, two_vendor_credentials,
                                  simple_profiles, device_values):
    """Only (B, c2) is live: three failed attempts, then B is bound."""
    scripted_network.live_sessions = {3}
    scripted_network.values = {HOST: device_values}

    prober = DeviceProber(scripted_network.client_factory,
                          normalizers=VendorNormalizerRegistry())
    attempt = ProbeAttempt(HOST)
    attributes = prober.probe(HOST, two_vendor_credentials, simple_profiles, attempt)

    assert attempt.tried == [("A", "c1"), ("A", "c2"), ("B", "c1"), ("B", "c2")]
    assert attempt.failed_attempts == 3
    assert attempt.bound == ("B", "c2")
    assert attributes.model == "FG100E"
    assert attributes.vendor == "VendorB"
    assert attributes.type == ""


def test_fallback_order_is_vendor_then_community(scripted_network, two_vendor_credentials,
                                                 simple_profiles):
    """Pairs are tried vendor by vendor, communities in list order."""
    prober = DeviceProber(scripted_network.client_factory)
    attempt = ProbeAttempt(HOST)

    with pytest.raises(DeviceConnectionError) as exc_info:
        prober.probe(HOST, two_vendor_credentials, simple_profiles, attempt)

    assert attempt.tried == [("A", "c1"), ("A", "c2"), ("B", "c1"), ("B", "c2")]
    assert exc_info.value.attempts == 4
    assert exc_info.value.host == HOST
    assert exc_info.value.kind == "ConnectionError"


def test_every_session_is_closed(scripted_network, simple_profiles, device_values):
    """Failed sessions and the bound session are all closed."""
    scripted_network.live = {(HOST, "good")}
    scripted_network.values = {HOST: device_values}
    credentials = CredentialTable({"A": ["bad1", "bad2"], "B": ["good"]})

    DeviceProber(scripted_network.client_factory).probe(HOST, credentials, simple_profiles)

    assert len(scripted_network.clients) == 3
    assert all(client.closed for client in scripted_network.clients)


def test_session_closed_when_field_fails(scripted_network, simple_profiles):
    """The bound session is closed even when a field cannot be read."""
    scripted_network.live = {(HOST, "c1")}
    scripted_network.values = {HOST: {}}
    credentials = CredentialTable({"A": ["c1"]})

    with pytest.raises(FieldRetrievalError) as exc_info:
        DeviceProber(scripted_network.client_factory).probe(HOST, credentials, simple_profiles)

    assert exc_info.value.field == "model"
    assert scripted_network.clients[0].closed


def test_skip_sentinel_issues_no_query(scripted_network, device_values):
    """A field defined as ["skip"] is empty and never queried."""
    scripted_network.live = {(HOST, "c1")}
    scripted_network.values = {HOST: device_values}
    profiles = OIDProfile({"A": _fields(model=["skip"])})
    prober = DeviceProber(scripted_network.client_factory,
                          normalizers=VendorNormalizerRegistry())
    attempt = ProbeAttempt(HOST)

    attributes = prober.probe(HOST, CredentialTable({"A": ["c1"]}), profiles, attempt)

    assert attributes.model == ""
    assert "1.1" not in scripted_network.queries
    assert attempt.queries == 5


def test_first_answering_candidate_wins(scripted_network, device_values):
    """Candidates are tried in order; unanswered ones are skipped."""
    scripted_network.live = {(HOST, "c1")}
    scripted_network.values = {HOST: device_values}
    profiles = OIDProfile({"A": _fields(serial=["9.9", "1.3", "1.2"])})

    attributes = DeviceProber(scripted_network.client_factory).probe(
        HOST, CredentialTable({"A": ["c1"]}), profiles
    )

    assert attributes.serial == "FG100E0000000001"
    assert scripted_network.queries.count("1.2") == 1  # only for fullmodel


def test_skip_after_unanswered_candidates(scripted_network, device_values):
    """A trailing "skip" makes a field optional."""
    scripted_network.live = {(HOST, "c1")}
    scripted_network.values = {HOST: device_values}
    profiles = OIDProfile({"A": _fields(firmware=["9.9", "skip"])})

    attributes = DeviceProber(scripted_network.client_factory).probe(
        HOST, CredentialTable({"A": ["c1"]}), profiles
    )

    assert attributes.firmware == ""


def test_fortinet_normalization(scripted_network):
    """Fortinet software is truncated and the model derived from the serial."""
    scripted_network.live = {(HOST, "public")}
    scripted_network.values = {HOST: {
        "1.2": "FortiGate-60E",
        "1.3": "FGT60E3Q16000000",
        "1.4": "",
        "1.5": "v6.4.9,build1966,220329 (GA)",
    }}
    profiles = OIDProfile({"fortinet": _fields(model=["skip"], vendor=["skip"])})

    attributes = DeviceProber(scripted_network.client_factory).probe(
        HOST, CredentialTable({"fortinet": ["public"]}), profiles
    )

    assert attributes.model == "FG60E"
    assert attributes.software == "v6.4.9"
    assert attributes.vendor == "Fortinet"
    assert attributes.firmware == ""


@pytest.mark.parametrize("serial, model", [
    ("FGT60E3Q16000000", "FG60E"),
    ("FG100F3G19000000", "FG100F"),
    ("FWF61F0000000000", "FWF61F"),
    ("FAP231F000000000", "FAP231F"),
    ("XYZ123", ""),
    ("", ""),
])
def test_model_from_fortinet_serial(serial, model):
    """Serial prefixes map to model identifiers."""
    assert model_from_fortinet_serial(serial) == model


def test_normalize_fortinet_keeps_existing_model():
    """A model read from the device is not overwritten."""
    result = normalize_fortinet({"model": "FG200F", "serial": "FGT60E3Q16000000", "software": "v7"})
    assert result["model"] == "FG200F"


def test_truncate_at_delimiter():
    """Only the text before the first delimiter is kept."""
    assert truncate_at_delimiter("v7.0.1,build0157") == "v7.0.1"
    assert truncate_at_delimiter("plain") == "plain"


def test_registry_decorator_and_case_insensitivity():
    """Hooks register as decorators and match vendor names case-insensitively."""
    registry = VendorNormalizerRegistry()

    @registry.register("Acme")
    def upper_model(attributes):
        attributes["model"] = attributes["model"].upper()
        return attributes

    assert registry.hooks_for("ACME") == (upper_model,)
    assert registry.apply("acme", {"model": "x1"}) == {"model": "X1"}
    assert registry.apply("other", {"model": "x1"}) == {"model": "x1"}


def test_default_normalizers_cover_builtin_vendors():
    """Fortinet and Cisco hooks are registered by default."""
    registry = default_normalizers()
    assert registry.hooks_for("fortinet")
    assert registry.hooks_for("cisco")


def test_client_exception_counts_as_failed_attempt(scripted_network, simple_profiles, device_values):
    """A client raising while opening is treated like a dead session."""
    scripted_network.live = {(HOST, "c2")}
    scripted_network.values = {HOST: device_values}
    created = []

    def factory():
        client = scripted_network.client_factory()
        if not created:
            def fail(host, credential):
                raise OSError("socket error")
            client.open = fail
        created.append(client)
        return client

    attempt = ProbeAttempt(HOST)
    DeviceProber(factory).probe(HOST, CredentialTable({"A": ["c1", "c2"]}), simple_profiles, attempt)

    assert attempt.failed_attempts == 1
    assert created[0].closed


def test_protocol_client_context_manager(scripted_network):
    """Leaving a with-block closes the session."""
    with scripted_network.client_factory() as client:
        client.open(HOST, "c1")
    assert client.closed
