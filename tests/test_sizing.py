"""Tests for sizing module."""

from unittest import mock

import pytest
from proxmoxer.core import ResourceException
from requests.exceptions import ConnectionError as RequestsConnectionError

from vmprovision.errors import (
    AmbiguousMatchError,
    FileConflictError,
    InvalidDeviceSpecError,
    LimitExceededError,
    NotFoundError,
    PoweredOnError,
    ProviderFaultError,
    TooManyDevicesError,
)
from vmprovision.models import SizingLimits
from vmprovision.sizing import SizingClient, classify_fault

LIMITS = SizingLimits(max_cpus=16, max_memory_mib=65536)


def make_client(matches=None, status="stopped"):
    client = mock.MagicMock()
    client.find_vms_by_name.return_value = matches if matches is not None else [
        {"vmid": 101, "name": "web01", "node": "pve"}
    ]
    client.get_status.return_value = status
    return client


def resource_error(message):
    return ResourceException(500, "Internal Server Error", message)


@pytest.mark.parametrize("cpus,memory", [(20, 2048), (17, 2048), (2, 65537), (32, 131072)])
def test_limits_checked_before_connecting(cpus, memory):
    """Test over-limit requests never open a connection."""
    connect = mock.MagicMock()

    with pytest.raises(LimitExceededError):
        SizingClient(limits=LIMITS, connect=connect).resize("web01", cpus, memory)

    connect.assert_not_called()


def test_cpu_over_max_is_rejected_immediately():
    """Test cpu=20 against max_cpu=16 fails with no connection opened."""
    connect = mock.MagicMock()

    with pytest.raises(LimitExceededError, match="20 CPUs"):
        SizingClient(limits=LIMITS, connect=connect).resize("web01", 20, 2048)

    assert connect.call_count == 0


def test_limits_are_inclusive():
    client = make_client()

    result = SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 16, 65536)

    assert result.cpus == 16
    assert result.memory_mib == 65536


def test_no_match_is_not_found():
    client = make_client(matches=[])

    with pytest.raises(NotFoundError) as exc:
        SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 2, 2048)

    assert exc.value.exit_code == 3
    client.update_config.assert_not_called()
    client.close.assert_called_once()


def test_multiple_matches_are_ambiguous_and_listed():
    matches = [
        {"vmid": 101, "name": "web01", "node": "pve"},
        {"vmid": 201, "name": "web01", "node": "still-fawn"},
    ]
    client = make_client(matches=matches)

    with pytest.raises(AmbiguousMatchError) as exc:
        SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 2, 2048)

    assert exc.value.matches == matches
    assert exc.value.exit_code == 4
    assert exc.value.exit_code != NotFoundError.exit_code
    client.update_config.assert_not_called()
    client.close.assert_called_once()


def test_single_match_applies_change():
    client = make_client()

    result = SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 4, 4096)

    client.update_config.assert_called_once_with("pve", 101, cores=4, memory=4096)
    assert result.vmid == 101
    assert result.node == "pve"
    client.close.assert_called_once()


@pytest.mark.parametrize("status", ["running", "paused", "unknown"])
def test_powered_on_vm_is_refused(status):
    """Test no change request is sent unless the VM is off."""
    client = make_client(status=status)

    with pytest.raises(PoweredOnError) as exc:
        SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 4, 4096)

    assert exc.value.exit_code == 2
    client.update_config.assert_not_called()
    client.close.assert_called_once()


@pytest.mark.parametrize("message,expected", [
    ("too many devices of type scsi", TooManyDevicesError),
    ("Parameter verification failed. memory: value must be at least 16", InvalidDeviceSpecError),
    ("VM is locked (backup)", FileConflictError),
    ("disk image already exists", FileConflictError),
    ("something unexpected happened", ProviderFaultError),
])
def test_provider_faults_are_classified(message, expected):
    client = make_client()
    client.update_config.side_effect = resource_error(message)

    with pytest.raises(expected) as exc:
        SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 4, 4096)

    assert type(exc.value) is expected
    assert exc.value.diagnostic in str(exc.value)
    client.close.assert_called_once()


def test_fault_diagnostics_are_distinct():
    kinds = [TooManyDevicesError, InvalidDeviceSpecError, FileConflictError, ProviderFaultError]

    assert len({kind.diagnostic for kind in kinds}) == len(kinds)


def test_connection_failure_is_provider_fault_and_still_closes():
    client = make_client()
    client.find_vms_by_name.side_effect = RequestsConnectionError("connection refused")

    with pytest.raises(ProviderFaultError):
        SizingClient(limits=LIMITS, connect=lambda: client).resize("web01", 4, 4096)

    client.close.assert_called_once()


def test_classify_fault_defaults_to_provider_fault():
    fault = classify_fault(RuntimeError("boom"))

    assert type(fault) is ProviderFaultError
    assert fault.detail == "boom"


def test_default_limits_come_from_environment(monkeypatch):
    monkeypatch.setenv("MAX_CPUS", "8")
    monkeypatch.setenv("MAX_MEMORY_MIB", "8192")
    connect = mock.MagicMock()

    with pytest.raises(LimitExceededError):
        SizingClient(connect=connect).resize("web01", 9, 1024)

    connect.assert_not_called()
