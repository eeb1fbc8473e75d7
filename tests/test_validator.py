"""Tests for validator module."""

from dataclasses import replace

import pytest

from vmprovision.errors import (
    AddressInUseError,
    DuplicateRequestError,
    MalformedInputError,
    PrivilegeError,
    ResolutionError,
)
from vmprovision.validator import PreconditionValidator, check_inputs, check_resolution


def make_validator(**overrides):
    kwargs = dict(
        signing_request_pending=lambda hostname: False,
        resolve=lambda hostname: "10.0.0.10",
        is_reachable=lambda address: False,
        is_privileged=lambda: True,
    )
    kwargs.update(overrides)
    return PreconditionValidator(**kwargs)


def test_validate_passes_and_returns_resolved_address(sample_request):
    result = make_validator().validate(sample_request)

    assert result.ok
    assert result.value == "10.0.0.10"


def test_validate_requires_privilege(sample_request):
    result = make_validator(is_privileged=lambda: False).validate(sample_request)

    assert isinstance(result.error, PrivilegeError)


def test_privilege_checked_before_inputs(sample_request):
    """Test check order: privilege failure wins over malformed input."""
    request = replace(sample_request, hostname="")
    result = make_validator(is_privileged=lambda: False).validate(request)

    assert isinstance(result.error, PrivilegeError)


@pytest.mark.parametrize("field,value", [
    ("hostname", ""),
    ("hostname", "-r"),
    ("role", ""),
    ("role", "--env"),
    ("cpus", 0),
    ("memory_mib", -1),
])
def test_check_inputs_rejects_malformed(sample_request, field, value):
    result = check_inputs(replace(sample_request, **{field: value}))

    assert isinstance(result.error, MalformedInputError)


def test_hostname_resolving_to_non_ip_fails_before_clone(sample_request, fake_port):
    """Test a hostname resolving to 'not-an-ip' fails at the resolution check."""
    reachability_probes = []
    validator = make_validator(
        resolve=lambda hostname: "not-an-ip",
        is_reachable=lambda address: reachability_probes.append(address) or False,
    )

    result = validator.validate(sample_request)

    assert isinstance(result.error, ResolutionError)
    assert reachability_probes == []
    assert "clone_template" not in fake_port.calls


def test_unresolvable_hostname():
    result = check_resolution("ghost.example.com", lambda hostname: None)

    assert isinstance(result.error, ResolutionError)
    assert "does not resolve" in result.reason


def test_address_already_in_use(sample_request):
    result = make_validator(is_reachable=lambda address: address == "10.0.0.10").validate(sample_request)

    assert isinstance(result.error, AddressInUseError)


def test_fixed_bootstrap_address_in_use(sample_request):
    validator = make_validator(
        is_reachable=lambda address: address == "10.0.0.99",
        bootstrap_ip="10.0.0.99",
    )

    result = validator.validate(sample_request)

    assert isinstance(result.error, AddressInUseError)
    assert "Bootstrap" in result.reason


def test_bootstrap_address_not_probed_when_unset(sample_request):
    probed = []
    make_validator(is_reachable=lambda address: probed.append(address) or False).validate(sample_request)

    assert probed == ["10.0.0.10"]


def test_pending_signing_request_is_refused(sample_request):
    result = make_validator(signing_request_pending=lambda hostname: True).validate(sample_request)

    assert isinstance(result.error, DuplicateRequestError)
