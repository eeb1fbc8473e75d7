"""Precondition checks that gate every provisioning run.

Nothing here changes external state; each check only reads (privilege,
DNS, ICMP, the Puppet CA) and reports the first failure.
"""

import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Optional

from vmprovision.errors import (
    AddressInUseError,
    DuplicateRequestError,
    MalformedInputError,
    PrivilegeError,
    ProvisioningError,
    ResolutionError,
)
from vmprovision.models import ProvisioningRequest
from vmprovision.network import is_dotted_quad, resolve_hostname, responds_to_ping

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Either a validated value or the error that stopped validation."""

    value: Any = None
    error: Optional[ProvisioningError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> str:
        return str(self.error) if self.error else ""


def _valid(value: Any = None) -> ValidationResult:
    return ValidationResult(value=value)


def _invalid(error: ProvisioningError) -> ValidationResult:
    return ValidationResult(error=error)


def is_root() -> bool:
    return os.geteuid() == 0


def check_privilege(is_privileged: Callable[[], bool]) -> ValidationResult:
    if not is_privileged():
        return _invalid(PrivilegeError("Provisioning must run with root privileges"))
    return _valid()


def check_inputs(request: ProvisioningRequest) -> ValidationResult:
    for label, value in (("hostname", request.hostname), ("role", request.role)):
        if not value or not value.strip():
            return _invalid(MalformedInputError(f"A {label} is required"))
        if value.startswith("-"):
            return _invalid(MalformedInputError(f"{label} {value!r} looks like an option flag"))
    if request.cpus < 1 or request.memory_mib < 1:
        return _invalid(MalformedInputError("CPU count and memory size must be positive"))
    return _valid(request)


def check_resolution(hostname: str, resolve: Callable[[str], Optional[str]]) -> ValidationResult:
    address = resolve(hostname)
    if not address:
        return _invalid(ResolutionError(f"{hostname} does not resolve; create its DNS record first"))
    if not is_dotted_quad(address):
        return _invalid(ResolutionError(f"{hostname} resolved to {address!r}, which is not an IPv4 address"))
    return _valid(address)


def check_address_free(address: str, is_reachable: Callable[[str], bool], label: str) -> ValidationResult:
    if is_reachable(address):
        return _invalid(AddressInUseError(f"{label} {address} already responds; refusing to provision over it"))
    return _valid(address)


def check_no_pending_request(hostname: str, is_pending: Callable[[str], bool]) -> ValidationResult:
    if is_pending(hostname):
        return _invalid(
            DuplicateRequestError(f"A certificate request for {hostname} is already pending; clean it up first")
        )
    return _valid()


class PreconditionValidator:
    """Runs the precondition checks in their fixed order, stopping at the first failure."""

    def __init__(
        self,
        signing_request_pending: Callable[[str], bool],
        resolve: Callable[[str], Optional[str]] = resolve_hostname,
        is_reachable: Callable[[str], bool] = responds_to_ping,
        is_privileged: Callable[[], bool] = is_root,
        bootstrap_ip: Optional[str] = None,
    ) -> None:
        self.signing_request_pending = signing_request_pending
        self.resolve = resolve
        self.is_reachable = is_reachable
        self.is_privileged = is_privileged
        self.bootstrap_ip = bootstrap_ip

    def validate(self, request: ProvisioningRequest) -> ValidationResult:
        """
        Check a request before anything is changed.

        Returns:
            ValidationResult whose value is the resolved address on success.
        """
        result = check_privilege(self.is_privileged)
        if not result.ok:
            return result

        result = check_inputs(request)
        if not result.ok:
            return result

        resolved = check_resolution(request.hostname, self.resolve)
        if not resolved.ok:
            return resolved
        logger.info(f"✅ {request.hostname} resolves to {resolved.value}")

        result = check_address_free(resolved.value, self.is_reachable, "Address")
        if not result.ok:
            return result

        if self.bootstrap_ip:
            result = check_address_free(self.bootstrap_ip, self.is_reachable, "Bootstrap address")
            if not result.ok:
                return result

        result = check_no_pending_request(request.hostname, self.signing_request_pending)
        if not result.ok:
            return result

        return resolved
