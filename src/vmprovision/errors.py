"""Exception hierarchy for provisioning and sizing failures.

Every error carries the process exit code the CLIs translate it to.
"""

from typing import Any, Dict, List, Optional


class ProvisioningError(Exception):
    """Base class for every fatal provisioning condition."""

    exit_code = 1


# --- input validation ---


class PrivilegeError(ProvisioningError):
    """The caller does not have elevated privilege."""


class MalformedInputError(ProvisioningError):
    """A required input is missing or looks like an option flag."""


class ResolutionError(ProvisioningError):
    """The hostname does not resolve to a dotted-quad IPv4 address."""


# --- precondition conflicts ---


class AddressInUseError(ProvisioningError):
    """An address that should be free already answers a reachability probe."""


class DuplicateRequestError(ProvisioningError):
    """A signing request is already pending for the hostname."""


# --- run-time failures ---


class PollTimeoutError(ProvisioningError):
    """A bounded poll exhausted its attempts."""

    def __init__(self, what: str, attempts: int) -> None:
        self.what = what
        self.attempts = attempts
        super().__init__(f"Timed out waiting for {what} after {attempts} attempts")


class StepFailedError(ProvisioningError):
    """A fatal orchestration step reported failure."""

    def __init__(self, step: str, diagnostic: str, exit_code: int = 1) -> None:
        self.step = step
        self.diagnostic = diagnostic
        self.exit_code = exit_code
        super().__init__(f"{step} failed: {diagnostic}")


# --- sizing changes ---


class SizingError(ProvisioningError):
    """Base class for Sizing-Change Client failures."""


class LimitExceededError(SizingError):
    """Requested CPU or memory exceeds the configured ceiling."""


class NotFoundError(SizingError):
    """No VM matches the requested name."""

    exit_code = 3


class AmbiguousMatchError(SizingError):
    """More than one VM matches the requested name."""

    exit_code = 4

    def __init__(self, vm_name: str, matches: Optional[List[Dict[str, Any]]] = None) -> None:
        self.vm_name = vm_name
        self.matches = matches or []
        super().__init__(f"{len(self.matches)} VMs match name {vm_name!r}")


class PoweredOnError(SizingError):
    """The VM must be powered off before its sizing can change."""

    exit_code = 2


class ProviderFaultError(SizingError):
    """Catch-all for faults reported by the virtualization control plane."""

    diagnostic = "The control plane rejected the configuration change"

    def __init__(self, detail: str) -> None:
        self.detail = detail
        super().__init__(f"{self.diagnostic}: {detail}")


class TooManyDevicesError(ProviderFaultError):
    diagnostic = "The VM already has the maximum number of devices of this type"


class InvalidDeviceSpecError(ProviderFaultError):
    diagnostic = "The requested CPU/memory values are invalid for this VM"


class FileConflictError(ProviderFaultError):
    diagnostic = "The VM configuration is locked or a backing file conflicts"
