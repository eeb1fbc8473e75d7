"""
Sizing-Change Client.

Looks a VM up by exact name and applies a CPU/memory change once the VM is
powered off. Limits are checked before any connection is opened; the
connection is released on every exit path.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from vmprovision.config import Config
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
from vmprovision.proxmox_api import ProxmoxClient

logger = logging.getLogger(__name__)

# Substrings of provider fault text, checked in order
FAULT_PATTERNS = [
    (TooManyDevicesError, ("too many", "maximum number", "max number")),
    (InvalidDeviceSpecError, ("parameter verification failed", "invalid format", "value must", "not in range")),
    (FileConflictError, ("locked", "already exists", "file exists")),
]


@dataclass
class SizingResult:
    """Values applied by a successful sizing change."""

    vm_name: str
    vmid: int
    node: str
    cpus: int
    memory_mib: int


def classify_fault(error: Exception) -> ProviderFaultError:
    """Map a provider fault to the most specific sizing error."""
    text = str(error)
    lowered = text.lower()
    for error_cls, needles in FAULT_PATTERNS:
        if any(needle in lowered for needle in needles):
            return error_cls(text)
    return ProviderFaultError(text)


class SizingClient:
    """Applies CPU/memory changes to a single, powered-off VM."""

    def __init__(
        self,
        limits: Optional[SizingLimits] = None,
        connect: Optional[Callable[[], Any]] = None,
    ) -> None:
        self.limits = limits or Config.get_sizing_limits()
        self.connect = connect or ProxmoxClient

    def check_limits(self, cpus: int, memory_mib: int) -> None:
        if cpus > self.limits.max_cpus:
            raise LimitExceededError(f"Requested {cpus} CPUs exceeds the maximum of {self.limits.max_cpus}")
        if memory_mib > self.limits.max_memory_mib:
            raise LimitExceededError(
                f"Requested {memory_mib} MiB exceeds the maximum of {self.limits.max_memory_mib} MiB"
            )

    def resize(self, vm_name: str, cpus: int, memory_mib: int) -> SizingResult:
        """
        Change the CPU count and memory size of ``vm_name``.

        Raises:
            LimitExceededError: request above SizingLimits; nothing was contacted
            NotFoundError: no VM has this name
            AmbiguousMatchError: several VMs have this name (matches attached)
            PoweredOnError: the VM is not powered off
            ProviderFaultError: the control plane failed or rejected the change
                (TooManyDevicesError, InvalidDeviceSpecError and FileConflictError
                are the classified cases)
        """
        self.check_limits(cpus, memory_mib)

        client = self.connect()
        try:
            return self._apply(client, vm_name, cpus, memory_mib)
        except (ResourceException, RequestException) as e:
            fault = classify_fault(e)
            logger.error(f"{fault.diagnostic}: {e}")
            raise fault from e
        finally:
            client.close()

    def _apply(self, client: Any, vm_name: str, cpus: int, memory_mib: int) -> SizingResult:
        matches = client.find_vms_by_name(vm_name)
        if not matches:
            raise NotFoundError(f"No VM named {vm_name!r}")
        if len(matches) > 1:
            raise AmbiguousMatchError(vm_name, matches)

        vm = matches[0]
        node, vmid = vm["node"], int(vm["vmid"])
        status = client.get_status(node, vmid)
        if status != "stopped":
            raise PoweredOnError(f"VM {vm_name!r} (vmid={vmid}) is {status}; power it off first")

        logger.info(f"Resizing {vm_name} (vmid={vmid}) to {cpus} CPUs, {memory_mib} MiB")
        client.update_config(node, vmid, cores=cpus, memory=memory_mib)
        return SizingResult(vm_name=vm_name, vmid=vmid, node=node, cpus=cpus, memory_mib=memory_mib)
