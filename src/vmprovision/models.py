"""Data model for provisioning runs."""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class Phase(Enum):
    """Lifecycle phases of one provisioning run, in the only order they may occur."""

    VALIDATED = 1
    CLONED = 2
    NETWORK_CONFIGURED = 3
    AGENT_INSTALLED = 4
    IDENTITY_SIGNED = 5
    POWERED_OFF = 6
    RESIZED = 7
    POWERED_ON = 8
    COMPLETE = 9


class TransitionPolicy(Enum):
    """What a failed step does to the run."""

    FATAL = "fatal"
    WARN = "warn"


@dataclass(frozen=True)
class SizingLimits:
    """Process-wide ceilings for CPU count and memory size."""

    max_cpus: int
    max_memory_mib: int


@dataclass(frozen=True)
class ProvisioningRequest:
    """Identity and intent for one machine."""

    hostname: str
    role: str
    puppet_env: str
    hiera_env: str
    template: str
    cpus: int
    memory_mib: int
    unattended: bool = False

    @property
    def vm_name(self) -> str:
        """Short VM name: the hostname's first label."""
        return self.hostname.split(".", 1)[0]


@dataclass
class RuntimeContext:
    """Mutable per-run state, owned by a single orchestrator."""

    desired_ip: Optional[str] = None
    bootstrap_ip: Optional[str] = None
    phase: Optional[Phase] = None
    started_at: float = field(default_factory=time.monotonic)
    last_exit_status: Optional[int] = None

    def advance(self, phase: Phase) -> None:
        """Move to ``phase``; phases never repeat or go backwards."""
        if self.phase is not None and phase.value <= self.phase.value:
            raise ValueError(f"Cannot move from {self.phase.name} to {phase.name}")
        self.phase = phase

    def elapsed(self) -> float:
        return time.monotonic() - self.started_at


@dataclass
class StepResult:
    """Structured outcome of one control-plane operation."""

    ok: bool
    exit_status: int = 0
    diagnostic: str = ""
    value: Any = None

    @classmethod
    def success(cls, value: Any = None) -> "StepResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, diagnostic: str, exit_status: int = 1) -> "StepResult":
        return cls(ok=False, exit_status=exit_status, diagnostic=diagnostic)


@dataclass
class CommandResult:
    """Exit status and captured output of a remote command."""

    exit_status: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0

    def to_step(self) -> StepResult:
        if self.ok:
            return StepResult(ok=True, value=self.stdout)
        return StepResult(ok=False, exit_status=self.exit_status, diagnostic=self.stderr or self.stdout)


@dataclass(frozen=True)
class NodeDescriptor:
    """One node entry of a batch descriptor, after defaults are applied."""

    hostname: str
    role: str
    cpus: int
    memory_mib: int
    puppet_env: str
    hiera_env: str
    template: str
    record: Dict[str, Any] = field(default_factory=dict)

    def to_request(self, unattended: bool = True) -> ProvisioningRequest:
        return ProvisioningRequest(
            hostname=self.hostname,
            role=self.role,
            puppet_env=self.puppet_env,
            hiera_env=self.hiera_env,
            template=self.template,
            cpus=self.cpus,
            memory_mib=self.memory_mib,
            unattended=unattended,
        )
