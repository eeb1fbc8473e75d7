#!/usr/bin/env python3
"""
src/vmprovision/orchestrator.py

Provision one VM end to end:

1. Validate the request (privilege, inputs, DNS, free addresses, no pending CSR)
2. Clone the template and find its bootstrap address
3. Wait for SSH, push hostname/network configuration and role facts
4. Install the Puppet agent (and override its environment if needed)
5. Wait for the agent's certificate request and sign it
6. Power off, apply CPU/memory sizing, power back on

Phases only move forward. A fatal step aborts the run where it stands;
nothing already applied is rolled back.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol

from rich.console import Console

from vmprovision.config import Config
from vmprovision.control_plane import ControlPlanePort
from vmprovision.errors import PollTimeoutError, ProvisioningError, SizingError, StepFailedError
from vmprovision.models import Phase, ProvisioningRequest, RuntimeContext, StepResult, TransitionPolicy
from vmprovision.network import is_dotted_quad, port_open
from vmprovision.poller import Sleep, poll, wait_until
from vmprovision.prompts import Confirm, interactive
from vmprovision.validator import PreconditionValidator

logger = logging.getLogger(__name__)


class SizingPort(Protocol):
    def resize(self, vm_name: str, cpus: int, memory_mib: int) -> object: ...


# Every step not listed here is fatal
STEP_POLICIES: Dict[str, TransitionPolicy] = {
    "resize": TransitionPolicy.WARN,
}


class ProvisioningOrchestrator:
    """Runs the provisioning state machine for a single request."""

    def __init__(
        self,
        request: ProvisioningRequest,
        port: ControlPlanePort,
        validator: Optional[PreconditionValidator] = None,
        sizing: Optional[SizingPort] = None,
        confirm: Confirm = interactive,
        console: Optional[Console] = None,
        reachable: Callable[[str, int], bool] = port_open,
        sleep: Sleep = time.sleep,
        bootstrap_ip: Optional[str] = None,
        default_env: Optional[str] = None,
        ssh_attempts: Optional[int] = None,
        ssh_interval: Optional[float] = None,
    ) -> None:
        self.request = request
        self.port = port
        self.validator = validator or PreconditionValidator(port.signing_request_pending, bootstrap_ip=bootstrap_ip)
        self.sizing = sizing
        self.confirm = confirm
        self.console = console or Console()
        self.reachable = reachable
        self.sleep = sleep
        self.fixed_bootstrap_ip = bootstrap_ip
        self.default_env = default_env or Config.DEFAULT_PUPPET_ENV
        self.ssh_attempts = ssh_attempts or Config.SSH_WAIT_ATTEMPTS
        self.ssh_interval = Config.SSH_WAIT_INTERVAL if ssh_interval is None else ssh_interval
        self.context = RuntimeContext()

    def run(self) -> RuntimeContext:
        """Execute every transition in order; raises ProvisioningError on the first fatal failure."""
        self.console.print(f"🚀 Provisioning {self.request.hostname} (role={self.request.role})")
        self._validate()
        self._clone()
        self._configure_network()
        self._install_agent()
        self._sign_identity()
        self._power_off()
        self._resize()
        self._power_on()
        self._complete()
        return self.context

    # --- helpers ---

    def _advance(self, phase: Phase) -> None:
        self.context.advance(phase)
        logger.info(f"{self.request.vm_name}: phase {phase.name}")

    def _check(self, step: str, result: StepResult, exit_code: int = 1) -> bool:
        """Apply the step's policy to ``result``; returns True if the step succeeded."""
        self.context.last_exit_status = result.exit_status
        if result.ok:
            return True

        policy = STEP_POLICIES.get(step, TransitionPolicy.FATAL)
        if policy is TransitionPolicy.WARN:
            logger.warning(f"{step} failed, continuing: {result.diagnostic}")
            self.console.print(f"⚠️  {step} failed: {result.diagnostic}")
            return False

        self.console.print(f"❌ {step} failed: {result.diagnostic}")
        raise StepFailedError(step, result.diagnostic, exit_code=exit_code)

    # --- transitions ---

    def _validate(self) -> None:
        result = self.validator.validate(self.request)
        if not result.ok:
            self.console.print(f"❌ {result.reason}")
            raise result.error  # type: ignore[misc]
        self.context.desired_ip = result.value
        self.console.print(f"✅ Preconditions passed ({self.request.hostname} → {result.value})")
        self._advance(Phase.VALIDATED)

    def _clone(self) -> None:
        self.console.print(f"🆕 Cloning {self.request.template!r} → {self.request.vm_name}")
        result = self.port.clone_template(self.request, fetch_address=self.fixed_bootstrap_ip is None)
        self._check("clone", result)
        self._advance(Phase.CLONED)

        bootstrap_ip = self.fixed_bootstrap_ip or result.value
        if not is_dotted_quad(bootstrap_ip):
            self._check("bootstrap address", StepResult.failure(f"{bootstrap_ip!r} is not an IPv4 address"))
        self.context.bootstrap_ip = bootstrap_ip
        self.console.print(f"✅ Clone booted with bootstrap address {bootstrap_ip}")

    def _configure_network(self) -> None:
        bootstrap_ip = self.context.bootstrap_ip
        self.console.print(f"⏳ Waiting for SSH on {bootstrap_ip}")
        waited = poll(lambda: self.reachable(bootstrap_ip, 22), self.ssh_attempts, self.ssh_interval, self.sleep)
        if waited.timed_out:
            self.console.print(f"❌ {bootstrap_ip}:22 never became reachable")
            raise PollTimeoutError(f"SSH on {bootstrap_ip}", waited.attempts)

        self._check(
            "network configuration",
            self.port.configure_network(self.request, bootstrap_ip, self.context.desired_ip),
        )
        self._check("fact upload", self.port.push_facts(self.request, bootstrap_ip))
        self.console.print(f"✅ Hostname, network and facts pushed to {bootstrap_ip}")
        self._advance(Phase.NETWORK_CONFIGURED)

    def _install_agent(self) -> None:
        self.console.print("📦 Installing puppet agent")
        self._check("agent install", self.port.install_agent(self.request, self.context.bootstrap_ip))
        self._advance(Phase.AGENT_INSTALLED)

        if self.request.puppet_env != self.default_env:
            self.console.print(f"🔧 Setting puppet environment to {self.request.puppet_env}")
            self._check("environment override", self.port.set_environment(self.request, self.context.bootstrap_ip))

    def _sign_identity(self) -> None:
        hostname = self.request.hostname
        self.console.print(f"⏳ Waiting for certificate request from {hostname}")
        waited = poll(
            lambda: self.port.signing_request_pending(hostname),
            Config.CSR_WAIT_ATTEMPTS,
            Config.CSR_WAIT_INTERVAL,
            self.sleep,
        )
        if waited.timed_out:
            self.console.print(f"❌ No certificate request from {hostname}")
            raise PollTimeoutError(f"certificate request from {hostname}", waited.attempts)

        self._check("certificate signing", self.port.sign_request(hostname))
        self.console.print(f"✅ Signed certificate for {hostname}")
        self._advance(Phase.IDENTITY_SIGNED)

    def _power_off(self) -> None:
        vm_name = self.request.vm_name
        self.console.print(f"⏹️  Stopping {vm_name}")
        self._check("stop", self.port.stop_vm(vm_name))
        # No attempt ceiling: the stop has been issued and the resize needs it off
        wait_until(lambda: self.port.power_state(vm_name) == "off", Config.POWER_POLL_INTERVAL, self.sleep)
        self._advance(Phase.POWERED_OFF)

    def _resize(self) -> None:
        if self.sizing is None:
            logger.info("No sizing client configured, keeping template sizing")
        else:
            req = self.request
            self.console.print(f"🔧 Resizing {req.vm_name} to {req.cpus} CPUs, {req.memory_mib} MiB")
            try:
                self.sizing.resize(req.vm_name, req.cpus, req.memory_mib)
                result = StepResult.success()
            except SizingError as e:
                result = StepResult.failure(str(e), exit_status=e.exit_code)
            self._check("resize", result)
        self._advance(Phase.RESIZED)

    def _power_on(self) -> None:
        self.console.print(f"▶️  Starting {self.request.vm_name}")
        self._check("start", self.port.start_vm(self.request.vm_name), exit_code=2)
        self._advance(Phase.POWERED_ON)

    def _complete(self) -> None:
        elapsed = self.context.elapsed()
        minutes, seconds = divmod(int(elapsed), 60)
        self.console.print(f"✅ {self.request.hostname} provisioned in {minutes}m{seconds:02d}s")
        self._advance(Phase.COMPLETE)

        if not self.request.unattended and self.confirm(f"Tail syslog on {self.request.hostname}?"):
            self.port.tail_syslog(self.context.desired_ip)


def provision(request: ProvisioningRequest, **kwargs: Any) -> int:
    """Run one provisioning request and return its exit code."""
    orchestrator = ProvisioningOrchestrator(request, **kwargs)
    try:
        orchestrator.run()
    except ProvisioningError as e:
        phase = orchestrator.context.phase
        logger.error(f"{request.hostname}: aborted after {phase.name if phase else 'start'}: {e}")
        return e.exit_code
    return 0
