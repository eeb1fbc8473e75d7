"""
Control-Plane Port: one method per externally-visible provisioning operation.

``ProxmoxControlPlane`` binds the port to Proxmox (VM lifecycle), SSH
(configuration pushed onto the new machine) and the Puppet CA (identity
signing). The orchestrator only ever talks to the port.
"""

import logging
import re
import shlex
from typing import Any, Dict, List, Optional, Protocol, Tuple

import yaml
from proxmoxer.core import ResourceException
from requests.exceptions import RequestException

from vmprovision.config import Config
from vmprovision.errors import StepFailedError
from vmprovision.models import ProvisioningRequest, StepResult
from vmprovision.poller import poll
from vmprovision.proxmox_api import ProxmoxClient
from vmprovision.puppet import PuppetAgent, PuppetCA
from vmprovision.remote import RemoteShell

logger = logging.getLogger(__name__)

NETPLAN_PATH = "/etc/netplan/60-static.yaml"
CLOUD_INIT_NETWORK_OFF = "/etc/cloud/cloud.cfg.d/99-disable-network-config.cfg"

POWER_STATES = {"running": "on", "stopped": "off"}
ERE_SPECIAL = re.compile(r"([][.^$*+?(){}|\\/])")


class ControlPlanePort(Protocol):
    def clone_template(self, request: ProvisioningRequest, fetch_address: bool = True) -> StepResult: ...

    def configure_network(self, request: ProvisioningRequest, bootstrap_ip: str, desired_ip: str) -> StepResult: ...

    def push_facts(self, request: ProvisioningRequest, bootstrap_ip: str) -> StepResult: ...

    def install_agent(self, request: ProvisioningRequest, bootstrap_ip: str) -> StepResult: ...

    def set_environment(self, request: ProvisioningRequest, bootstrap_ip: str) -> StepResult: ...

    def signing_request_pending(self, hostname: str) -> bool: ...

    def sign_request(self, hostname: str) -> StepResult: ...

    def stop_vm(self, vm_name: str) -> StepResult: ...

    def power_state(self, vm_name: str) -> str: ...

    def start_vm(self, vm_name: str) -> StepResult: ...

    def tail_syslog(self, address: str) -> None: ...


def render_netplan(address: str, prefix: int, gateway: str, nameservers: List[str], interface: str) -> str:
    """Static netplan configuration for the provisioned machine."""
    ethernet: Dict[str, Any] = {"dhcp4": False, "addresses": [f"{address}/{prefix}"]}
    if gateway:
        ethernet["routes"] = [{"to": "default", "via": gateway}]
    if nameservers:
        ethernet["nameservers"] = {"addresses": nameservers}
    return yaml.safe_dump({"network": {"version": 2, "ethernets": {interface: ethernet}}}, sort_keys=False)


def hosts_entry_filter(*names: str) -> str:
    """
    Quoted sed expression deleting /etc/hosts lines that carry any of ``names``
    as a whole hostname field. Other entries sharing a prefix are kept.
    """
    alternatives = "|".join(ERE_SPECIAL.sub(r"\\\1", name) for name in names)
    return shlex.quote(rf"/[[:space:]]({alternatives})([[:space:]]|$)/d")


class ProxmoxControlPlane:
    """Production binding of the Control-Plane Port."""

    def __init__(
        self,
        client: Optional[ProxmoxClient] = None,
        shell: Optional[RemoteShell] = None,
        node: Optional[str] = None,
    ) -> None:
        self.client = client or ProxmoxClient()
        self.shell = shell or RemoteShell()
        self.node = node or Config.PVE_NODE
        self.ca = PuppetCA(self.shell)
        self.agent = PuppetAgent(self.shell)
        self._located: Dict[str, Tuple[str, int]] = {}

    def _locate(self, vm_name: str) -> Tuple[str, int]:
        if vm_name not in self._located:
            matches = self.client.find_vms_by_name(vm_name)
            if len(matches) != 1:
                raise LookupError(f"Expected exactly one VM named {vm_name!r}, found {len(matches)}")
            self._located[vm_name] = (matches[0]["node"], int(matches[0]["vmid"]))
        return self._located[vm_name]

    # --- virtualization control plane ---

    def clone_template(self, request: ProvisioningRequest, fetch_address: bool = True) -> StepResult:
        try:
            template = self.client.find_template(request.template)
            if template is None:
                return StepResult.failure(f"Template {request.template!r} not found")

            template_node = template["node"]
            vmid = self.client.next_vmid()
            upid = self.client.clone(template_node, int(template["vmid"]), vmid, request.vm_name, target=self.node)
            exit_status = self.client.wait_for_task(template_node, upid)
            if exit_status != "OK":
                return StepResult.failure(f"Clone task {upid} finished with {exit_status}")

            self._located[request.vm_name] = (self.node, vmid)
            self.client.start(self.node, vmid)
        except (ResourceException, RequestException) as e:
            return StepResult.failure(f"Clone of {request.template!r} failed: {e}")

        if not fetch_address:
            return StepResult.success(value="")

        found: Dict[str, Optional[str]] = {"ip": None}

        def _agent_reports_ip() -> bool:
            found["ip"] = self.client.guest_ipv4(self.node, vmid)
            return found["ip"] is not None

        poll(_agent_reports_ip, Config.GUEST_AGENT_ATTEMPTS, Config.GUEST_AGENT_INTERVAL)
        return StepResult.success(value=found["ip"] or "")

    def stop_vm(self, vm_name: str) -> StepResult:
        try:
            node, vmid = self._locate(vm_name)
            self.client.stop(node, vmid)
        except (ResourceException, RequestException, LookupError) as e:
            return StepResult.failure(str(e))
        return StepResult.success()

    def power_state(self, vm_name: str) -> str:
        """Return "on", "off" or the raw Proxmox status; raises StepFailedError if it cannot be read."""
        try:
            node, vmid = self._locate(vm_name)
            status = self.client.get_status(node, vmid)
        except (ResourceException, RequestException, LookupError) as e:
            raise StepFailedError("power state", str(e)) from e
        return POWER_STATES.get(status, status)

    def start_vm(self, vm_name: str) -> StepResult:
        try:
            node, vmid = self._locate(vm_name)
            self.client.start(node, vmid)
        except (ResourceException, RequestException, LookupError) as e:
            return StepResult.failure(str(e))
        return StepResult.success()

    # --- the new machine ---

    def configure_network(self, request: ProvisioningRequest, bootstrap_ip: str, desired_ip: str) -> StepResult:
        hostname = shlex.quote(request.hostname)
        hosts_line = shlex.quote(f"{desired_ip}\t{request.hostname} {request.vm_name}")
        result = self.shell.run(
            bootstrap_ip,
            f"hostnamectl set-hostname {hostname} && "
            f"sed -i -E {hosts_entry_filter(request.hostname, request.vm_name)} /etc/hosts && "
            f"echo {hosts_line} >> /etc/hosts",
        )
        if not result.ok:
            return result.to_step()

        netplan = render_netplan(
            desired_ip,
            Config.NETWORK_PREFIX,
            Config.NETWORK_GATEWAY,
            Config.get_nameservers(),
            Config.NETWORK_INTERFACE,
        )
        result = self.shell.write_file(bootstrap_ip, NETPLAN_PATH, netplan)
        if not result.ok:
            return result.to_step()
        return self.shell.write_file(bootstrap_ip, CLOUD_INIT_NETWORK_OFF, "network: {config: disabled}\n").to_step()

    def push_facts(self, request: ProvisioningRequest, bootstrap_ip: str) -> StepResult:
        return self.agent.write_facts(bootstrap_ip, request.role, request.hiera_env).to_step()

    def install_agent(self, request: ProvisioningRequest, bootstrap_ip: str) -> StepResult:
        return self.agent.install(bootstrap_ip, request.hostname).to_step()

    def set_environment(self, request: ProvisioningRequest, bootstrap_ip: str) -> StepResult:
        return self.agent.set_environment(bootstrap_ip, request.puppet_env).to_step()

    def tail_syslog(self, address: str) -> None:
        self.shell.interactive(address, "tail -f /var/log/syslog")

    # --- configuration-management control plane ---

    def signing_request_pending(self, hostname: str) -> bool:
        return self.ca.is_pending(hostname)

    def sign_request(self, hostname: str) -> StepResult:
        return self.ca.sign(hostname).to_step()

    def close(self) -> None:
        self.client.close()
