from typing import Any, Dict, List, Optional
import ipaddress
import logging
import time

from proxmoxer import ProxmoxAPI

from vmprovision.config import Config
from vmprovision.poller import poll

logger = logging.getLogger(__name__)


class ProxmoxClient:
    """Wrapper around the Proxmox API for the VM lifecycle operations provisioning needs."""

    def __init__(self, host: Optional[str] = None, verify_ssl: Optional[bool] = None) -> None:
        self.host = host or Config.PVE_HOST

        # Extract API token components
        if Config.API_TOKEN is None:
            raise ValueError("API_TOKEN environment variable is not set")
        user_token, self.api_token = Config.API_TOKEN.split("=")
        self.user, self.token_name = user_token.split("!")

        self.proxmox: Optional[ProxmoxAPI] = ProxmoxAPI(
            self.host,
            user=self.user,
            token_name=self.token_name,
            token_value=self.api_token,
            verify_ssl=Config.VERIFY_SSL if verify_ssl is None else verify_ssl,
        )

    def close(self) -> None:
        """Release the HTTP session held by the API object."""
        if self.proxmox is None:
            return
        session = getattr(self.proxmox, "_store", {}).get("session")
        if session is not None:
            session.close()
        self.proxmox = None

    def __enter__(self) -> "ProxmoxClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def _api(self) -> ProxmoxAPI:
        if self.proxmox is None:
            raise RuntimeError("Proxmox connection is closed")
        return self.proxmox

    def list_vms(self) -> List[Dict[str, Any]]:
        """All QEMU VMs in the cluster, templates included."""
        resources = self._api().cluster.resources.get(type="vm")
        return [r for r in resources if r.get("type", "qemu") == "qemu"]

    def find_vms_by_name(self, name: str) -> List[Dict[str, Any]]:
        """Non-template VMs whose name matches exactly."""
        return [vm for vm in self.list_vms() if vm.get("name") == name and not vm.get("template")]

    def find_template(self, name: str) -> Optional[Dict[str, Any]]:
        for vm in self.list_vms():
            if vm.get("name") == name and vm.get("template"):
                return vm
        return None

    def next_vmid(self) -> int:
        return int(self._api().cluster.nextid.get())

    def clone(self, node: str, template_vmid: int, newid: int, name: str, target: Optional[str] = None) -> str:
        """Start a full clone of a template; returns the task UPID."""
        args: Dict[str, Any] = {"newid": newid, "name": name, "full": 1}
        if target and target != node:
            args["target"] = target
        logger.info(f"Cloning template {template_vmid} on {node} to {name} (vmid={newid})")
        return self._api().nodes(node).qemu(template_vmid).clone.post(**args)  # type: ignore[no-any-return]

    def wait_for_task(self, node: str, upid: str, max_attempts: int = 300, interval: float = 2) -> str:
        """
        Wait for a Proxmox task to stop.

        Returns:
            The task's exit status ("OK" on success), or "timeout".
        """
        state: Dict[str, Any] = {}

        def _stopped() -> bool:
            state.update(self._api().nodes(node).tasks(upid).status.get())
            return state.get("status") == "stopped"

        result = poll(_stopped, max_attempts, interval, sleep=time.sleep)
        if result.timed_out:
            return "timeout"
        return str(state.get("exitstatus", ""))

    def get_status(self, node: str, vmid: int) -> str:
        status = self._api().nodes(node).qemu(vmid).status.current.get()
        return str(status.get("status", "unknown"))

    def start(self, node: str, vmid: int) -> str:
        return self._api().nodes(node).qemu(vmid).status.start.post()  # type: ignore[no-any-return]

    def stop(self, node: str, vmid: int) -> str:
        return self._api().nodes(node).qemu(vmid).status.stop.post()  # type: ignore[no-any-return]

    def update_config(self, node: str, vmid: int, **settings: Any) -> None:
        """Apply a synchronous configuration change (PUT)."""
        self._api().nodes(node).qemu(vmid).config.put(**settings)

    def guest_ipv4(self, node: str, vmid: int) -> Optional[str]:
        """First non-loopback IPv4 address reported by the QEMU guest agent, if any."""
        try:
            reply = self._api().nodes(node).qemu(vmid).agent("network-get-interfaces").get()
        except Exception as e:
            logger.debug(f"Guest agent not ready on {vmid}: {e}")
            return None

        for iface in reply.get("result", []):
            for addr in iface.get("ip-addresses", []):
                if addr.get("ip-address-type") != "ipv4":
                    continue
                ip = addr.get("ip-address", "")
                try:
                    if ipaddress.IPv4Address(ip).is_loopback:
                        continue
                except ValueError:
                    continue
                return ip  # type: ignore[no-any-return]
        return None
