"""Shared test fixtures and configuration for vmprovision tests."""

from typing import Any, Dict, List, Optional
from unittest import mock

import pytest
from rich.console import Console

from vmprovision.models import ProvisioningRequest, StepResult
from vmprovision.validator import PreconditionValidator


@pytest.fixture
def mock_proxmox():
    """Mock Proxmox API client for testing."""
    with mock.patch('vmprovision.proxmox_api.ProxmoxAPI') as mock_api, \
         mock.patch('vmprovision.proxmox_api.Config.API_TOKEN', "testuser!testtoken=secretvalue"):
        proxmox = mock.MagicMock()
        mock_api.return_value = proxmox

        # Setup common return values
        proxmox.cluster.resources.get.return_value = [
            {"vmid": 9000, "name": "ubuntu-2404-template", "node": "pve", "template": 1, "type": "qemu"},
            {"vmid": 101, "name": "web01", "node": "pve", "template": 0, "type": "qemu", "status": "stopped"},
            {"vmid": 102, "name": "db01", "node": "still-fawn", "template": 0, "type": "qemu", "status": "running"},
        ]
        proxmox.cluster.nextid.get.return_value = "123"
        proxmox.nodes.return_value.qemu.return_value.status.current.get.return_value = {"status": "stopped"}

        yield proxmox


@pytest.fixture
def mock_env(monkeypatch):
    """Set up test environment variables."""
    env_vars = {
        "API_TOKEN": "testuser!testtoken=secretvalue",
        "PVE_HOST": "pve.maas",
        "PVE_NODE": "pve",
        "MAX_CPUS": "16",
        "MAX_MEMORY_MIB": "65536",
        "NETWORK_NAMESERVERS": "192.168.4.1, 1.1.1.1",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def mock_ssh_client():
    """Mock SSH client for testing remote operations."""
    with mock.patch('vmprovision.remote.paramiko.SSHClient') as mock_ssh:
        client = mock.MagicMock()
        mock_ssh.return_value = client

        # Mock successful command execution
        stdout = mock.MagicMock()
        stderr = mock.MagicMock()
        stdout.read.return_value.decode.return_value = "command output"
        stderr.read.return_value.decode.return_value = ""
        stdout.channel.recv_exit_status.return_value = 0

        client.exec_command.return_value = (None, stdout, stderr)

        yield client


class FakeControlPlane:
    """In-memory Control-Plane Port that records every call."""

    def __init__(self) -> None:
        self.calls: List[str] = []
        self.results: Dict[str, StepResult] = {}
        self.clone_address = "10.0.0.50"
        self.pending_after = 1  # signing_request_pending turns True on this call
        self.pending_calls = 0
        self.off_after = 1  # power_state reports "off" on this call
        self.power_calls = 0
        self.tailed: Optional[str] = None

    def _result(self, name: str, value: Any = None) -> StepResult:
        self.calls.append(name)
        return self.results.get(name, StepResult.success(value=value))

    def clone_template(self, request, fetch_address=True):
        return self._result("clone_template", value=self.clone_address if fetch_address else "")

    def configure_network(self, request, bootstrap_ip, desired_ip):
        return self._result("configure_network")

    def push_facts(self, request, bootstrap_ip):
        return self._result("push_facts")

    def install_agent(self, request, bootstrap_ip):
        return self._result("install_agent")

    def set_environment(self, request, bootstrap_ip):
        return self._result("set_environment")

    def signing_request_pending(self, hostname):
        self.pending_calls += 1
        return self.pending_after is not None and self.pending_calls >= self.pending_after

    def sign_request(self, hostname):
        return self._result("sign_request")

    def stop_vm(self, vm_name):
        return self._result("stop_vm")

    def power_state(self, vm_name):
        self.power_calls += 1
        return "off" if self.power_calls >= self.off_after else "on"

    def start_vm(self, vm_name):
        return self._result("start_vm")

    def tail_syslog(self, address):
        self.calls.append("tail_syslog")
        self.tailed = address


@pytest.fixture
def fake_port():
    return FakeControlPlane()


@pytest.fixture
def sample_request() -> ProvisioningRequest:
    return ProvisioningRequest(
        hostname="web01.example.com",
        role="web",
        puppet_env="production",
        hiera_env="prod",
        template="ubuntu-2404-template",
        cpus=4,
        memory_mib=4096,
        unattended=True,
    )


@pytest.fixture
def passing_validator():
    """Validator whose environment probes all pass; resolves everything to 10.0.0.10."""
    return PreconditionValidator(
        signing_request_pending=lambda hostname: False,
        resolve=lambda hostname: "10.0.0.10",
        is_reachable=lambda address: False,
        is_privileged=lambda: True,
    )


@pytest.fixture
def quiet_console():
    return Console(quiet=True)
