"""Puppet agent installation and certificate authority operations."""

import logging
import shlex
from typing import List, Optional

from vmprovision.config import Config
from vmprovision.models import CommandResult
from vmprovision.remote import RemoteShell

logger = logging.getLogger(__name__)

FACTS_DIR = "/etc/puppetlabs/facter/facts.d"


def parse_pending_requests(output: str) -> List[str]:
    """
    Extract certnames from the "Requested Certificates" section of
    ``puppetserver ca list`` output.

    Example output::

        Requested Certificates:
            web01.example.com       (SHA256)  0E:5B:...
        Signed Certificates:
            puppet.example.com      (SHA256)  9F:11:...
    """
    pending: List[str] = []
    in_requested = False
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.endswith(":") and not line.startswith((" ", "\t")):
            in_requested = stripped.lower().startswith("requested")
            continue
        if in_requested:
            pending.append(stripped.split()[0])
    return pending


class PuppetCA:
    """Lists and signs certificate requests on the Puppet CA host."""

    def __init__(self, shell: RemoteShell, ca_host: Optional[str] = None) -> None:
        self.shell = shell
        self.ca_host = ca_host or Config.PUPPET_CA_HOST

    def pending_requests(self) -> List[str]:
        result = self.shell.run(self.ca_host, "puppetserver ca list")
        if not result.ok:
            return []
        return parse_pending_requests(result.stdout)

    def is_pending(self, certname: str) -> bool:
        return certname in self.pending_requests()

    def sign(self, certname: str) -> CommandResult:
        logger.info(f"Signing certificate request for {certname}")
        return self.shell.run(self.ca_host, f"puppetserver ca sign --certname {shlex.quote(certname)}")


class PuppetAgent:
    """Puppet operations executed on the machine being provisioned."""

    def __init__(self, shell: RemoteShell, server: Optional[str] = None, install_command: Optional[str] = None) -> None:
        self.shell = shell
        self.server = server or Config.PUPPET_SERVER
        self.install_command = install_command or Config.AGENT_INSTALL_COMMAND

    def write_facts(self, host: str, role: str, hiera_env: str) -> CommandResult:
        """Write the role and hiera_env external facts."""
        for name, value in (("role", role), ("hiera_env", hiera_env)):
            result = self.shell.write_file(host, f"{FACTS_DIR}/{name}.txt", f"{name}={value}\n")
            if not result.ok:
                return result
        return CommandResult(exit_status=0)

    def install(self, host: str, certname: str) -> CommandResult:
        command = self.install_command.format(server=self.server, certname=certname)
        logger.info(f"Installing puppet agent on {host}")
        return self.shell.run(host, command)

    def set_environment(self, host: str, environment: str) -> CommandResult:
        return self.shell.run(
            host, f"/opt/puppetlabs/bin/puppet config set environment {shlex.quote(environment)} --section agent"
        )
