"""SSH command channel to provisioned machines and the Puppet CA."""

import logging
import os
import shlex
import subprocess
from typing import Optional

import paramiko

from vmprovision.config import Config
from vmprovision.models import CommandResult

logger = logging.getLogger(__name__)


class RemoteShell:
    """Runs one command per SSH connection and reports its exit status."""

    def __init__(self, username: Optional[str] = None, key_path: Optional[str] = None, timeout: float = 30) -> None:
        self.username = username or Config.SSH_USER
        self.key_path = os.path.expanduser(key_path or Config.SSH_KEY_PATH)
        self.timeout = timeout

    def run(self, host: str, command: str) -> CommandResult:
        """Execute ``command`` on ``host`` and return its exit status and output."""
        ssh = paramiko.SSHClient()
        ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            ssh.connect(hostname=host, username=self.username, key_filename=self.key_path, timeout=self.timeout)
            stdin, stdout, stderr = ssh.exec_command(command)
            out = stdout.read().decode().strip()
            err = stderr.read().decode().strip()
            exit_status = stdout.channel.recv_exit_status()
        except (paramiko.SSHException, OSError) as e:
            logger.error(f"SSH to {host} failed: {e}")
            return CommandResult(exit_status=255, stderr=str(e))
        finally:
            ssh.close()

        if exit_status != 0:
            logger.error(f"Command on {host} exited {exit_status}: {err or out}")
        return CommandResult(exit_status=exit_status, stdout=out, stderr=err)

    def write_file(self, host: str, path: str, content: str) -> CommandResult:
        """Create or replace ``path`` on ``host`` with ``content``."""
        directory = os.path.dirname(path)
        command = f"mkdir -p {shlex.quote(directory)} && printf '%s' {shlex.quote(content)} > {shlex.quote(path)}"
        return self.run(host, command)

    def interactive(self, host: str, command: str) -> int:
        """Attach the operator's terminal to ``command`` on ``host``."""
        return subprocess.run(
            ["ssh", "-t", "-o", "StrictHostKeyChecking=no", "-i", self.key_path, f"{self.username}@{host}", command]
        ).returncode
