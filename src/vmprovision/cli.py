#!/usr/bin/env python3
"""
Command-line entry points for provisioning.

    vm-provision -n web01.example.com -r web -c 4 -m 4096
    vm-provision-batch nodes/prod.yaml --unattended
"""

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from vmprovision import prompts
from vmprovision.batch import BatchDriver, configure_batch_logging, load_descriptor, parse_nodes
from vmprovision.config import Config
from vmprovision.control_plane import ProxmoxControlPlane
from vmprovision.errors import MalformedInputError
from vmprovision.models import ProvisioningRequest
from vmprovision.orchestrator import provision
from vmprovision.sizing import SizingClient

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

# Initialize CLI apps and console
app = typer.Typer(
    name="vm-provision",
    help="Clone, configure and enrol a new VM",
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
)
batch_app = typer.Typer(
    name="vm-provision-batch",
    help="Provision every node listed in a batch descriptor",
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
)
console = Console()

logger = logging.getLogger(__name__)


def run_request(request: ProvisioningRequest) -> int:
    """Wire the production control planes and provision one request."""
    try:
        port = ProxmoxControlPlane()
    except ValueError as e:
        console.print(f"❌ Failed to connect to Proxmox: {e}")
        return 1

    try:
        return provision(
            request,
            port=port,
            sizing=SizingClient(),
            confirm=prompts.interactive,
            console=console,
            bootstrap_ip=Config.BOOTSTRAP_IP,
        )
    finally:
        port.close()


@app.command(context_settings=CONTEXT_SETTINGS)
def provision_vm(
    hostname: str = typer.Option("", "--hostname", "-n", help="Fully-qualified hostname of the new VM"),
    role: str = typer.Option("", "--role", "-r", help="Server role (written as the 'role' fact)"),
    env: Optional[str] = typer.Option(None, "--env", "-e", help="Puppet environment"),
    env2: Optional[str] = typer.Option(None, "--env2", "-s", help="Secondary (hiera) environment"),
    unattended: bool = typer.Option(False, "--unattended", "-u", help="Never prompt"),
    template: Optional[str] = typer.Option(None, "--template", "-t", help="Template VM to clone"),
    cpus: int = typer.Option(Config.DEFAULT_CPUS, "--cpus", "-c", help="vCPU count"),
    memory: int = typer.Option(Config.DEFAULT_MEMORY_MIB, "--memory", "-m", help="Memory size in MiB"),
) -> None:
    """Provision a single VM from a template."""
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s")

    request = ProvisioningRequest(
        hostname=hostname,
        role=role,
        puppet_env=env or Config.DEFAULT_PUPPET_ENV,
        hiera_env=env2 or Config.DEFAULT_HIERA_ENV,
        template=template or Config.DEFAULT_TEMPLATE,
        cpus=cpus,
        memory_mib=memory,
        unattended=unattended,
    )
    raise typer.Exit(run_request(request))


@batch_app.command(context_settings=CONTEXT_SETTINGS)
def provision_batch(
    descriptor: Path = typer.Argument(..., help="YAML batch descriptor"),
    unattended: bool = typer.Option(False, "--unattended", "-u", help="Skip the confirmation prompt"),
    log_dir: Path = typer.Option(Path(Config.BATCH_LOG_DIR), "--log-dir", help="Directory for per-platform logs"),
) -> None:
    """Provision every node in DESCRIPTOR, one at a time."""
    try:
        data = load_descriptor(descriptor)
        nodes = parse_nodes(data)
    except (FileNotFoundError, MalformedInputError, ValueError) as e:
        console.print(f"❌ Invalid descriptor: {e}")
        raise typer.Exit(1)

    log_file = configure_batch_logging(str(data["platform"]), log_dir)
    console.print(f"📝 Logging to {log_file}")

    driver = BatchDriver(nodes, runner=run_request, confirm=prompts.for_mode(unattended), console=console)
    raise typer.Exit(driver.run())


def main() -> None:
    app()


def batch_main() -> None:
    batch_app()


if __name__ == "__main__":
    main()
