#!/usr/bin/env python3
"""
Standalone Sizing-Change Client.

Exit codes: 0 applied, 1 limit or provider fault, 2 VM powered on,
3 no matching VM, 4 several matching VMs.
"""

import logging

import typer
from rich.console import Console
from rich.table import Table

from vmprovision.errors import AmbiguousMatchError, SizingError
from vmprovision.sizing import SizingClient

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

# Initialize CLI app and console
app = typer.Typer(
    name="vm-resize",
    help="Change the CPU count and memory of a powered-off VM",
    add_completion=False,
    context_settings=CONTEXT_SETTINGS,
)
console = Console()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


def matches_table(error: AmbiguousMatchError) -> Table:
    table = Table(title=f"VMs named {error.vm_name!r}")
    table.add_column("VMID", style="cyan")
    table.add_column("Node", style="blue")
    table.add_column("Status", style="yellow")
    for vm in error.matches:
        table.add_row(str(vm.get("vmid", "?")), str(vm.get("node", "?")), str(vm.get("status", "?")))
    return table


@app.command(context_settings=CONTEXT_SETTINGS)
def resize(
    vm_name: str = typer.Argument(..., help="Exact name of the VM"),
    cpus: int = typer.Option(..., "--cpus", "-c", help="New vCPU count"),
    memory: int = typer.Option(..., "--memory", "-m", help="New memory size in MiB"),
) -> None:
    """Resize VM_NAME after checking limits, uniqueness and power state."""
    try:
        result = SizingClient().resize(vm_name, cpus, memory)
    except AmbiguousMatchError as e:
        console.print(f"❌ {e}")
        console.print(matches_table(e))
        raise typer.Exit(e.exit_code)
    except SizingError as e:
        console.print(f"❌ {e}")
        raise typer.Exit(e.exit_code)
    except ValueError as e:
        console.print(f"❌ Failed to connect to Proxmox: {e}")
        raise typer.Exit(1)

    console.print(
        f"✅ {result.vm_name} (vmid={result.vmid}) now has {result.cpus} CPUs and {result.memory_mib} MiB"
    )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
