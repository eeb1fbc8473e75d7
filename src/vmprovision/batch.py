"""Batch provisioning driven by a YAML node list.

Descriptor layout::

    platform: prod
    puppet_env: production
    hiera_env: prod
    template: ubuntu-2404-template
    nodes:
      web01.example.com: {role: web, cpus: 4, memory: 4096}
      db01.example.com:  {role: db}

Nodes run one at a time, sorted by hostname; the first non-zero exit code
stops the batch.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable

import yaml
from rich.console import Console
from rich.table import Table

from vmprovision.config import Config
from vmprovision.errors import MalformedInputError
from vmprovision.models import NodeDescriptor, ProvisioningRequest
from vmprovision.prompts import Confirm, interactive

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)8s] %(name)s: %(message)s"

Runner = Callable[[ProvisioningRequest], int]


def load_descriptor(path: Path | str) -> dict[str, Any]:
    """Load and return the parsed batch descriptor."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Descriptor not found: {path}")
    with open(path) as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise MalformedInputError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise MalformedInputError(f"{path} must contain a mapping")
    data.setdefault("platform", path.stem)
    return data


def parse_nodes(descriptor: dict[str, Any]) -> list[NodeDescriptor]:
    """
    Resolve every node entry against platform and process defaults.

    Resolved values are written back into each node's own record so later
    readers of the descriptor see the effective sizing and environments.
    """
    nodes = descriptor.get("nodes")
    if not nodes or not isinstance(nodes, dict):
        raise MalformedInputError("Descriptor has no nodes")

    puppet_env = descriptor.get("puppet_env", Config.DEFAULT_PUPPET_ENV)
    hiera_env = descriptor.get("hiera_env", Config.DEFAULT_HIERA_ENV)
    template = descriptor.get("template", Config.DEFAULT_TEMPLATE)

    parsed: list[NodeDescriptor] = []
    for hostname in sorted(nodes):
        record = nodes[hostname]
        if record is None:
            record = nodes[hostname] = {}
        if not isinstance(record, dict):
            raise MalformedInputError(f"Node {hostname!r} must be a mapping")
        if "." not in hostname:
            raise MalformedInputError(f"Node {hostname!r} is not a fully-qualified hostname")
        if not record.get("role"):
            raise MalformedInputError(f"Node {hostname!r} has no role")

        record.setdefault("cpus", Config.DEFAULT_CPUS)
        record.setdefault("memory", Config.DEFAULT_MEMORY_MIB)
        record.setdefault("puppet_env", puppet_env)
        record.setdefault("hiera_env", hiera_env)
        record.setdefault("template", template)

        parsed.append(
            NodeDescriptor(
                hostname=hostname,
                role=record["role"],
                cpus=int(record["cpus"]),
                memory_mib=int(record["memory"]),
                puppet_env=record["puppet_env"],
                hiera_env=record["hiera_env"],
                template=record["template"],
                record=record,
            )
        )
    return parsed


def configure_batch_logging(platform: str, log_dir: Path | str) -> Path:
    """Append timestamped lines to <log_dir>/<platform>.log and mirror them to the console."""
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"{platform}.log"

    formatter = logging.Formatter(LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(logging.INFO)
    for handler in (logging.FileHandler(log_file), logging.StreamHandler()):
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return log_file


class BatchDriver:
    """Provisions each node of a batch in order, stopping at the first failure."""

    def __init__(
        self,
        nodes: list[NodeDescriptor],
        runner: Runner,
        confirm: Confirm = interactive,
        console: Console | None = None,
    ) -> None:
        self.nodes = sorted(nodes, key=lambda n: n.hostname)
        self.runner = runner
        self.confirm = confirm
        self.console = console or Console()

    def summary_table(self) -> Table:
        table = Table(title="Nodes to provision")
        table.add_column("Hostname", style="cyan")
        table.add_column("Role", style="blue")
        table.add_column("CPUs", style="yellow")
        table.add_column("Memory (MiB)", style="yellow")
        table.add_column("Environment", style="green")
        for node in self.nodes:
            table.add_row(
                node.hostname, node.role, str(node.cpus), str(node.memory_mib), f"{node.puppet_env}/{node.hiera_env}"
            )
        return table

    def run(self) -> int:
        """Return 0 if every node succeeded, else the first failing node's exit code."""
        self.console.print(self.summary_table())
        if not self.confirm(f"Provision {len(self.nodes)} node(s)?"):
            logger.info("Batch cancelled by operator")
            return 1

        for index, node in enumerate(self.nodes, start=1):
            logger.info(f"[{index}/{len(self.nodes)}] Provisioning {node.hostname}")
            code = self.runner(node.to_request(unattended=True))
            if code != 0:
                logger.error(f"{node.hostname} failed with exit code {code}; stopping batch")
                return code
            logger.info(f"{node.hostname} provisioned")

        logger.info(f"All {len(self.nodes)} node(s) provisioned")
        return 0
