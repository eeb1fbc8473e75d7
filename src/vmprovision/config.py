import os
from typing import List

from dotenv import load_dotenv

from vmprovision.models import SizingLimits


class Config:
    """Loads and manages configuration from environment variables."""

    load_dotenv()

    API_TOKEN = os.getenv("API_TOKEN")
    PVE_HOST = os.getenv("PVE_HOST", "pve.maas")
    PVE_NODE = os.getenv("PVE_NODE", "pve")
    VERIFY_SSL = os.getenv("VERIFY_SSL", "false").lower() in ("1", "true", "yes")

    SSH_USER = os.getenv("SSH_USER", "root")
    SSH_KEY_PATH = os.getenv("SSH_KEY_PATH", "~/.ssh/id_rsa")

    PUPPET_SERVER = os.getenv("PUPPET_SERVER", "puppet")
    PUPPET_CA_HOST = os.getenv("PUPPET_CA_HOST", PUPPET_SERVER)
    DEFAULT_PUPPET_ENV = os.getenv("DEFAULT_PUPPET_ENV", "production")
    DEFAULT_HIERA_ENV = os.getenv("DEFAULT_HIERA_ENV", "prod")
    AGENT_INSTALL_COMMAND = os.getenv(
        "AGENT_INSTALL_COMMAND",
        "curl -sk https://{server}:8140/packages/current/install.bash | bash -s agent:certname={certname}",
    )

    DEFAULT_TEMPLATE = os.getenv("DEFAULT_TEMPLATE", "ubuntu-2404-template")
    DEFAULT_CPUS = int(os.getenv("DEFAULT_CPUS", "2"))
    DEFAULT_MEMORY_MIB = int(os.getenv("DEFAULT_MEMORY_MIB", "2048"))

    # Fixed bootstrap address; when unset it is read from the clone's guest agent
    BOOTSTRAP_IP = os.getenv("BOOTSTRAP_IP", "").strip() or None

    SSH_WAIT_ATTEMPTS = int(os.getenv("SSH_WAIT_ATTEMPTS", "5"))
    SSH_WAIT_INTERVAL = float(os.getenv("SSH_WAIT_INTERVAL", "2"))
    CSR_WAIT_ATTEMPTS = 10
    CSR_WAIT_INTERVAL = 2.0
    POWER_POLL_INTERVAL = float(os.getenv("POWER_POLL_INTERVAL", "1"))
    GUEST_AGENT_ATTEMPTS = int(os.getenv("GUEST_AGENT_ATTEMPTS", "30"))
    GUEST_AGENT_INTERVAL = float(os.getenv("GUEST_AGENT_INTERVAL", "2"))

    NETWORK_PREFIX = int(os.getenv("NETWORK_PREFIX", "24"))
    NETWORK_GATEWAY = os.getenv("NETWORK_GATEWAY", "")
    NETWORK_INTERFACE = os.getenv("NETWORK_INTERFACE", "eth0")

    BATCH_LOG_DIR = os.getenv("BATCH_LOG_DIR", "logs")

    @staticmethod
    def get_nameservers() -> List[str]:
        """
        Reads NETWORK_NAMESERVERS from the environment, splits by comma,
        and returns a list of resolver addresses.
        """
        raw = os.getenv("NETWORK_NAMESERVERS", "")
        return [ns.strip() for ns in raw.split(",") if ns.strip()]

    @staticmethod
    def get_sizing_limits() -> SizingLimits:
        """Build the process-wide sizing ceilings from MAX_CPUS / MAX_MEMORY_MIB."""
        return SizingLimits(
            max_cpus=int(os.getenv("MAX_CPUS", "16")),
            max_memory_mib=int(os.getenv("MAX_MEMORY_MIB", "65536")),
        )
