"""Name resolution and reachability probes."""

import logging
import re
import socket
import subprocess
from typing import Optional

logger = logging.getLogger(__name__)

DOTTED_QUAD = re.compile(r"^(25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)(\.(25[0-5]|2[0-4]\d|1\d\d|[1-9]?\d)){3}$")


def is_dotted_quad(address: Optional[str]) -> bool:
    """True if ``address`` is a syntactically valid IPv4 dotted quad."""
    return bool(address) and DOTTED_QUAD.match(address) is not None  # type: ignore[arg-type]


def resolve_hostname(hostname: str) -> Optional[str]:
    """
    Resolve hostname to IP address.

    Returns:
        IP address string or None if resolution fails
    """
    try:
        ip = socket.gethostbyname(hostname)
        logger.debug(f"Resolved {hostname} -> {ip}")
        return ip
    except socket.gaierror as e:
        logger.error(f"❌ Failed to resolve {hostname}: {e}")
        return None


def responds_to_ping(address: str, timeout: int = 1) -> bool:
    """Send a single ICMP echo; True if the address answered."""
    try:
        result = subprocess.run(
            ["ping", "-c", "1", "-W", str(timeout), address],
            capture_output=True,
            timeout=timeout + 5,
        )
    except subprocess.TimeoutExpired:
        return False
    except OSError as e:
        logger.error(f"❌ Could not run ping: {e}")
        return False
    return result.returncode == 0


def port_open(address: str, port: int = 22, timeout: float = 2) -> bool:
    """True if a TCP connection to ``address:port`` succeeds."""
    try:
        with socket.create_connection((address, port), timeout=timeout):
            return True
    except (socket.timeout, ConnectionRefusedError, OSError):
        return False
