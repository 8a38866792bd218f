"""
Liveness probe for the Device Discovery Module.

Checks host reachability with the system ping command. An unreachable host
is a normal outcome, so the probe answers False instead of raising.
"""

import math
import platform
import subprocess
from typing import Optional

from ..utils.logger import Logger, get_logger

# Output fragments that mean the echo request was not answered
_UNIX_FAILURE_INDICATORS = (
    "destination host unreachable",
    "no route to host",
    "network is unreachable",
    "name or service not known",
    "temporary failure in name resolution",
)

_WINDOWS_FAILURE_INDICATORS = (
    "destination host unreachable",
    "request timed out",
    "could not find host",
    "general failure",
    "transmit failed",
    "unable to contact ip driver",
)


class LivenessProbe:
    """
    Ping-based reachability test.

    Attributes:
        system: Lower-cased platform name selecting the ping flags
    """

    def __init__(self, logger: Optional[Logger] = None, system: Optional[str] = None):
        self.logger = logger or get_logger(__name__)
        self.system = (system or platform.system()).lower()

    def is_up(self, address: str, attempts: int = 2, timeout: float = 1.0) -> bool:
        """
        Send up to `attempts` echo requests to address.

        Args:
            address: Host to probe
            attempts: Maximum number of echo requests
            timeout: Seconds to wait for each reply

        Returns:
            True on the first answered request, False if none is answered
        """
        for attempt in range(1, max(1, attempts) + 1):
            if self._ping_once(address, timeout):
                self.logger.debug(f"Ping successful: {address} (attempt {attempt})")
                return True
        self.logger.debug(f"No ping reply from {address} after {attempts} attempts")
        return False

    def build_command(self, address: str, timeout: float) -> list:
        if self.system == "windows":
            return ["ping", "-n", "1", "-w", str(int(timeout * 1000)), address]
        if self.system == "darwin":
            # macOS takes -W in milliseconds
            return ["ping", "-c", "1", "-W", str(int(timeout * 1000)), address]
        return ["ping", "-c", "1", "-W", str(max(1, math.ceil(timeout))), address]

    def _ping_once(self, address: str, timeout: float) -> bool:
        cmd = self.build_command(address, timeout)
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout + 2,
            )
        except subprocess.TimeoutExpired:
            return False
        except OSError as e:
            self.logger.debug(f"Cannot run ping for {address}: {e}")
            return False

        if result.returncode != 0:
            return False
        return self._analyze_ping_output(result.stdout + result.stderr, address)

    def _analyze_ping_output(self, output: str, target: str) -> bool:
        """
        Analyze ping output to determine if the host is actually responding.

        Some platforms exit with status 0 when an intermediate router answers
        "destination host unreachable", so the reply itself is checked.
        """
        if not output:
            return False

        output_lower = output.lower()

        if self.system == "windows":
            if any(indicator in output_lower for indicator in _WINDOWS_FAILURE_INDICATORS):
                return False
            if "received = 0" in output_lower:
                return False
            return f"reply from {target}" in output_lower or "ttl=" in output_lower

        if any(indicator in output_lower for indicator in _UNIX_FAILURE_INDICATORS):
            return False
        if " 0 received" in output_lower or " 0 packets received" in output_lower:
            return False
        return "bytes from" in output_lower or "ttl=" in output_lower
