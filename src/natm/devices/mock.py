"""In-memory router used when ci_test is enabled.

Serves a pre-supplied NAT table and applies static NAT commands to it, so a
full reconciliation run can be exercised without contacting a device.
"""
import logging
import re

from .base import NatDevice, DeviceConfig

logger = logging.getLogger(__name__)

TABLE_HEADER = (
    "Pro Inside global         Inside local          "
    "Outside local         Outside global"
)

STATIC_NAT_PATTERN = re.compile(
    r"^(?P<negate>no\s+)?ip nat inside source static\s+"
    r"(?P<inside>\S+)\s+(?P<outside>\S+)(?:\s+vrf\s+(?P<vrf>\S+))?\s*$"
)


def format_translation_row(inside: str, outside: str) -> str:
    """Render a static translation the way IOS lists it."""
    return f"--- {outside:<21} {inside:<21} {'---':<21} ---"


class MockDevice(NatDevice):
    """Router stand-in backed by a text table."""

    def __init__(self, device_id: str, config: DeviceConfig):
        super().__init__(device_id, config)
        self._rows: list[str] = [
            line for line in (config.mock_table or "").splitlines()
            if line.strip() and not line.startswith("Pro ")
        ]
        self.history: list[str] = []
        self.rejected: set[str] = set()
        # Accept commands without changing the table
        self.frozen = False

    @property
    def table_text(self) -> str:
        return "\n".join([TABLE_HEADER] + self._rows)

    async def connect(self) -> bool:
        self._connected = True
        logger.debug(f"Mock device {self.device_id} connected")
        return True

    async def disconnect(self) -> None:
        self._connected = False

    async def execute(self, command: str) -> tuple[bool, str]:
        """Record a command and apply it if it is a static NAT statement."""
        self.history.append(command)

        if command in self.rejected:
            return False, "% Invalid input detected at '^' marker."

        if command.startswith("show ip nat translations"):
            return True, self.table_text

        match = STATIC_NAT_PATTERN.match(command)
        if match and not self.frozen:
            self._apply(match)
        return True, ""

    async def execute_config_mode(self, commands: list[str]) -> tuple[bool, str]:
        """Execute commands sequentially, stopping at the first rejection."""
        outputs = []
        for cmd in commands:
            success, output = await self.execute(cmd)
            outputs.append(f"{cmd}: {output}" if output else cmd)
            if not success:
                return False, "\n".join(outputs)
        return True, "\n".join(outputs)

    async def get_nat_table(self, command: str) -> str:
        success, output = await self.execute(command)
        return output

    def _apply(self, match: re.Match) -> None:
        inside = match.group("inside")
        outside = match.group("outside")

        if match.group("negate"):
            self._rows = [
                row for row in self._rows
                if not (inside in row.split() and outside in row.split())
            ]
        elif not any(inside in row.split() and outside in row.split() for row in self._rows):
            self._rows.append(format_translation_row(inside, outside))
