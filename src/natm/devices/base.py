"""Base device abstraction for NAT routers."""
import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DeviceConfig:
    """Connection settings for a router."""
    type: str
    name: str
    host: str = ""
    port: int = 22
    username: str = ""
    password: Optional[str] = None
    password_env: str = "NATM_PASSWORD"
    enable_password_env: Optional[str] = None
    timeout: int = 30
    # Connection establishment retry policy
    retries: int = 3
    retry_delay: float = 2
    # Desired NAT state, read by the reconcile engine
    vrf: Optional[Any] = None
    static_nats: list = field(default_factory=list)
    # Pre-supplied table text for ci_test runs
    mock_table: str = ""

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    def get_enable_password(self) -> str:
        """Get enable secret from the environment, empty if not required."""
        if not self.enable_password_env:
            return ""
        return os.environ.get(self.enable_password_env, "")


class NatDevice(ABC):
    """Abstract base class for NAT router handlers."""

    def __init__(self, device_id: str, config: DeviceConfig):
        self.device_id = device_id
        self.config = config
        self._connected = False
        self._connection: Any = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def is_connected(self) -> bool:
        return self._connected

    # Connection management
    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to the device."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the device."""
        pass

    # Command execution
    @abstractmethod
    async def execute(self, command: str) -> tuple[bool, str]:
        """Execute a raw command on the device.

        Returns:
            Tuple of (success, output)
        """
        pass

    @abstractmethod
    async def execute_config_mode(self, commands: list[str]) -> tuple[bool, str]:
        """Execute commands in configuration mode.

        Returns:
            Tuple of (success, output)
        """
        pass

    # NAT table retrieval
    @abstractmethod
    async def get_nat_table(self, command: str) -> str:
        """Run the table query command and return its raw output."""
        pass

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
