"""Cisco IOS router handler via SSH CLI.

Technical details:
- Interactive shell via paramiko invoke_shell()
- Prompt is "<hostname>>" (user), "<hostname>#" (privileged) or
  "<hostname>(config)#" (configuration mode)
- Pagination disabled with "terminal length 0"
- Errors are reported on lines beginning with "%"

Command Reference:
- show ip nat translations [vrf NAME] : NAT translation table
- configure terminal / end            : Enter/leave configuration mode
- ip nat inside source static A B     : Static one-to-one translation
- write memory                        : Save config
"""
import asyncio
import logging
import re
import time
from typing import Optional

import paramiko

from .base import NatDevice, DeviceConfig
from ..errors import TransportError
from ..utils.connection import with_retry
from ..utils.logging_config import timed, perf_logger

logger = logging.getLogger(__name__)

PROMPT_PATTERN = re.compile(r"(^|[\r\n])[\w.\-]+(\([\w\-]+\))?[>#]\s*$")
ENABLE_PROMPT = re.compile(r"[\w.\-]+>\s*$")
PASSWORD_PROMPT = re.compile(r"[Pp]assword:\s*$")
ENABLE_RESPONSE = re.compile(f"{PASSWORD_PROMPT.pattern}|{PROMPT_PATTERN.pattern}")
MORE_PATTERN = re.compile(r"--More--")
ANSI_PATTERN = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]")


class IOSSSH:
    """Low-level SSH shell handler for IOS routers."""

    def __init__(self, host: str, port: int, username: str, password: str, timeout: float = 30):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.timeout = timeout
        self._client: Optional[paramiko.SSHClient] = None
        self._shell: Optional[paramiko.Channel] = None

    async def connect(self) -> str:
        """Establish SSH connection with interactive shell.

        Returns the banner and first prompt.
        """
        loop = asyncio.get_event_loop()

        def _connect():
            client = paramiko.SSHClient()
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
            client.connect(
                self.host,
                port=self.port,
                username=self.username,
                password=self.password,
                timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            return client

        self._client = await loop.run_in_executor(None, _connect)

        def _get_shell():
            shell = self._client.invoke_shell()
            shell.settimeout(self.timeout)
            return shell

        self._shell = await loop.run_in_executor(None, _get_shell)
        return await self._read_until(PROMPT_PATTERN, timeout=10)

    async def close(self) -> None:
        """Close SSH connection."""
        if self._shell:
            try:
                self._shell.close()
            except Exception as e:
                logger.debug(f"Error closing shell: {e}")
            self._shell = None
        if self._client:
            try:
                self._client.close()
            except Exception as e:
                logger.debug(f"Error closing client: {e}")
            self._client = None

    async def _read_available(self) -> str:
        """Read available data from shell."""
        if not self._shell:
            raise ConnectionError("Not connected")

        shell = self._shell
        loop = asyncio.get_event_loop()

        def _recv():
            if shell.recv_ready():
                data = shell.recv(65535)
                return ANSI_PATTERN.sub("", data.decode("utf-8", errors="ignore"))
            return ""

        return await loop.run_in_executor(None, _recv)

    async def _read_until(self, pattern: re.Pattern, timeout: float = 30) -> str:
        """Read until the pattern matches the tail of the output."""
        output = ""
        loop = asyncio.get_event_loop()
        deadline = loop.time() + timeout

        while loop.time() < deadline:
            chunk = await self._read_available()
            if not chunk:
                await asyncio.sleep(0.1)
                continue

            output += chunk
            if MORE_PATTERN.search(output):
                await self.send_raw(" ")
                output = MORE_PATTERN.sub("", output)
                continue
            if pattern.search(output):
                return output

        raise TimeoutError(
            f"Timed out after {timeout}s waiting for prompt from {self.host}"
        )

    async def send_raw(self, data: str) -> None:
        """Send raw string to shell."""
        if not self._shell:
            raise ConnectionError("Not connected")
        loop = asyncio.get_event_loop()
        await loop.run_in_executor(None, self._shell.send, data)

    async def send_command(
        self,
        command: str,
        timeout: float = 30,
        expect: re.Pattern = PROMPT_PATTERN,
    ) -> str:
        """Send a command and return its output without echo and prompt."""
        await self.send_raw(f"{command}\n")
        output = await self._read_until(expect, timeout=timeout)

        lines = output.replace("\r", "").split("\n")
        if lines and command in lines[0]:
            lines = lines[1:]
        if lines and PROMPT_PATTERN.search(lines[-1]):
            lines = lines[:-1]

        return "\n".join(lines).strip()


class IOSDevice(NatDevice):
    """Cisco IOS router handler via SSH CLI."""

    def __init__(self, device_id: str, config: DeviceConfig):
        super().__init__(device_id, config)
        self._ssh: Optional[IOSSSH] = None

    @staticmethod
    def _has_error(output: str) -> Optional[str]:
        """Return the first IOS error line in the output, if any."""
        for line in output.split("\n"):
            line_stripped = line.strip()
            if line_stripped.startswith("%"):
                return line_stripped
        return None

    @timed("connect")
    async def connect(self) -> bool:
        """Connect to the router and prepare a privileged shell.

        Transient network errors are retried per the device's ``retries``
        and ``retry_delay`` settings.
        """
        logger.info(f"Connecting to IOS {self.device_id} at {self.host}")

        await with_retry(
            self._open_session,
            attempts=self.config.retries,
            delay=self.config.retry_delay,
        )

        self._connected = True
        logger.info(f"Connected to {self.device_id}")
        return True

    async def _open_session(self) -> None:
        """Open one SSH session; a failed session is closed before raising."""
        if self._ssh:
            await self._ssh.close()

        self._ssh = IOSSSH(
            self.host,
            self.config.port,
            self.config.username,
            self.config.get_password(),
            timeout=self.config.timeout,
        )
        try:
            banner = await self._ssh.connect()

            if ENABLE_PROMPT.search(banner):
                await self._enable()

            await self._ssh.send_command("terminal length 0", timeout=self.config.timeout)
        except Exception:
            await self._ssh.close()
            self._ssh = None
            raise

    async def _enable(self) -> None:
        """Enter privileged EXEC mode."""
        output = await self._ssh.send_command(
            "enable", timeout=self.config.timeout, expect=ENABLE_RESPONSE
        )
        if PASSWORD_PROMPT.search(output):
            secret = self.config.get_enable_password()
            output = await self._ssh.send_command(secret, timeout=self.config.timeout)
        if self._has_error(output):
            raise TransportError(
                f"Enable failed: {output}", device_id=self.device_id
            )

    async def disconnect(self) -> None:
        """Disconnect from the router."""
        if self._ssh:
            await self._ssh.close()
            self._ssh = None
        self._connected = False
        logger.info(f"Disconnected from {self.device_id}")

    async def execute(self, command: str) -> tuple[bool, str]:
        """Execute a command on the router."""
        if not self._ssh:
            raise TransportError("Not connected", device_id=self.device_id)

        start = time.perf_counter()
        try:
            output = await self._ssh.send_command(command, timeout=self.config.timeout)
        except (OSError, EOFError, paramiko.SSHException) as e:
            elapsed = (time.perf_counter() - start) * 1000
            perf_logger.warning(
                f"{'execute':20s} | {self.device_id:15s} | {elapsed:8.2f}ms | "
                f"ERROR | cmd={command[:50]} | {e}"
            )
            self._connected = False
            raise TransportError(
                f"Command '{command}' failed: {e}", device_id=self.device_id
            ) from e

        elapsed = (time.perf_counter() - start) * 1000
        error = self._has_error(output)
        status = "FAIL" if error else "OK"
        perf_logger.debug(
            f"{'execute':20s} | {self.device_id:15s} | {elapsed:8.2f}ms | "
            f"{status} | cmd={command[:50]}"
        )
        return error is None, output

    async def execute_config_mode(self, commands: list[str]) -> tuple[bool, str]:
        """Execute commands in configuration mode.

        Stops at the first rejected command and always leaves config mode.
        """
        success, output = await self.execute("configure terminal")
        if not success:
            return False, f"Failed to enter config mode: {output}"

        results = []
        overall_success = True

        try:
            for cmd in commands:
                success, cmd_output = await self.execute(cmd)
                results.append(f"{cmd}: {cmd_output}" if cmd_output else cmd)
                if not success:
                    overall_success = False
                    break
        finally:
            await self.execute("end")

        return overall_success, "\n".join(results)

    @timed("get_nat_table")
    async def get_nat_table(self, command: str) -> str:
        """Get the NAT translation table."""
        success, output = await self.execute(command)
        if not success:
            raise TransportError(
                f"'{command}' failed: {output}", device_id=self.device_id
            )
        return output
