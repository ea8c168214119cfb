"""Per-run change logging.

Each run gets a timestamped directory, logs/natm_<DTG>/, holding one text
file per changed device with the applied commands separated by CRLF. A JSON
change record per device also goes to the ``natm.audit`` logger.
"""
import json
import logging
import os
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Dedicated audit logger, configured by setup_audit_logging()
audit_logger = logging.getLogger("natm.audit")

LOG_NEWLINE = "\r\n"


def setup_audit_logging(log_dir: Optional[str] = None) -> None:
    """Configure the JSON audit log file.

    Args:
        log_dir: Directory for the audit log. Defaults to ~/.natm/
    """
    if log_dir is None:
        log_dir = os.path.expanduser("~/.natm")

    Path(log_dir).mkdir(parents=True, exist_ok=True)

    from logging.handlers import RotatingFileHandler
    handler = RotatingFileHandler(
        os.path.join(log_dir, "audit.log"),
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()
    audit_logger.addHandler(handler)
    audit_logger.propagate = False


def make_dtg(now: Optional[datetime] = None) -> str:
    """Date-time group in ISO8601 basic short form, e.g. 20261018T201800."""
    now = now or datetime.now(timezone.utc)
    return now.strftime("%Y%m%dT%H%M%S")


@dataclass
class ChangeRecord:
    """Record of one device's reconciliation."""
    timestamp: str
    device_id: str
    vrf: str
    dry_run: bool
    success: bool
    commands: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "ChangeRecord":
        """Parse from JSON string."""
        return cls(**json.loads(json_str))


@dataclass(frozen=True)
class RunContext:
    """Run-scoped values shared read-only by every device pipeline."""
    dtg: str
    log_dir: Optional[Path] = None

    @classmethod
    def create(cls, log_base: Optional[Path] = None, enabled: bool = True) -> "RunContext":
        """Create a context with a fresh timestamp.

        Args:
            log_base: Parent directory for run directories
            enabled: When False, no log artifacts are written
        """
        dtg = make_dtg()
        log_dir = None
        if enabled:
            log_dir = Path(log_base or "logs") / f"natm_{dtg}"
        return cls(dtg=dtg, log_dir=log_dir)

    @property
    def logging_enabled(self) -> bool:
        return self.log_dir is not None

    def write_device_log(self, device_id: str, commands: list[str]) -> Optional[Path]:
        """Write the applied commands for a device.

        Returns the file path, or None when logging is disabled.
        """
        if not self.logging_enabled:
            return None

        self.log_dir.mkdir(parents=True, exist_ok=True)
        path = self.log_dir / f"{device_id}.txt"
        with open(path, "w", newline="") as f:
            f.write(LOG_NEWLINE.join(commands) + LOG_NEWLINE)

        logger.info(f"Wrote {len(commands)} applied commands to {path}")
        return path

    def record_change(
        self,
        device_id: str,
        vrf: str,
        commands: list[str],
        success: bool,
        errors: Optional[list[str]] = None,
        dry_run: bool = False,
    ) -> ChangeRecord:
        """Log a JSON change record to the audit logger."""
        record = ChangeRecord(
            timestamp=datetime.now(timezone.utc).isoformat(),
            device_id=device_id,
            vrf=vrf,
            dry_run=dry_run,
            success=success,
            commands=list(commands),
            errors=list(errors or []),
        )
        audit_logger.info(record.to_json())
        return record


def read_change_records(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    limit: int = 100,
) -> list[ChangeRecord]:
    """Read recent change records from the audit log, most recent first."""
    if log_file is None:
        log_file = os.path.expanduser("~/.natm/audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = ChangeRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines

            if device_id and record.device_id != device_id:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
