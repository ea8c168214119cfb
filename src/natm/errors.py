"""Error taxonomy for NAT reconciliation.

Every error aborts the pipeline of the device it was raised for. Each
carries the full list of violated checks so operators see every problem at
once.
"""
from typing import Iterable, Optional


class ReconcileError(Exception):
    """Base class for reconciliation failures."""

    stage = "reconcile"

    def __init__(
        self,
        errors: Iterable[str] | str,
        device_id: Optional[str] = None,
    ):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        self.device_id = device_id
        super().__init__(self._format())

    def _format(self) -> str:
        prefix = f"[{self.device_id}] " if self.device_id else ""
        if len(self.errors) == 1:
            return f"{prefix}{self.errors[0]}"
        return f"{prefix}{len(self.errors)} problems:\n" + "\n".join(
            f"  - {e}" for e in self.errors
        )


class ValidationError(ReconcileError):
    """Desired state or VRF violates a structural or uniqueness rule."""

    stage = "validate"


class VerificationError(ReconcileError):
    """Device did not converge to the declared state."""

    stage = "verify"


class TransportError(ReconcileError):
    """Device command channel failed or rejected a command."""

    stage = "transport"


class ConfigError(Exception):
    """Invalid or missing inventory configuration."""
    pass
