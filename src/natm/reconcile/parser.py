"""Parser for static NAT desired state.

Converts per-device dict/YAML input to a ReconciliationContext. Parsing is
lenient about field values (bad states and addresses are left for the
validator to report all at once) but strict about shape.
"""
from typing import Any, Optional

from ..errors import ValidationError
from .schema import (
    NatEntry,
    NatState,
    ReconciliationContext,
)


class ParseError(ValidationError):
    """Desired state is not shaped like a list of NAT entry mappings."""
    pass


class NatParser:
    """Parse desired NAT state from dict/YAML format."""

    def parse(
        self,
        device_id: str,
        config: dict[str, Any],
    ) -> ReconciliationContext:
        """
        Parse a device's variables into a ReconciliationContext.

        Args:
            device_id: Device the entries belong to
            config: Dict with ``static_nats`` and optional ``vrf``

        Returns:
            ReconciliationContext

        Raises:
            ParseError: If static_nats is not a list of mappings
        """
        raw_entries = config.get("static_nats")
        if raw_entries is None:
            raw_entries = []
        if not isinstance(raw_entries, list):
            raise ParseError(
                f"'static_nats' must be a list; saw {type(raw_entries).__name__}",
                device_id=device_id,
            )

        entries = self.parse_entries(raw_entries, device_id)

        return ReconciliationContext(
            device_id=device_id,
            entries=entries,
            vrf=config.get("vrf"),
        )

    def parse_entries(
        self,
        raw_entries: list[Any],
        device_id: Optional[str] = None,
    ) -> list[NatEntry]:
        """Parse a list of entry mappings into NatEntry objects."""
        entries = []
        problems = []

        for index, raw in enumerate(raw_entries):
            if not isinstance(raw, dict):
                problems.append(
                    f"static_nats[{index}] must be a mapping; saw {raw!r}"
                )
                continue
            entries.append(self._parse_single_entry(raw))

        if problems:
            raise ParseError(problems, device_id=device_id)

        return entries

    def _parse_single_entry(self, config: dict[str, Any]) -> NatEntry:
        """Parse a single entry mapping."""
        return NatEntry(
            # Kept as given; YAML false, 0 or [] must fail the name check
            name=config.get("name"),
            state=self._parse_state(config.get("state")),
            inside=self._as_text(config.get("inside_private")),
            outside=self._as_text(config.get("outside_public")),
        )

    def _parse_state(self, value: Any) -> NatState | str:
        """Map the state string to NatState, keeping unknown values raw."""
        try:
            return NatState(value)
        except ValueError:
            return self._as_text(value)

    @staticmethod
    def _as_text(value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)
