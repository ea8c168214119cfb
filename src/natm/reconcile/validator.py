"""Pre-flight validation for static NAT desired state.

Catches malformed and conflicting entries before any device communication.
Duplicate addresses applied to a live NAT table break translation for every
host sharing the router, so all checks run and every violation is reported.
"""
import ipaddress
from collections import defaultdict
from typing import Any, Optional, Sequence

from .schema import (
    NatEntry,
    NatState,
    ValidationResult,
)


# Entry count above which a warning is emitted
LARGE_ENTRY_SET = 50


class NatValidator:
    """Validate a desired-state entry list and VRF for a single device."""

    def validate(
        self,
        entries: Optional[Sequence[NatEntry]],
        vrf: Optional[Any] = None,
    ) -> ValidationResult:
        """
        Validate desired NAT entries.

        Performs pre-flight checks:
        - Entry list defined and non-empty
        - VRF is a string when given
        - Per entry: name, state, IPv4 host addresses (no CIDR)
        - Across entries: unique names, inside and outside addresses

        Args:
            entries: Desired NAT entries for the device
            vrf: Optional VRF name

        Returns:
            ValidationResult with valid flag, errors, and warnings
        """
        errors: list[str] = []
        warnings: list[str] = []

        if not entries:
            errors.append("'static_nats' must be defined and non-empty")
            entries = []

        self._validate_vrf(vrf, errors)

        for entry in entries:
            self._validate_entry(entry, errors)

        self._check_duplicates(entries, errors)

        if len(entries) > LARGE_ENTRY_SET:
            warnings.append(
                f"Large entry set ({len(entries)} entries) - review before applying"
            )

        return ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
        )

    def _validate_vrf(self, vrf: Optional[Any], errors: list[str]) -> None:
        """VRF must be a string if it is provided at all."""
        if vrf is None:
            return
        if not isinstance(vrf, str):
            errors.append(
                f"'vrf' must be a string; saw {vrf!r} ({type(vrf).__name__})"
            )
            return
        if any(ch.isspace() for ch in vrf.strip()):
            errors.append(f"'vrf' must not contain whitespace; saw {vrf.strip()!r}")

    def _validate_entry(self, entry: NatEntry, errors: list[str]) -> None:
        """Check a single entry's fields."""
        label = entry.label

        if not entry.name:
            errors.append(f"{label}: name must be a non-empty string; saw {entry.name!r}")

        if not isinstance(entry.state, NatState):
            errors.append(
                f"{label}: state must be 'present' or 'absent'; saw {entry.state!r}"
            )

        for field_name, address in (
            ("inside_private", entry.inside),
            ("outside_public", entry.outside),
        ):
            problem = self._address_problem(address)
            if problem:
                errors.append(
                    f"{label}: {field_name} {problem}; saw {address!r}"
                )

    def _address_problem(self, address: Any) -> Optional[str]:
        """Describe why an address is unusable, or None if it is fine."""
        if not isinstance(address, str) or not address:
            return "must be an IPv4 address"
        if "/" in address:
            return "must be a host address, not CIDR"
        try:
            parsed = ipaddress.IPv4Address(address)
        except ValueError:
            return "must be an IPv4 address"
        if str(parsed) != address:
            return "must be a canonical IPv4 address"
        return None

    def _check_duplicates(
        self,
        entries: Sequence[NatEntry],
        errors: list[str],
    ) -> None:
        """Names, inside and outside addresses must be unique per device."""
        for field_name, attr in (
            ("name", "name"),
            ("inside_private", "inside"),
            ("outside_public", "outside"),
        ):
            # Keyed by repr: raw names may be unhashable YAML values
            seen: dict[str, list[str]] = defaultdict(list)
            for entry in entries:
                seen[repr(getattr(entry, attr))].append(str(entry.name))

            for value, names in seen.items():
                if len(names) > 1:
                    errors.append(
                        f"Duplicate {field_name} {value} shared by entries "
                        f"{', '.join(names)}"
                    )
