"""Inventory and run settings."""
from .inventory import NatInventory, RunSettings

__all__ = ["NatInventory", "RunSettings"]
