"""natm - static NAT reconciliation for network routers."""

__version__ = "0.1.0"
