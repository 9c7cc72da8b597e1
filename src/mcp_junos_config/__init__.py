"""junoscraft: configuration reconciliation for Junos devices over NETCONF."""

__version__ = "0.1.0"
