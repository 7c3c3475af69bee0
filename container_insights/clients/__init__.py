"""
Clients for the external collaborators: metadata endpoint and container runtime.
"""

from .metadata_client import HostLocator, parse_metadata, resolve_host_metadata
from .docker_client import InventoryProbe
from .factory import create_host_locator, create_inventory_probe

__all__ = [
    "HostLocator",
    "parse_metadata",
    "resolve_host_metadata",
    "InventoryProbe",
    "create_host_locator",
    "create_inventory_probe",
]
