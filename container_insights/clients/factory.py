"""
Factory for the long-lived clients shared by every collection tick.
"""

from ..config.models import AppConfig
from .docker_client import InventoryProbe
from .metadata_client import HostLocator


def create_host_locator(config: AppConfig) -> HostLocator:
    """Create the metadata client from configuration."""
    return HostLocator(config.metadata.endpoint_url, config.metadata.timeout)


def create_inventory_probe(config: AppConfig) -> InventoryProbe:
    """Create the container runtime probe from configuration."""
    return InventoryProbe(
        base_url=config.inventory.base_url,
        timeout=config.inventory.timeout,
        all_containers=config.inventory.all_containers
    )
