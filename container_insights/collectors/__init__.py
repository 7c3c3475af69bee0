"""
Collection jobs run by the scheduler.
"""

from .base import BaseCollector
from .container_count import ContainerCountCollector

__all__ = [
    "BaseCollector",
    "ContainerCountCollector",
]
