"""
Container Insights collector: periodic container-count telemetry for a host.
"""

__version__ = "0.1.0"
