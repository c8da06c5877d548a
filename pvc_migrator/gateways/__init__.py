"""Cluster and cloud gateways."""

from .interfaces import ClusterGateway, VolumeGateway  # noqa: F401

__all__ = ["ClusterGateway", "VolumeGateway"]
