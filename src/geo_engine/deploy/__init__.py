"""Deployment artifacts for GEO Engine."""

from .manifests import (
    CONTAINER_PARAMS_PATH,
    PARAMS_FILENAME,
    DeploymentBuilder,
    dns_label,
)

__all__ = [
    "DeploymentBuilder",
    "dns_label",
    "PARAMS_FILENAME",
    "CONTAINER_PARAMS_PATH",
]
