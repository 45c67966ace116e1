"""Deployment and backup pipelines"""

from .deployment import DeploymentPipeline
from .backup import BackupPipeline

__all__ = [
    "DeploymentPipeline",
    "BackupPipeline",
]
