"""Jumpbox and director deployments through the bosh CLI."""

from bosh.executor import (
    BoshExecutor,
    EnvInput,
    InterpolateInput,
    InterpolateOutput,
)
from bosh.manager import BoshManager, Deployment

__all__ = [
    "BoshExecutor",
    "EnvInput",
    "InterpolateInput",
    "InterpolateOutput",
    "BoshManager",
    "Deployment",
]
