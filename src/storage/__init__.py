"""Persisted environment state and its on-disk store."""

from storage.state import (
    AWS,
    GCP,
    LB,
    Azure,
    Director,
    Jumpbox,
    State,
    DIRECTOR,
    JUMPBOX,
    IAAS_CHOICES,
)
from storage.store import StateStore

__all__ = [
    "AWS",
    "GCP",
    "LB",
    "Azure",
    "Director",
    "Jumpbox",
    "State",
    "DIRECTOR",
    "JUMPBOX",
    "IAAS_CHOICES",
    "StateStore",
]
