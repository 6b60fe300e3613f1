"""Lifecycle commands run by the CLI."""

from commands.destroy import Destroy
from commands.print_env import director_ca_cert, print_env
from commands.up import Up, UpOptions, generate_env_id

__all__ = [
    "Destroy",
    "Up",
    "UpOptions",
    "generate_env_id",
    "director_ca_cert",
    "print_env",
]
