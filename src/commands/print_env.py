"""Shell exports for targeting the director from a workstation."""

import os

from bosh.manager import jumpbox_private_key
from errors import StateError
from storage.state import State
from storage.store import StateStore

JUMPBOX_KEY_FILE = 'jumpbox.key'


def write_jumpbox_key(state: State, store: StateStore) -> str:
    """Write the jumpbox private key under the vars dir (0600); return its path."""
    path = store.get_vars_dir() / JUMPBOX_KEY_FILE
    path.write_text(jumpbox_private_key(state.jumpbox.variables), encoding='utf-8')
    os.chmod(path, 0o600)
    return str(path)


def print_env(state: State, store: StateStore) -> str:
    """Export lines for BOSH_CLIENT, BOSH_ENVIRONMENT, BOSH_ALL_PROXY and friends.

    Raises:
        StateError: No environment, or no jumpbox to tunnel through
    """
    if state.is_empty():
        raise StateError(f"No environment found in {store.state_dir}")
    if not state.jumpbox.url:
        raise StateError("Jumpbox has not been created; run up first")

    lines = []
    if state.director.address:
        lines += [
            f'export BOSH_CLIENT={state.director.username}',
            f'export BOSH_CLIENT_SECRET={state.director.password}',
            f"export BOSH_CA_CERT='{state.director.ssl_ca}'",
            f'export BOSH_ENVIRONMENT={state.director.address}',
        ]

    key_path = write_jumpbox_key(state, store)
    lines += [
        f'export JUMPBOX_PRIVATE_KEY={key_path}',
        f'export BOSH_ALL_PROXY=ssh+socks5://jumpbox@{state.jumpbox.url}?private-key={key_path}',
    ]
    return '\n'.join(lines)


def director_ca_cert(state: State) -> str:
    if not state.director.ssl_ca:
        raise StateError("No director CA certificate in state")
    return state.director.ssl_ca
