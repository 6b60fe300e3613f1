"""Bring an environment up: infrastructure, jumpbox, tunnel, director.

Every stage persists state on success. A stage that fails after making
progress raises a PartialStateError; its progress is merged and saved
before the error propagates, so running `up` again resumes from there.
"""

import copy
import logging
import secrets
from dataclasses import dataclass, field
from typing import Callable, Optional

from bosh.manager import BoshManager
from config import REQUIRED_CREDENTIALS, ConfigError
from errors import BoshVersionError, PartialStateError
from storage.state import IAAS_CHOICES, LB, State
from storage.store import StateStore
from terraform.manager import TerraformManager

logger = logging.getLogger(__name__)


def generate_env_id() -> str:
    return f'env-{secrets.token_hex(4)}'


@dataclass
class UpOptions:
    """Caller-supplied settings for `up`.

    Attributes:
        iaas: Target IaaS; may be omitted when the state already has one
        credentials: Resolved credential fields for the IaaS
        name: Environment id to use for a new environment
        lb: Load balancer settings; None leaves the persisted ones
        ops_file: Operations overlay for the director; '' keeps the saved one
        no_director: Stop after the jumpbox and tunnel
    """
    iaas: str = ''
    credentials: dict = field(default_factory=dict)
    name: str = ''
    lb: Optional[LB] = None
    ops_file: str = ''
    no_director: bool = False


def persist_partial(store: StateStore, state: State, error: PartialStateError) -> State:
    """Merge the progress carried by error into state and save it."""
    merged = error.apply_to(state)
    path = store.set(merged)
    logger.warning(f"{error.stage} failed; saved partial state to {path}")
    return merged


class Up:
    """Orchestrates environment creation."""

    def __init__(self, terraform_manager: TerraformManager, bosh_manager: BoshManager,
                 state_store: StateStore, probe: Optional[Callable] = None):
        self.terraform_manager = terraform_manager
        self.bosh_manager = bosh_manager
        self.state_store = state_store
        self.probe = probe

    def execute(self, options: UpOptions) -> State:
        self.terraform_manager.validate_version()
        try:
            self.bosh_manager.version()
        except BoshVersionError:
            pass  # already logged as a warning

        state = self.configure(self.state_store.get(), options)
        self.state_store.set(state)

        state = self._stage(state, self.terraform_manager.apply)
        self.state_store.set(state)

        state = copy.deepcopy(state)
        state.tf_outputs = self.terraform_manager.get_outputs(state)
        self.state_store.set(state)

        state = self._stage(state, self.bosh_manager.create_jumpbox, state.tf_outputs)
        self.state_store.set(state)

        if state.no_director:
            logger.info("skipping director (no_director is set)")
            return state

        state = self._stage(state, self.bosh_manager.create_director, state.tf_outputs)
        self.state_store.set(state)

        self._probe_director(state)
        return state

    def _stage(self, state: State, operation, *args) -> State:
        try:
            return operation(state, *args)
        except PartialStateError as e:
            persist_partial(self.state_store, state, e)
            raise

    def _probe_director(self, state: State) -> None:
        if self.probe is None:
            return
        ok, message = self.probe(state.director.address, state.director.ssl_ca,
                                 self.bosh_manager.socks5_proxy.addr())
        if ok:
            logger.info(f"Director reachable: {message}")
        else:
            logger.warning(f"Director not reachable yet: {message}")

    @staticmethod
    def configure(state: State, options: UpOptions) -> State:
        """Apply options to the persisted state.

        Raises:
            ConfigError: IaaS missing, changed, unsupported, or credentials incomplete
        """
        state = copy.deepcopy(state)
        iaas = options.iaas or state.iaas
        if not iaas:
            raise ConfigError("--iaas is required for a new environment")
        if iaas not in IAAS_CHOICES:
            raise ConfigError(f"Unsupported IaaS: {iaas!r}. Choose one of: {', '.join(IAAS_CHOICES)}")
        if state.iaas and state.iaas != iaas:
            raise ConfigError(f"Environment already uses {state.iaas}; cannot switch to {iaas}")
        state.iaas = iaas

        record = getattr(state, iaas)
        for name, value in options.credentials.items():
            setattr(record, name, value)
        missing = [n for n in REQUIRED_CREDENTIALS[iaas] if not getattr(record, n)]
        if missing:
            flags = ', '.join(f"--{iaas}-{n.replace('_', '-')}" for n in missing)
            raise ConfigError(f"Missing {iaas} credentials: {flags}")

        if not state.env_id:
            state.env_id = options.name or generate_env_id()
            logger.info(f"Using environment id {state.env_id}")

        if options.lb is not None:
            state.lb = copy.deepcopy(options.lb)
        if options.ops_file:
            state.director.user_ops_file = options.ops_file
        state.no_director = options.no_director or state.no_director
        return state
