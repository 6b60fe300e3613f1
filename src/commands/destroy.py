"""Tear an environment down in reverse order: director, jumpbox, infrastructure."""

import copy
import logging

from bosh.manager import BoshManager
from commands.up import persist_partial
from errors import BootloaderError, PartialStateError
from proxy.environment import ProxyEnvironment
from storage.state import Director, Jumpbox, State
from storage.store import StateStore
from terraform.manager import TerraformManager

logger = logging.getLogger(__name__)


class Destroy:
    """Orchestrates environment deletion.

    Deployment records are reset only after their delete succeeds. A failed
    delete saves the partial deploy state so the next run picks it up.
    """

    def __init__(self, terraform_manager: TerraformManager, bosh_manager: BoshManager,
                 state_store: StateStore, proxy_env: ProxyEnvironment):
        self.terraform_manager = terraform_manager
        self.bosh_manager = bosh_manager
        self.state_store = state_store
        self.proxy_env = proxy_env

    def execute(self) -> State:
        state = self.state_store.get()
        if state.is_empty():
            logger.info("No environment found; nothing to destroy")
            return state

        self.terraform_manager.validate_version()
        tf_outputs = self._outputs(state)

        if state.director.is_deployed():
            self._stage(state, self.bosh_manager.delete_director, tf_outputs)
            state = copy.deepcopy(state)
            state.director = Director(user_ops_file=state.director.user_ops_file)
            self.state_store.set(state)
        else:
            logger.debug("No director deployed")

        if state.jumpbox.is_deployed():
            self._stage(state, self.bosh_manager.delete_jumpbox, tf_outputs)
            state = copy.deepcopy(state)
            state.jumpbox = Jumpbox()
            self.state_store.set(state)
        else:
            logger.debug("No jumpbox deployed")

        self.bosh_manager.socks5_proxy.stop()
        self.proxy_env.clear()

        state = self._stage(state, self.terraform_manager.destroy)
        self.state_store.set(state)

        self.state_store.set(State())
        logger.info(f"Destroyed environment {state.env_id}")
        return State()

    def _outputs(self, state: State) -> dict:
        """Live terraform outputs, or the ones recorded by the last up."""
        try:
            outputs = self.terraform_manager.get_outputs(state)
        except BootloaderError as e:
            logger.warning(f"Cannot read terraform outputs ({e}); using the recorded ones")
            return state.tf_outputs
        return outputs or state.tf_outputs

    def _stage(self, state: State, operation, *args):
        try:
            return operation(state, *args)
        except PartialStateError as e:
            persist_partial(self.state_store, state, e)
            raise
