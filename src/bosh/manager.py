"""Jumpbox and director lifecycle.

Each deployment is interpolated with its prior variables store (so secrets
are reused, not regenerated) and handed to create-env/delete-env together
with its prior deploy-state blob. Failures carry whatever partial state bosh
wrote so the caller can persist it before surfacing the error.
"""

import copy
import logging
from dataclasses import dataclass

import yaml

from bosh.executor import BoshExecutor, EnvInput, InterpolateInput
from errors import (
    BoshVersionError,
    CreateEnvError,
    DeleteEnvError,
    DeploymentCreateError,
    DeploymentDeleteError,
    InterpolateError,
    TunnelError,
    TunnelStartError,
)
from proxy.environment import ProxyEnvironment
from proxy.socks5 import Socks5Proxy
from storage.state import DIRECTOR, JUMPBOX, Director, Jumpbox, State
from storage.store import StateStore

logger = logging.getLogger(__name__)

DIRECTOR_USERNAME = 'admin'
DIRECTOR_INTERNAL_IP = '10.0.0.6'
JUMPBOX_INTERNAL_IP = '10.0.0.5'
INTERNAL_CIDR = '10.0.0.0/24'
INTERNAL_GW = '10.0.0.1'


@dataclass
class Deployment:
    """Outcome of a successful create-env."""
    variables: str
    manifest: str
    state: str


def _output(outputs: dict, key: str) -> str:
    value = outputs.get(key)
    return '' if value is None else str(value)


def _dump(values: dict) -> str:
    """YAML for the non-empty entries of values."""
    return yaml.safe_dump({k: v for k, v in values.items() if v}, default_flow_style=False, sort_keys=True)


def _load_variables(variables: str) -> dict:
    data = yaml.safe_load(variables) or {}
    if not isinstance(data, dict):
        raise ValueError("variables store is not a mapping")
    return data


def jumpbox_private_key(variables: str) -> str:
    """SSH private key for the jumpbox user from a variables store."""
    try:
        key = (_load_variables(variables).get('jumpbox_ssh') or {}).get('private_key', '')
    except (yaml.YAMLError, ValueError, AttributeError) as e:
        raise TunnelError(f"jumpbox key: {e}") from e
    if not key:
        raise TunnelError("jumpbox key: jumpbox_ssh.private_key not found in variables")
    return key


def director_credentials(variables: str) -> dict:
    """Admin password and TLS material from a director variables store."""
    data = _load_variables(variables)
    ssl = data.get('director_ssl') or {}
    return {
        'password': data.get('admin_password', ''),
        'ssl_ca': ssl.get('ca', ''),
        'ssl_certificate': ssl.get('certificate', ''),
        'ssl_private_key': ssl.get('private_key', ''),
    }


class BoshManager:
    """Creates and deletes the jumpbox and director deployments.

    Attributes:
        executor: Runs the bosh CLI
        socks5_proxy: Relay into the private network through the jumpbox
        state_store: Provides the vars dir for create-env working files
        proxy_env: Owner of the process-wide BOSH_ALL_PROXY setting
    """

    def __init__(self, executor: BoshExecutor, socks5_proxy: Socks5Proxy,
                 state_store: StateStore, proxy_env: ProxyEnvironment):
        self.executor = executor
        self.socks5_proxy = socks5_proxy
        self.state_store = state_store
        self.proxy_env = proxy_env

    def version(self) -> str:
        try:
            return self.executor.version()
        except BoshVersionError:
            logger.warning("BOSH version could not be parsed")
            raise

    # -------------------------------------------------------------------------
    # Generic create/delete
    # -------------------------------------------------------------------------

    def create_deployment(self, kind: str, state: State, deployment_vars: str) -> Deployment:
        """Interpolate and create-env one deployment.

        Raises:
            InterpolateError: Interpolation failed; nothing to persist
            DeploymentCreateError: create-env failed; carries partial state
            AggregateError: create-env failed and its state was unreadable
        """
        prior = state.deployment(kind)
        interpolated = self.executor.interpolate(kind, InterpolateInput(
            iaas=state.iaas,
            deployment_vars=deployment_vars,
            variables=prior.variables,
            ops_file=prior.user_ops_file if kind == DIRECTOR else '',
        ))

        try:
            deploy_state = self.executor.create_env(EnvInput(
                deployment=kind,
                directory=self.state_store.get_vars_dir(),
                manifest=interpolated.manifest,
                variables=interpolated.variables,
                state=prior.state,
            ))
        except CreateEnvError as e:
            raise DeploymentCreateError(kind, interpolated.variables, interpolated.manifest,
                                        e.deploy_state, e.cause) from e

        return Deployment(variables=interpolated.variables, manifest=interpolated.manifest,
                          state=deploy_state)

    def delete_deployment(self, kind: str, state: State, deployment_vars: str) -> None:
        """Interpolate and delete-env one deployment.

        Raises:
            DeploymentDeleteError: delete-env failed; carries partial state
        """
        prior = state.deployment(kind)
        interpolated = self.executor.interpolate(kind, InterpolateInput(
            iaas=state.iaas,
            deployment_vars=deployment_vars,
            variables=prior.variables,
            ops_file=prior.user_ops_file if kind == DIRECTOR else '',
        ))

        try:
            self.executor.delete_env(EnvInput(
                deployment=kind,
                directory=self.state_store.get_vars_dir(),
                manifest=interpolated.manifest,
                variables=interpolated.variables,
                state=prior.state,
            ))
        except DeleteEnvError as e:
            raise DeploymentDeleteError(kind, e.deploy_state, e.cause) from e

    # -------------------------------------------------------------------------
    # Jumpbox
    # -------------------------------------------------------------------------

    def create_jumpbox(self, state: State, tf_outputs: dict) -> State:
        """Create the jumpbox, then open the tunnel through it."""
        logger.info("creating jumpbox")
        url = _output(tf_outputs, 'jumpbox_url')
        if not url:
            raise InterpolateError(JUMPBOX, "terraform outputs have no jumpbox_url")

        # Jumpbox traffic goes direct; the tunnel does not exist yet
        self.proxy_env.clear()
        deployment = self.create_deployment(JUMPBOX, state, self.get_jumpbox_deployment_vars(state, tf_outputs))
        logger.info("created jumpbox")

        updated = copy.deepcopy(state)
        updated.jumpbox = Jumpbox(
            variables=deployment.variables,
            state=deployment.state,
            manifest=deployment.manifest,
            url=url,
        )

        logger.info("starting socks5 proxy to jumpbox")
        try:
            self.start_proxy(updated)
        except TunnelError as e:
            raise TunnelStartError(updated.jumpbox, e) from e
        logger.info("started proxy")
        return updated

    def delete_jumpbox(self, state: State, tf_outputs: dict) -> None:
        logger.info("destroying jumpbox")
        self.proxy_env.clear()
        self.delete_deployment(JUMPBOX, state, self.get_jumpbox_deployment_vars(state, tf_outputs))
        logger.info("destroyed jumpbox")

    def start_proxy(self, state: State) -> str:
        """Start the tunnel with the jumpbox key and route bosh through it."""
        private_key = jumpbox_private_key(state.jumpbox.variables)
        self.socks5_proxy.start(private_key, state.jumpbox.url)
        address = self.socks5_proxy.addr()
        self.proxy_env.route_through(address)
        return address

    # -------------------------------------------------------------------------
    # Director
    # -------------------------------------------------------------------------

    def create_director(self, state: State, tf_outputs: dict) -> State:
        """Create the director through the tunnel and record its credentials."""
        logger.info("creating bosh director")
        deployment = self.create_deployment(DIRECTOR, state, self.get_director_deployment_vars(state, tf_outputs))

        try:
            credentials = director_credentials(deployment.variables)
        except (yaml.YAMLError, ValueError) as e:
            raise InterpolateError(DIRECTOR, f"director vars: {e}") from e

        updated = copy.deepcopy(state)
        updated.director = Director(
            name=f'bosh-{state.env_id}',
            address=f'https://{DIRECTOR_INTERNAL_IP}:25555',
            username=DIRECTOR_USERNAME,
            variables=deployment.variables,
            state=deployment.state,
            manifest=deployment.manifest,
            user_ops_file=state.director.user_ops_file,
            **credentials,
        )
        logger.info("created bosh director")
        return updated

    def delete_director(self, state: State, tf_outputs: dict) -> None:
        """Delete the director; the tunnel is opened first."""
        logger.info("destroying bosh director")
        self.start_proxy(state)
        self.delete_deployment(DIRECTOR, state, self.get_director_deployment_vars(state, tf_outputs))
        logger.info("destroyed bosh director")

    # -------------------------------------------------------------------------
    # Deployment vars
    # -------------------------------------------------------------------------

    def get_jumpbox_deployment_vars(self, state: State, tf_outputs: dict) -> str:
        values = {
            'internal_cidr': INTERNAL_CIDR,
            'internal_gw': INTERNAL_GW,
            'internal_ip': JUMPBOX_INTERNAL_IP,
            'director_name': f'bosh-{state.env_id}',
            'external_ip': _output(tf_outputs, 'external_ip'),
        }
        values.update(self._iaas_vars(state, tf_outputs, JUMPBOX))
        return _dump(values)

    def get_director_deployment_vars(self, state: State, tf_outputs: dict) -> str:
        values = {
            'internal_cidr': INTERNAL_CIDR,
            'internal_gw': INTERNAL_GW,
            'internal_ip': DIRECTOR_INTERNAL_IP,
            'director_name': f'bosh-{state.env_id}',
        }
        values.update(self._iaas_vars(state, tf_outputs, DIRECTOR))
        return _dump(values)

    def _iaas_vars(self, state: State, tf_outputs: dict, kind: str) -> dict:
        if state.iaas == 'gcp':
            if kind == JUMPBOX:
                tags = [_output(tf_outputs, 'bosh_open_tag_name'), _output(tf_outputs, 'jumpbox_tag_name')]
            else:
                tags = [_output(tf_outputs, 'bosh_director_tag_name')]
            return {
                'zone': state.gcp.zone,
                'network': _output(tf_outputs, 'network_name'),
                'subnetwork': _output(tf_outputs, 'subnetwork_name'),
                'tags': [t for t in tags if t],
                'project_id': state.gcp.project_id,
                'gcp_credentials_json': state.gcp.service_account_key,
            }

        if state.iaas == 'aws':
            security_group = 'jumpbox_security_group' if kind == JUMPBOX else 'bosh_security_group'
            values = {
                'az': _output(tf_outputs, 'bosh_subnet_availability_zone'),
                'subnet_id': _output(tf_outputs, 'bosh_subnet_id'),
                'access_key_id': state.aws.access_key_id,
                'secret_access_key': state.aws.secret_access_key,
                'iam_instance_profile': _output(tf_outputs, 'bosh_iam_instance_profile'),
                'default_key_name': _output(tf_outputs, 'bosh_vms_key_name'),
                'default_security_groups': [g for g in [_output(tf_outputs, security_group)] if g],
                'region': state.aws.region,
                'private_key': _output(tf_outputs, 'bosh_vms_private_key'),
            }
            if kind == DIRECTOR:
                values['kms_key_arn'] = _output(tf_outputs, 'kms_key_arn')
            return values

        if state.iaas == 'azure':
            values = {
                'vnet_name': _output(tf_outputs, 'bosh_network_name'),
                'subnet_name': _output(tf_outputs, 'bosh_subnet_name'),
                'subscription_id': state.azure.subscription_id,
                'tenant_id': state.azure.tenant_id,
                'client_id': state.azure.client_id,
                'client_secret': state.azure.client_secret,
                'resource_group_name': _output(tf_outputs, 'bosh_resource_group_name'),
                'storage_account_name': _output(tf_outputs, 'bosh_storage_account_name'),
                'default_security_group': _output(tf_outputs, 'bosh_default_security_group'),
            }
            if kind == JUMPBOX:
                values['public_key'] = _output(tf_outputs, 'bosh_vms_public_key')
                values['private_key'] = _output(tf_outputs, 'bosh_vms_private_key')
            return values

        raise ValueError(f"Unsupported IaaS: {state.iaas!r}")
