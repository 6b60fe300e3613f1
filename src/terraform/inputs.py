"""Per-IaaS terraform input variables.

Credential and certificate files are written to a fixed directory under the
state dir, so generating inputs twice for the same state yields equal maps.
"""

import logging
import os
from pathlib import Path

from storage.state import State

logger = logging.getLogger(__name__)


def _write_private(path: Path, contents: str) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding='utf-8')
    os.chmod(path, 0o600)
    return str(path)


class GCPInputGenerator:
    """Inputs for the gcp templates."""

    def __init__(self, files_dir: Path):
        self.files_dir = Path(files_dir)

    def generate(self, state: State) -> dict:
        credentials = _write_private(self.files_dir / 'credentials.json', state.gcp.service_account_key)
        inputs = {
            'env_id': state.env_id,
            'project_id': state.gcp.project_id,
            'region': state.gcp.region,
            'zone': state.gcp.zone,
            'credentials': credentials,
            'system_domain': state.lb.domain,
        }
        if state.lb.cert and state.lb.key:
            inputs['ssl_certificate'] = _write_private(self.files_dir / 'cert', state.lb.cert)
            inputs['ssl_certificate_private_key'] = _write_private(self.files_dir / 'key', state.lb.key)
        return inputs


class AWSInputGenerator:
    """Inputs for the aws templates."""

    def generate(self, state: State) -> dict:
        inputs = {
            'env_id': state.env_id,
            'access_key': state.aws.access_key_id,
            'secret_key': state.aws.secret_access_key,
            'region': state.aws.region,
        }
        if state.lb.type:
            inputs['system_domain'] = state.lb.domain
        return inputs


class AzureInputGenerator:
    """Inputs for the azure templates."""

    def generate(self, state: State) -> dict:
        return {
            'env_id': state.env_id,
            'subscription_id': state.azure.subscription_id,
            'tenant_id': state.azure.tenant_id,
            'client_id': state.azure.client_id,
            'client_secret': state.azure.client_secret,
            'location': state.azure.region,
        }


class InputGenerator:
    """Dispatches to the generator for the state's IaaS."""

    def __init__(self, files_dir: Path):
        self.generators = {
            'gcp': GCPInputGenerator(files_dir),
            'aws': AWSInputGenerator(),
            'azure': AzureInputGenerator(),
        }

    def generate(self, state: State) -> dict:
        generator = self.generators.get(state.iaas)
        if generator is None:
            raise ValueError(f"No terraform inputs for IaaS: {state.iaas!r}")
        logger.debug(f"Generating {state.iaas} terraform inputs for {state.env_id}")
        return generator.generate(state)
